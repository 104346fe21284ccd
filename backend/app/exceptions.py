"""
Featureforgeアプリケーションの例外クラス階層

このモジュールは、アプリケーション全体で使用される例外クラスの階層を定義します。
各例外クラスにはエラーコードと、APIで返すHTTPステータスが割り当てられています。
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """エラーコード定義"""
    # 一般的なエラー (1000-1999)
    GENERAL_ERROR = 1000
    TIMEOUT_ERROR = 1002

    # 解析関連エラー (2000-2999)
    PARSE_ERROR = 2000
    GHERKIN_PARSE_ERROR = 2001
    STEP_PARSE_ERROR = 2002

    # テスト実行関連エラー (3000-3999)
    TEST_ERROR = 3000
    ASSET_MISSING = 3001
    RUNNER_PROCESS_ERROR = 3002
    REPORT_PARSE_ERROR = 3003
    EXECUTION_VALIDATION_ERROR = 3004

    # API関連エラー (4000-4999)
    API_ERROR = 4000
    NOT_FOUND = 4004

    # データ処理関連エラー (5000-5999)
    DATA_ERROR = 5000
    DATABASE_ERROR = 5001
    VALIDATION_ERROR = 5002
    PERSISTENCE_ERROR = 5003


class FeatureforgeException(Exception):
    """Featureforgeの基底例外クラス"""
    status_code = 500

    def __init__(
        self,
        message: str = "Featureforgeアプリケーションエラーが発生しました",
        error_code: ErrorCode = ErrorCode.GENERAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.error_code.name}:{self.error_code.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """例外情報を辞書形式で返す"""
        return {
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "message": self.message,
            "details": self.details
        }


# システム関連の例外クラス
class SystemException(FeatureforgeException):
    """システム関連の基底例外クラス"""
    def __init__(
        self,
        message: str = "システムエラーが発生しました",
        error_code: ErrorCode = ErrorCode.GENERAL_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class TimeoutException(SystemException):
    """タイムアウトエラー"""
    def __init__(
        self,
        message: str = "処理がタイムアウトしました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.TIMEOUT_ERROR, details)


# 解析関連の例外クラス
class ParseException(FeatureforgeException):
    """featureファイル・ステップ定義ファイルの解析エラー"""
    status_code = 400

    def __init__(
        self,
        message: str = "ファイルの解析に失敗しました",
        error_code: ErrorCode = ErrorCode.PARSE_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class GherkinParseException(ParseException):
    """featureファイルの解析エラー"""
    def __init__(
        self,
        message: str = "featureファイルの解析に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.GHERKIN_PARSE_ERROR, details)


class StepParseException(ParseException):
    """ステップ定義ファイルの解析エラー"""
    def __init__(
        self,
        message: str = "ステップ定義ファイルの解析に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.STEP_PARSE_ERROR, details)


# テスト実行関連の例外クラス
class TestException(FeatureforgeException):
    """テスト関連の基底例外クラス"""
    __test__ = False

    def __init__(
        self,
        message: str = "テスト処理中にエラーが発生しました",
        error_code: ErrorCode = ErrorCode.TEST_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class AssetMissingException(TestException):
    """エンティティのfeature/ステップファイルが存在しない"""
    status_code = 404

    def __init__(
        self,
        message: str = "テスト資産が見つかりません",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.ASSET_MISSING, details)


class RunnerProcessException(TestException):
    """ランナーのサブプロセスが失敗した"""
    def __init__(
        self,
        message: str = "テストランナーの実行に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.RUNNER_PROCESS_ERROR, details)


class ReportParseException(TestException):
    """実行レポートが存在しない、または不正"""
    def __init__(
        self,
        message: str = "実行レポートの解析に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.REPORT_PARSE_ERROR, details)


class ExecutionValidationException(TestException):
    """実行前の検証エラー（空のテストセット、フィルタに一致するシナリオがない等）"""
    status_code = 400

    def __init__(
        self,
        message: str = "テスト実行の条件が不正です",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.EXECUTION_VALIDATION_ERROR, details)


# API関連の例外クラス
class NotFoundException(FeatureforgeException):
    """リソースが存在しない"""
    status_code = 404

    def __init__(
        self,
        message: str = "リソースが見つかりません",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


# データ処理関連の例外クラス
class DataException(FeatureforgeException):
    """データ関連の基底例外クラス"""
    def __init__(
        self,
        message: str = "データ処理中にエラーが発生しました",
        error_code: ErrorCode = ErrorCode.DATA_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class DatabaseException(DataException):
    """データベースエラー"""
    def __init__(
        self,
        message: str = "データベース操作に失敗しました",
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class PersistenceException(DatabaseException):
    """同期・結果保存時の書き込みエラー"""
    def __init__(
        self,
        message: str = "データの保存に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.PERSISTENCE_ERROR, details)


class ValidationException(DataException):
    """データ検証エラー"""
    status_code = 400

    def __init__(
        self,
        message: str = "入力データの検証に失敗しました",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


# 例外処理ヘルパー関数
def exception_to_response(exception: FeatureforgeException) -> Dict[str, Any]:
    """
    例外をAPIレスポンス形式に変換する

    Args:
        exception: 変換する例外

    Returns:
        APIレスポンス形式の辞書
    """
    return {
        "success": False,
        "error": exception.to_dict()
    }
