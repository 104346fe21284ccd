import os
import json
import yaml
from typing import Any, Dict, List, Optional, TypeVar, Generic, cast
from functools import lru_cache
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# 型変数の定義
T = TypeVar('T')

class ConfigValue(Generic[T]):
    """設定値を表すクラス。環境変数、設定ファイル、デフォルト値の優先順位を管理する"""

    def __init__(
        self,
        default: T,
        env_var: Optional[str] = None,
        config_path: Optional[str] = None,
        description: str = ""
    ):
        self.default = default
        self.env_var = env_var
        self.config_path = config_path
        self.description = description
        self._value: Optional[T] = None
        self._is_cached = False

    def get_value(self, config_data: Optional[Dict[str, Any]] = None) -> T:
        """設定値を取得する。キャッシュがある場合はキャッシュから取得する"""
        if self._is_cached:
            return cast(T, self._value)

        # 環境変数から取得
        if self.env_var and self.env_var in os.environ:
            self._value = self._convert_value(os.environ[self.env_var])
            self._is_cached = True
            return cast(T, self._value)

        # 設定ファイルから取得（ドット記法でネストした値にアクセス）
        if config_data and self.config_path:
            try:
                value: Any = config_data
                for path in self.config_path.split('.'):
                    value = value[path]
                self._value = self._convert_value(value)
                self._is_cached = True
                return cast(T, self._value)
            except (KeyError, TypeError):
                pass

        self._value = self.default
        self._is_cached = True
        return self.default

    def _convert_value(self, value: Any) -> T:
        """値を適切な型に変換する"""
        if isinstance(self.default, bool) and isinstance(value, str):
            return cast(T, value.lower() == "true")
        elif isinstance(self.default, int) and isinstance(value, str):
            return cast(T, int(value))
        elif isinstance(self.default, float) and isinstance(value, str):
            return cast(T, float(value))
        elif isinstance(self.default, list) and isinstance(value, str):
            return cast(T, [item.strip() for item in value.split(',') if item.strip()])
        elif isinstance(self.default, dict) and isinstance(value, str):
            try:
                return cast(T, json.loads(value))
            except json.JSONDecodeError:
                return self.default
        else:
            return cast(T, value)

    def clear_cache(self) -> None:
        """キャッシュをクリアする"""
        self._is_cached = False
        self._value = None


class AppConfig:
    """アプリケーション設定"""
    NAME = ConfigValue[str](
        default="Featureforge",
        env_var="APP_NAME",
        config_path="app.name",
        description="アプリケーション名"
    )
    DEBUG = ConfigValue[bool](
        default=False,
        env_var="DEBUG",
        config_path="app.debug",
        description="デバッグモードの有効/無効"
    )


class PathConfig:
    """テストプロジェクトのファイル配置設定"""
    PROJECTS_DIR = ConfigValue[str](
        default="/code/data/projects",
        env_var="PROJECTS_DIR",
        config_path="paths.projects_dir",
        description="テストプロジェクトを配置するルートディレクトリ"
    )
    FEATURES_DIR = ConfigValue[str](
        default="src/features",
        env_var="FEATURES_DIR",
        config_path="paths.features_dir",
        description="プロジェクト内のfeatureファイルディレクトリ"
    )
    STEPS_DIR = ConfigValue[str](
        default="src/steps",
        env_var="STEPS_DIR",
        config_path="paths.steps_dir",
        description="プロジェクト内のステップ定義ディレクトリ"
    )
    REPORT_PATH = ConfigValue[str](
        default="test-results/cucumber-report.json",
        env_var="REPORT_PATH",
        config_path="paths.report_path",
        description="ランナーが出力するJSONレポートの相対パス"
    )
    ASSET_DIRS = ConfigValue[List[str]](
        default=["features", "fixtures", "schemas", "steps", "types"],
        env_var="ASSET_DIRS",
        config_path="paths.asset_dirs",
        description="セクション/エンティティ検出に使う src 配下のディレクトリ"
    )


class RunnerConfig:
    """BDDランナー設定"""
    COMMAND = ConfigValue[List[str]](
        default=["npx", "cucumber-js"],
        env_var="RUNNER_COMMAND",
        config_path="runner.command",
        description="ランナーの起動コマンド"
    )
    REQUIRE_MODULES = ConfigValue[List[str]](
        default=["ts-node/register"],
        env_var="RUNNER_REQUIRE_MODULES",
        config_path="runner.require_modules",
        description="--require-module に渡すモジュール"
    )
    REQUIRE_PATHS = ConfigValue[List[str]](
        default=["src/steps/**/*.ts", "src/steps/hooks.ts"],
        env_var="RUNNER_REQUIRE_PATHS",
        config_path="runner.require_paths",
        description="--require に渡すステップ定義のパス"
    )
    FORMATTER = ConfigValue[str](
        default="@cucumber/pretty-formatter",
        env_var="RUNNER_FORMATTER",
        config_path="runner.formatter",
        description="コンソール出力用フォーマッタ"
    )
    DEFAULT_TIMEOUT_MS = ConfigValue[int](
        default=30000,
        env_var="RUNNER_DEFAULT_TIMEOUT_MS",
        config_path="runner.default_timeout_ms",
        description="テストセット実行時のデフォルトタイムアウト（ミリ秒）"
    )
    DEFAULT_RETRIES = ConfigValue[int](
        default=1,
        env_var="RUNNER_DEFAULT_RETRIES",
        config_path="runner.default_retries",
        description="テストセット実行時のデフォルトリトライ回数"
    )
    DEFAULT_WORKERS = ConfigValue[int](
        default=3,
        env_var="RUNNER_DEFAULT_WORKERS",
        config_path="runner.default_workers",
        description="テストセット実行時のデフォルトワーカー数"
    )


class RedisConfig:
    """Redis設定"""
    URL = ConfigValue[str](
        default="redis://redis:6379/0",
        env_var="REDIS_URL",
        config_path="redis.url",
        description="Redis URL"
    )


class DatabaseConfig:
    """データベース設定"""
    URL = ConfigValue[str](
        default="postgresql://featureforge:featureforge@db:5432/featureforge",
        env_var="DATABASE_URL",
        config_path="database.url",
        description="データベースURL"
    )


class TimeoutConfig:
    """タイムアウト設定"""
    DEFAULT = ConfigValue[float](
        default=30.0,
        env_var="TIMEOUT_DEFAULT",
        config_path="timeout.default",
        description="デフォルトのタイムアウト値（秒）"
    )
    RUNNER_PROCESS = ConfigValue[float](
        default=1800.0,
        env_var="TIMEOUT_RUNNER_PROCESS",
        config_path="timeout.runner_process",
        description="ランナーのサブプロセス全体のタイムアウト値（秒）"
    )


class EventConfig:
    """実行イベント設定"""
    HISTORY_SIZE = ConfigValue[int](
        default=200,
        env_var="EVENT_HISTORY_SIZE",
        config_path="events.history_size",
        description="メモリ上に保持するイベント履歴の件数"
    )


class Config:
    """設定クラス"""
    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config_data: Dict[str, Any] = {}
        self._load_config_file()

        # 設定カテゴリの初期化
        self.app = AppConfig()
        self.paths = PathConfig()
        self.runner = RunnerConfig()
        self.redis = RedisConfig()
        self.database = DatabaseConfig()
        self.timeout = TimeoutConfig()
        self.events = EventConfig()

    def _categories(self) -> List[tuple]:
        return [
            ('app', self.app),
            ('paths', self.paths),
            ('runner', self.runner),
            ('redis', self.redis),
            ('database', self.database),
            ('timeout', self.timeout),
            ('events', self.events),
        ]

    def _load_config_file(self) -> None:
        """設定ファイルを読み込む"""
        if not self.config_file:
            self.config_file = os.environ.get("CONFIG_FILE", "config.yaml")

        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    if self.config_file.endswith(('.yaml', '.yml')):
                        self.config_data = yaml.safe_load(f) or {}
                    elif self.config_file.endswith('.json'):
                        self.config_data = json.load(f)
            except Exception as e:
                print(f"設定ファイルの読み込みに失敗しました: {e}")

    def get(self, value: ConfigValue[T]) -> T:
        """設定ファイルの内容を反映して設定値を取得する"""
        return value.get_value(self.config_data)

    def reload(self) -> None:
        """設定を再読み込みする"""
        self._load_config_file()
        self.clear_cache()

    def clear_cache(self) -> None:
        """すべての設定値のキャッシュをクリアする"""
        for _, category in self._categories():
            for attr_name in dir(category):
                if not attr_name.startswith('_'):
                    attr = getattr(category, attr_name)
                    if isinstance(attr, ConfigValue):
                        attr.clear_cache()

    def to_dict(self) -> Dict[str, Any]:
        """すべての設定値を辞書形式で取得する"""
        result = {}
        for category_name, category in self._categories():
            category_dict = {}
            for attr_name in dir(category):
                if not attr_name.startswith('_'):
                    attr = getattr(category, attr_name)
                    if isinstance(attr, ConfigValue):
                        category_dict[attr_name.lower()] = attr.get_value(self.config_data)
            result[category_name] = category_dict
        return result


# 互換性のために従来のSettingsクラスも維持
class Settings(BaseSettings):
    # アプリケーション設定
    APP_NAME: str = "Featureforge"
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"

    # データパス設定
    PROJECTS_DIR: str = os.environ.get("PROJECTS_DIR", "/code/data/projects")

    # Redis設定
    REDIS_URL: str = os.environ.get("REDIS_URL", "redis://redis:6379/0")

    # データベース設定
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "postgresql://featureforge:featureforge@db:5432/featureforge")

    # タイムアウト設定（秒）
    TIMEOUT_DEFAULT: float = float(os.environ.get("TIMEOUT_DEFAULT", "30.0"))
    TIMEOUT_RUNNER_PROCESS: float = float(os.environ.get("TIMEOUT_RUNNER_PROCESS", "1800.0"))

    model_config = ConfigDict(env_file=".env", extra="ignore")


# シングルトンインスタンスの作成
@lru_cache()
def get_config() -> Config:
    """設定のシングルトンインスタンスを取得する"""
    return Config()


# 従来のsettingsオブジェクトの作成（互換性のため）
settings = Settings()

# 新しい設定オブジェクト
config = get_config()
