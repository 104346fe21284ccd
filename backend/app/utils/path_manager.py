import os
from pathlib import Path
from typing import Optional, Union, List
import logging
from functools import lru_cache

from app.config import settings, get_config

logger = logging.getLogger(__name__)

class PathManager:
    """
    パス管理クラス

    テストプロジェクト内のfeatureファイル・ステップ定義ファイル・実行レポートの
    配置を一元化し、ファイルの読み書きを統一的に扱うためのインターフェースを提供します。
    """

    def __init__(self):
        self._config = get_config()

    def get_projects_dir(self) -> Path:
        """
        テストプロジェクトのルートディレクトリを取得する

        Returns:
            Path: PROJECTS_DIR のパス
        """
        return Path(settings.PROJECTS_DIR)

    def get_project_path(self, project_path: Union[str, Path]) -> Path:
        """
        プロジェクトのパスを解決する。相対パスは PROJECTS_DIR からの相対とみなす

        Args:
            project_path: Project.path の値

        Returns:
            Path: プロジェクトの絶対パス
        """
        path = Path(project_path)
        if path.is_absolute():
            return path
        return self.get_projects_dir() / path

    def get_src_dir(self, project_path: Union[str, Path], asset: str) -> Path:
        """src 配下の資産ディレクトリ（features, steps など）を取得する"""
        return self.get_project_path(project_path) / "src" / asset

    def get_features_dir(self, project_path: Union[str, Path], section: Optional[str] = None) -> Path:
        features_dir = self.get_project_path(project_path) / self._config.get(self._config.paths.FEATURES_DIR)
        if section:
            return features_dir / section
        return features_dir

    def get_steps_dir(self, project_path: Union[str, Path], section: Optional[str] = None) -> Path:
        steps_dir = self.get_project_path(project_path) / self._config.get(self._config.paths.STEPS_DIR)
        if section:
            return steps_dir / section
        return steps_dir

    def get_feature_path(self, project_path: Union[str, Path], section: str, entity: str) -> Path:
        """
        エンティティのfeatureファイルのパスを取得する

        Args:
            project_path: プロジェクトのパス
            section: セクション名（ディレクトリ名）
            entity: エンティティ名

        Returns:
            Path: src/features/{section}/{entity}.feature
        """
        return self.get_features_dir(project_path, section) / f"{entity.lower()}.feature"

    def get_steps_path(self, project_path: Union[str, Path], section: str, entity: str) -> Path:
        """
        エンティティのステップ定義ファイルのパスを取得する

        Returns:
            Path: src/steps/{section}/{entity}.steps.ts
        """
        return self.get_steps_dir(project_path, section) / f"{entity.lower()}.steps.ts"

    def get_report_path(self, project_path: Union[str, Path]) -> Path:
        """ランナーが出力するJSONレポートのパスを取得する"""
        return self.get_project_path(project_path) / self._config.get(self._config.paths.REPORT_PATH)

    def get_report_relative_path(self) -> str:
        return self._config.get(self._config.paths.REPORT_PATH)

    def ensure_file_dir(self, file_path: Union[str, Path]) -> Path:
        """
        ファイルの親ディレクトリが存在することを確認し、存在しない場合は作成する

        Args:
            file_path: ファイルのパス

        Returns:
            Path: ファイルのパス
        """
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def exists(self, path: Union[str, Path]) -> bool:
        return Path(path).exists()

    def is_file(self, path: Union[str, Path]) -> bool:
        return Path(path).is_file()

    def list_dir(self, path: Union[str, Path], pattern: Optional[str] = None) -> List[Path]:
        """
        ディレクトリ内のファイルとディレクトリを一覧表示する。存在しない場合は空リスト

        Args:
            path: ディレクトリのパス
            pattern: glob パターン

        Returns:
            List[Path]: ファイルとディレクトリのリスト（名前順）
        """
        path = Path(path)
        if not path.is_dir():
            return []
        if pattern:
            return sorted(path.glob(pattern))
        return sorted(path.iterdir())

    def read_bytes(self, path: Union[str, Path]) -> bytes:
        """ファイルをバイト列で読み込む（デコードは各パーサーで行う）"""
        return Path(path).read_bytes()

    def write_text(self, path: Union[str, Path], content: str) -> None:
        """UTF-8でファイルを書き込む（親ディレクトリは作成する）"""
        target = self.ensure_file_dir(path)
        tmp_path = target.with_name(f".{target.name}.tmp")
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, target)
        logger.debug(f"Wrote {len(content)} chars to {target}")

    def remove(self, path: Union[str, Path]) -> bool:
        """ファイルが存在すれば削除する"""
        target = Path(path)
        if target.exists():
            target.unlink()
            return True
        return False


@lru_cache(maxsize=1)
def get_path_manager() -> PathManager:
    """
    PathManagerのシングルトンインスタンスを取得する

    Returns:
        PathManager: PathManagerのインスタンス
    """
    return PathManager()


path_manager = get_path_manager()
