from sqlmodel import Field, SQLModel, create_engine, Session
from datetime import datetime, UTC
import os
from app.config import settings

# データベース接続設定
# テスト環境の場合はSQLiteを使用
if os.environ.get("TESTING") == "1":
    TEST_DB_PATH = "/tmp/test_featureforge/test.db"
    os.makedirs(os.path.dirname(TEST_DB_PATH), exist_ok=True)
    DATABASE_URL = f"sqlite:///{TEST_DB_PATH}"
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    DATABASE_URL = settings.DATABASE_URL
    engine = create_engine(DATABASE_URL)

def get_session():
    with Session(engine) as session:
        yield session

def new_session() -> Session:
    """バックグラウンド処理用のセッションを作成する（差し替え後のengineを参照する）"""
    return Session(engine)

def utcnow() -> datetime:
    return datetime.now(UTC)

# ベースモデル
class TimestampModel(SQLModel):
    """タイムスタンプを持つ全モデルの基底クラス"""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
