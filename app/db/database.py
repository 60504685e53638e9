import logging

import sqlalchemy
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

logger = logging.getLogger(__name__)

# Cloud SQL Connector はプロセスで1つだけ使う（接続ごとに作るとスレッドが残る）
_connector = None


def get_connector():
    """Cloud SQL Connector を初回だけ初期化して返す"""
    global _connector
    if _connector is None:
        # Cloud SQL を使わない環境では Connector を初期化しない
        from google.cloud.sql.connector import Connector

        _connector = Connector()
    return _connector


def close_connector():
    """シャットダウン時に Connector のバックグラウンド処理を止める"""
    global _connector
    if _connector is not None:
        _connector.close()
        _connector = None


def getconnection():
    """
    Cloud SQL への接続を確立する関数.
    config.py (settings) の値を使用します。
    """
    conn = get_connector().connect(
        settings.INSTANCE_CONNECTION_NAME,
        "pymysql",
        user=settings.DB_USER,
        password=settings.DB_PASSWORD,
        db=settings.DB_NAME,
        charset="utf8mb4",
    )
    return conn


def create_engine_from_settings():
    """設定に応じてエンジンを作成する（Cloud SQL または DATABASE_URL）"""
    if settings.INSTANCE_CONNECTION_NAME:
        return sqlalchemy.create_engine(
            "mysql+pymysql://",
            creator=getconnection,
            pool_pre_ping=True,
        )

    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        # FastAPI のワーカースレッドから同じ接続を使うため
        connect_args["check_same_thread"] = False
    return sqlalchemy.create_engine(settings.DATABASE_URL, connect_args=connect_args)


# エンジンの作成
# 接続情報が不正な場合もアプリ自体は起動できるように保護
try:
    engine = create_engine_from_settings()
except Exception as e:
    logger.warning("Could not create database engine: %s", e)
    engine = None

# セッション作成
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    DBセッションを取得するための依存関係.
    """
    if engine is None:
        raise RuntimeError("Database engine is not initialized.")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
