# engagement-backend/app/core/config.py

import os
from dotenv import load_dotenv

# .envファイルを読み込む（ローカル開発用）
# 本番環境（Cloud Runなど）ではファイルがないため無視されます
load_dotenv()


class Settings:
    # API設定
    API_V1_STR: str = "/api/v1"

    # DB設定
    # ローカル・テストでは DATABASE_URL (SQLite) を使用
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./engagement.db")

    # Cloud SQL接続名。設定されている場合は Cloud SQL Connector 経由で接続
    INSTANCE_CONNECTION_NAME: str = os.getenv("INSTANCE_CONNECTION_NAME", "")
    DB_USER: str = os.getenv("DB_USER", "postgres")

    # .envではDB_PASSとなっているため、ここで名前を合わせて読み込みます
    DB_PASSWORD: str = os.getenv("DB_PASS", "password")
    DB_NAME: str = os.getenv("DB_NAME", "engagement")

    # 日付判定の基準タイムゾーン（クライアントの時計は使わない）
    REWARD_TIMEZONE: str = os.getenv("REWARD_TIMEZONE", "UTC")

    # 新規ユーザーの初期値
    INITIAL_COINS: int = int(os.getenv("INITIAL_COINS", "100"))
    INITIAL_SPINS: int = int(os.getenv("INITIAL_SPINS", "3"))

    # ラッキースピン: 1日あたりの無料回数
    SPINS_PER_DAY: int = int(os.getenv("SPINS_PER_DAY", "3"))

    # ホイール演出
    SPIN_ANIMATION_MIN_SECONDS: float = float(
        os.getenv("SPIN_ANIMATION_MIN_SECONDS", "2.5")
    )
    SPIN_EXTRA_TURNS: int = max(int(os.getenv("SPIN_EXTRA_TURNS", "2")), 2)

    # 広告: ロード失敗時のリトライ間隔（秒）
    AD_RETRY_DELAY_SECONDS: float = float(os.getenv("AD_RETRY_DELAY_SECONDS", "3"))

    # 楽観ロック衝突時の再試行回数
    STORE_MAX_RETRIES: int = int(os.getenv("STORE_MAX_RETRIES", "3"))

    LEADERBOARD_SIZE: int = int(os.getenv("LEADERBOARD_SIZE", "50"))

    # CORS設定
    CORS_ORIGINS: list = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:8081,http://localhost:19006"
        ).split(",")
        if origin.strip()
    ]

    # DEBUG mode
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")


# 設定インスタンスを作成してエクスポート
settings = Settings()
