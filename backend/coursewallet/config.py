from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Supabase auth + storage
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"
    COURSE_ASSET_BUCKET: str = "courses"
    SIGNED_URL_TTL_SECONDS: int = 3600

    # Wallet / payouts
    MIN_PAYOUT_AMOUNT: float = 10.0
    WALLET_RATE_LIMIT: int = 50
    WALLET_RATE_WINDOW_SECONDS: int = 900
    NOTIFICATION_BATCH_SIZE: int = 500

    # Webhooks
    TELEGRAM_WEBHOOK_SECRET: str = ""
    TELEGRAM_ADMIN_CHAT_IDS: List[int] = []
    RAZORPAY_WEBHOOK_SECRET: str = ""

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        """Convert postgresql:// to postgresql+asyncpg:// for async support"""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

settings = Settings()
