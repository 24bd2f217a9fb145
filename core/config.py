# ==================================================================================
# core/config.py: SheetDesk Configuration (Pydantic v2 settings)
# ==================================================================================
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import ValidationError
from typing import Optional
import sys


class Settings(BaseSettings):
    # ------------------------
    # DATABASE CONFIG
    # ------------------------
    DATABASE_URL: str = "sqlite:///./sheetdesk.db"

    # ------------------------
    # SECURITY CONFIG
    # ------------------------
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # ------------------------
    # FRONTEND CONFIG
    # ------------------------
    FRONTEND_URL: str = "http://localhost:5173"

    # ------------------------
    # OBJECT STORAGE
    # ------------------------
    STORAGE_BACKEND: str = "local"  # 'local' | 's3'
    STORAGE_ROOT: str = "./storage"
    OBJECT_STORAGE_ENDPOINT: Optional[str] = None
    OBJECT_STORAGE_ACCESS_KEY_ID: Optional[str] = None
    OBJECT_STORAGE_SECRET_ACCESS_KEY: Optional[str] = None
    OBJECT_STORAGE_REGION: str = "us-east-1"
    OBJECT_STORAGE_PUBLIC_URL: Optional[str] = None

    # ------------------------
    # WORKBOOK LAYOUT
    # ------------------------
    EXCEL_BUCKET: str = "excel"
    EXCEL_FILE_KEY: str = "master.xlsx"
    USER_FILES_PREFIX: str = "users"
    LOGS_BUCKET: str = "logs"
    LOGS_PREFIX: str = "excel_access"

    # ------------------------
    # PLAN LIMITS
    # ------------------------
    FREE_DAILY_EDIT_LIMIT: int = 3
    FREE_MAX_ROWS_SAVE_ALL: int = 5000
    ADS_REQUIRED: int = 2  # exposed to the dashboard only, never enforced

    # ------------------------
    # PRIVILEGE ANCHOR
    # ------------------------
    OWNER_EMAIL: str = ""

    # ------------------------
    # PAYSTACK / PAYMENT CONFIG
    # ------------------------
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_MONTHLY_PLAN: Optional[str] = None
    PAYSTACK_CALLBACK_URL: Optional[str] = None
    PAYSTACK_SUCCESS_REDIRECT: str = "/"
    PAYSTACK_CURRENCY: str = "GHS"

    # ------------------------
    # SUPPORT + REALTIME
    # ------------------------
    SUPPORT_SESSION_TTL_MIN: int = 60
    MAX_SSE_CLIENTS: int = 500
    REALTIME_PING_INTERVAL_SECONDS: float = 25.0

    # ------------------------
    # ENVIRONMENT SETTINGS
    # ------------------------
    ENVIRONMENT: str = "development"  # 'development' | 'production'
    LOG_LEVEL: str = "INFO"

    @property
    def IS_PRODUCTION(self) -> bool:
        """Convenience helper to check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def PAYSTACK_CALLBACK(self) -> str:
        """Where the gateway sends the browser after checkout."""
        return self.PAYSTACK_CALLBACK_URL or f"{self.FRONTEND_URL}/"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# ------------------------
# Global Settings Loader
# ------------------------
try:
    settings = Settings()
except ValidationError as e:
    print("❌ Environment configuration error: missing or invalid settings!")
    print(e)
    sys.exit(1)
