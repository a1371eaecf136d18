from pydantic_settings import BaseSettings
from typing import List, Any
import json
from pathlib import Path


def parse_csv_list(v: Any) -> List[str]:
    """Parse a list from a JSON array string, a comma-separated string or a list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in v.split(',') if item.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "Library Management API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str
    API_VERSION: str = "v1"
    APP_VERSION: str = "1.0.0"

    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800  # 30 minutes
    DB_ECHO: bool = False

    # ==========================================
    # Redis / Celery
    # ==========================================
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TASK_TIME_LIMIT: int = 600
    CELERY_TASK_SOFT_TIME_LIMIT: int = 540
    CELERY_RESULT_EXPIRES: int = 86400  # 24 hours
    CELERY_TIMEZONE: str = "UTC"

    # When disabled, queued notifications and emails are handled inline
    TASK_QUEUE_ENABLED: bool = True
    # Redis pub/sub bridge that forwards worker notifications to sockets
    NOTIFICATION_PUBSUB_ENABLED: bool = True
    NOTIFICATION_CHANNEL: str = "notifications"

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "library-management-system"
    JWT_AUDIENCE: str = "library-users"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_TOKEN_REMEMBER_ME_DAYS: int = 30
    REFRESH_COOKIE_NAME: str = "refreshToken"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth"
    BCRYPT_ROUNDS: int = 12  # 4 for dev (fast), 12 for prod (secure)

    # ==========================================
    # OTP
    # ==========================================
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_MAX_ATTEMPTS: int = 3
    OTP_COOLDOWN_SECONDS: int = 60
    OTP_VERIFIED_WINDOW_MINUTES: int = 10
    OTP_RETENTION_HOURS: int = 24

    # ==========================================
    # Borrowing rules
    # ==========================================
    MAX_BORROW_PERIOD_DAYS: int = 30
    MAX_RENEWALS: int = 3
    RENEWAL_EXTENSION_DAYS: int = 14
    MAX_BORROW_DAYS: int = 60
    REMINDER_DAYS_BEFORE_DUE: int = 3
    RESERVATION_REMINDER_DAYS: int = 3
    OVERDUE_NOTICE_INTERVAL_DAYS: int = 7
    VIOLATION_DUE_DATE_DAYS: int = 3
    EBOOK_URL_EXPIRY_SECONDS: int = 3600  # 1 hour

    # ==========================================
    # Email
    # ==========================================
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    EMAIL_FROM: str = "noreply@library.local"
    EMAIL_FROM_NAME: str = "Library Management System"

    # ==========================================
    # PayPal
    # ==========================================
    PAYPAL_CLIENT_ID: str = ""
    PAYPAL_CLIENT_SECRET: str = ""
    PAYPAL_BASE_URL: str = "https://api-m.sandbox.paypal.com"
    PAYPAL_BRAND_NAME: str = "Library Management System"
    PAYPAL_TIMEOUT: int = 30
    VND_PER_USD_FALLBACK: float = 24000
    USE_LIVE_EXCHANGE_RATE: bool = False
    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate-api.com/v4/latest/USD"

    # ==========================================
    # Frontend / CORS
    # ==========================================
    FRONTEND_URL: str = "http://localhost:3000"
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return parse_csv_list(self.CORS_ORIGINS_STR)

    # ==========================================
    # File uploads
    # ==========================================
    UPLOAD_DIR_STR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    MAX_EDITION_FILE_SIZE: int = 100 * 1024 * 1024  # 100MB
    ALLOWED_EXTENSIONS_STR: str = ".jpg,.jpeg,.png,.gif,.pdf,.doc,.docx,.txt"
    FILE_CACHE_CONTROL: str = "public, max-age=3600"

    @property
    def ALLOWED_EXTENSIONS(self) -> List[str]:
        return parse_csv_list(self.ALLOWED_EXTENSIONS_STR)

    @property
    def UPLOAD_DIR(self) -> Path:
        path = Path(self.UPLOAD_DIR_STR)
        if not path.is_absolute():
            path = self.BASE_DIR / path
        return path

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parent.parent.parent

    # ==========================================
    # Rate limiting
    # ==========================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # ==========================================
    # Seeding
    # ==========================================
    SEED_ON_STARTUP: bool = True
    DEFAULT_ADMIN_EMAIL: str = ""
    DEFAULT_ADMIN_PASSWORD: str = ""
    DEFAULT_ADMIN_FULLNAME: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def get_frontend_url(self, path: str) -> str:
        return f"{self.FRONTEND_URL.rstrip('/')}/{path.lstrip('/')}"


# Create settings instance
settings = Settings()
