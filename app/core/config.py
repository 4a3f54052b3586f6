from typing import Any, List, Literal, Optional
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_FALLBACK_URL = "sqlite:///./contact_submissions.db"


class Settings(BaseSettings):
    PROJECT_NAME: str = "Portfolio Contact API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # --- Environment & Debug ---
    ENVIRONMENT: str = "local"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # --- Security ---
    ADMIN_API_KEY: Optional[SecretStr] = None

    # --- Email (SMTP) ---
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[SecretStr] = None
    SMTP_TIMEOUT: float = 30.0
    EMAIL_FROM: Optional[str] = None
    EMAIL_FROM_NAME: str = "Website Contact"
    ADMIN_EMAIL: Optional[str] = None
    EMAIL_SEND_RETRIES: int = 2
    EMAIL_RETRY_DELAY: float = 1.0

    # --- Redis / Celery ---
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    NOTIFICATION_DLQ_KEY: str = "contact:notification-dlq"
    NOTIFICATION_DLQ_MAX_LENGTH: int = 1000

    # --- Proxy ---
    TRUSTED_PROXIES: List[str] = Field(
        default_factory=lambda: ["127.0.0.1", "10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"],
        description="CIDR ranges of trusted reverse proxies for X-Forwarded-For",
    )

    # --- CORS ---
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=list,
        validate_default=True,
        description="List of allowed CORS origins. Configure in .env",
    )
    ALLOWED_METHODS: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "OPTIONS"],
    )
    ALLOWED_HEADERS: List[str] = Field(
        default_factory=lambda: [
            "Content-Type", "Authorization", "X-Requested-With", "X-API-Key",
            "X-Request-ID", "Accept", "Origin",
        ],
    )
    EXPOSED_HEADERS: List[str] = Field(
        default_factory=lambda: ["Content-Range", "X-Content-Range", "X-Request-ID"],
    )
    CORS_MAX_AGE: int = 86400

    # --- Request limits ---
    MAX_BODY_BYTES: int = 10 * 1024
    REQUEST_THROTTLE_LIMIT: int = 10
    REQUEST_THROTTLE_WINDOW_SECONDS: int = 15 * 60

    # --- Database Config ---
    DB_HOST: Optional[str] = None
    DB_USER: Optional[str] = None
    DB_PASSWORD: Optional[str] = None
    DB_PORT: Optional[str] = "5432"
    DB_NAME: Optional[str] = "postgres"

    # --- Connection Pool ---
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_PRE_PING: bool = True
    DB_POOL_RECYCLE: int = 3600
    DB_CONNECT_RETRIES: int = 5
    DB_CONNECT_RETRY_DELAY: float = 5.0
    DB_INIT_ON_STARTUP: bool = True

    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    # --- Contact form bounds ---
    CONTACT_NAME_MIN_LENGTH: int = 2
    CONTACT_NAME_MAX_LENGTH: int = 100
    CONTACT_EMAIL_MAX_LENGTH: int = 255
    CONTACT_SUBJECT_MAX_LENGTH: int = 200
    CONTACT_MESSAGE_MIN_LENGTH: int = 10
    CONTACT_MESSAGE_MAX_LENGTH: int = 2000
    USER_AGENT_MAX_LENGTH: int = 500
    DISPOSABLE_EMAIL_DOMAINS: List[str] = Field(
        default_factory=lambda: [
            "tempmail.com", "guerrillamail.com", "mailinator.com",
            "10minutemail.com", "yopmail.com", "throwaway.com",
            "fakeinbox.com", "trashmail.com", "disposable.com",
            "temp-mail.org", "getairmail.com",
        ],
    )

    # --- Submission limiter ---
    SUBMISSION_WINDOW_SECONDS: int = 24 * 60 * 60
    MAX_SUBMISSIONS_PER_EMAIL: int = 3
    MAX_SUBMISSIONS_PER_IP: int = 5
    MAX_RECENT_SPAM: int = 2
    USE_RECENT_SPAM_SIGNAL: bool = True
    LIMITER_FAILURE_MODE: Literal["open", "closed"] = "closed"
    LIMITER_TIMEOUT_SECONDS: float = 5.0

    # --- Spam scoring ---
    SPAM_THRESHOLD: int = 5
    SPAM_BLOCK_THRESHOLD: int = 8

    # --- Anti-automation ---
    TIMING_CHECK_ENABLED: bool = True
    MIN_FORM_FILL_MS: int = 3000

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def default_allowed_origins(
        cls, v: Optional[List[str]], info: ValidationInfo
    ) -> Optional[List[str]]:
        env = info.data.get("ENVIRONMENT") or "local"
        if env != "production":
            if v is None:
                return ["http://localhost:3000", "http://localhost:5173"]
            if isinstance(v, str) and v.strip() in ("", "[]"):
                return ["http://localhost:3000", "http://localhost:5173"]
            if isinstance(v, list) and len(v) == 0:
                return ["http://localhost:3000", "http://localhost:5173"]
        return v

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str], info: ValidationInfo) -> Any:
        if isinstance(v, str) and v:
            return v

        values = info.data
        if not values.get("DB_HOST") or not values.get("DB_USER"):
            return SQLITE_FALLBACK_URL

        user = values.get("DB_USER")
        # Passwords may contain @, # or !
        password = quote_plus(values.get("DB_PASSWORD") or "")
        host = values.get("DB_HOST")
        port = values.get("DB_PORT", "5432")
        db = values.get("DB_NAME", "postgres")

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @field_validator("SPAM_BLOCK_THRESHOLD", mode="after")
    @classmethod
    def validate_block_threshold(cls, v: int, info: ValidationInfo) -> int:
        threshold = info.data.get("SPAM_THRESHOLD", 5)
        if v < threshold:
            raise ValueError("SPAM_BLOCK_THRESHOLD must be >= SPAM_THRESHOLD")
        return v

    @property
    def email_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD)

    @property
    def sender_address(self) -> Optional[str]:
        return self.EMAIL_FROM or self.SMTP_USER

    @property
    def admin_recipient(self) -> Optional[str]:
        return self.ADMIN_EMAIL or self.EMAIL_FROM or self.SMTP_USER


settings = Settings()
