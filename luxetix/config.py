from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # Supabase Auth (access tokens are issued by the auth platform)
    SUPABASE_URL: str = ""
    SUPABASE_JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # App Settings
    APP_NAME: str = "Luxetix Payment Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:8080",
        "https://luxetix.lovable.app",
    ]

    # Frontend URL for e-wallet redirects
    FRONTEND_URL: str = "https://luxetix.lovable.app"

    # Xendit Payment Gateway
    XENDIT_SECRET_KEY: str = ""  # Used as Basic auth username
    XENDIT_API_URL: str = "https://api.xendit.co"
    XENDIT_CALLBACK_TOKEN: Optional[str] = None  # For webhook verification
    XENDIT_TIMEOUT_SECONDS: float = 30.0

    # Payment windows
    TICKET_PAYMENT_EXPIRY_MINUTES: int = 5  # Ticket inventory is time-sensitive
    AGENT_REGISTRATION_EXPIRY_HOURS: int = 24

    # Agent ledger
    MIN_WITHDRAWAL_AMOUNT: int = 50000  # IDR
    DEFAULT_REGISTRATION_FEE: int = 500000  # Used when agent_settings is empty
    DEFAULT_MAX_EVENTS: int = 5
    DEFAULT_COMMISSION_PERCENT: float = 10.0

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    EXPIRY_SWEEP_INTERVAL_MINUTES: int = 1
    # Late callbacks (VA paid just before expiry, slow e-wallet capture) still
    # find the order pending inside this window
    EXPIRY_SWEEP_GRACE_MINUTES: int = 15
    EXPIRY_SWEEP_BATCH_SIZE: int = 100

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return self.CORS_ORIGINS

    @property
    def xendit_configured(self) -> bool:
        return bool(self.XENDIT_SECRET_KEY)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
