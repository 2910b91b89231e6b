from typing import List, Literal, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "Wellness Notifier"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/v1"
    """Pydantic v2 doesn't support parsing List[str] from a plain comma-separated string by default anymore."""
    ALLOWED_HOSTS: Union[str, List[str]] = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./notifier.db"
    AUTO_CREATE_TABLES: bool = True

    # OneSignal Push API
    ONESIGNAL_APP_ID: str = ""
    ONESIGNAL_REST_API_KEY: str = ""
    ONESIGNAL_API_URL: str = "https://onesignal.com/api/v1/notifications"
    ONESIGNAL_BROADCAST_SEGMENT: str = "Subscribed Users"
    ONESIGNAL_TIMEOUT_SECONDS: float = 30.0

    # Scheduled dispatch
    SCHEDULER_MODE: Literal["embedded", "celery", "disabled"] = "embedded"
    SCHEDULER_INTERVAL_SECONDS: int = 60
    SCHEDULER_RUN_ON_STARTUP: bool = True
    DISPATCH_CLAIM_TTL_SECONDS: int = 600

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @field_validator("ALLOWED_HOSTS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if not v:
            return []
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
