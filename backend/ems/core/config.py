from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://ems:ems_secret@db:5432/ems"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    LOG_LEVEL: str = "INFO"
    RUN_MIGRATIONS_ON_STARTUP: bool = True
    MIGRATIONS_CWD: str = "/app"

    # For testing only: login returns the access token directly even when 2FA is enabled
    DISABLE_2FA_FOR_TESTING: bool = False

    # Lateness rule: late iff local check-in time is strictly after the cutoff
    LATE_CUTOFF_TIMEZONE: str = "Asia/Kolkata"
    LATE_CUTOFF_TIME: str = "11:00"

    LOCATION_ACCURACY_THRESHOLD_M: float = 100.0
    LOCATION_RETRY_DELAY_SEC: float = 2.0
    PHOTO_MAX_DIMENSION: int = 800
    PHOTO_JPEG_QUALITY: int = 60

    NOTIFICATION_POLL_INTERVAL_SEC: float = 30.0
    SEARCH_DEBOUNCE_SEC: float = 0.3

    KYC_NAME_MATCH_THRESHOLD: int = 90

    # Client side: where the REST service lives
    EMS_API_BASE_URL: str = "http://localhost:8000"
    EMS_API_TIMEOUT_SEC: float = 15.0


settings = Settings()
