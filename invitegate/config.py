from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Authentication (bearer tokens issued by the account service)
    JWT_SECRET: str = "change-me-in-production-please-32b"
    JWT_ALGORITHM: str = "HS256"

    # =================================================================
    # CSRF SETTINGS
    # =================================================================
    CSRF_TOKEN_TTL_SECONDS: int = 3600  # 1 hour
    CSRF_COOKIE_NAME: str = "csrf-token"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"
    CSRF_SKIP_PATHS: list[str] = []

    # In-memory stores are swept on this interval
    SECURITY_SWEEP_INTERVAL_SECONDS: int = 300  # 5 minutes

    # =================================================================
    # RATE LIMIT SETTINGS
    # =================================================================
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT_WINDOW_MS: int = 15 * 60 * 1000
    RATE_LIMIT_DEFAULT_MAX_ATTEMPTS: int = 5
    RATE_LIMIT_PROGRESSIVE_MAX_MULTIPLIER: float = 8.0

    # Content moderation
    MODERATION_APPROVAL_THRESHOLD: int = 50

    # =================================================================
    # FILE UPLOAD SETTINGS
    # =================================================================
    MAX_FILE_SIZE: int = 5 * 1024 * 1024  # 5MB
    ALLOWED_IMAGE_TYPES: list[str] = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
    BLACKLISTED_FILE_HASHES: list[str] = []

    # =================================================================
    # REQUEST CONTEXT / PROXY SETTINGS
    # =================================================================
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def is_production(self) -> bool:
        return self.environment == "production"

    def get_rate_limit_presets(self) -> dict:
        """
        Get per-route-family rate limits.

        Each preset maps to an independent limiter instance, so throttling
        one family (e.g. guest wishes) never affects another (e.g. profile).
        """
        hour_ms = 60 * 60 * 1000
        return {
            "auth": {"max_attempts": 10, "window_ms": 15 * 60 * 1000},
            "rsvp": {"max_attempts": 20, "window_ms": hour_ms},
            "guest_wish": {"max_attempts": 10, "window_ms": hour_ms},
            "profile": {"max_attempts": 20, "window_ms": hour_ms},
            "file_upload": {"max_attempts": 50, "window_ms": hour_ms},
            "admin": {"max_attempts": 100, "window_ms": hour_ms},
        }


settings = Settings()
