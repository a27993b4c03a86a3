from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./claims.db"
    database_timeout_seconds: float = 5.0  # SQLite busy timeout

    # Secrets (required at startup)
    code_hash_secret: str | None = None
    session_secret: str | None = None

    # Sessions
    session_ttl_minutes: int = 60 * 24 * 30  # 30 days
    dev_auth_enabled: bool = False

    # Challenges
    challenge_ttl_seconds: int = 300  # 5 minutes
    challenge_cleanup_interval_minutes: int = 30

    # Rate Limiting
    rate_limit_storage_uri: str = "memory://"
    rate_limit_window_ms: int = 60_000
    rate_limit_verify: int = 30
    rate_limit_start: int = 10
    rate_limit_complete: int = 20
    rate_limit_ownerships: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"

    # CORS
    cors_origins: list[str] | str = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v


settings = Settings()
