from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Redis settings (counter store). Disabled = in-process store, dev/tests only.
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 1.0  # Bounds every counter round trip
    redis_connect_timeout: float = 1.0

    # Rate limiting settings
    rate_limit_enabled: bool = True
    rate_limit_default_prefix: str = "rl"
    rate_limit_key_pattern: str = "rl:*"
    rate_limit_atomic_script: bool = False  # Lua script: hard cutoff, one round trip
    # Enable only behind a proxy that overwrites X-Forwarded-For / X-Real-IP;
    # otherwise clients can rotate the header to dodge per-IP limits
    rate_limit_trust_forwarded_headers: bool = False

    # Maintenance settings
    rate_limit_cleanup_enabled: bool = True
    rate_limit_cleanup_interval_seconds: int = 3600
    rate_limit_cleanup_retention_hours: int = 24
    rate_limit_stats_top_n: int = 10

    # CORS settings
    cors_origins: list[str] = ["*"]

    @field_validator("redis_socket_timeout", "redis_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("rate_limit_cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval(cls, v: int) -> int:
        """Validate cleanup interval is reasonable."""
        if v < 60:
            raise ValueError(
                "rate_limit_cleanup_interval_seconds should be at least 60 seconds"
            )
        return v

    @field_validator("rate_limit_cleanup_retention_hours", "rate_limit_stats_top_n")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("rate_limit_default_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("rate_limit_default_prefix must not be empty")
        return v

    @property
    def cleanup_retention_ms(self) -> int:
        """Retention horizon for the cleanup sweep in milliseconds."""
        return self.rate_limit_cleanup_retention_hours * 60 * 60 * 1000

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
