"""Application configuration.

Values come from the environment or a ``.env`` file. Secrets use a
``SECRET_`` prefixed variable name.
"""

import logging

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    """
    Examples:
        >>> _split_csv(" /health, ,/ready ")
        ['/health', '/ready']
    """
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "SeatMatrix"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str = "*"

    @field_validator("ALLOWED_ORIGINS", "OTEL_EXCLUDED_URLS", mode="after")
    @classmethod
    def parse_csv_list(cls, v: str | list[str]) -> list[str]:
        """Comma-separated values become a list; blank entries are dropped."""
        return [item for item in v if item] if isinstance(v, list) else _split_csv(v)

    # Railway API Settings
    RAILWAY_API_BASE_URL: str = "https://railspaapi.shohoz.com/v1.0/web"
    RAILWAY_REQUEST_TIMEOUT: float = 10.0  # Seconds per remote call
    RAILWAY_SERVER_ERROR_RETRIES: int = 1  # Extra attempts after a 5xx or transport failure

    @field_validator("RAILWAY_SERVER_ERROR_RETRIES", mode="after")
    @classmethod
    def validate_server_error_retries(cls, v: int) -> int:
        """Keep server-error retries bounded to one or two extra attempts."""
        if not 1 <= v <= 2:  # noqa: PLR2004
            msg = f"RAILWAY_SERVER_ERROR_RETRIES must be 1 or 2, got {v}"
            raise ValueError(msg)
        return v

    # Credentials (default collaborator; API requests may supply their own)
    RAILWAY_AUTH_TOKEN: str | None = Field(default=None, validation_alias="SECRET_RAILWAY_AUTH_TOKEN")
    RAILWAY_DEVICE_KEY: str | None = Field(default=None, validation_alias="SECRET_RAILWAY_DEVICE_KEY")

    # Fan-out Settings
    MAX_CONCURRENT_REQUESTS: int = 10  # Shared cap for matrix building and availability batching

    @field_validator("MAX_CONCURRENT_REQUESTS", mode="after")
    @classmethod
    def validate_max_concurrent_requests(cls, v: int) -> int:
        """Ensure the concurrency cap allows at least one request in flight."""
        if v < 1:
            msg = f"MAX_CONCURRENT_REQUESTS must be at least 1, got {v}"
            raise ValueError(msg)
        return v

    # Schedule Settings
    ROLLOVER_MAX_GAP_HOURS: int = 12  # Larger backwards jumps are treated as bad data, not midnight
    MAX_REASONABLE_HALT_MINUTES: int = 120  # Declared halts above this are recomputed

    # Fare Settings (Taka)
    SERVICE_CHARGE: float = 20.0  # Added to every purchasable segment
    BERTH_SURCHARGE: float = 50.0  # Added to AC_B and F_BERTH base fares

    # Train search looks this many days ahead
    TRAIN_SEARCH_DAY_OFFSETS: str = "8,9"

    @field_validator("TRAIN_SEARCH_DAY_OFFSETS", mode="after")
    @classmethod
    def parse_train_search_day_offsets(cls, v: str | list[int]) -> list[int]:
        """Parse comma-separated day offsets or pass through list."""
        return v if isinstance(v, list) else [int(offset) for offset in _split_csv(v)]

    # OpenTelemetry Settings (for observability)
    OTEL_ENABLED: bool = True
    OTEL_SERVICE_NAME: str = "seatmatrix-backend"
    OTEL_ENVIRONMENT: str = "production"

    # OTLP Exporter Endpoints (separate for traces and logs)
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_LOGS_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = Field(default=None, validation_alias="SECRET_OTEL_HEADERS")
    OTEL_EXCLUDED_URLS: str = "/health,/ready"

    # Log level for OTLP log export (NOTSET exports all levels)
    OTEL_LOG_LEVEL: str = "NOTSET"

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", "OTEL_LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str, info: ValidationInfo) -> str:
        """Upper-case a stdlib level name, rejecting unknown names."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid {info.field_name} '{v}'. Must be one of: {', '.join(sorted(valid_levels))}"
            raise ValueError(msg)
        return normalized


settings = Settings()


def require_config(*field_names: str) -> None:
    """
    Validate that required configuration fields are set.

    This utility should be called by modules that cannot work without a
    particular setting, to fail early with a readable message.

    Args:
        *field_names: Names of required configuration fields

    Raises:
        ValueError: If any required field is missing or None

    Example:
        from seatmatrix.core.config import require_config, settings
        require_config("RAILWAY_API_BASE_URL")
    """
    missing = []
    for field in field_names:
        value = getattr(settings, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)

    if missing:
        msg = f"Required configuration missing: {', '.join(missing)}"
        raise ValueError(msg)
