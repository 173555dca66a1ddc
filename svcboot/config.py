import re
from functools import cache
from pathlib import Path
from typing import Any, Final

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    ValidationError,
    create_model,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .constants import (
    DEFAULT_BODY_LIMIT,
    DEFAULT_ENV_FILE,
    DEFAULT_HOST,
    DEFAULT_METRICS_PORT,
    DEFAULT_PORT,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from .domain.exceptions import ConfigurationError

EnvFile = str | Path | None

_BYTE_SIZE_PATTERN: Final = re.compile(
    r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb|tb)?\s*$", re.IGNORECASE
)
_BYTE_UNITS: Final = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
    "tb": 1024**4,
}


def parse_byte_size(value: int | str) -> int:
    """Convert a size such as ``"50mb"`` or ``2048`` into a number of bytes.

    Units are binary (``1kb == 1024``), matching the body-parser convention.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid byte size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("Byte size must not be negative")
        return value

    match = _BYTE_SIZE_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid byte size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _BYTE_UNITS[(unit or "b").lower()])


class ServiceSettings(BaseSettings):
    """Service settings loaded from environment variables and .env files."""

    # Server configuration
    host: str = Field(default=DEFAULT_HOST, description="Server host")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Request handling
    body_limit: int = Field(
        default=DEFAULT_BODY_LIMIT,
        validate_default=True,
        description="Maximum JSON / URL-encoded body size (bytes or e.g. '50mb')",
    )
    cors_origins: list[str] = Field(
        default=["*"], description="Origins allowed to make cross-origin requests"
    )
    request_timeout_seconds: PositiveFloat | None = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        description="Cancel requests that have not responded within this time",
    )

    # Wiring
    database_env_var: str | None = Field(
        default=None,
        description="Environment variable holding the connection string "
        + "(overrides the service default)",
    )
    router: str | None = Field(
        default=None,
        description="Import string ('module:attribute') of the router to mount",
    )

    # Logging configuration
    log_level: str | None = Field(default=None, description="Override the log level")
    log_to_file: bool = Field(
        default=False, description="Force logging to file even in debug mode"
    )

    # Telemetry configuration
    enable_telemetry: bool = Field(
        default=False, description="Enable OpenTelemetry tracing and metrics"
    )
    metrics_port: int = Field(
        default=DEFAULT_METRICS_PORT,
        ge=1,
        le=65535,
        description="Port for the Prometheus metrics endpoint",
    )

    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    @field_validator("body_limit", mode="before")
    @classmethod
    def validate_body_limit(cls, v: Any) -> int:
        """Accept both raw byte counts and human-readable sizes."""
        return parse_byte_size(v)

    @field_validator("router")
    @classmethod
    def validate_router(cls, v: str | None) -> str | None:
        if v is not None and ":" not in v:
            raise ValueError("Router must be given as 'module:attribute'")
        return v


class DatabaseSettings(BaseModel):
    """Connection settings for a single database handle."""

    model_config = ConfigDict(frozen=True)

    env_var: str = Field(description="Environment variable the URL was read from")
    url: str = Field(min_length=1, description="Connection string, as configured")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject strings that are not database URLs; the value itself is kept."""
        try:
            make_url(v)
        except ArgumentError as e:
            raise ValueError("Value is not a valid database URL") from e
        return v


class _DatabaseEnvironment(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=DEFAULT_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@cache
def _database_environment(env_var: str) -> type[_DatabaseEnvironment]:
    # One settings model per variable name, so each handle reads only its own key
    return create_model(
        f"DatabaseEnvironment_{env_var}",
        __base__=_DatabaseEnvironment,
        url=(str, Field(validation_alias=env_var)),
    )


def _describe(error: ValidationError, names: dict[str, str] | None = None) -> str:
    names = names or {}
    messages = []
    for detail in error.errors():
        field = ".".join(str(loc) for loc in detail["loc"]) or "value"
        name = names.get(field, field.upper())
        # An empty connection string counts as an unset one
        unset = detail["type"] == "missing" or (
            field == "url" and detail["type"] == "string_too_short"
        )
        if unset:
            messages.append(f"{name} is not set")
        else:
            messages.append(f"{name}: {detail['msg']}")
    return "; ".join(messages)


def load_service_settings(
    env_file: EnvFile = DEFAULT_ENV_FILE, **overrides: Any
) -> ServiceSettings:
    """Build and validate the service settings.

    Args:
        env_file: Optional dotenv file read after the process environment
        **overrides: Explicit values that win over the environment

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If any value is invalid
    """
    try:
        return ServiceSettings(_env_file=env_file, **overrides)  # type: ignore[call-arg]
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid service configuration: {_describe(e)}"
        ) from e


def load_database_settings(
    env_var: str, env_file: EnvFile = DEFAULT_ENV_FILE
) -> DatabaseSettings:
    """Read the connection string held in ``env_var``.

    Raises:
        ConfigurationError: If the variable is unset, empty or not a database URL
    """
    names = {"url": env_var, "env_var": "DATABASE_ENV_VAR"}
    environment_model = _database_environment(env_var)
    try:
        environment: Any = environment_model(_env_file=env_file)  # type: ignore[call-arg]
        return DatabaseSettings(env_var=env_var, url=environment.url)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid database configuration: {_describe(e, names)}"
        ) from e
