"""
Process configuration.

Settings are read once from the environment at startup and passed to every
component that needs them. There is no runtime mutation path.
"""

import math
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError


# Environment variable -> Settings field
ENV_FIELDS = {
    "JWT_SECRET": "jwt_secret",
    "JWT_ALGORITHM": "jwt_algorithm",
    "TOKEN_TTL_MINUTES": "token_ttl_minutes",
    "BCRYPT_ROUNDS": "bcrypt_rounds",
    "LOCKOUT_THRESHOLD": "lockout_threshold",
    "LOCKOUT_MINUTES": "lockout_minutes",
    "DATABASE_PATH": "database_path",
    "DATABASE_POOL_MIN": "database_pool_min",
    "DATABASE_POOL_MAX": "database_pool_max",
    "DATABASE_POOL_TIMEOUT": "database_pool_timeout",
    "AUDIT_QUEUE_SIZE": "audit_queue_size",
    "AUDIT_DRAIN_TIMEOUT": "audit_drain_timeout",
    "AUDIT_DIAGNOSTIC_LOG": "audit_diagnostic_log",
    "LIVE_SCOPE_RESOLUTION": "live_scope_resolution",
    "RATE_LIMIT_WINDOW": "rate_limit_window_ms",
    "RATE_LIMIT_MAX_REQUESTS": "rate_limit_max_requests",
    "CORS_ORIGINS": "cors_origins",
    "CORS_CREDENTIALS": "cors_credentials",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


class Settings(BaseModel):
    """
    StaffGate settings.

    Attributes:
        jwt_secret: Shared HMAC secret for signing bearer tokens (required)
        jwt_algorithm: JWT signing algorithm
        token_ttl_minutes: Bearer token lifetime
        bcrypt_rounds: bcrypt cost factor
        lockout_threshold: Failed attempts that trigger a lockout
        lockout_minutes: Lockout duration
        database_path: SQLite database file
        database_pool_min: Connections kept open between checkouts (at least 1)
        database_pool_max: Upper bound on open connections
        database_pool_timeout: Seconds to wait for a free connection
        audit_queue_size: Capacity of the audit work queue
        audit_drain_timeout: Seconds allowed for flushing audit entries at shutdown
        audit_diagnostic_log: Optional file for the audit diagnostic channel
        live_scope_resolution: Resolve scopes from the store on every request
            instead of trusting the token snapshot
        rate_limit_window_ms: Rate limit window in milliseconds
        rate_limit_max_requests: Requests allowed per client address per window
        cors_origins: Origins allowed to call the API from a browser
        cors_credentials: Whether browsers may send credentials cross-origin
    """

    model_config = ConfigDict(frozen=True)

    jwt_secret: str = Field(min_length=1, repr=False)
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = Field(default=7 * 24 * 60, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    lockout_threshold: int = Field(default=5, gt=0)
    lockout_minutes: int = Field(default=30, gt=0)
    database_path: Path = Path("data/staff.db")
    database_pool_min: int = Field(default=2, ge=1)
    database_pool_max: int = Field(default=10, gt=0)
    database_pool_timeout: float = Field(default=10.0, gt=0)
    audit_queue_size: int = Field(default=1000, gt=0)
    audit_drain_timeout: float = Field(default=10.0, gt=0)
    audit_diagnostic_log: Optional[Path] = None
    live_scope_resolution: bool = False
    rate_limit_window_ms: int = Field(default=60_000, ge=1000)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_credentials: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("jwt_secret")
    @classmethod
    def _secret_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("JWT_SECRET must not be blank")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in {"json", "text"}:
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return value

    @field_validator("database_pool_max")
    @classmethod
    def _pool_bounds(cls, value: int, info) -> int:
        minimum = info.data.get("database_pool_min", 0)
        if value < minimum:
            raise ValueError("DATABASE_POOL_MAX must be >= DATABASE_POOL_MIN")
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        # CORS_ORIGINS is a comma separated list
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def rate_limit_window_seconds(self) -> int:
        return math.ceil(self.rate_limit_window_ms / 1000)

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(minutes=self.token_ttl_minutes)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(minutes=self.lockout_minutes)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Validated Settings

        Raises:
            ConfigurationError: If JWT_SECRET is missing or any value is invalid
        """
        environ = os.environ if environ is None else environ

        values = {
            field: environ[var]
            for var, field in ENV_FIELDS.items()
            if environ.get(var, "") != ""
        }

        if "jwt_secret" not in values:
            raise ConfigurationError("JWT_SECRET is required")

        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}") from e
