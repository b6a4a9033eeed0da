"""
Static configuration for the Luminax API.

Everything fixed at process start lives here as class attributes on
`Config`: bind address, database and Redis URLs, identity mode and secrets,
rate limits, circuit breaker thresholds, logging switches. Values come from
the environment (a local `.env` is read first by python-dotenv). Progression
tunables such as XP per level or quest rules are not here; they are YAML
served by ConfigManager.

Loading rules
-------------
- Unset or empty variables take the default.
- Unparsable or out-of-range values take the default, log a warning and are
  listed in `Config.get_metrics().validation_errors`.
- Insecure or unusable identity settings raise ConfigurationError, so a
  production process with local token verification or the default JWT
  secret refuses to start.

`Config.validate()` runs on import. Tests that change the environment call
`Config.validate(force=True)` to reload.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from luminax.core.exceptions import ConfigurationError

load_dotenv()

DEFAULT_JWT_SECRET = "change-me-in-production"

_TRUE = frozenset({"true", "yes", "1", "on"})
_FALSE = frozenset({"false", "no", "0", "off"})


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Unknown names fall back to development.

        >>> Environment.from_string("Production") is Environment.PRODUCTION
        True
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            # the structured logger imports Config, so it is not available yet
            logging.warning("Unknown ENVIRONMENT %r, using development", value)
            return cls.DEVELOPMENT


class IdentityMode(Enum):
    """How bearer tokens are verified."""

    HOSTED = "hosted"
    LOCAL = "local"


@dataclass
class ConfigLoadReport:
    """Where each value came from during the last load."""

    from_environment: List[str] = field(default_factory=list)
    defaults_used: List[str] = field(default_factory=list)
    validation_errors: Dict[str, str] = field(default_factory=dict)
    loaded_at: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "from_environment": len(self.from_environment),
            "from_defaults": len(self.defaults_used),
            "validation_errors": len(self.validation_errors),
            "loaded_at": self.loaded_at,
        }


class Config:
    """
    Process-wide settings. Never instantiated.

    >>> Config.RATE_LIMIT_REQUESTS
    100
    """

    _report: Optional[ConfigLoadReport] = None
    _validated: bool = False

    PROJECT_ROOT = Path(__file__).resolve().parents[3]

    # Environment and logging
    ENVIRONMENT: str = Environment.DEVELOPMENT.value
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_TO_FILE: bool = True
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    CONFIG_DIR: Path = PROJECT_ROOT / "config"

    # HTTP
    APP_NAME: str = "Luminax"
    APP_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/luminax.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_ECHO: bool = False
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_AUTO_CREATE: bool = True

    # Redis; an empty URL keeps rate limiting in memory
    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT: int = 5

    # Identity
    IDENTITY_MODE: str = IdentityMode.LOCAL.value
    IDENTITY_URL: str = ""
    IDENTITY_API_KEY: str = ""
    IDENTITY_TIMEOUT_SECONDS: int = 10
    JWT_SECRET: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"

    # Rate limiting of write routes, per user
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 900
    RATE_LIMIT_FAILOVER_TO_MEMORY: bool = True

    # Database circuit breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS: int = 60_000
    CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS: int = 3

    # =========================================================================
    # Parsing helpers
    # =========================================================================

    @classmethod
    def _raw(cls, key: str) -> Optional[str]:
        value = os.getenv(key)
        if value is None or value.strip() == "":
            cls._report.defaults_used.append(key)
            return None
        cls._report.from_environment.append(key)
        return value.strip()

    @classmethod
    def _reject(cls, key: str, message: str, default: Any) -> Any:
        error = f"{key}: {message}, using default {default!r}"
        logging.warning(error)
        cls._report.validation_errors[key] = error
        return default

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Read a bounded integer.

        >>> Config._safe_int("DATABASE_POOL_SIZE", 10, min_val=1, max_val=200)
        10
        """
        raw = cls._raw(key)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            return cls._reject(key, f"{raw!r} is not an integer", default)
        if min_val is not None and value < min_val:
            return cls._reject(key, f"{value} is below {min_val}", default)
        if max_val is not None and value > max_val:
            return cls._reject(key, f"{value} is above {max_val}", default)
        return value

    @classmethod
    def _safe_optional_bool(cls, key: str) -> Optional[bool]:
        """true/false, yes/no, 1/0, on/off; None when unset or unparsable."""
        raw = cls._raw(key)
        if raw is None:
            return None
        lowered = raw.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        return cls._reject(key, f"{raw!r} is not a boolean", None)

    @classmethod
    def _safe_bool(cls, key: str, default: bool) -> bool:
        value = cls._safe_optional_bool(key)
        return default if value is None else value

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        """
        >>> Config._safe_str("JWT_ALGORITHM", "HS256")
        'HS256'
        """
        raw = cls._raw(key)
        return default if raw is None else raw

    @classmethod
    def _safe_list(cls, key: str, default: List[str]) -> List[str]:
        raw = cls._raw(key)
        if raw is None:
            return list(default)
        return [item.strip() for item in raw.split(",") if item.strip()]

    @classmethod
    def _safe_path(cls, key: str, default: Path) -> Path:
        raw = cls._raw(key)
        return default if raw is None else Path(raw)

    # =========================================================================
    # Loading and validation
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        cls._report = ConfigLoadReport()

        cls.ENVIRONMENT = Environment.from_string(cls._safe_str("ENVIRONMENT", "development")).value
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO").upper()
        if cls.LOG_LEVEL not in logging.getLevelNamesMapping():
            cls.LOG_LEVEL = cls._reject("LOG_LEVEL", f"unknown level {cls.LOG_LEVEL!r}", "INFO")
        cls.LOG_JSON = cls._safe_optional_bool("LOG_JSON")
        cls.LOG_TO_FILE = cls._safe_bool("LOG_TO_FILE", True)
        cls.LOGS_DIR = cls._safe_path("LOGS_DIR", cls.PROJECT_ROOT / "logs")
        cls.CONFIG_DIR = cls._safe_path("CONFIG_DIR", cls.PROJECT_ROOT / "config")

        cls.HOST = cls._safe_str("HOST", "0.0.0.0")
        cls.PORT = cls._safe_int("PORT", 8000, min_val=1, max_val=65535)
        cls.CORS_ORIGINS = cls._safe_list("CORS_ORIGINS", ["http://localhost:5173"])

        cls.DATABASE_URL = cls._safe_str("DATABASE_URL", "sqlite+aiosqlite:///./data/luminax.db")
        cls.DATABASE_POOL_SIZE = cls._safe_int("DATABASE_POOL_SIZE", 10, min_val=1, max_val=200)
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_ECHO = cls._safe_bool("DATABASE_ECHO", False)
        cls.DATABASE_POOL_RECYCLE = cls._safe_int("DATABASE_POOL_RECYCLE", 1800, min_val=60)
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int(
            "DATABASE_POOL_TIMEOUT", 30, min_val=1, max_val=600
        )
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )
        cls.DATABASE_AUTO_CREATE = cls._safe_bool("DATABASE_AUTO_CREATE", True)

        cls.REDIS_URL = cls._safe_str("REDIS_URL", "")
        cls.REDIS_SOCKET_TIMEOUT = cls._safe_int("REDIS_SOCKET_TIMEOUT", 5, min_val=1, max_val=60)

        cls.IDENTITY_MODE = cls._safe_str("IDENTITY_MODE", IdentityMode.LOCAL.value).lower()
        cls.IDENTITY_URL = cls._safe_str("IDENTITY_URL", "").rstrip("/")
        cls.IDENTITY_API_KEY = cls._safe_str("IDENTITY_API_KEY", "")
        cls.IDENTITY_TIMEOUT_SECONDS = cls._safe_int(
            "IDENTITY_TIMEOUT_SECONDS", 10, min_val=1, max_val=120
        )
        cls.JWT_SECRET = cls._safe_str("JWT_SECRET", DEFAULT_JWT_SECRET)
        cls.JWT_ALGORITHM = cls._safe_str("JWT_ALGORITHM", "HS256")

        cls.RATE_LIMIT_ENABLED = cls._safe_bool("RATE_LIMIT_ENABLED", True)
        cls.RATE_LIMIT_REQUESTS = cls._safe_int("RATE_LIMIT_REQUESTS", 100, min_val=1)
        cls.RATE_LIMIT_WINDOW_SECONDS = cls._safe_int("RATE_LIMIT_WINDOW_SECONDS", 900, min_val=1)
        cls.RATE_LIMIT_FAILOVER_TO_MEMORY = cls._safe_bool("RATE_LIMIT_FAILOVER_TO_MEMORY", True)

        cls.CIRCUIT_BREAKER_FAILURE_THRESHOLD = cls._safe_int(
            "CIRCUIT_BREAKER_FAILURE_THRESHOLD", 5, min_val=1, max_val=100
        )
        cls.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS = cls._safe_int(
            "CIRCUIT_BREAKER_RECOVERY_TIMEOUT_MS", 60_000, min_val=100
        )
        cls.CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS = cls._safe_int(
            "CIRCUIT_BREAKER_HALF_OPEN_MAX_REQUESTS", 3, min_val=1, max_val=100
        )

        cls._report.loaded_at = datetime.now(timezone.utc).isoformat()

    @classmethod
    def _check_identity(cls) -> None:
        modes = sorted(mode.value for mode in IdentityMode)
        if cls.IDENTITY_MODE not in modes:
            raise ConfigurationError(
                "IDENTITY_MODE", f"must be one of {modes}, got {cls.IDENTITY_MODE!r}"
            )
        if cls.IDENTITY_MODE == IdentityMode.HOSTED.value and not cls.IDENTITY_URL:
            raise ConfigurationError("IDENTITY_URL", "hosted identity mode requires IDENTITY_URL")

        if not cls.is_production():
            return
        if cls.IDENTITY_MODE != IdentityMode.HOSTED.value:
            raise ConfigurationError(
                "IDENTITY_MODE", "production requires the hosted identity provider"
            )
        if not cls.JWT_SECRET or cls.JWT_SECRET == DEFAULT_JWT_SECRET:
            raise ConfigurationError("JWT_SECRET", "production requires a non-default JWT secret")

    @classmethod
    def validate(cls, force: bool = False) -> None:
        """
        Load from the environment and check the settings that must not be
        wrong. No-op after the first success unless `force` is set.

        Raises:
            ConfigurationError: unusable identity settings, or insecure ones
                in production
        """
        if cls._validated and not force:
            return

        cls._validated = False
        cls.load()
        cls._check_identity()

        log = logging.getLogger(__name__)
        if cls.is_production():
            if cls.DATABASE_URL.startswith("sqlite"):
                log.warning("Production is running on SQLite")
            if cls.DEBUG:
                log.warning("DEBUG is enabled in production")

        cls._validated = True
        log.info("Configuration loaded", extra={"load": cls._report.summary()})

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def uses_local_identity(cls) -> bool:
        return cls.IDENTITY_MODE == IdentityMode.LOCAL.value

    @classmethod
    def get_metrics(cls) -> Optional[ConfigLoadReport]:
        return cls._report

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-secret settings, for the startup log and debugging."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "redis_enabled": bool(cls.REDIS_URL),
            "identity_mode": cls.IDENTITY_MODE,
            "identity_url_set": bool(cls.IDENTITY_URL),
            "jwt_secret_is_default": cls.JWT_SECRET == DEFAULT_JWT_SECRET,
            "rate_limit_enabled": cls.RATE_LIMIT_ENABLED,
            "rate_limit_requests": cls.RATE_LIMIT_REQUESTS,
            "rate_limit_window_seconds": cls.RATE_LIMIT_WINDOW_SECONDS,
            "app_version": cls.APP_VERSION,
        }


# Production misconfiguration fails here, before the app is built
Config.validate()
