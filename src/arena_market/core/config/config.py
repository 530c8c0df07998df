"""
Static configuration for Arena Market.

Values are read once from the environment (``.env`` supported) and exposed
as class attributes on ``Config``. Shop state such as the currency name, the
open flag or the catalog configuration is NOT here: it lives in the settings
store and belongs to the authoritative session.

An empty ``DATABASE_URL`` selects the in-memory settings store and an empty
``REDIS_URL`` selects the in-process broadcast hub, so a bare checkout runs
without any services.
"""

import logging
import os
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


def _parse_bool(raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in _TRUE:
        return True
    if normalized in _FALSE:
        return False
    raise ValueError("not a boolean")


def _int_between(low: Optional[int], high: Optional[int]) -> Callable[[str], int]:
    def parse(raw: str) -> int:
        value = int(raw)
        if low is not None and value < low:
            raise ValueError(f"below minimum {low}")
        if high is not None and value > high:
            raise ValueError(f"above maximum {high}")
        return value

    return parse


def _text(raw: str) -> str:
    return raw.strip()


# attribute -> (environment variable, parser). Defaults are the class attributes.
_SETTINGS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "ENVIRONMENT": ("ENVIRONMENT", _text),
    "DEBUG": ("DEBUG", _parse_bool),
    "LOG_LEVEL": ("LOG_LEVEL", _text),
    "LOG_JSON": ("LOG_JSON", _parse_bool),
    "LOG_TO_FILE": ("LOG_TO_FILE", _parse_bool),
    "LOGS_DIR": ("LOGS_DIR", Path),
    "DATABASE_URL": ("DATABASE_URL", _text),
    "DATABASE_ECHO": ("DATABASE_ECHO", _parse_bool),
    "DATABASE_POOL_SIZE": ("DATABASE_POOL_SIZE", _int_between(1, 200)),
    "DATABASE_MAX_OVERFLOW": ("DATABASE_MAX_OVERFLOW", _int_between(0, 200)),
    "DATABASE_POOL_RECYCLE": ("DATABASE_POOL_RECYCLE", _int_between(60, None)),
    "DATABASE_STATEMENT_TIMEOUT_MS": ("DATABASE_STATEMENT_TIMEOUT_MS", _int_between(100, None)),
    "REDIS_URL": ("REDIS_URL", _text),
    "REDIS_SOCKET_TIMEOUT": ("REDIS_SOCKET_TIMEOUT", _int_between(1, 60)),
    "MARKET_MODULE_ID": ("MARKET_MODULE_ID", _text),
    "MARKET_SESSION_ID": ("MARKET_SESSION_ID", _text),
    "MARKET_USER_NAME": ("MARKET_USER_NAME", _text),
    "MARKET_AUTHORITATIVE": ("MARKET_AUTHORITATIVE", _parse_bool),
    "MARKET_CATALOG_DIR": ("MARKET_CATALOG_DIR", Path),
    "MARKET_DEFAULT_CURRENCY": ("MARKET_DEFAULT_CURRENCY", _text),
    "MARKET_REQUEST_TIMEOUT_SECONDS": ("MARKET_REQUEST_TIMEOUT_SECONDS", _int_between(0, 3600)),
}


class Config:
    """
    Class-level configuration singleton.

    Usage
    -----
    >>> Config.DATABASE_URL
    ''
    >>> Config.request_timeout() is None
    True
    """

    _validated: bool = False
    _warnings: Dict[str, str] = {}

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None  # None: JSON in production only
    LOG_TO_FILE: bool = False

    PROJECT_ROOT = Path(__file__).resolve().parents[4]
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    DATABASE_URL: str = ""
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000

    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT: int = 5

    MARKET_MODULE_ID: str = "fuorid20-arena-market"
    MARKET_SESSION_ID: str = ""
    MARKET_USER_NAME: str = "Gamemaster"
    MARKET_AUTHORITATIVE: bool = True
    MARKET_CATALOG_DIR: Path = PROJECT_ROOT / "catalog"
    MARKET_DEFAULT_CURRENCY: str = "Ori"
    MARKET_REQUEST_TIMEOUT_SECONDS: int = 0

    @classmethod
    def load(cls) -> None:
        """Overlay every set environment variable onto the class defaults."""
        cls._warnings = {}
        for attribute, (env_key, parse) in _SETTINGS.items():
            raw = os.getenv(env_key)
            if raw is None:
                continue
            try:
                setattr(cls, attribute, parse(raw))
            except ValueError as e:
                cls._warnings[env_key] = f"{raw!r} ignored ({e})"

        if not cls.MARKET_SESSION_ID:
            cls.MARKET_SESSION_ID = uuid.uuid4().hex[:16]

        for env_key, warning in cls._warnings.items():
            logger.warning(f"Config {env_key}={warning}, keeping default")

    @classmethod
    def validate(cls) -> None:
        """
        Load once and check the values startup depends on.

        Raises
        ------
        ValueError
            In production, when a required service URL is missing or the
            module id is empty. Elsewhere these only log a warning.
        """
        if cls._validated:
            return

        cls.load()
        cls.ENVIRONMENT = Environment.from_string(cls.ENVIRONMENT).value

        if cls.LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"

        problems = []
        if not cls.MARKET_MODULE_ID:
            problems.append("MARKET_MODULE_ID must not be empty")
        if cls.is_production():
            if not cls.DATABASE_URL:
                problems.append("DATABASE_URL is required in production")
            if not cls.REDIS_URL:
                problems.append("REDIS_URL is required in production")

        if problems:
            if cls.is_production():
                raise ValueError("; ".join(problems))
            logger.warning(f"Configuration problems: {problems}")

        cls._validated = True
        logger.debug(f"Configuration loaded: {cls.get_config_summary()}")

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() == Environment.TESTING.value

    @classmethod
    def request_timeout(cls) -> Optional[float]:
        """Directed request timeout in seconds, or None to wait indefinitely."""
        if cls.MARKET_REQUEST_TIMEOUT_SECONDS <= 0:
            return None
        return float(cls.MARKET_REQUEST_TIMEOUT_SECONDS)

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive summary for startup logs."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "module_id": cls.MARKET_MODULE_ID,
            "session_id": cls.MARKET_SESSION_ID,
            "authoritative": cls.MARKET_AUTHORITATIVE,
            "database_url_set": bool(cls.DATABASE_URL),
            "redis_url_set": bool(cls.REDIS_URL),
            "request_timeout_seconds": cls.MARKET_REQUEST_TIMEOUT_SECONDS,
            "config_warnings": dict(cls._warnings),
        }


Config.validate()
