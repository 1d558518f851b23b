"""
Environment Variable Configuration with Validation

Every GrowGuide setting is declared once in ENV_VARS with its type, default
and bounds. Values are parsed from the environment on first access and
cached on the Config class.

Paths default to the process working directory, which is where the
GrowGuide database file lives when nothing is overridden:

    <DATA_DIR>/cannabis-workshop.db
    <DATA_DIR>/backup/cannabis-workshop.backup.db

Usage:
    from config.env_config import Config, validate_config

    rounds = Config.BCRYPT_ROUNDS
    timeout = Config.get("DB_LOCK_TIMEOUT")

    # At startup: parse everything, fill in computed paths
    settings = validate_config()
    settings["DB_PATH"]
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DB_FILENAME = "cannabis-workshop.db"
BACKUP_DIRNAME = "backup"
BACKUP_FILENAME = "cannabis-workshop.backup.db"

DEFAULT_SECRET_KEY = "growguide-secret-key-change-in-production"


class ConfigError(Exception):
    """Raised when an environment variable has an invalid value."""

    pass


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


_PARSERS = {
    "str": str,
    "int": int,
    "float": float,
    "bool": _parse_bool,
    "path": Path,  # relative paths stay relative to the working directory
    "list": _parse_list,
}


@dataclass
class EnvVar:
    """One environment variable: type, default and accepted range."""

    name: str
    default: Any = None
    var_type: str = "str"
    description: str = ""
    min_value: Optional[Union[int, float]] = None
    max_value: Optional[Union[int, float]] = None
    choices: Optional[List[Any]] = None
    sensitive: bool = False  # masked in logs and to_dict()

    def parse(self, raw: str) -> Any:
        try:
            return _PARSERS[self.var_type](raw)
        except ValueError:
            raise ConfigError(f"{self.name}: '{raw}' is not a valid {self.var_type}")

    def check(self, value: Any) -> None:
        """Raise ConfigError when a parsed value is out of bounds."""
        if self.min_value is not None and value < self.min_value:
            raise ConfigError(f"{self.name}: value {value} is below minimum {self.min_value}")
        if self.max_value is not None and value > self.max_value:
            raise ConfigError(f"{self.name}: value {value} exceeds maximum {self.max_value}")
        if self.choices is not None and value not in self.choices:
            raise ConfigError(f"{self.name}: '{value}' must be one of {self.choices}")

    def get_value(self) -> Any:
        raw = os.environ.get(self.name)
        if raw is None:
            return self.default
        value = self.parse(raw)
        self.check(value)
        return value

    def display(self, value: Any) -> Any:
        if self.sensitive:
            return "***" if value else None
        return value


ENV_VARS: Dict[str, EnvVar] = {
    var.name: var
    for var in [
        # Server
        EnvVar("APP_ENV", "prod", choices=["dev", "prod", "test", "staging"]),
        EnvVar("DEBUG", False, "bool"),
        EnvVar("HOST", "0.0.0.0"),
        EnvVar("PORT", 3000, "int", min_value=1, max_value=65535),
        # Database files; None means computed from DATA_DIR
        EnvVar("DATA_DIR", None, "path", "Directory holding the database and backup/"),
        EnvVar("DB_PATH", None, "path", "Primary SQLite database"),
        EnvVar("BACKUP_PATH", None, "path", "Single-slot backup file"),
        EnvVar(
            "DB_LOCK_TIMEOUT", 30.0, "float", "Seconds to wait for the database lock",
            min_value=0, max_value=3600,
        ),
        EnvVar(
            "MAX_UPLOAD_MB", 200, "int", "Largest database upload accepted",
            min_value=1, max_value=10240,
        ),
        # Accounts and sessions
        EnvVar("SECRET_KEY", DEFAULT_SECRET_KEY, sensitive=True),
        EnvVar("SESSION_COOKIE_SECURE", False, "bool"),
        EnvVar("BCRYPT_ROUNDS", 10, "int", "bcrypt work factor", min_value=4, max_value=31),
        EnvVar("DEFAULT_ADMIN_PASSWORD", "66292", sensitive=True),
        EnvVar("DEFAULT_USER_PASSWORD", "drc", sensitive=True),
        # Request logging
        EnvVar("REQUEST_LOG_ENABLED", True, "bool"),
        EnvVar("REQUEST_LOG_LEVEL", "info", choices=["debug", "info", "minimal"]),
        EnvVar("REQUEST_LOG_FILE", None, "path", "JSON-lines request log, off when unset"),
        EnvVar("REQUEST_LOG_EXCLUDE", ["/health", "/static"], "list"),
    ]
}


class ConfigMeta(type):
    """Resolves ``Config.NAME`` through ENV_VARS, caching each value."""

    _cache: Dict[str, Any] = {}

    def __getattr__(cls, name: str) -> Any:
        if name.startswith("_") or name not in ENV_VARS:
            raise AttributeError(f"Unknown config variable: {name}")
        if name not in cls._cache:
            cls._cache[name] = ENV_VARS[name].get_value()
        return cls._cache[name]


class Config(metaclass=ConfigMeta):
    """
    Configuration values as class attributes:
        Config.PORT           # int
        Config.DB_PATH        # Path or None
    """

    @classmethod
    def get(cls, name: str, default: Any = None) -> Any:
        """Value of ``name``, or ``default`` when unknown or unset."""
        try:
            value = getattr(cls, name)
        except AttributeError:
            return default
        return default if value is None else value

    @classmethod
    def to_dict(cls, include_sensitive: bool = False) -> Dict[str, Any]:
        """All values, with secrets masked unless asked for. Invalid values are None."""
        result = {}
        for name, env_var in ENV_VARS.items():
            try:
                value = env_var.get_value()
            except ConfigError:
                result[name] = None
                continue
            result[name] = value if include_sensitive else env_var.display(value)
        return result

    @classmethod
    def clear_cache(cls) -> None:
        """Forget cached values so the environment is read again."""
        cls._cache.clear()


def get_data_dir() -> Path:
    return Config.get("DATA_DIR") or Path.cwd()


def get_db_path() -> Path:
    """Primary database path; DB_PATH wins over DATA_DIR."""
    return Config.get("DB_PATH") or get_data_dir() / DB_FILENAME


def get_backup_path() -> Path:
    return Config.get("BACKUP_PATH") or get_data_dir() / BACKUP_DIRNAME / BACKUP_FILENAME


def validate_config(strict: bool = False) -> Dict[str, Any]:
    """
    Parse every variable and fill in the computed database paths.

    Args:
        strict: If True, any invalid value raises. Otherwise the invalid
                variable is logged and its default is used.

    Returns:
        Dict of all settings, including DATA_DIR, DB_PATH and BACKUP_PATH

    Raises:
        ConfigError: in strict mode, listing every invalid variable
    """
    settings = {}
    errors = []

    for name, env_var in ENV_VARS.items():
        try:
            settings[name] = env_var.get_value()
        except ConfigError as e:
            errors.append(str(e))
            settings[name] = env_var.default
        logger.debug(f"Config: {name} = {env_var.display(settings[name])}")

    if errors and strict:
        message = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        logger.error(message)
        raise ConfigError(message)
    for error in errors:
        logger.warning(f"Config warning: {error}, using default")

    data_dir = settings["DATA_DIR"] or Path.cwd()
    settings["DATA_DIR"] = data_dir
    settings["DB_PATH"] = settings["DB_PATH"] or data_dir / DB_FILENAME
    settings["BACKUP_PATH"] = settings["BACKUP_PATH"] or data_dir / BACKUP_DIRNAME / BACKUP_FILENAME

    logger.info(f"Configuration validated: {len(settings)} variables loaded")
    return settings


def is_production() -> bool:
    return Config.APP_ENV == "prod"


def is_testing() -> bool:
    return Config.APP_ENV == "test"


def require_production_secret() -> None:
    """Refuse to run production on the built-in session secret."""
    if is_production() and Config.SECRET_KEY == DEFAULT_SECRET_KEY:
        raise ConfigError(
            "Using default SECRET_KEY in production is not allowed. "
            "Set the SECRET_KEY environment variable."
        )
