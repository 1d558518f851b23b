# Configuration module
from .env_config import (
    BACKUP_FILENAME,
    DB_FILENAME,
    ENV_VARS,
    Config,
    ConfigError,
    EnvVar,
    get_backup_path,
    get_db_path,
    is_production,
    is_testing,
    require_production_secret,
    validate_config,
)

__all__ = [
    "BACKUP_FILENAME",
    "DB_FILENAME",
    "Config",
    "ConfigError",
    "EnvVar",
    "ENV_VARS",
    "get_backup_path",
    "get_db_path",
    "validate_config",
    "is_production",
    "is_testing",
    "require_production_secret",
]
