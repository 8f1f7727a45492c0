"""
Store configuration, read from a JSON file.
"""
from dataclasses import dataclass
from typing import Optional
import logging
import os

from serde import SerdeError, serde
from serde.json import from_json, to_json

from .errors import ConfigError

logger = logging.getLogger(__name__)

DB_ENV_VAR = "MERKLE_VFS_DB"


@serde
@dataclass
class Config:
    db_path: str = "./gitfs-db"
    work_prefix: str = "refs/work/"
    default_ref: str = "refs/work/HEAD"
    grep_max_results: int = 100


def load_config(path: Optional[str] = None) -> Config:
    """
    Load a config file. A missing file gives the defaults.
    MERKLE_VFS_DB, when set, overrides the database path.

    Raises:
        ConfigError: The file is not valid JSON or does not describe a Config
    """
    config = Config()
    if path is not None:
        try:
            with open(path, "r") as f:
                config = from_json(Config, f.read())
        except FileNotFoundError:
            logger.info(f"No config at {path}, using defaults")
        except (SerdeError, ValueError, TypeError, KeyError) as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
    db_override = os.environ.get(DB_ENV_VAR)
    if db_override:
        config.db_path = db_override
    if not config.work_prefix.endswith("/"):
        config.work_prefix += "/"
    return config


def save_config(config: Config, path: str) -> None:
    with open(path, "w") as f:
        f.write(to_json(config))
