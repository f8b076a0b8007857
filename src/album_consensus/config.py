from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

_TRUTHY = ("true", "1", "yes")


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: Path = Field(default=Path("album_consensus.sqlite"))


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    sanitize_messages: bool = Field(default=True)
    rich: bool = Field(default=True)  # False: plain stream handler using `format`


class Config(BaseModel):
    """
    Main configuration for album-consensus.

    Loads from TOML file with optional environment variable overrides.
    Scoring and the confirmation quorum are fixed and have no settings.
    """

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern
        ALBUM_CONSENSUS_<SECTION>_<KEY> (e.g. ALBUM_CONSENSUS_DATABASE_PATH).
        Everything is merged into one dict before Pydantic validates it.
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)
        return cls.model_validate(config_dict)

    @staticmethod
    def _section(config_dict: dict[str, object], name: str) -> dict[str, object]:
        section = config_dict.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            config_dict[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        env_prefix = "ALBUM_CONSENSUS_"

        database = cls._section(config_dict, "database")
        if db_path := os.getenv(f"{env_prefix}DATABASE_PATH"):
            database["path"] = db_path

        logging_config = cls._section(config_dict, "logging")
        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format
        if sanitize := os.getenv(f"{env_prefix}LOGGING_SANITIZE_MESSAGES"):
            logging_config["sanitize_messages"] = sanitize.lower() in _TRUTHY
        if rich := os.getenv(f"{env_prefix}LOGGING_RICH"):
            logging_config["rich"] = rich.lower() in _TRUTHY

        return config_dict
