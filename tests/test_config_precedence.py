"""Test configuration precedence: CLI > Env > TOML > Defaults."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler
from typer.testing import CliRunner

from album_consensus import cli as cli_module
from album_consensus.cli import app
from album_consensus.config import Config


def test_config_defaults():
    config = Config()
    assert config.database.path == Path("album_consensus.sqlite")
    assert config.logging.level == "WARNING"
    assert config.logging.sanitize_messages is True
    assert config.logging.rich is True


def test_config_load_nonexistent_file():
    config = Config.load(Path("/nonexistent/config.toml"))
    assert config.database.path == Path("album_consensus.sqlite")


def test_toml_loading(tmp_path: Path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[database]
path = "/data/lists.sqlite"

[logging]
level = "DEBUG"
sanitize_messages = false
"""
    )

    config = Config.load(config_path)

    assert config.database.path == Path("/data/lists.sqlite")
    assert config.logging.level == "DEBUG"
    assert config.logging.sanitize_messages is False


def test_env_overrides_toml(tmp_path: Path, monkeypatch):
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[database]
path = "toml.sqlite"

[logging]
level = "ERROR"
"""
    )
    monkeypatch.setenv("ALBUM_CONSENSUS_DATABASE_PATH", "env.sqlite")
    monkeypatch.setenv("ALBUM_CONSENSUS_LOGGING_LEVEL", "INFO")
    monkeypatch.setenv("ALBUM_CONSENSUS_LOGGING_SANITIZE_MESSAGES", "no")

    config = Config.load(config_path)

    assert config.database.path == Path("env.sqlite")
    assert config.logging.level == "INFO"
    assert config.logging.sanitize_messages is False


def test_logging_format_env(monkeypatch):
    monkeypatch.setenv("ALBUM_CONSENSUS_LOGGING_FORMAT", "%(message)s")
    assert Config.load().logging.format == "%(message)s"


def test_cli_db_option_beats_env_and_toml(tmp_path: Path, monkeypatch):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[database]\npath = "toml.sqlite"\n')
    monkeypatch.setenv("ALBUM_CONSENSUS_DATABASE_PATH", str(tmp_path / "env.sqlite"))
    cli_db = tmp_path / "cli.sqlite"

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["--config", str(config_path), "--db", str(cli_db), "years"],
    )

    # No data anywhere, so `years` reports nothing found
    assert result.exit_code == cli_module.ExitCode.NO_RESULTS
    assert cli_module.state.config.database.path == cli_db
    assert cli_db.exists()
    assert not (tmp_path / "env.sqlite").exists()


def test_plain_logging_uses_configured_format(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ALBUM_CONSENSUS_LOGGING_RICH", "false")
    monkeypatch.setenv("ALBUM_CONSENSUS_LOGGING_FORMAT", "PLAIN|%(levelname)s|%(message)s")

    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        runner = CliRunner()
        result = runner.invoke(app, ["--db", str(tmp_path / "cli.sqlite"), "-vv", "years"])

        assert cli_module.state.config.logging.rich is False
        assert "PLAIN|DEBUG|Logging configured" in result.output
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0], RichHandler)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
