"""Tests for configuration loading."""

import logging

from agentflow.config import configure_logging, load_config


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/agentflow.db
log_level: DEBUG
customizations_path: customizations.yaml
routing:
  roster_path: team.yaml
  default_capacity_hours: 32
"""
    )
    monkeypatch.setenv("AGENTFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.database_url == "sqlite:///tmp/agentflow.db"
    assert config.log_level == "DEBUG"
    assert config.customizations_path == "customizations.yaml"
    assert config.routing.roster_path == "team.yaml"
    assert config.routing.default_capacity_hours == 32


def test_env_overrides_database_url_and_level(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://file.db\n")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/agentflow")
    monkeypatch.setenv("AGENTFLOW_LOG_LEVEL", "WARNING")

    config = load_config(str(config_path))
    assert config.database_url == "postgresql://localhost/agentflow"
    assert config.log_level == "WARNING"


def test_missing_config_uses_defaults():
    config = load_config()
    assert config.database_url is None
    assert config.log_level == "INFO"
    assert config.routing.roster_path is None


def test_configure_logging_replaces_handler():
    configure_logging("debug")
    configure_logging("warning")
    logger = logging.getLogger("agentflow")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
