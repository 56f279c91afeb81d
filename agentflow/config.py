from __future__ import annotations

import logging
import os
import sys
from typing import Optional

import yaml
from pydantic import BaseModel


class RoutingConfig(BaseModel):
    """Configuration for routing score calculation."""

    roster_path: Optional[str] = None
    default_capacity_hours: float = 40.0


class AgentflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    customizations_path: Optional[str] = None
    routing: RoutingConfig = RoutingConfig()


def load_config(path: Optional[str] = None) -> AgentflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AGENTFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("AGENTFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AgentflowConfig(**data)
    else:
        config = AgentflowConfig()

    env_db_url = os.getenv("AGENTFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_level = os.getenv("AGENTFLOW_LOG_LEVEL")
    if env_level:
        config.log_level = env_level
    return config


def configure_logging(level: str = "INFO") -> None:
    """Send agentflow log records to stderr at ``level``."""

    logger = logging.getLogger("agentflow")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
