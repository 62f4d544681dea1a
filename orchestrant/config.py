from __future__ import annotations

import logging
import os
from typing import Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_REDIS_CHANNEL


class RedisConfig(BaseModel):
    """Configuration for the Redis event transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    channel: str = DEFAULT_REDIS_CHANNEL


class TransportConfig(BaseModel):
    """Event transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = Field(default_factory=RedisConfig)


class ApprovalConfig(BaseModel):
    auto_commit: bool = True
    # side-effect agent name -> agent run after each successful commit
    follow_ups: Dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class OrchestrantConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    database_url: Optional[str] = None
    approvals: ApprovalConfig = Field(default_factory=ApprovalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    workflows_file: Optional[str] = None
    # "package.module:factory" returning the agents to register
    agents: Optional[str] = None


def load_config(path: Optional[str] = None) -> OrchestrantConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to ORCHESTRANT_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("ORCHESTRANT_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = OrchestrantConfig(**data)
    else:
        config = OrchestrantConfig()

    env_db_url = os.getenv("ORCHESTRANT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_level = os.getenv("ORCHESTRANT_LOG_LEVEL")
    if env_level:
        config.logging.level = env_level
    return config


def configure_logging(config: Optional[OrchestrantConfig] = None) -> None:
    """Apply the configured log level to the ``orchestrant`` logger tree."""
    config = config or load_config()
    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.logging.level}")
    logging.basicConfig(format=config.logging.format)
    logging.getLogger("orchestrant").setLevel(level)
