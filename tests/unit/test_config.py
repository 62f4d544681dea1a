"""Tests for configuration loading."""

import logging

import pytest

from orchestrant.config import configure_logging, load_config
from orchestrant.transports import InMemoryEventTransport, get_transport
from orchestrant.transports.redis import RedisEventTransport


def test_load_config_defaults_without_file():
    config = load_config()
    assert config.transport.backend == "inmemory"
    assert config.database_url is None
    assert config.approvals.auto_commit is True
    assert config.logging.level == "INFO"


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "orchestrant.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: testhost
    port: 1234
approvals:
  auto_commit: false
workflows_file: workflows.yaml
"""
    )
    monkeypatch.setenv("ORCHESTRANT_CONFIG", str(config_path))
    monkeypatch.setenv("ORCHESTRANT_DATABASE_URL", "sqlite:///tmp/state.db")
    monkeypatch.setenv("ORCHESTRANT_LOG_LEVEL", "debug")

    config = load_config()
    assert config.transport.backend == "redis"
    assert config.transport.redis.host == "testhost"
    assert config.transport.redis.port == 1234
    assert config.approvals.auto_commit is False
    assert config.workflows_file == "workflows.yaml"
    assert config.database_url == "sqlite:///tmp/state.db"
    assert config.logging.level == "debug"


def test_get_transport_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
transport:
  backend: redis
  redis:
    host: confighost
    port: 6380
    channel: sessions
"""
    )
    monkeypatch.setenv("ORCHESTRANT_CONFIG", str(config_path))

    transport = get_transport()
    assert isinstance(transport, RedisEventTransport)
    assert transport.host == "confighost"
    assert transport.port == 6380
    assert transport.channel == "sessions"

    assert isinstance(get_transport("inmemory"), InMemoryEventTransport)
    with pytest.raises(ValueError):
        get_transport("carrier-pigeon")


def test_configure_logging_sets_package_level(monkeypatch):
    monkeypatch.setenv("ORCHESTRANT_LOG_LEVEL", "DEBUG")
    configure_logging()
    assert logging.getLogger("orchestrant").level == logging.DEBUG

    monkeypatch.setenv("ORCHESTRANT_LOG_LEVEL", "chatty")
    with pytest.raises(ValueError):
        configure_logging()
    logging.getLogger("orchestrant").setLevel(logging.NOTSET)
