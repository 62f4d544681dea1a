import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent))

import orchestrant.persistence as persistence
from orchestrant.events import EventBus, EventRecorder
from orchestrant.persistence import InMemoryRepository


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from any config file or database in the environment."""
    for var in (
        "ORCHESTRANT_CONFIG",
        "ORCHESTRANT_DATABASE_URL",
        "DATABASE_URL",
        "ORCHESTRANT_TRANSPORT",
        "ORCHESTRANT_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    persistence._repository_instance = None
    yield
    persistence._repository_instance = None


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()
