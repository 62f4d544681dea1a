"""Tests for agent/workflow registries and YAML workflow loading."""

import pytest

from fixtures.agents import FunctionAgent
from orchestrant.contracts import ParallelGroup, SequentialStep
from orchestrant.errors import AgentNotFound, ValidationFailure, WorkflowNotFound
from orchestrant.registry import (
    AgentRegistry,
    WorkflowRegistry,
    load_workflow_definitions,
    parse_workflow,
)

WORKFLOWS_YAML = """
workflows:
  session-processing:
    description: Transcribe, summarize and log a game session
    steps:
      - agent: transcriber
        streaming: true
      - parallel:
          - summarizer
          - agent: state
      - agent: sheets
        requires_approval: true
  noop:
    steps: []
"""


def test_agent_registry_attaches_shared_bus(bus):
    agent = FunctionAgent("a")
    registry = AgentRegistry([agent], bus=bus)

    assert agent.bus is bus
    assert registry.get("a") is agent
    assert "a" in registry
    assert registry.names() == ["a"]
    assert registry.health()["a"].state.value == "idle"


def test_agent_registry_rejects_unknown_and_duplicate_names():
    registry = AgentRegistry([FunctionAgent("a")])
    with pytest.raises(AgentNotFound):
        registry.get("missing")
    with pytest.raises(ValidationFailure) as exc_info:
        registry.register(FunctionAgent("a"))
    assert exc_info.value.code == "duplicate_agent"


def test_parse_workflow_accepts_compact_steps():
    definition = parse_workflow(
        "wf",
        {"steps": [{"agent": "a"}, {"parallel": ["b", {"agent": "c", "requires_approval": True}]}]},
    )
    assert isinstance(definition.steps[0], SequentialStep)
    group = definition.steps[1]
    assert isinstance(group, ParallelGroup)
    assert group.agent_names == ("b", "c")
    assert group.members[1].requires_approval is True


def test_parse_workflow_wraps_model_errors():
    with pytest.raises(ValidationFailure) as exc_info:
        parse_workflow("wf", {"steps": [{"parallel": ["b", "b"]}]})
    assert exc_info.value.code == "invalid_workflow"

    with pytest.raises(ValidationFailure):
        parse_workflow("wf", {"steps": ["not-a-mapping"]})


def test_load_workflow_definitions_from_yaml(tmp_path):
    path = tmp_path / "workflows.yaml"
    path.write_text(WORKFLOWS_YAML)

    definitions = {d.name: d for d in load_workflow_definitions(path)}

    session = definitions["session-processing"]
    assert session.agent_names() == ["transcriber", "summarizer", "state", "sheets"]
    assert session.steps[0].streaming is True
    assert session.steps[2].requires_approval is True
    assert definitions["noop"].steps == ()


def test_workflow_registry_validates_agent_references():
    agents = AgentRegistry([FunctionAgent("a")])
    registry = WorkflowRegistry(agents=agents)
    registry.register({"name": "ok", "steps": [{"agent": "a"}]})

    with pytest.raises(ValidationFailure) as exc_info:
        registry.register({"name": "broken", "steps": [{"agent": "ghost"}]})
    assert exc_info.value.code == "unknown_agent"
    assert "broken" not in registry

    with pytest.raises(ValidationFailure) as exc_info:
        registry.register({"name": "ok", "steps": []})
    assert exc_info.value.code == "duplicate_workflow"

    with pytest.raises(WorkflowNotFound):
        registry.get("missing")
