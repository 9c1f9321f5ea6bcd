"""Tests for tool-call capture and fallback telemetry."""

import pytest

from indesign_evolution.runner.fallback import infer_calls, synthesize_session
from indesign_evolution.runner.interface import SessionDescriptor, response_text
from indesign_evolution.telemetry.capture import (
    CapturingToolRegistry,
    RegistryToolBridge,
    SimpleToolRegistry,
)
from indesign_evolution.telemetry.store.memory import InMemoryTelemetryStore
from indesign_evolution.tools.definition import ToolDefinition


async def _add_text(params):
    return {"content": [{"type": "text", "text": f"added {params['text']}"}]}


async def _broken(params):
    raise ValueError("frame out of bounds")


@pytest.fixture
def capturing(memory_store: InMemoryTelemetryStore) -> CapturingToolRegistry:
    registry = CapturingToolRegistry(SimpleToolRegistry(), memory_store)
    registry.register("add_text", ToolDefinition(name="add_text"), _add_text)
    registry.register("create_textframe", ToolDefinition(name="create_textframe"), _broken)
    return registry


def _descriptor(session_id: str = "s-1") -> SessionDescriptor:
    return SessionDescriptor(session_id=session_id, agent_id="agent-0-1", generation=0,
                             test_case="book-page")


@pytest.mark.asyncio
async def test_captures_calls_while_bound(capturing, memory_store):
    bridge = RegistryToolBridge(capturing)
    await capturing.begin_session(_descriptor())

    response = await bridge.call_tool("add_text", {"text": "Hello"})
    assert response_text(response) == "added Hello"
    with pytest.raises(ValueError):
        await bridge.call_tool("create_textframe", {"x": -5})

    await capturing.end_session()
    assert capturing.descriptor is None
    assert await memory_store.wait_for_completion("s-1", timeout=0.01)

    session = await memory_store.read_session("s-1")
    assert session.tools_used == ["add_text", "create_textframe"]
    assert session.calls[0].result == "success"
    assert session.calls[0].parameters == {"text": "Hello"}
    assert session.calls[1].result == "error"
    assert session.calls[1].error_message == "frame out of bounds"


@pytest.mark.asyncio
async def test_unbound_calls_pass_through(capturing, memory_store):
    bridge = RegistryToolBridge(capturing)
    await bridge.call_tool("add_text", {"text": "x"})
    assert await memory_store.list_sessions() == []


@pytest.mark.asyncio
async def test_unknown_tool_raises(capturing):
    with pytest.raises(KeyError):
        await RegistryToolBridge(capturing).call_tool("no_such_tool", {})


def test_registry_exposes_definitions(capturing):
    assert capturing.names() == ["add_text", "create_textframe"]
    assert capturing.get_definition("add_text").name == "add_text"


def test_infer_calls_for_empty_document():
    calls = infer_calls({"frames": [], "styles": []}, "s-1", "agent-0-1")
    assert len(calls) == 1
    assert calls[0].tool == "agent_failure_detected"
    assert calls[0].result == "error"
    assert calls[0].parameters["inferred"] is True


def test_infer_calls_from_content():
    metrics = {
        "frames": [{"hasText": True, "contentLength": 40}, {"hasText": False}],
        "styles": [{"name": "Body"}],
    }
    calls = infer_calls(metrics, "s-1", "agent-0-1")
    assert [c.tool for c in calls] == [
        "create_textframe", "add_text", "create_paragraph_style", "telemetry_end_session",
    ]
    assert all(c.parameters["inferred"] for c in calls)
    assert [c.timestamp for c in calls] == sorted(c.timestamp for c in calls)


@pytest.mark.asyncio
async def test_synthesize_session_when_inspection_fails():
    class Unreachable:
        async def extract_metrics(self):
            raise ConnectionError("host application not responding")

    session, metrics = await synthesize_session(Unreachable(), "s-9", "agent-0-3", 1)
    assert metrics is None
    assert session.is_complete
    assert session.generation == 1
    assert session.tools_used == ["fallback_telemetry_failed"]
    assert session.calls[0].parameters["error"] == "host application not responding"
