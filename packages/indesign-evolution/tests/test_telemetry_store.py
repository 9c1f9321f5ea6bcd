"""Tests for telemetry sessions and stores."""

import json
import os
import time

import pytest
from _helpers import make_call

from indesign_evolution.errors import TelemetryError
from indesign_evolution.telemetry.session import SessionBuffer, TelemetrySession
from indesign_evolution.telemetry.store.file import FileTelemetryStore
from indesign_evolution.telemetry.store.memory import InMemoryTelemetryStore


@pytest.fixture
def file_store(tmp_path) -> FileTelemetryStore:
    return FileTelemetryStore(tmp_path / "telemetry", poll_interval=0.01)


def test_buffer_rejects_out_of_order_calls():
    buffer = SessionBuffer("s1", "agent-0-1", 0)
    buffer.append(make_call("create_textframe", offset=10))
    with pytest.raises(TelemetryError):
        buffer.append(make_call("add_text", offset=5))


def test_buffer_rejects_calls_after_close():
    buffer = SessionBuffer("s1", "agent-0-1", 0)
    buffer.close()
    with pytest.raises(TelemetryError):
        buffer.append(make_call("add_text"))
    assert buffer.snapshot().is_complete


def test_session_from_dict_sorts_calls():
    data = {
        "id": "s1",
        "agentId": "agent-0-1",
        "generation": 2,
        "startTime": 1,
        "endTime": 9,
        "calls": [
            {"timestamp": 30, "tool": "b", "parameters": {}, "executionTime": 1,
             "result": "success"},
            {"timestamp": 10, "tool": "a", "parameters": {}, "executionTime": 1,
             "result": "error", "errorMessage": "bad"},
        ],
    }
    session = TelemetrySession.from_dict(data)
    assert session.tools_used == ["a", "b"]
    assert session.calls[0].error_message == "bad"
    assert session.generation == 2


@pytest.mark.asyncio
async def test_file_store_writes_session_and_sentinel(file_store: FileTelemetryStore):
    sid = await file_store.start_session("agent-0-1", 0)
    await file_store.record_call(sid, make_call("create_textframe", offset=1, x=10))
    await file_store.record_call(sid, make_call("add_text", offset=2, text="Hello"))

    assert not file_store.sentinel_path(sid).exists()
    on_disk = json.loads(file_store.session_path(sid).read_text())
    assert [c["tool"] for c in on_disk["calls"]] == ["create_textframe", "add_text"]
    assert on_disk["endTime"] is None

    session = await file_store.end_session(sid)
    assert session.is_complete
    assert file_store.sentinel_path(sid).exists()
    assert await file_store.wait_for_completion(sid, timeout=1.0)

    loaded = await file_store.load(sid)
    assert loaded is not None
    assert loaded.tools_used == ["create_textframe", "add_text"]
    assert loaded.calls[0].parameters == {"x": 10}


@pytest.mark.asyncio
async def test_file_store_session_id_is_unique_and_descriptive(file_store: FileTelemetryStore):
    first = await file_store.start_session("agent-1-2", 1)
    second = await file_store.start_session("agent-1-2", 1)
    assert first != second
    assert "agent-1-2-gen1" in first


@pytest.mark.asyncio
async def test_file_store_wait_times_out(file_store: FileTelemetryStore):
    sid = await file_store.start_session("agent-0-1", 0)
    started = time.monotonic()
    assert await file_store.wait_for_completion(sid, timeout=0.05) is False
    assert time.monotonic() - started < 1.0


@pytest.mark.asyncio
async def test_file_store_record_after_end_fails(file_store: FileTelemetryStore):
    sid = await file_store.start_session("agent-0-1", 0)
    await file_store.end_session(sid)
    with pytest.raises(TelemetryError):
        await file_store.record_call(sid, make_call("add_text"))


@pytest.mark.asyncio
async def test_file_store_unreadable_session_is_absent(file_store: FileTelemetryStore):
    file_store.directory.mkdir(parents=True)
    file_store.session_path("broken").write_text("{not json")
    assert await file_store.read_session("broken") is None


@pytest.mark.asyncio
async def test_file_store_cleanup_removes_old_sessions(file_store: FileTelemetryStore):
    old = await file_store.start_session("agent-0-1", 0)
    await file_store.end_session(old)
    fresh = await file_store.start_session("agent-0-2", 0)

    stale = time.time() - 10 * 24 * 3600
    for path in (file_store.session_path(old), file_store.sentinel_path(old)):
        os.utime(path, (stale, stale))

    removed = await file_store.cleanup(max_age=7 * 24 * 3600)
    assert removed == 1
    assert not file_store.session_path(old).exists()
    assert not file_store.sentinel_path(old).exists()
    assert await file_store.list_sessions() == [fresh]


@pytest.mark.asyncio
async def test_file_store_save_complete_session_signals(file_store: FileTelemetryStore):
    session = TelemetrySession(id="synth", agent_id="agent-0-1", generation=0,
                               start_time=1, end_time=2)
    await file_store.save(session)
    assert await file_store.wait_for_completion("synth", timeout=0.1)
    sessions = await file_store.load_all()
    assert [s.id for s in sessions] == ["synth"]


@pytest.mark.asyncio
async def test_memory_store_wait_and_read(memory_store: InMemoryTelemetryStore):
    sid = await memory_store.start_session("agent-0-1", 0, session_id="fixed")
    assert sid == "fixed"
    await memory_store.record_call(sid, make_call("add_text"))
    assert await memory_store.wait_for_completion(sid, timeout=0.02) is False

    partial = await memory_store.read_session(sid)
    assert partial is not None and not partial.is_complete

    await memory_store.end_session(sid)
    assert await memory_store.wait_for_completion(sid, timeout=0.02)
    assert (await memory_store.read_session(sid)).tools_used == ["add_text"]


@pytest.mark.asyncio
async def test_memory_store_unknown_session(memory_store: InMemoryTelemetryStore):
    assert await memory_store.read_session("missing") is None
    assert await memory_store.wait_for_completion("missing", timeout=0.01) is False
    with pytest.raises(TelemetryError):
        await memory_store.record_call("missing", make_call("add_text"))
