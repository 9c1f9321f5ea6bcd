"""Tool-call capture by wrapping the tool registry.

Instead of patching the server at runtime, the registry that tool handlers
are registered on is wrapped: every handler is replaced by one that records a
``ToolCall`` into the bound telemetry session before returning or re-raising.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog

from indesign_evolution.runner.interface import SessionDescriptor
from indesign_evolution.telemetry.session import ToolCall, now_ms
from indesign_evolution.telemetry.store.base import TelemetryStore
from indesign_evolution.tools.definition import ToolDefinition

logger = structlog.get_logger()

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class ToolRegistry(Protocol):
    """Where tool handlers are registered and looked up by name."""

    def register(self, name: str, definition: ToolDefinition, handler: ToolHandler) -> None: ...
    def get_handler(self, name: str) -> ToolHandler | None: ...
    def get_definition(self, name: str) -> ToolDefinition | None: ...
    def names(self) -> list[str]: ...


class SimpleToolRegistry:
    """Dict-backed tool registry."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._definitions: dict[str, ToolDefinition] = {}

    def register(self, name: str, definition: ToolDefinition, handler: ToolHandler) -> None:
        self._handlers[name] = handler
        self._definitions[name] = definition

    def get_handler(self, name: str) -> ToolHandler | None:
        return self._handlers.get(name)

    def get_definition(self, name: str) -> ToolDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return sorted(self._handlers)


class CapturingToolRegistry:
    """Registry decorator that records each handler invocation as telemetry.

    Recording happens only while a session is bound; unbound invocations pass
    straight through.
    """

    def __init__(self, inner: ToolRegistry, store: TelemetryStore) -> None:
        self._inner = inner
        self._store = store
        self._descriptor: SessionDescriptor | None = None

    @property
    def descriptor(self) -> SessionDescriptor | None:
        return self._descriptor

    def bind(self, descriptor: SessionDescriptor) -> None:
        self._descriptor = descriptor

    def unbind(self) -> None:
        self._descriptor = None

    async def begin_session(self, descriptor: SessionDescriptor) -> None:
        """Open the descriptor's session in the store and start recording into it."""
        await self._store.start_session(
            descriptor.agent_id, descriptor.generation, session_id=descriptor.session_id
        )
        self.bind(descriptor)

    async def end_session(self) -> None:
        """Close the bound session, which writes its completion signal."""
        descriptor = self._descriptor
        if descriptor is None:
            return
        self.unbind()
        await self._store.end_session(descriptor.session_id)

    def register(self, name: str, definition: ToolDefinition, handler: ToolHandler) -> None:
        self._inner.register(name, definition, self._wrap(name, handler))

    def get_handler(self, name: str) -> ToolHandler | None:
        return self._inner.get_handler(name)

    def get_definition(self, name: str) -> ToolDefinition | None:
        return self._inner.get_definition(name)

    def names(self) -> list[str]:
        return self._inner.names()

    def _wrap(self, name: str, handler: ToolHandler) -> ToolHandler:
        async def captured(params: dict[str, Any]) -> dict[str, Any]:
            descriptor = self._descriptor
            if descriptor is None:
                return await handler(params)

            timestamp = now_ms()
            started = time.perf_counter()
            try:
                response = await handler(params)
            except Exception as exc:
                await self._record(descriptor, ToolCall(
                    timestamp=timestamp,
                    tool=name,
                    parameters=dict(params),
                    result="error",
                    execution_time=int((time.perf_counter() - started) * 1000),
                    error_message=str(exc),
                ))
                raise
            await self._record(descriptor, ToolCall(
                timestamp=timestamp,
                tool=name,
                parameters=dict(params),
                result="success",
                execution_time=int((time.perf_counter() - started) * 1000),
            ))
            return response

        return captured

    async def _record(self, descriptor: SessionDescriptor, call: ToolCall) -> None:
        await self._store.record_call(descriptor.session_id, call)
        logger.debug(
            "tool_call_captured",
            session_id=descriptor.session_id,
            tool=call.tool,
            result=call.result,
        )


class RegistryToolBridge:
    """ToolBridge that dispatches straight to registered handlers."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    async def call_tool(self, name: str, params: dict[str, Any]) -> dict[str, Any]:
        handler = self._registry.get_handler(name)
        if handler is None:
            raise KeyError(f"Unknown tool: {name}")
        return await handler(params)
