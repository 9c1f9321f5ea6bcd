"""Regression checks - fixed functional tests run against edited tools."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from indesign_evolution.runner.interface import ToolBridge, response_text

BridgeStep = Callable[[ToolBridge], Awaitable[None]]
BridgeCheck = Callable[[ToolBridge], Awaitable[bool]]


@dataclass
class Check:
    """One regression check; ``cleanup`` runs even when a step raises."""

    name: str
    required_tools: list[str]
    execute: BridgeStep
    validate: BridgeCheck
    description: str = ""
    setup: BridgeStep | None = None
    cleanup: BridgeStep | None = None


# ---- basic text ---- #

async def _add_regression_text(bridge: ToolBridge) -> None:
    await bridge.call_tool("add_text", {"text": "Test content for regression", "position": "start"})


async def _regression_text_present(bridge: ToolBridge) -> bool:
    text = response_text(await bridge.call_tool("get_document_text", {}))
    return "Test content for regression" in text


# ---- styles ---- #

async def _create_and_apply_style(bridge: ToolBridge) -> None:
    await bridge.call_tool("create_paragraph_style", {
        "style_name": "RegressionTestStyle",
        "font_size": 14,
        "alignment": "center",
    })
    await bridge.call_tool("add_text", {"text": "Styled text", "position": "end"})
    await bridge.call_tool("apply_paragraph_style", {
        "style_name": "RegressionTestStyle",
        "target_text": "Styled text",
    })


async def _style_listed(bridge: ToolBridge) -> bool:
    styles = response_text(await bridge.call_tool("list_paragraph_styles", {}))
    return "RegressionTestStyle" in styles


# ---- text frames ---- #

async def _create_frame(bridge: ToolBridge) -> None:
    await bridge.call_tool("create_textframe", {
        "x": 100, "y": 100, "width": 200, "height": 100, "text_content": "Frame test",
    })


async def _frame_exists(bridge: ToolBridge) -> bool:
    raw = response_text(await bridge.call_tool("get_textframe_info", {}))
    try:
        frames = json.loads(raw)
    except json.JSONDecodeError:
        return False
    return any("Frame test" in (f.get("content") or "") for f in frames)


# ---- pages ---- #

async def _page_count(bridge: ToolBridge) -> int:
    info = json.loads(response_text(await bridge.call_tool("get_page_info", {"page_number": -1})))
    return int(info.get("totalPages") or info.get("pageCount") or 0)


@dataclass
class _PageCheckState:
    initial: int = 0
    added: bool = False


def _page_check() -> Check:
    state = _PageCheckState()

    async def setup(bridge: ToolBridge) -> None:
        state.initial = await _page_count(bridge)
        state.added = False

    async def execute(bridge: ToolBridge) -> None:
        await bridge.call_tool("add_pages", {"page_count": 2, "location": "end"})
        state.added = True

    async def validate(bridge: ToolBridge) -> bool:
        return await _page_count(bridge) == state.initial + 2

    async def cleanup(bridge: ToolBridge) -> None:
        if state.added:
            await bridge.call_tool(
                "remove_pages", {"page_range": f"{state.initial + 1}-{state.initial + 2}"}
            )

    return Check(
        name="page-operations",
        description="Tests page addition and info retrieval",
        required_tools=["add_pages", "get_page_info"],
        setup=setup,
        execute=execute,
        validate=validate,
        cleanup=cleanup,
    )


# ---- special characters ---- #

async def _insert_page_number(bridge: ToolBridge) -> None:
    await bridge.call_tool("add_text", {"text": "Page ", "position": "end"})
    await bridge.call_tool(
        "insert_special_character", {"character_type": "auto_page_number", "position": "end"}
    )


async def _completed(bridge: ToolBridge) -> bool:
    return True


def core_checks() -> list[Check]:
    """The standard battery covering text, styles, frames, pages and special characters."""
    return [
        Check(
            name="basic-text-operations",
            description="Tests basic text addition and retrieval",
            required_tools=["add_text", "remove_text", "get_document_text"],
            execute=_add_regression_text,
            validate=_regression_text_present,
        ),
        Check(
            name="style-operations",
            description="Tests paragraph style creation and application",
            required_tools=[
                "create_paragraph_style", "apply_paragraph_style", "list_paragraph_styles",
            ],
            execute=_create_and_apply_style,
            validate=_style_listed,
        ),
        Check(
            name="textframe-operations",
            description="Tests text frame creation and positioning",
            required_tools=["create_textframe", "position_textframe", "get_textframe_info"],
            execute=_create_frame,
            validate=_frame_exists,
        ),
        _page_check(),
        Check(
            name="special-characters",
            description="Tests special character insertion",
            required_tools=["insert_special_character"],
            execute=_insert_page_number,
            # executing without error is the pass condition
            validate=_completed,
        ),
    ]
