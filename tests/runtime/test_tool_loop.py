"""Tests for linkup.runtime.tool_loop module."""

import json

import pytest
from pydantic import BaseModel

from linkup.adapters import DecisionServiceError
from linkup.adapters.prompts import NUDGE_MESSAGE
from linkup.runtime import ToolCallLoop, ToolContext, ToolRegistry

from tests.fixtures import ScriptedDecisionService, call, done, tool_round


class NoteArgs(BaseModel):
    text: str = ""


@pytest.fixture
def notes() -> list[str]:
    return []


@pytest.fixture
def registry(notes: list[str]) -> ToolRegistry:
    async def note(args: NoteArgs, ctx) -> dict:
        notes.append(args.text)
        return {"success": True}

    registry = ToolRegistry("test")
    registry.register("note", "Write a note", NoteArgs, note)
    return registry


@pytest.fixture
def ctx(engine, group) -> ToolContext:
    return ToolContext(engine=engine, group=group, handle="dm-1")


class TestToolCallLoop:
    """Tests for driving an exchange to completion."""

    @pytest.mark.asyncio
    async def test_no_action_returns_immediately(self, service: ScriptedDecisionService, registry, ctx):
        """Test a terminal first response ends the exchange without submissions."""
        loop = ToolCallLoop(service, registry)

        result = await loop.run("dm-1", done("hello"), ctx)

        assert result.tool_calls_made == 0
        assert result.response.content == "hello"
        assert service.submissions == []

    @pytest.mark.asyncio
    async def test_results_of_a_round_are_submitted_together(self, service, registry, ctx, notes):
        """Test every call in a round is executed and submitted in one batch."""
        loop = ToolCallLoop(service, registry)
        first, second = call("note", text="a"), call("note", text="b")

        result = await loop.run("dm-1", tool_round(first, second), ctx)

        assert notes == ["a", "b"]
        assert result.tool_calls_made == 2
        assert len(service.submissions) == 1
        _, _, results = service.submissions[0]
        assert [r.id for r in results] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_runs_multiple_rounds(self, service, registry, ctx, notes):
        """Test the loop keeps going while the service requires action."""
        service.script("dm-1", tool_round(call("note", text="2")), done())
        loop = ToolCallLoop(service, registry)

        result = await loop.run("dm-1", tool_round(call("note", text="1")), ctx)

        assert notes == ["1", "2"]
        assert result.tool_calls_made == 2
        assert len(service.submissions) == 2

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_and_loop_continues(self, service, registry, ctx, notes):
        """Test an unregistered tool gets an error result and the exchange goes on."""
        service.script("dm-1", tool_round(call("note", text="after")), done())
        loop = ToolCallLoop(service, registry)

        result = await loop.run("dm-1", tool_round(call("teleport")), ctx)

        error = json.loads(service.outputs_for("dm-1")[0])
        assert error["success"] is False
        assert "Unknown tool: teleport" in error["error"]
        assert notes == ["after"]
        assert result.tool_calls_made == 2

    @pytest.mark.asyncio
    async def test_nudges_once_when_tools_required(self, service, registry, ctx, notes):
        """Test a tool-less exchange gets exactly one corrective nudge."""
        service.script("dm-1", tool_round(call("note", text="sorry")), done())
        loop = ToolCallLoop(service, registry, nudge_message=NUDGE_MESSAGE)

        result = await loop.run("dm-1", done("plain text"), ctx, require_tool_call=lambda: True)

        assert result.nudged
        assert notes == ["sorry"]
        assert service.turns_for("dm-1") == [NUDGE_MESSAGE]

    @pytest.mark.asyncio
    async def test_never_nudges_twice(self, service, registry, ctx):
        """Test a service that ignores the nudge is not nudged again."""
        service.script("dm-1", done("still plain"), done("and again"))
        loop = ToolCallLoop(service, registry, nudge_message=NUDGE_MESSAGE)

        result = await loop.run("dm-1", done("plain"), ctx, require_tool_call=lambda: True)

        assert result.nudged
        assert result.tool_calls_made == 0
        assert service.turns_for("dm-1") == [NUDGE_MESSAGE]

    @pytest.mark.asyncio
    async def test_no_nudge_when_not_required(self, service, registry, ctx):
        """Test no nudge when the participant no longer needs to act."""
        loop = ToolCallLoop(service, registry, nudge_message=NUDGE_MESSAGE)

        result = await loop.run("dm-1", done(), ctx, require_tool_call=lambda: False)

        assert not result.nudged
        assert service.turns == []

    @pytest.mark.asyncio
    async def test_no_nudge_after_tool_calls(self, service, registry, ctx):
        """Test an exchange that used a tool is never nudged."""
        loop = ToolCallLoop(service, registry, nudge_message=NUDGE_MESSAGE)

        result = await loop.run("dm-1", tool_round(call("note")), ctx, require_tool_call=lambda: True)

        assert not result.nudged
        assert service.turns == []

    @pytest.mark.asyncio
    async def test_service_failure_propagates(self, service, registry, ctx):
        """Test a failed submission aborts the exchange and frees the handle."""
        service.script("dm-1", DecisionServiceError("boom"))
        loop = ToolCallLoop(service, registry)

        with pytest.raises(DecisionServiceError):
            await loop.run("dm-1", tool_round(call("note")), ctx)

        assert not loop.is_active("dm-1")
