"""
End-to-end planning scenarios.

Drives PlanningEngine.poll_cycle against the scripted decision service and
the in-memory transport. Handles are deterministic: the group thread is
"group-1" and DM threads are numbered in roster order ("dm-1" for Ayah,
"dm-2" for Balawal, "dm-3"/"dm-4" after a reschedule).
"""

import json

import pytest

from linkup.adapters import DecisionServiceError
from linkup.domain import ConversationHandle, ReadyEvent, Session
from linkup.runtime import GROUP_TOOLS, ToolContext
from linkup.runtime.group_tools import PLAN_PENDING, QUOTA_REACHED

from tests.fixtures import AYAH, BALAWAL, CHAT, call, done, tool_round


SUMMARY_MARKER = "[ALL PREFERENCES COLLECTED]"


def summary_turns(service) -> list[str]:
    return [t for t in service.turns_for("group-1") if SUMMARY_MARKER in t]


async def collect_everyone(engine, group, service, transport) -> None:
    """Start a round and have both members submit in the next poll cycle."""
    await engine.initialize()
    await engine.start_collecting(group)

    service.script("dm-1", tool_round(call("submit_preferences", availability="friday 7pm", activity="tacos")))
    service.script("dm-2", tool_round(call("submit_preferences", availability="friday 8pm", activity="movies")))
    transport.receive(AYAH, AYAH, "friday 7pm, tacos")
    transport.receive(BALAWAL, BALAWAL, "friday 8pm, movies")
    await engine.poll_cycle()


class TestHappyPath:
    """A hangout request all the way to a delivered plan."""

    @pytest.mark.asyncio
    async def test_request_to_plan(self, engine, group, service, transport, store, clock, monkeypatch):
        """Test the group goes idle -> collecting -> ready -> idle with one summary and two plan messages."""
        states: list[str] = []
        original_put = store.put

        def spy(session: Session) -> Session:
            states.append(session.state)
            return original_put(session)

        monkeypatch.setattr(store, "put", spy)

        await engine.initialize()
        transport.receive(CHAT, AYAH, "lets hang out this weekend")
        service.script(
            "group-1",
            tool_round(call("send_group_message", message="yesss let's do it"), call("start_collecting")),
            done(),
        )
        service.script("dm-1", tool_round(call("send_reply", message="hey ayah! when are you free?")), done())
        service.script("dm-2", tool_round(call("send_reply", message="hey balawal! when are you free?")), done())

        await engine.poll_cycle()

        assert store.get(CHAT).state == "collecting"
        assert "DMing Ayah" in service.turns_for("dm-1")[0]
        assert transport.dm_texts(AYAH) == ["hey ayah! when are you free?"]

        service.script(
            "group-1",
            tool_round(call("send_group_message", message="PLAN: tacos friday 7:30")),
            tool_round(call("send_group_message", message="https://example.com/tacos")),
            done(),
        )
        service.script("dm-1", tool_round(call("submit_preferences", availability="friday 7pm", activity="tacos")), done())
        service.script("dm-2", tool_round(call("submit_preferences", availability="friday 8pm", activity="movies")), done())
        transport.receive(AYAH, AYAH, "friday after 7, tacos")
        transport.receive(BALAWAL, BALAWAL, "friday 8ish, a movie")

        await engine.poll_cycle()

        session = store.get(CHAT)
        assert session.is_idle
        assert session.plan_delivered_at == clock()
        assert transport.group_texts(CHAT) == [
            "yesss let's do it",
            "PLAN: tacos friday 7:30",
            "https://example.com/tacos",
        ]
        assert len(summary_turns(service)) == 1

        changes = [s for i, s in enumerate(states) if i == 0 or states[i - 1] != s]
        assert changes.count("ready") == 1

    @pytest.mark.asyncio
    async def test_summary_lists_each_member(self, engine, group, service, transport):
        """Test the compiled summary carries every member's answers."""
        await collect_everyone(engine, group, service, transport)

        summary = summary_turns(service)[0]
        assert "Available: friday 7pm" in summary
        assert "Wants: tacos" in summary
        assert "Wants: movies" in summary

    @pytest.mark.asyncio
    async def test_exchange_without_plan_messages_closes_plan(self, engine, group, service, transport, store):
        """Test a plan exchange that ends normally always returns the group to idle."""
        await collect_everyone(engine, group, service, transport)

        assert store.get(CHAT).is_idle
        assert store.get(CHAT).plan_message_count == 0


class TestPlanQuota:
    """The group agent gets at most two plan messages per ready cycle."""

    @pytest.mark.asyncio
    async def test_third_message_rejected(self, engine, group, service, transport, store, clock):
        """Test a third send in the plan exchange is refused after the plan closes."""
        service.script(
            "group-1",
            tool_round(
                call("send_group_message", message="plan"),
                call("send_group_message", message="links"),
                call("send_group_message", message="one more thing"),
            ),
            done(),
        )

        await collect_everyone(engine, group, service, transport)

        assert transport.group_texts(CHAT) == ["plan", "links"]
        third = json.loads(service.outputs_for("group-1")[2])
        assert third == {"success": False, "error": QUOTA_REACHED}
        assert store.get(CHAT).is_idle
        assert store.get(CHAT).plan_delivered_at == clock()

    @pytest.mark.asyncio
    async def test_ready_at_quota_forces_idle(self, engine, group, transport, store, clock):
        """Test a send while ready with the quota used up closes the plan instead of sending."""
        store.put(Session(group_id=CHAT, event=ReadyEvent(), plan_message_count=2))
        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))

        output = json.loads(await GROUP_TOOLS.execute(call("send_group_message", message="late"), ctx))

        assert output == {"success": False, "error": QUOTA_REACHED}
        assert transport.group_sent == []
        assert store.get(CHAT).is_idle
        assert store.get(CHAT).plan_delivered_at == clock()

    @pytest.mark.asyncio
    async def test_ready_send_outside_plan_exchange_not_counted(self, engine, group, transport, store):
        """Test a Ready send from an exchange other than the plan exchange is refused and uncounted."""
        store.put(Session(group_id=CHAT, event=ReadyEvent()))
        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))

        output = json.loads(await GROUP_TOOLS.execute(call("send_group_message", message="hang tight"), ctx))

        assert output == {"success": False, "error": PLAN_PENDING}
        assert transport.group_sent == []
        assert store.get(CHAT).state == "ready"
        assert store.get(CHAT).plan_message_count == 0

    @pytest.mark.asyncio
    async def test_deferred_plan_keeps_full_quota(self, engine, group, service, transport, store):
        """Test a send from the rescheduling exchange does not eat into the next cycle's plan messages."""
        service.script(
            "group-1",
            tool_round(call("request_reschedule", conflict_summary="no overlap")),
            tool_round(call("send_group_message", message="hang tight, rescheduling")),
            done(),
            tool_round(call("send_group_message", message="PLAN")),
            tool_round(call("send_group_message", message="LINKS")),
            done(),
        )
        service.script("dm-3", tool_round(call("submit_preferences", availability="saturday", activity="")))
        service.script("dm-4", tool_round(call("submit_preferences", availability="saturday", activity="movies")))

        await collect_everyone(engine, group, service, transport)

        assert store.get(CHAT).state == "ready"
        assert transport.group_sent == []
        assert json.loads(service.outputs_for("group-1")[1]) == {"success": False, "error": PLAN_PENDING}

        await engine.poll_cycle()

        assert transport.group_texts(CHAT) == ["PLAN", "LINKS"]
        assert store.get(CHAT).is_idle
        assert len(summary_turns(service)) == 2


class TestCooldown:
    """Group chatter right after a plan lands is not forwarded."""

    @pytest.mark.asyncio
    async def test_dropped_then_forwarded(self, engine, service, transport, store, clock):
        """Test a message 30s after delivery is dropped and one 70s after is forwarded."""
        store.put(Session(group_id=CHAT, plan_delivered_at=clock()))
        await engine.initialize()

        clock.advance(seconds=30)
        early = transport.receive(CHAT, BALAWAL, "bet")
        await engine.poll_cycle()

        assert service.turns_for("group-1") == []
        assert engine.bookmarks.cursor(CHAT) == early.sequence

        clock.advance(seconds=40)
        transport.receive(CHAT, BALAWAL, "wait what time again")
        await engine.poll_cycle()

        turns = service.turns_for("group-1")
        assert len(turns) == 1
        assert "[Balawal]: wait what time again" in turns[0]


class TestReschedule:
    """Conflicting availability sends everyone back to their DMs."""

    @pytest.mark.asyncio
    async def test_reschedule_mid_collection(self, engine, group, service, transport, store):
        """Test a reschedule with one of two submitted keeps the known activity and reopens threads."""
        await engine.initialize()
        await engine.start_collecting(group)
        service.script("dm-1", tool_round(call("submit_preferences", availability="friday only", activity="tacos")))
        transport.receive(AYAH, AYAH, "only friday, tacos")
        await engine.poll_cycle()

        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))
        output = await GROUP_TOOLS.execute(
            call("request_reschedule", conflict_summary="ayah only friday, balawal busy friday"), ctx,
        )

        assert json.loads(output) == {"success": True, "rescheduling": True}
        agents = store.get(CHAT).agents
        assert agents[AYAH].conversation_handle == "dm-3"
        assert agents[AYAH].previous_activity == "tacos"
        assert not agents[AYAH].is_done
        assert agents[BALAWAL].conversation_handle == "dm-4"

        ayah_prompt = service.turns_for("dm-3")[0]
        assert "RESCHEDULE" in ayah_prompt
        assert "Do NOT ask about the activity again" in ayah_prompt
        assert "what they want to do" in service.turns_for("dm-4")[0]

    @pytest.mark.asyncio
    async def test_blank_activity_after_reschedule_uses_carried_one(self, engine, group, service, transport, store):
        """Test a resubmission without an activity reuses the one from before the reschedule."""
        await engine.initialize()
        await engine.start_collecting(group)
        service.script("dm-1", tool_round(call("submit_preferences", availability="friday only", activity="tacos")))
        transport.receive(AYAH, AYAH, "only friday, tacos")
        await engine.poll_cycle()
        await engine.reschedule(group, "no overlap")

        service.script("dm-3", tool_round(call("submit_preferences", availability="saturday noon", activity="")))
        service.script("dm-4", tool_round(call("submit_preferences", availability="saturday", activity="movies")))
        transport.receive(AYAH, AYAH, "saturday noon works")
        transport.receive(BALAWAL, BALAWAL, "saturday, movies")
        await engine.poll_cycle()

        summary = summary_turns(service)[0]
        assert "Available: saturday noon" in summary
        assert "Wants: tacos" in summary
        assert store.get(CHAT).is_idle

    @pytest.mark.asyncio
    async def test_reschedule_refused_after_delivery_started(self, engine, group, store):
        """Test a reschedule is refused once a plan message went out."""
        store.put(Session(group_id=CHAT, event=ReadyEvent(), plan_message_count=1))
        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))

        output = json.loads(await GROUP_TOOLS.execute(call("request_reschedule", conflict_summary="x"), ctx))

        assert output["success"] is False
        assert store.get(CHAT).state == "ready"


class TestStateGuards:
    """Messages that arrive in the wrong state."""

    @pytest.mark.asyncio
    async def test_group_messages_dropped_while_collecting(self, engine, group, service, transport):
        """Test group chatter during collection is consumed without a group turn."""
        await engine.initialize()
        await engine.start_collecting(group)
        message = transport.receive(CHAT, BALAWAL, "are we still doing this??")

        await engine.poll_cycle()

        assert service.turns_for("group-1") == []
        assert engine.bookmarks.cursor(CHAT) == message.sequence

    @pytest.mark.asyncio
    async def test_group_messages_dropped_while_ready(self, engine, group, service, transport, store):
        """Test group chatter while a plan is pending is consumed without a group turn."""
        service.script("group-1", DecisionServiceError("overloaded"), DecisionServiceError("still overloaded"))
        await collect_everyone(engine, group, service, transport)
        message = transport.receive(CHAT, AYAH, "so whats the plan?")

        await engine.poll_cycle()

        turns = service.turns_for("group-1")
        assert len(turns) == 2
        assert all(SUMMARY_MARKER in t for t in turns)
        assert store.get(CHAT).state == "ready"
        assert engine.bookmarks.cursor(CHAT) == message.sequence

    @pytest.mark.asyncio
    async def test_dm_ignored_while_idle(self, engine, service, transport):
        """Test a DM with no collection in flight starts no exchange."""
        await engine.initialize()
        transport.receive(AYAH, AYAH, "hey random dm")

        await engine.poll_cycle()

        assert service.turns == []

    @pytest.mark.asyncio
    async def test_self_messages_skipped(self, engine, service, transport):
        """Test the bot's own group messages are never forwarded."""
        await engine.initialize()
        own = transport.receive(CHAT, "me", "PLAN: tacos", is_self=True)

        await engine.poll_cycle()

        assert service.turns == []
        assert engine.bookmarks.cursor(CHAT) == own.sequence

    @pytest.mark.asyncio
    async def test_start_collecting_refused_when_not_idle(self, engine, group, service):
        """Test a second start_collecting during collection is an error result."""
        await engine.start_collecting(group)
        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))

        output = json.loads(await GROUP_TOOLS.execute(call("start_collecting"), ctx))

        assert output["success"] is False
        assert len(service.opened) == 2


class TestFailures:
    """Decision service and transport failures are contained."""

    @pytest.mark.asyncio
    async def test_group_turn_failure_consumes_message(self, engine, service, transport, store):
        """Test a failed group turn leaves the session idle and the message consumed."""
        await engine.initialize()
        service.script("group-1", DecisionServiceError("api down"))
        message = transport.receive(CHAT, AYAH, "anyone free?")

        await engine.poll_cycle()
        await engine.poll_cycle()

        assert store.get(CHAT).is_idle
        assert engine.bookmarks.cursor(CHAT) == message.sequence
        assert len(service.turns_for("group-1")) == 1

    @pytest.mark.asyncio
    async def test_plan_generation_retried_next_cycle(self, engine, group, service, transport, store):
        """Test a plan exchange failing before any send stays ready and retries."""
        service.script("group-1", DecisionServiceError("overloaded"))

        await collect_everyone(engine, group, service, transport)

        assert store.get(CHAT).state == "ready"
        assert len(summary_turns(service)) == 1

        await engine.poll_cycle()

        assert store.get(CHAT).is_idle
        assert len(summary_turns(service)) == 2

    @pytest.mark.asyncio
    async def test_one_failing_dm_does_not_block_others(self, engine, group, service, transport):
        """Test an opening failure for one member still reaches the other."""
        service.script("dm-1", DecisionServiceError("thread lost"))
        service.script("dm-2", tool_round(call("send_reply", message="hey balawal!")), done())

        await engine.start_collecting(group)

        assert transport.dm_texts(BALAWAL) == ["hey balawal!"]
        assert transport.dm_texts(AYAH) == []


class TestHangoutThreshold:
    """Quiet groups get nudged, but not every cycle."""

    @pytest.mark.asyncio
    async def test_nudge_after_threshold_then_quiet(self, engine, service, clock):
        """Test one nudge after eight quiet days and none within the next day."""
        await engine.initialize()
        await engine.poll_cycle()
        assert service.turns == []

        clock.advance(days=8)
        await engine.poll_cycle()

        turns = service.turns_for("group-1")
        assert len(turns) == 1
        assert "hangout threshold of 7 days" in turns[0]

        clock.advance(hours=1)
        await engine.poll_cycle()

        assert len(service.turns_for("group-1")) == 1

    @pytest.mark.asyncio
    async def test_logged_hangout_resets_threshold(self, engine, group, service, store, clock):
        """Test a recent logged hangout keeps the group from being nudged."""
        await engine.initialize()
        await engine.poll_cycle()
        clock.advance(days=6)
        ctx = ToolContext(engine=engine, group=group, handle=ConversationHandle("group-1"))
        await GROUP_TOOLS.execute(call("log_hangout", description="bowling"), ctx)

        clock.advance(days=3)
        await engine.poll_cycle()

        assert service.turns == []
        assert store.get(CHAT).last_hangout.description == "bowling"
