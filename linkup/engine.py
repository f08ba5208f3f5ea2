"""
LinkUp planning engine.

One poll cycle visits every configured group in order:
1. retry plan generation left pending by a failed exchange
2. group chat messages, oldest first
3. DM replies from each member, oldest first
4. the hangout threshold nudge

Every turn is decided by the decision service; the engine only executes the
tools it asks for and keeps each group's Session consistent. Errors from the
decision service or the transport abort the exchange they happened in, never
the cycle.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from langsmith import traceable

from linkup.adapters import DecisionService, DecisionServiceError, InboundMessage, Transport, TransportError
from linkup.adapters.prompts import NUDGE_MESSAGE, format_incoming_message, threshold_nudge_message
from linkup.config import GroupConfig, LinkUpConfig
from linkup.domain import CollectingEvent, ConversationHandle, MemberId, ReadyEvent
from linkup.logging_config import log_session, log_transition
from linkup.runtime import DM_TOOLS, GROUP_TOOLS, ToolCallLoop, ToolContext
from linkup.services import BookmarkTracker, DeliveryGuard, build_summary, first_prompt, seed_agents
from linkup.storage import MemoryStore, SessionStore


logger = logging.getLogger(__name__)


GROUP_AGENT = "group"
DM_AGENT = "dm"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PlanningEngine:
    """
    Drives every configured group through idle -> collecting -> ready -> idle.

    Usage:
        engine = PlanningEngine(config, store, service, transport, memory)
        await engine.initialize()
        await engine.poll_cycle()
    """

    def __init__(
        self,
        config: LinkUpConfig,
        store: SessionStore,
        service: DecisionService,
        transport: Transport,
        memory: MemoryStore,
        guard: DeliveryGuard | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.store = store
        self.service = service
        self.transport = transport
        self.memory = memory
        self.guard = guard or DeliveryGuard(config.limits)
        self.clock = clock

        self.bookmarks = BookmarkTracker(store, transport)
        self.group_loop = ToolCallLoop(service, GROUP_TOOLS)
        self.dm_loop = ToolCallLoop(service, DM_TOOLS, nudge_message=NUDGE_MESSAGE)

    def now(self) -> datetime:
        return self.clock()

    @property
    def groups(self) -> tuple[GroupConfig, ...]:
        return self.config.groups

    # =========================================================================
    # Startup
    # =========================================================================

    async def initialize(self) -> None:
        """Seed bookmarks for every group and member so old history is never replayed."""
        for group in self.groups:
            try:
                await self.bookmarks.initialize(group.chat_id, [m.contact for m in group.members])
            except TransportError as e:
                logger.error(f"Could not initialize bookmarks for {group.name}: {e}")
            log_session(logger, group.name, "watching", f"state={self.store.ensure(group.chat_id).state}")

    # =========================================================================
    # Poll Cycle
    # =========================================================================

    @traceable(name="poll_cycle")
    async def poll_cycle(self) -> None:
        """Visit every group once, strictly in order."""
        for group in self.groups:
            try:
                await self.process_group(group)
            except Exception as e:
                logger.error(f"Error processing {group.name}: {e}", exc_info=True)

    async def process_group(self, group: GroupConfig) -> None:
        gid = group.chat_id
        await self.bookmarks.initialize(gid, [m.contact for m in group.members])

        if isinstance(self.store.ensure(gid).event, ReadyEvent):
            log_session(logger, group.name, "retrying plan generation")
            await self.generate_plan(group)

        for message in await self.bookmarks.fetch(gid):
            try:
                await self.handle_group_message(group, message)
            finally:
                self.bookmarks.advance(gid, message.sequence)

        for member in group.members:
            for message in await self.bookmarks.fetch(gid, member.contact):
                try:
                    await self.handle_dm_reply(group, member.contact, message)
                finally:
                    self.bookmarks.advance(gid, message.sequence, member.contact)

        await self.check_hangout_threshold(group)

    # =========================================================================
    # Inbound Messages
    # =========================================================================

    async def handle_group_message(self, group: GroupConfig, message: InboundMessage) -> None:
        if message.is_self:
            return

        session = self.store.ensure(group.chat_id)
        sender = group.display_name(message.sender_id)
        logger.info(f"New message in {group.name} from {sender}: {message.text!r}")

        if not session.is_idle:
            log_session(logger, group.name, "skipped group message", f"state={session.state}")
            return

        now = self.now()
        if self.guard.in_cooldown(session, now):
            remaining = self.guard.cooldown_remaining(session, now)
            log_session(
                logger, group.name, "skipped group message",
                f"post-plan cooldown, {round(remaining.total_seconds())}s remaining",
            )
            return

        content = format_incoming_message(group, message.sender_id, message.text)
        await self._group_exchange(group, content)

    async def handle_dm_reply(self, group: GroupConfig, member_id: MemberId, message: InboundMessage) -> None:
        if message.is_self:
            return

        session = self.store.ensure(group.chat_id)
        name = group.display_name(member_id)
        logger.info(f"DM reply from {name}: {message.text!r}")

        agent = session.agents.get(member_id) if isinstance(session.event, CollectingEvent) else None
        if agent is None:
            log_session(logger, group.name, f"ignored DM from {name}", f"state={session.state}")
            return
        if agent.is_done:
            log_session(logger, group.name, f"ignored DM from {name}", "already submitted")
            return

        try:
            await self._dm_exchange(group, member_id, agent.conversation_handle, message.text)
        except (DecisionServiceError, TransportError) as e:
            logger.error(f"Error processing DM from {name}: {e}")

    # =========================================================================
    # Collection
    # =========================================================================

    async def start_collecting(self, group: GroupConfig) -> dict:
        """Idle -> Collecting: open a DM thread per member and send each an opening prompt."""
        handles = await self._open_dm_threads(group)
        agents = seed_agents(group, handles)

        session = self.store.ensure(group.chat_id)
        self.store.put(session.begin_collecting(agents))
        log_transition(logger, group.name, session.state, "collecting", "start_collecting")

        await self._send_first_prompts(group)
        return {"success": True, "members": len(agents)}

    async def reschedule(self, group: GroupConfig, conflict_summary: str) -> dict:
        """Re-open collection with fresh DM threads, keeping each member's activity."""
        logger.info(f"Schedule conflict in {group.name}: {conflict_summary}")
        handles = await self._open_dm_threads(group)

        session = self.store.ensure(group.chat_id)
        agents = seed_agents(group, handles, previous=session.agents)
        self.store.put(session.transition(CollectingEvent(agents=agents)))
        log_transition(logger, group.name, session.state, "collecting", "reschedule")

        await self._send_first_prompts(group, conflict_summary=conflict_summary)
        return {"success": True, "rescheduling": True}

    async def complete_collection(self, group: GroupConfig) -> None:
        """Collecting -> Ready, then hand the compiled preferences to the group agent."""
        session = self.store.put(self.store.ensure(group.chat_id).mark_ready())
        log_transition(logger, group.name, "collecting", "ready", "all preferences collected")

        # Submitted from inside a group exchange (e.g. a reschedule); the group
        # thread is mid-turn, so the next cycle picks the plan up instead
        if self.group_loop.is_active(session.agent_handle):
            log_session(logger, group.name, "plan generation deferred to next cycle")
            return
        await self.generate_plan(group)

    async def _open_dm_threads(self, group: GroupConfig) -> dict[MemberId, ConversationHandle]:
        return {m.contact: await self.service.open_conversation(DM_AGENT) for m in group.members}

    async def _send_first_prompts(self, group: GroupConfig, conflict_summary: str | None = None) -> None:
        event = self.store.ensure(group.chat_id).event
        if not isinstance(event, CollectingEvent):
            return

        for member_id, agent in event.agents.items():
            memory = None
            if conflict_summary is None:
                memory = await self.memory.query_memory(group.chat_id, member_id, now=self.now())
            prompt = first_prompt(group, agent, conflict_summary=conflict_summary, memory=memory)
            try:
                await self._dm_exchange(group, member_id, agent.conversation_handle, prompt)
            except (DecisionServiceError, TransportError) as e:
                logger.error(f"Could not open DM with {agent.display_name}: {e}")

    # =========================================================================
    # Plan Delivery
    # =========================================================================

    async def generate_plan(self, group: GroupConfig) -> None:
        """Send the compiled preferences to the group agent and let it deliver the plan.

        A failure before any plan message went out leaves the session Ready so
        the next cycle retries. Otherwise the session ends Idle.
        """
        ready = self.store.ensure(group.chat_id).event
        if not isinstance(ready, ReadyEvent):
            return

        summary = build_summary(group, ready.agents)
        log_session(logger, group.name, "sending compiled preferences")
        try:
            await self._group_exchange(group, summary, raise_errors=True, plan_cycle=ready)
        except (DecisionServiceError, TransportError) as e:
            logger.error(f"Plan generation failed for {group.name}: {e}")
            session = self.store.ensure(group.chat_id)
            if session.event == ready and session.plan_message_count > 0:
                self.close_plan(group, reason="plan exchange failed after delivery started")
            return

        # Still the ready cycle this exchange started with: delivered in fewer messages
        if self.store.ensure(group.chat_id).event == ready:
            self.close_plan(group, reason="plan exchange finished")

    def close_plan(self, group: GroupConfig, reason: str) -> None:
        """Ready -> Idle, stamping plan_delivered_at to start the cooldown."""
        session = self.store.ensure(group.chat_id)
        if not isinstance(session.event, ReadyEvent):
            return
        self.store.put(session.close_plan(self.now()))
        log_transition(logger, group.name, "ready", "idle", reason)

    # =========================================================================
    # Hangout Threshold
    # =========================================================================

    async def check_hangout_threshold(self, group: GroupConfig) -> None:
        """Nudge the group agent when the group hasn't hung out in a while."""
        now = self.now()
        session = self.store.ensure(group.chat_id)
        if session.bot_start_at is None:
            session = self.store.put(session.with_bot_start(now))

        if not session.is_idle or not self.guard.nudge_allowed(session, now):
            return

        since = session.last_hangout.timestamp if session.last_hangout else session.bot_start_at
        if (now - since).days < group.hangout_threshold_days:
            return

        # Stamped first so a failing exchange is not retried every cycle
        self.store.update(group.chat_id, lambda s: s.with_nudge(now))
        log_session(logger, group.name, "hangout threshold reached", f"{group.hangout_threshold_days} days")
        await self._group_exchange(group, threshold_nudge_message(group))

    # =========================================================================
    # Exchanges
    # =========================================================================

    async def group_handle(self, group: GroupConfig) -> ConversationHandle:
        """The group agent's long-lived conversation, opened on first use."""
        session = self.store.ensure(group.chat_id)
        if session.agent_handle is None:
            handle = await self.service.open_conversation(GROUP_AGENT)
            session = self.store.put(session.with_agent_handle(handle))
        return session.agent_handle

    async def _group_exchange(
        self,
        group: GroupConfig,
        content: str,
        raise_errors: bool = False,
        plan_cycle: ReadyEvent | None = None,
    ) -> None:
        try:
            handle = await self.group_handle(group)
            ctx = ToolContext(engine=self, group=group, handle=handle, plan_cycle=plan_cycle)
            response = await self.service.send_turn(handle, content)
            result = await self.group_loop.run(handle, response, ctx)
            logger.debug(f"Group exchange for {group.name} finished after {result.tool_calls_made} tool calls")
        except (DecisionServiceError, TransportError) as e:
            if raise_errors:
                raise
            logger.error(f"Error processing message in {group.name}: {e}")

    async def _dm_exchange(
        self,
        group: GroupConfig,
        member_id: MemberId,
        handle: ConversationHandle,
        content: str,
    ) -> None:
        ctx = ToolContext(engine=self, group=group, handle=handle, member_id=member_id)

        def still_chatting() -> bool:
            agent = ctx.current_agent()
            return agent is not None and agent.conversation_handle == handle and not agent.is_done

        response = await self.service.send_turn(handle, content)
        result = await self.dm_loop.run(handle, response, ctx, require_tool_call=still_chatting)
        logger.debug(
            f"DM exchange with {group.display_name(member_id)} finished after "
            f"{result.tool_calls_made} tool calls (nudged={result.nudged})"
        )
