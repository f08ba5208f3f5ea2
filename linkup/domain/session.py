from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field

from .types import ConversationHandle, GroupId, MemberId


class AgentStatus(Enum):
    CHATTING = "chatting"
    DONE = "done"


class Preferences(BaseModel):
    """What one member told their DM agent."""
    model_config = ConfigDict(frozen=True)

    availability: str
    activity: str
    notes: str = "none"


class Agent(BaseModel):
    """A member's private collection conversation during a planning cycle."""
    model_config = ConfigDict(frozen=True)

    member_id: MemberId
    display_name: str
    conversation_handle: ConversationHandle
    status: AgentStatus = AgentStatus.CHATTING
    preferences: Preferences | None = None

    # Carried over by a reschedule so the activity is not asked again
    previous_activity: str | None = None

    @property
    def is_done(self) -> bool:
        return self.status == AgentStatus.DONE


class HangoutRecord(BaseModel):
    """A hangout the group confirmed actually happened."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    description: str


# --- Session events ---

class IdleEvent(BaseModel):
    """No planning cycle in flight."""
    model_config = ConfigDict(frozen=True)
    type: Literal["idle"] = "idle"


class CollectingEvent(BaseModel):
    """DM agents are collecting preferences from every member."""
    model_config = ConfigDict(frozen=True)
    type: Literal["collecting"] = "collecting"

    agents: dict[MemberId, Agent] = Field(default_factory=dict)

    @property
    def all_done(self) -> bool:
        return bool(self.agents) and all(a.is_done for a in self.agents.values())


class ReadyEvent(BaseModel):
    """Everyone submitted; the group agent is delivering the plan."""
    model_config = ConfigDict(frozen=True)
    type: Literal["ready"] = "ready"

    agents: dict[MemberId, Agent] = Field(default_factory=dict)


SessionEvent = Annotated[
    Union[IdleEvent, CollectingEvent, ReadyEvent],
    Discriminator("type"),
]


# (from, to) pairs; reschedule re-enters collecting from collecting or from
# the compiled-summary turn, which runs while ready
ALLOWED_TRANSITIONS: frozenset[tuple[str, str]] = frozenset({
    ("idle", "collecting"),
    ("collecting", "ready"),
    ("ready", "idle"),
    ("collecting", "collecting"),
    ("ready", "collecting"),
})


class InvalidTransitionError(Exception):
    """Raised when a session is asked to move along an edge it doesn't have."""

    def __init__(self, group_id: str, from_state: str, to_state: str):
        self.group_id = group_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition for {group_id}: {from_state} -> {to_state}")


class Session(BaseModel):
    """Persisted planning state of one monitored group."""
    model_config = ConfigDict(frozen=True)

    group_id: GroupId
    event: SessionEvent = Field(default_factory=IdleEvent)

    # Bookmarks
    last_cursor: int | None = None
    dm_cursors: dict[MemberId, int] = Field(default_factory=dict)

    # Group-level decision thread, reused across restarts
    agent_handle: ConversationHandle | None = None

    hangouts: tuple[HangoutRecord, ...] = Field(default_factory=tuple)

    last_nudge_at: datetime | None = None
    plan_delivered_at: datetime | None = None
    bot_start_at: datetime | None = None
    plan_message_count: int = 0

    @property
    def state(self) -> str:
        return self.event.type

    @property
    def is_idle(self) -> bool:
        return isinstance(self.event, IdleEvent)

    @property
    def agents(self) -> dict[MemberId, Agent]:
        """Agents of the current cycle (empty while idle)."""
        if isinstance(self.event, (CollectingEvent, ReadyEvent)):
            return self.event.agents
        return {}

    @property
    def last_hangout(self) -> HangoutRecord | None:
        return self.hangouts[-1] if self.hangouts else None

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(self, event: SessionEvent, now: datetime | None = None) -> "Session":
        """Move to a new event, enforcing the allowed edges.

        plan_message_count resets whenever ready is entered or left, and
        leaving ready for idle stamps plan_delivered_at.
        """
        from_state, to_state = self.event.type, event.type
        if (from_state, to_state) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(self.group_id, from_state, to_state)

        update: dict = {"event": event}
        if from_state == "ready" or to_state == "ready":
            update["plan_message_count"] = 0
        if from_state == "ready" and to_state == "idle":
            update["plan_delivered_at"] = now
        return self.model_copy(update=update)

    def begin_collecting(self, agents: dict[MemberId, Agent]) -> "Session":
        return self.transition(CollectingEvent(agents=agents))

    def mark_ready(self) -> "Session":
        if not isinstance(self.event, CollectingEvent) or not self.event.all_done:
            raise InvalidTransitionError(self.group_id, self.event.type, "ready")
        return self.transition(ReadyEvent(agents=self.event.agents))

    def close_plan(self, now: datetime) -> "Session":
        return self.transition(IdleEvent(), now=now)

    # =========================================================================
    # Field updates
    # =========================================================================

    def with_agent(self, agent: Agent) -> "Session":
        """Replace one agent inside the collecting event."""
        if not isinstance(self.event, CollectingEvent):
            raise InvalidTransitionError(self.group_id, self.event.type, "collecting")
        agents = {**self.event.agents, agent.member_id: agent}
        return self.model_copy(update={"event": CollectingEvent(agents=agents)})

    def with_cursor(self, sequence: int) -> "Session":
        return self.model_copy(update={"last_cursor": sequence})

    def with_dm_cursor(self, member_id: MemberId, sequence: int) -> "Session":
        return self.model_copy(update={"dm_cursors": {**self.dm_cursors, member_id: sequence}})

    def with_hangout(self, record: HangoutRecord) -> "Session":
        return self.model_copy(update={"hangouts": self.hangouts + (record,)})

    def with_plan_message_sent(self) -> "Session":
        return self.model_copy(update={"plan_message_count": self.plan_message_count + 1})

    def with_agent_handle(self, handle: ConversationHandle) -> "Session":
        return self.model_copy(update={"agent_handle": handle})

    def with_nudge(self, now: datetime) -> "Session":
        return self.model_copy(update={"last_nudge_at": now})

    def with_bot_start(self, now: datetime) -> "Session":
        return self.model_copy(update={"bot_start_at": now})
