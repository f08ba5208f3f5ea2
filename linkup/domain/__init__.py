from .types import GroupId, MemberId, ConversationHandle
from .session import (
    Agent,
    AgentStatus,
    Preferences,
    HangoutRecord,
    IdleEvent,
    CollectingEvent,
    ReadyEvent,
    SessionEvent,
    Session,
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
)

__all__ = [
    "GroupId",
    "MemberId",
    "ConversationHandle",
    "Agent",
    "AgentStatus",
    "Preferences",
    "HangoutRecord",
    "IdleEvent",
    "CollectingEvent",
    "ReadyEvent",
    "SessionEvent",
    "Session",
    "ALLOWED_TRANSITIONS",
    "InvalidTransitionError",
]
