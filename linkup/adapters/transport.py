"""Messaging transport contract."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class TransportError(Exception):
    """Reading from or sending to the messaging surface failed."""


class InboundMessage(BaseModel):
    """A message read from a conversation log."""
    model_config = ConfigDict(frozen=True)

    sequence: int
    sender_id: str
    text: str
    is_self: bool = False


@runtime_checkable
class Transport(Protocol):
    """
    A messaging surface with a queryable inbound log.

    Group conversations are addressed by group id, direct conversations by
    member id. Sequence numbers increase monotonically per conversation.
    """

    async def list_new_messages(self, conversation_id: str, since: int) -> list[InboundMessage]:
        """Messages with sequence strictly greater than `since`, oldest first."""
        ...

    async def latest_sequence(self, conversation_id: str) -> int:
        ...

    async def send_group_message(self, group_id: str, text: str) -> None:
        ...

    async def send_direct_message(self, member_id: str, text: str) -> None:
        ...
