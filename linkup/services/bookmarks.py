import logging

from linkup.adapters import InboundMessage, Transport
from linkup.domain import GroupId, MemberId, Session
from linkup.storage import SessionStore


logger = logging.getLogger(__name__)


class BookmarkTracker:
    """
    Per-conversation read cursors, stored on the group's Session.

    The group conversation uses session.last_cursor; each member's direct
    conversation uses session.dm_cursors[member]. A cursor seen for the first
    time starts at the transport's latest sequence, so history that predates
    the bot is never replayed. Cursors only move forward and every advance
    is persisted immediately.
    """

    def __init__(self, store: SessionStore, transport: Transport):
        self.store = store
        self.transport = transport

    async def initialize(self, group_id: GroupId, member_ids: list[MemberId]) -> Session:
        """Seed any missing cursors for a group and its members."""
        session = self.store.ensure(group_id)

        if session.last_cursor is None:
            latest = await self.transport.latest_sequence(group_id)
            session = self.store.put(session.with_cursor(latest))
            logger.info(f"Initialized {group_id} bookmark at {latest}")

        for member_id in member_ids:
            if member_id not in session.dm_cursors:
                latest = await self.transport.latest_sequence(member_id)
                session = self.store.put(session.with_dm_cursor(member_id, latest))
                logger.info(f"Initialized DM bookmark for {member_id} at {latest}")

        return session

    def cursor(self, group_id: GroupId, member_id: MemberId | None = None) -> int:
        session = self.store.ensure(group_id)
        if member_id is None:
            return session.last_cursor or 0
        return session.dm_cursors.get(member_id, 0)

    def advance(self, group_id: GroupId, sequence: int, member_id: MemberId | None = None) -> Session:
        """Move a cursor forward to `sequence`. Never moves backwards."""
        session = self.store.ensure(group_id)
        if sequence <= self.cursor(group_id, member_id):
            return session

        if member_id is None:
            session = session.with_cursor(sequence)
        else:
            session = session.with_dm_cursor(member_id, sequence)
        return self.store.put(session)

    async def fetch(self, group_id: GroupId, member_id: MemberId | None = None) -> list[InboundMessage]:
        """Unread messages for a cursor, in increasing sequence order."""
        since = self.cursor(group_id, member_id)
        conversation_id = member_id if member_id is not None else group_id
        messages = await self.transport.list_new_messages(conversation_id, since)
        return sorted((m for m in messages if m.sequence > since), key=lambda m: m.sequence)
