"""
iMessage transport.

Reads the Messages database (chat.db) read-only; message ROWIDs are the
sequence numbers. Sends through AppleScript (osascript). Requires macOS with
Full Disk Access granted to the running process.
"""

import asyncio
import logging
from pathlib import Path

import aiosqlite

from .transport import InboundMessage, TransportError


logger = logging.getLogger(__name__)


MESSAGES_SQL = """
SELECT
    m.ROWID AS rowid,
    m.text AS text,
    m.is_from_me AS is_from_me,
    h.id AS sender
FROM message m
JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
JOIN chat c ON c.ROWID = cmj.chat_id
LEFT JOIN handle h ON h.ROWID = m.handle_id
WHERE c.chat_identifier = ?
  AND m.ROWID > ?
  AND m.text IS NOT NULL
  AND m.text != ''
ORDER BY m.ROWID ASC
"""

LATEST_SQL = """
SELECT MAX(m.ROWID)
FROM message m
JOIN chat_message_join cmj ON cmj.message_id = m.ROWID
JOIN chat c ON c.ROWID = cmj.chat_id
WHERE c.chat_identifier = ?
"""

CHAT_GUID_SQL = "SELECT guid FROM chat WHERE chat_identifier = ?"


def escape_applescript(text: str) -> str:
    """Escape text for use inside an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def group_send_script(chat_guid: str, text: str) -> str:
    return (
        'tell application "Messages"\n'
        f'  set targetChat to a reference to chat id "{chat_guid}"\n'
        f'  send "{escape_applescript(text)}" to targetChat\n'
        "end tell"
    )


def direct_send_script(contact: str, text: str) -> str:
    return (
        'tell application "Messages"\n'
        f'  set targetBuddy to buddy "{escape_applescript(contact)}" of '
        "(service 1 whose service type is iMessage)\n"
        f'  send "{escape_applescript(text)}" to targetBuddy\n'
        "end tell"
    )


class IMessageTransport:
    """Transport over the local Messages app."""

    def __init__(self, chat_db: Path, osascript: str = "osascript"):
        self.chat_db = Path(chat_db).expanduser()
        self.osascript = osascript

    # =========================================================================
    # Reading
    # =========================================================================

    async def list_new_messages(self, conversation_id: str, since: int) -> list[InboundMessage]:
        rows = await self._query(MESSAGES_SQL, (conversation_id, since))
        return [
            InboundMessage(
                sequence=row[0],
                text=row[1],
                is_self=bool(row[2]),
                sender_id=row[3] or "",
            )
            for row in rows
        ]

    async def latest_sequence(self, conversation_id: str) -> int:
        rows = await self._query(LATEST_SQL, (conversation_id,))
        if not rows or rows[0][0] is None:
            return 0
        return rows[0][0]

    async def _query(self, sql: str, params: tuple) -> list[tuple]:
        uri = f"file:{self.chat_db}?mode=ro"
        try:
            async with aiosqlite.connect(uri, uri=True) as db:
                async with db.execute(sql, params) as cursor:
                    return [tuple(row) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            raise TransportError(f"Could not read {self.chat_db}: {e}") from e

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_group_message(self, group_id: str, text: str) -> None:
        # AppleScript addresses group chats by full guid, e.g. "iMessage;+;chat1234"
        rows = await self._query(CHAT_GUID_SQL, (group_id,))
        chat_guid = rows[0][0] if rows else group_id
        await self._run_script(group_send_script(chat_guid, text), target=group_id)
        logger.info(f"Sent to group {group_id}: {text[:80]!r}")

    async def send_direct_message(self, member_id: str, text: str) -> None:
        await self._run_script(direct_send_script(member_id, text), target=member_id)
        logger.info(f"Sent DM to {member_id}: {text[:80]!r}")

    async def _run_script(self, script: str, target: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.osascript, "-e", script,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            raise TransportError(f"Could not run {self.osascript}: {e}") from e

        if proc.returncode != 0:
            error = stderr.decode(errors="replace").strip()
            logger.error(f"osascript failed for {target}: {error}")
            raise TransportError(f"Send to {target} failed: {error}")
