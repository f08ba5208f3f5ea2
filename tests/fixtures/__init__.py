"""Deterministic test doubles for LinkUp."""

from datetime import datetime, timedelta, timezone

from linkup.domain import GroupId, MemberId

from .mock_service import ScriptedDecisionService, call, done, tool_round
from .mock_transport import InMemoryTransport


AYAH = MemberId("+15145550101")
BALAWAL = MemberId("balawal@example.com")
CHAT = GroupId("chat123456")


class FakeClock:
    """Settable clock; call it to read the time."""

    def __init__(self, start: datetime | None = None):
        # A Sunday, so weekly streaks start on a boundary
        self.current = start or datetime(2026, 1, 4, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


__all__ = [
    "AYAH",
    "BALAWAL",
    "CHAT",
    "FakeClock",
    "InMemoryTransport",
    "ScriptedDecisionService",
    "call",
    "done",
    "tool_round",
]
