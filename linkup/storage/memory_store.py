"""Long-term memory for LinkUp.

Stores every submitted preference and every confirmed hangout in SQLite
(via aiosqlite) and answers the aggregate questions the agents ask:
favorite categories, categories never tried, weekly streaks.

The orchestration core never depends on this being available. If the
database can't be opened every write is a no-op and every query answers
"no history".
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS preferences (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id     TEXT NOT NULL,
    member_id    TEXT NOT NULL,
    name         TEXT NOT NULL,
    activity     TEXT NOT NULL,
    category     TEXT NOT NULL,
    availability TEXT NOT NULL,
    notes        TEXT NOT NULL,
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_preferences_member ON preferences(group_id, member_id);
CREATE INDEX IF NOT EXISTS idx_preferences_created ON preferences(group_id, created_at);

CREATE TABLE IF NOT EXISTS hangouts (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id    TEXT NOT NULL,
    group_name  TEXT NOT NULL,
    description TEXT NOT NULL,
    category    TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_hangouts_created ON hangouts(group_id, created_at);
"""


# =============================================================================
# Categorization
# =============================================================================

CATEGORY_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("food", re.compile(
        r"\b(eat|food|restaurant|dinner|lunch|brunch|tacos?|sushi|bbq|pizza|burgers?|ramen|pho|"
        r"korean|thai|italian|mexican|chinese|indian|steak|wings|noodles?|cafe|bakery|dessert|"
        r"ice cream|boba|coffee)\b"
    )),
    ("movies", re.compile(r"\b(movie|film|cinema|theater|theatre|watch|netflix|screening|imax)\b")),
    ("sports", re.compile(
        r"\b(sport|basketball|soccer|football|tennis|volleyball|gym|workout|run|swim|hockey|"
        r"baseball|golf|ski|snowboard|skating|skate)\b"
    )),
    ("outdoors", re.compile(
        r"\b(hike|hiking|trail|park|beach|camp|camping|nature|lake|mountain|kayak|bike|biking|"
        r"picnic|walk|garden)\b"
    )),
    ("games", re.compile(
        r"\b(game|gaming|board game|video game|arcade|bowling|pool|billiard|laser tag|paintball|"
        r"mini golf|go-kart|escape room|trivia|poker|chess)\b"
    )),
    ("nightlife", re.compile(
        r"\b(bar|club|drink|party|karaoke|pub|lounge|nightclub|cocktail|brewery|wine|"
        r"happy hour|dancing)\b"
    )),
    ("chill", re.compile(
        r"\b(chill|hangout|hang out|vibe|relax|sleepover|movie night|game night|netflix|couch|"
        r"house|home|potluck)\b"
    )),
    ("shopping", re.compile(r"\b(shop|shopping|mall|thrift|vintage|market|flea market|outlet|store)\b")),
    ("creative", re.compile(
        r"\b(art|paint|pottery|museum|gallery|craft|diy|cooking class|workshop|music|concert|"
        r"show|comedy|improv|open mic|exhibit)\b"
    )),
)

ALL_CATEGORIES: tuple[str, ...] = tuple(name for name, _ in CATEGORY_PATTERNS)


def categorize(activity: str | None) -> str:
    """Bucket a free-text activity into one of the known categories, else 'other'."""
    if not activity:
        return "other"
    lower = activity.lower()
    for name, pattern in CATEGORY_PATTERNS:
        if pattern.search(lower):
            return name
    return "other"


def weekly_streak(timestamps: list[datetime], now: datetime) -> int:
    """Count consecutive weeks (Sunday-based, ending with the current one) with a hangout."""
    if not timestamps:
        return 0

    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # Python weekday(): Monday=0 ... Sunday=6
    week_start = day_start - timedelta(days=(day_start.weekday() + 1) % 7)
    one_week = timedelta(days=7)

    streak = 0
    while True:
        week_end = week_start + one_week
        if any(week_start <= ts < week_end for ts in timestamps):
            streak += 1
            week_start -= one_week
        else:
            return streak


# =============================================================================
# Query Results
# =============================================================================


class CategoryCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    count: int


class LastHangout(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    category: str
    days_ago: int


class MemorySummary(BaseModel):
    """What the group's history says, from one member's point of view."""
    model_config = ConfigDict(frozen=True)

    has_history: bool = False
    group_favorites: tuple[CategoryCount, ...] = Field(default_factory=tuple)
    never_tried: tuple[str, ...] = Field(default_factory=tuple)
    person_favorites: tuple[CategoryCount, ...] = Field(default_factory=tuple)
    person_always_picks: str | None = None
    total_hangouts: int = 0
    streak: int = 0
    last_hangout: LastHangout | None = None


class HangoutStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_hangouts: int
    streak: int


def _top(counts: Counter, n: int = 3) -> tuple[CategoryCount, ...]:
    return tuple(CategoryCount(category=c, count=k) for c, k in counts.most_common(n))


# =============================================================================
# Store
# =============================================================================


class MemoryStore:
    """Async SQLite memory store with graceful degradation.

    Usage:
        memory = MemoryStore(Path("data/memory.db"))
        await memory.connect()
        summary = await memory.query_memory("chat123", "+15145550101")
    """

    def __init__(self, path: Path | str | None):
        """Initialize with a database path. None keeps the store permanently offline."""
        self.path = Path(path) if path is not None else None
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> bool:
        """Open the database and create tables. Returns False if unavailable."""
        if self._conn is not None or self.path is None:
            return self._conn is not None

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self.path)
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(SCHEMA_SQL)
            await conn.commit()
        except (OSError, aiosqlite.Error) as e:
            logger.error(f"Memory store unavailable at {self.path}: {e}")
            logger.warning("Falling back to no-history mode")
            return False

        self._conn = conn
        logger.debug(f"Connected to memory store: {self.path}")
        return True

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.debug(f"Closed memory store: {self.path}")

    async def __aenter__(self) -> MemoryStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Writes
    # =========================================================================

    async def record_preference(
        self,
        group_id: str,
        member_id: str,
        name: str,
        activity: str,
        availability: str,
        notes: str,
        now: datetime | None = None,
    ) -> None:
        if not self.is_connected:
            return
        category = categorize(activity)
        created_at = (now or datetime.now(timezone.utc)).isoformat()
        try:
            await self._conn.execute(
                """
                INSERT INTO preferences
                    (group_id, member_id, name, activity, category, availability, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (group_id, member_id, name, activity, category, availability, notes, created_at),
            )
            await self._conn.commit()
            logger.info(f"Saved preference for {name}: {activity} -> {category}")
        except aiosqlite.Error as e:
            logger.error(f"Failed to save preference for {name}: {e}")

    async def record_hangout(
        self,
        group_id: str,
        group_name: str,
        description: str,
        now: datetime | None = None,
    ) -> None:
        if not self.is_connected:
            return
        category = categorize(description)
        created_at = (now or datetime.now(timezone.utc)).isoformat()
        try:
            await self._conn.execute(
                """
                INSERT INTO hangouts (group_id, group_name, description, category, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (group_id, group_name, description, category, created_at),
            )
            await self._conn.commit()
            logger.info(f"Saved hangout: {description} -> {category}")
        except aiosqlite.Error as e:
            logger.error(f"Failed to save hangout: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    async def query_memory(
        self,
        group_id: str,
        member_id: str,
        now: datetime | None = None,
    ) -> MemorySummary:
        """Aggregate the group's history for personalized suggestions."""
        if not self.is_connected:
            return MemorySummary()

        now = now or datetime.now(timezone.utc)
        try:
            preferences = await self._fetch_all(
                "SELECT member_id, category FROM preferences WHERE group_id = ? ORDER BY created_at DESC",
                (group_id,),
            )
            hangouts = await self._fetch_all(
                "SELECT description, category, created_at FROM hangouts WHERE group_id = ? ORDER BY created_at DESC",
                (group_id,),
            )
        except aiosqlite.Error as e:
            logger.error(f"Failed to query group memory: {e}")
            return MemorySummary()

        if not preferences and not hangouts:
            return MemorySummary()

        category_counts = Counter(row[1] for row in preferences)
        tried = set(category_counts) | {row[1] for row in hangouts}
        never_tried = tuple(c for c in ALL_CATEGORIES if c not in tried)

        person_categories = [row[1] for row in preferences if row[0] == member_id]
        person_counts = Counter(person_categories)
        always_picks = None
        if len(person_categories) >= 2 and len(person_counts) == 1:
            always_picks = person_categories[0]

        hangout_times = [datetime.fromisoformat(row[2]) for row in hangouts]
        last_hangout = None
        if hangouts:
            description, category, _ = hangouts[0]
            last_hangout = LastHangout(
                description=description,
                category=category,
                days_ago=(now - hangout_times[0]).days,
            )

        return MemorySummary(
            has_history=True,
            group_favorites=_top(category_counts),
            never_tried=never_tried,
            person_favorites=_top(person_counts),
            person_always_picks=always_picks,
            total_hangouts=len(hangouts),
            streak=weekly_streak(hangout_times, now),
            last_hangout=last_hangout,
        )

    async def hangout_stats(self, group_id: str, now: datetime | None = None) -> HangoutStats | None:
        """Total hangouts and current weekly streak, or None without history."""
        if not self.is_connected:
            return None

        try:
            rows = await self._fetch_all(
                "SELECT created_at FROM hangouts WHERE group_id = ? ORDER BY created_at DESC",
                (group_id,),
            )
        except aiosqlite.Error as e:
            logger.error(f"Failed to get hangout stats: {e}")
            return None

        if not rows:
            return None
        times = [datetime.fromisoformat(row[0]) for row in rows]
        return HangoutStats(
            total_hangouts=len(times),
            streak=weekly_streak(times, now or datetime.now(timezone.utc)),
        )

    async def _fetch_all(self, sql: str, params: tuple) -> list[tuple]:
        async with self._conn.execute(sql, params) as cursor:
            return [tuple(row) for row in await cursor.fetchall()]
