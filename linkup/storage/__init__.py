from .memory_store import (
    ALL_CATEGORIES,
    CategoryCount,
    HangoutStats,
    LastHangout,
    MemoryStore,
    MemorySummary,
    categorize,
    weekly_streak,
)
from .session_store import SessionStore

__all__ = [
    "ALL_CATEGORIES",
    "CategoryCount",
    "HangoutStats",
    "LastHangout",
    "MemoryStore",
    "MemorySummary",
    "SessionStore",
    "categorize",
    "weekly_streak",
]
