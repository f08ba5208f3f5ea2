"""
Services layer - the planning rules the engine applies.

- BookmarkTracker: read cursors per conversation
- DeliveryGuard: plan message quota, cooldown, nudge spacing
- coordinator: preference summary and reschedule seeding
"""

from .bookmarks import BookmarkTracker
from .rate_limiter import DeliveryGuard
from .coordinator import (
    availability_report,
    build_summary,
    carried_activity,
    first_prompt,
    resolve_activity,
    seed_agents,
)

__all__ = [
    "BookmarkTracker",
    "DeliveryGuard",
    "availability_report",
    "build_summary",
    "carried_activity",
    "first_prompt",
    "resolve_activity",
    "seed_agents",
]
