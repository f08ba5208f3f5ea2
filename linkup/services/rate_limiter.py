from datetime import datetime, timedelta

from linkup.config import LimitsConfig
from linkup.domain import Session


class DeliveryGuard:
    """
    Bounds what the group agent can do to the group chat.

    - at most `plan_message_limit` group messages per ready cycle
    - no forwarding for `post_plan_cooldown_seconds` after a plan lands
    - at most one threshold nudge every `nudge_interval_hours`
    """

    def __init__(self, limits: LimitsConfig | None = None):
        self.limits = limits or LimitsConfig()
        self.cooldown = timedelta(seconds=self.limits.post_plan_cooldown_seconds)
        self.nudge_interval = timedelta(hours=self.limits.nudge_interval_hours)

    @property
    def plan_message_limit(self) -> int:
        return self.limits.plan_message_limit

    def quota_reached(self, session: Session) -> bool:
        return session.plan_message_count >= self.plan_message_limit

    def in_cooldown(self, session: Session, now: datetime) -> bool:
        return self.cooldown_remaining(session, now) > timedelta(0)

    def cooldown_remaining(self, session: Session, now: datetime) -> timedelta:
        if session.plan_delivered_at is None:
            return timedelta(0)
        return max(timedelta(0), session.plan_delivered_at + self.cooldown - now)

    def nudge_allowed(self, session: Session, now: datetime) -> bool:
        if session.last_nudge_at is None:
            return True
        return now - session.last_nudge_at >= self.nudge_interval
