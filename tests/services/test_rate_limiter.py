"""Tests for linkup.services.rate_limiter module."""

from datetime import datetime, timedelta, timezone

from linkup.config import LimitsConfig
from linkup.domain import GroupId, Session
from linkup.services import DeliveryGuard


NOW = datetime(2026, 1, 4, 12, 0, tzinfo=timezone.utc)


def session(**update) -> Session:
    return Session(group_id=GroupId("chat")).model_copy(update=update)


class TestPlanQuota:
    """Tests for the per-cycle plan message quota."""

    def test_quota_reached_at_limit(self):
        """Test the default quota is two messages."""
        guard = DeliveryGuard()

        assert not guard.quota_reached(session(plan_message_count=1))
        assert guard.quota_reached(session(plan_message_count=2))

    def test_custom_limit(self):
        """Test the quota follows configuration."""
        guard = DeliveryGuard(LimitsConfig(plan_message_limit=3))

        assert not guard.quota_reached(session(plan_message_count=2))


class TestCooldown:
    """Tests for the post-delivery cooldown."""

    def test_no_delivery_no_cooldown(self):
        """Test a group that never received a plan is not cooling down."""
        assert not DeliveryGuard().in_cooldown(session(), NOW)

    def test_inside_and_after_window(self):
        """Test 30s after delivery is inside the window, 70s is past it."""
        guard = DeliveryGuard()
        delivered = session(plan_delivered_at=NOW)

        assert guard.in_cooldown(delivered, NOW + timedelta(seconds=30))
        assert guard.cooldown_remaining(delivered, NOW + timedelta(seconds=30)) == timedelta(seconds=30)
        assert not guard.in_cooldown(delivered, NOW + timedelta(seconds=70))


class TestNudgeSpacing:
    """Tests for the minimum gap between threshold nudges."""

    def test_first_nudge_allowed(self):
        """Test a group never nudged can be nudged."""
        assert DeliveryGuard().nudge_allowed(session(), NOW)

    def test_gap_of_24_hours(self):
        """Test nudges are at least 24 hours apart."""
        guard = DeliveryGuard()
        nudged = session(last_nudge_at=NOW)

        assert not guard.nudge_allowed(nudged, NOW + timedelta(hours=23))
        assert guard.nudge_allowed(nudged, NOW + timedelta(hours=24))
