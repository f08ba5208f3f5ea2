"""
LinkUp - a hangout planner that lives in iMessage group chats.

A group agent reads the group chat and decides when to start planning; one
DM agent per member privately collects availability and what they want to
do; once everyone has answered the group agent delivers the plan.

Main entry points:
- PlanningEngine: runs one poll cycle over every configured group
- PollDriver: fires poll cycles on an interval, skipping overlapping ticks

Example usage:
    from linkup import PlanningEngine, PollDriver

    engine = PlanningEngine(config, store, service, transport, memory)
    await engine.initialize()
    await PollDriver(engine.poll_cycle, config.poll_interval_seconds).run()
"""

from .engine import PlanningEngine
from .poller import PollDriver
from .logging_config import setup_logging

__all__ = [
    "PlanningEngine",
    "PollDriver",
    "setup_logging",
]
