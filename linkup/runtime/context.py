from dataclasses import dataclass
from typing import TYPE_CHECKING

from linkup.config import GroupConfig
from linkup.domain import Agent, CollectingEvent, ConversationHandle, MemberId, ReadyEvent, Session

if TYPE_CHECKING:
    from linkup.engine import PlanningEngine


@dataclass
class ToolContext:
    """Context available to tool processors for one exchange."""

    engine: "PlanningEngine"
    group: GroupConfig
    handle: ConversationHandle

    # Set for DM agent exchanges
    member_id: MemberId | None = None

    # The plan closed during this exchange; further group sends are refused
    plan_closed: bool = False

    # Set only for the exchange generate_plan started; Ready sends count
    # toward the quota only from here
    plan_cycle: ReadyEvent | None = None

    @property
    def session(self) -> Session:
        return self.engine.store.ensure(self.group.chat_id)

    def current_agent(self) -> Agent | None:
        """This member's agent in the active collection, if any."""
        session = self.session
        if self.member_id is None or not isinstance(session.event, CollectingEvent):
            return None
        return session.event.agents.get(self.member_id)

    def delivers_plan(self) -> bool:
        """This exchange is delivering the plan for the current Ready cycle."""
        session = self.session
        return isinstance(session.event, ReadyEvent) and self.plan_cycle == session.event

    def is_superseded(self) -> bool:
        """A newer DM thread replaced this one (reschedule)."""
        agent = self.current_agent()
        return agent is not None and agent.conversation_handle != self.handle
