"""
Decision service contract.

Every conversational turn in LinkUp is decided remotely: the engine sends a
message into a conversation thread and gets back either a final answer or a
list of tool invocations to execute locally. Results go back into the same
thread until the service stops asking for actions.

Implemented by adapters/anthropic_service.py (and by the scripted fake in
the test fixtures).
"""

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from linkup.domain import ConversationHandle


class DecisionServiceError(Exception):
    """A turn or tool-result submission failed on the decision service side."""


class TurnStatus(Enum):
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"


class ToolCall(BaseModel):
    """A tool invocation requested by the decision service."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Output of one executed tool call, keyed by the invocation id."""
    model_config = ConfigDict(frozen=True)

    id: str
    output: str


class AgentResponse(BaseModel):
    """One response from the decision service."""
    model_config = ConfigDict(frozen=True)

    content: str = ""
    status: TurnStatus = TurnStatus.COMPLETED
    tool_calls: tuple[ToolCall, ...] = Field(default_factory=tuple)
    turn_id: str = ""

    @property
    def requires_action(self) -> bool:
        return self.status == TurnStatus.REQUIRES_ACTION and bool(self.tool_calls)


@runtime_checkable
class DecisionService(Protocol):
    """
    Protocol for decision services.

    Agent ids name a profile ("group" or "dm"); each open_conversation call
    starts a fresh thread for that profile.
    """

    async def open_conversation(self, agent_id: str) -> ConversationHandle:
        ...

    async def send_turn(self, handle: ConversationHandle, content: str) -> AgentResponse:
        ...

    async def submit_tool_results(
        self,
        handle: ConversationHandle,
        turn_id: str,
        results: list[ToolResult],
    ) -> AgentResponse:
        ...
