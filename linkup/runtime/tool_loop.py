import logging
from dataclasses import dataclass
from typing import Callable

from langsmith import traceable

from linkup.adapters import AgentResponse, DecisionService, ToolResult
from linkup.domain import ConversationHandle
from linkup.logging_config import log_tool_call

from .context import ToolContext
from .registry import ToolRegistry


logger = logging.getLogger(__name__)


@dataclass
class ExchangeResult:
    """How one exchange with the decision service ended."""

    response: AgentResponse
    tool_calls_made: int
    nudged: bool = False


class ToolCallLoop:
    """
    Drives one exchange with a decision service to completion.

    While the service asks for actions, every requested call is executed
    against the registry and all results of the round are submitted together.
    Agents that must always act through tools get one corrective nudge if a
    whole exchange made no tool calls; never more than one per exchange.
    """

    def __init__(
        self,
        service: DecisionService,
        registry: ToolRegistry,
        nudge_message: str | None = None,
    ):
        self.service = service
        self.registry = registry
        self.nudge_message = nudge_message
        self._active: set[ConversationHandle] = set()

    def is_active(self, handle: ConversationHandle | None) -> bool:
        return handle in self._active

    @traceable(name="tool_call_exchange")
    async def run(
        self,
        handle: ConversationHandle,
        response: AgentResponse,
        ctx: ToolContext,
        require_tool_call: Callable[[], bool] | None = None,
    ) -> ExchangeResult:
        """
        Run the exchange that starts with `response`.

        Args:
            handle: Conversation the response came from
            response: The service's first response of the exchange
            ctx: Context passed to tool processors
            require_tool_call: Checked after a tool-less exchange; nudge if it returns True

        Raises:
            DecisionServiceError: a turn or submission failed; the exchange is abandoned
        """
        if handle in self._active:
            raise RuntimeError(f"Exchange already running for {handle}")

        self._active.add(handle)
        try:
            final, made = await self._drain(handle, response, ctx)
            if made or self.nudge_message is None or require_tool_call is None or not require_tool_call():
                return ExchangeResult(response=final, tool_calls_made=made)

            logger.info(f"{self.registry.agent_label} agent on {handle} made no tool calls, nudging once")
            nudged = await self.service.send_turn(handle, self.nudge_message)
            final, made = await self._drain(handle, nudged, ctx)
            if not made:
                logger.warning(f"{self.registry.agent_label} agent on {handle} ignored the nudge")
            return ExchangeResult(response=final, tool_calls_made=made, nudged=True)
        finally:
            self._active.discard(handle)

    async def _drain(
        self,
        handle: ConversationHandle,
        response: AgentResponse,
        ctx: ToolContext,
    ) -> tuple[AgentResponse, int]:
        current = response
        made = 0
        while current.requires_action:
            results = []
            for call in current.tool_calls:
                made += 1
                log_tool_call(logger, self.registry.agent_label, call.name, call.args)
                output = await self.registry.execute(call, ctx)
                log_tool_call(logger, self.registry.agent_label, call.name, status=f"RESULT {output[:200]}")
                results.append(ToolResult(id=call.id, output=output))
            current = await self.service.submit_tool_results(handle, current.turn_id, results)
        return current, made
