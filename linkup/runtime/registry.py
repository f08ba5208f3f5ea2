"""
Tool registries - declarative registration of the operations each agent can call.

A tool is a name, a description for the model, a pydantic model for its
arguments and an async processor. The argument model doubles as the JSON
schema sent to the decision service, and validates what comes back.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from linkup.adapters import DecisionServiceError, ToolCall, TransportError
from linkup.domain import InvalidTransitionError

if TYPE_CHECKING:
    from .context import ToolContext


logger = logging.getLogger(__name__)


Processor = Callable[[Any, "ToolContext"], Awaitable[dict]]


@dataclass
class ToolDefinition:
    """Definition of a tool with its processor."""

    name: str
    description: str
    args_model: type[BaseModel]
    processor: Processor

    @property
    def input_schema(self) -> dict:
        return self.args_model.model_json_schema()


def error_result(message: str) -> str:
    return json.dumps({"success": False, "error": message})


class ToolRegistry:
    """Name -> tool mapping for one kind of agent."""

    def __init__(self, agent_label: str):
        self.agent_label = agent_label
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        args_model: type[BaseModel],
        processor: Processor,
    ) -> None:
        """Register a tool with its processor."""
        self._tools[name] = ToolDefinition(
            name=name,
            description=description,
            args_model=args_model,
            processor=processor,
        )

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def definitions(self) -> list[dict]:
        """Tool definitions for the decision service API."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema,
            }
            for tool in self._tools.values()
        ]

    async def execute(self, call: ToolCall, ctx: "ToolContext") -> str:
        """Run one tool call. Always returns a JSON string, never raises for bad calls."""
        tool = self.get(call.name)
        if tool is None:
            logger.warning(f"Unknown {self.agent_label} tool requested: {call.name}")
            return error_result(f"Unknown tool: {call.name}")

        try:
            args = tool.args_model.model_validate(call.args)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {call.name}: {e}")
            return error_result(f"Invalid arguments for {call.name}: {e.errors(include_url=False)}")

        try:
            result = await tool.processor(args, ctx)
        except (TransportError, DecisionServiceError, InvalidTransitionError) as e:
            logger.error(f"Tool {call.name} failed: {e}", exc_info=True)
            return error_result(str(e))

        return json.dumps(result, default=str)
