"""
Runtime layer - tool registries and the tool-call loop that drives agents.
"""

from .context import ToolContext
from .registry import ToolDefinition, ToolRegistry, error_result
from .tool_loop import ExchangeResult, ToolCallLoop
from .group_tools import GROUP_TOOLS
from .dm_tools import DM_TOOLS

__all__ = [
    "ToolContext",
    "ToolDefinition",
    "ToolRegistry",
    "error_result",
    "ExchangeResult",
    "ToolCallLoop",
    "GROUP_TOOLS",
    "DM_TOOLS",
]
