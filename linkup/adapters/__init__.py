"""
Adapters layer - external integrations.

This layer provides:
- DecisionService protocol and the Anthropic implementation
- Transport protocol and the iMessage implementation
- Prompt text for the group and DM agents
"""

from .decision import (
    AgentResponse,
    DecisionService,
    DecisionServiceError,
    ToolCall,
    ToolResult,
    TurnStatus,
)
from .transport import InboundMessage, Transport, TransportError
from .anthropic_service import AgentProfile, AnthropicDecisionService, web_search_tool
from .imessage import IMessageTransport

__all__ = [
    "AgentResponse",
    "DecisionService",
    "DecisionServiceError",
    "ToolCall",
    "ToolResult",
    "TurnStatus",
    "InboundMessage",
    "Transport",
    "TransportError",
    "AgentProfile",
    "AnthropicDecisionService",
    "web_search_tool",
    "IMessageTransport",
]
