"""
Anthropic-backed decision service.

Each conversation handle owns a message thread persisted as JSON under
data/threads/, so the group agent's context survives restarts. Profiles
bind an agent id ("group", "dm") to a system prompt, tool set and model.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anthropic
from langsmith.wrappers import wrap_anthropic

from linkup.domain import ConversationHandle
from linkup.logging_config import log_storage

from .decision import AgentResponse, DecisionServiceError, ToolCall, ToolResult, TurnStatus


logger = logging.getLogger(__name__)


WEB_SEARCH_TOOL_TYPE = "web_search_20250305"

# Hosted tools can pause a long turn; continue it at most this many times
MAX_PAUSE_CONTINUATIONS = 5

MAX_THREAD_MESSAGES = 200


@dataclass
class AgentProfile:
    """How one kind of agent is prompted."""

    system_prompt: str
    tools: list[dict]
    model: str
    max_tokens: int = 2048
    server_tools: list[dict] = field(default_factory=list)

    def api_tools(self) -> list[dict]:
        return [*self.tools, *self.server_tools]


def web_search_tool(max_uses: int = 5) -> dict:
    return {"type": WEB_SEARCH_TOOL_TYPE, "name": "web_search", "max_uses": max_uses}


class AnthropicDecisionService:
    """
    DecisionService over the Anthropic Messages API.

    send_turn appends a user message and asks for the next assistant
    message; a tool_use stop maps to requires_action. submit_tool_results
    answers those tool_use blocks in one user message and continues.
    """

    def __init__(
        self,
        profiles: dict[str, AgentProfile],
        threads_dir: Path,
        client: anthropic.AsyncAnthropic | None = None,
        api_key: str | None = None,
    ):
        self.profiles = profiles
        self.threads_dir = Path(threads_dir)
        self.threads_dir.mkdir(parents=True, exist_ok=True)
        # Wrap with LangSmith for automatic tracing (if LANGSMITH_TRACING=true)
        self.client = client or wrap_anthropic(anthropic.AsyncAnthropic(api_key=api_key))
        self._threads: dict[ConversationHandle, dict[str, Any]] = {}

    # =========================================================================
    # DecisionService
    # =========================================================================

    async def open_conversation(self, agent_id: str) -> ConversationHandle:
        if agent_id not in self.profiles:
            raise DecisionServiceError(f"No agent profile named {agent_id!r}")
        handle = ConversationHandle(f"{agent_id}-{uuid.uuid4().hex[:12]}")
        self._threads[handle] = {"agent_id": agent_id, "messages": []}
        self._save_thread(handle)
        logger.info(f"Opened {agent_id} conversation {handle}")
        return handle

    async def send_turn(self, handle: ConversationHandle, content: str) -> AgentResponse:
        thread = self._thread(handle)
        self._close_dangling_tool_uses(handle, thread)
        thread["messages"].append({"role": "user", "content": content})
        return await self._complete(handle, thread)

    async def submit_tool_results(
        self,
        handle: ConversationHandle,
        turn_id: str,
        results: list[ToolResult],
    ) -> AgentResponse:
        thread = self._thread(handle)
        thread["messages"].append({
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": r.id, "content": r.output}
                for r in results
            ],
        })
        logger.debug(f"Submitting {len(results)} tool results to {handle} (turn {turn_id})")
        return await self._complete(handle, thread)

    # =========================================================================
    # Completion
    # =========================================================================

    async def _complete(self, handle: ConversationHandle, thread: dict[str, Any]) -> AgentResponse:
        profile = self.profiles[thread["agent_id"]]

        try:
            response = await self._create(profile, thread["messages"])
            thread["messages"].append({"role": "assistant", "content": self._dump_content(response)})

            continuations = 0
            while response.stop_reason == "pause_turn" and continuations < MAX_PAUSE_CONTINUATIONS:
                continuations += 1
                logger.debug(f"Continuing paused turn for {handle} ({continuations})")
                response = await self._create(profile, thread["messages"])
                thread["messages"].append({"role": "assistant", "content": self._dump_content(response)})
        except anthropic.APIError as e:
            # Drop the unanswered message so the thread stays well-formed
            self._rollback(thread)
            raise DecisionServiceError(f"Anthropic request failed for {handle}: {e}") from e
        finally:
            self._save_thread(handle)

        if hasattr(response, "usage") and response.usage:
            logger.debug(
                f"Turn {response.id} | {handle} | stop={response.stop_reason} | "
                f"in={response.usage.input_tokens} out={response.usage.output_tokens}"
            )

        return self._to_agent_response(response)

    async def _create(self, profile: AgentProfile, messages: list[dict]):
        return await self.client.messages.create(
            model=profile.model,
            max_tokens=profile.max_tokens,
            system=profile.system_prompt,
            tools=profile.api_tools(),
            messages=messages,
        )

    @staticmethod
    def _dump_content(response) -> list[dict]:
        return [block.model_dump(mode="json", exclude_none=True) for block in response.content]

    @staticmethod
    def _to_agent_response(response) -> AgentResponse:
        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, args=dict(block.input or {})))

        # A turn cut off by max_tokens can still carry tool_use blocks; they need results too
        status = TurnStatus.REQUIRES_ACTION if tool_calls else TurnStatus.COMPLETED
        return AgentResponse(
            content="".join(text_parts),
            status=status,
            tool_calls=tuple(tool_calls),
            turn_id=response.id,
        )

    @staticmethod
    def _close_dangling_tool_uses(handle: ConversationHandle, thread: dict[str, Any]) -> None:
        """Answer tool_use blocks left without results by an abandoned exchange.

        The API rejects a user turn that follows unanswered tool_use blocks.
        """
        messages = thread["messages"]
        if not messages or messages[-1]["role"] != "assistant" or isinstance(messages[-1]["content"], str):
            return
        pending = [block["id"] for block in messages[-1]["content"] if block.get("type") == "tool_use"]
        if not pending:
            return
        logger.warning(f"Closing {len(pending)} unanswered tool calls in {handle}")
        messages.append({
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": tool_id, "content": "Not executed.", "is_error": True}
                for tool_id in pending
            ],
        })

    @staticmethod
    def _rollback(thread: dict[str, Any]) -> None:
        """Drop the failed exchange, back to before its opening user message.

        A failure mid-exchange would otherwise leave tool_use blocks without
        their results, which the API rejects on the next turn.
        """
        messages = thread["messages"]
        while messages:
            message = messages.pop()
            if message["role"] == "user" and isinstance(message["content"], str):
                break

    # =========================================================================
    # Thread Persistence
    # =========================================================================

    def _thread(self, handle: ConversationHandle) -> dict[str, Any]:
        thread = self._threads.get(handle)
        if thread is not None:
            return thread

        path = self._thread_path(handle)
        if path.exists():
            try:
                with open(path, "r") as f:
                    thread = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise DecisionServiceError(f"Could not read thread {handle}: {e}") from e
        else:
            agent_id = handle.rsplit("-", 1)[0]
            if agent_id not in self.profiles:
                raise DecisionServiceError(f"Unknown conversation {handle}")
            logger.warning(f"No stored thread for {handle}, starting it fresh")
            thread = {"agent_id": agent_id, "messages": []}

        self._threads[handle] = thread
        return thread

    def _save_thread(self, handle: ConversationHandle) -> None:
        thread = self._threads[handle]
        thread["messages"] = self._trimmed(thread["messages"])
        path = self._thread_path(handle)
        try:
            with open(path, "w") as f:
                json.dump(thread, f, indent=2)
        except OSError as e:
            log_storage(logger, "save_thread", path, success=False, details=str(e))
            return
        log_storage(logger, "save_thread", path, details=f"messages={len(thread['messages'])}")

    @staticmethod
    def _trimmed(messages: list[dict]) -> list[dict]:
        """Cap history, restarting at a plain user message so tool pairs stay intact."""
        if len(messages) <= MAX_THREAD_MESSAGES:
            return messages
        tail = messages[-MAX_THREAD_MESSAGES:]
        for i, message in enumerate(tail):
            if message["role"] == "user" and isinstance(message["content"], str):
                return tail[i:]
        return []

    def _thread_path(self, handle: ConversationHandle) -> Path:
        return self.threads_dir / f"{handle}.json"
