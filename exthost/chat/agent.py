"""Reference chat handler: streamed model output with a bounded tool-use loop.

A participant built on ToolAgent upholds the streaming protocol:

* ``status("thinking")`` before any model call, ``status("streaming")`` per round;
* text deltas are forwarded to ``markdown()`` as they arrive;
* at most ``max_rounds`` completion rounds, after which the turn ends normally;
* tool failures are reported through ``tool_call(..., "error", ...)`` and fed back
  to the model as the tool result;
* any other failure ends the turn with exactly one ``error()``; otherwise exactly
  one ``done()``.
"""

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Mapping, Sequence

from exthost.chat.accumulator import ToolCall, ToolCallAccumulator
from exthost.chat.models import ChatRequest, ChatResponseStream
from exthost.errors import StreamProtocolError, ToolExecutionError

logger = logging.getLogger(__name__)

MAX_ROUNDS = 3
DEFAULT_SYSTEM_PROMPT = (
    "You are a coding assistant inside an editor. You have access to tools. "
    "If you need the content of a workspace file, use 'read_file'."
)

CompletionStream = Callable[[dict[str, Any]], AsyncIterator[Any]]


@dataclass
class AgentTool:
    """A function the model may call. handler receives the parsed JSON arguments."""

    name: str
    description: str
    handler: Callable[[dict[str, Any]], Any]
    parameters: dict[str, Any] | None = None
    summary: Callable[[dict[str, Any]], str] | None = None

    @classmethod
    def from_record(cls, record: "AgentTool | Mapping[str, Any]") -> "AgentTool":
        if isinstance(record, AgentTool):
            return record
        return cls(
            name=record["name"],
            description=record.get("description", ""),
            handler=record["handler"],
            parameters=record.get("parameters"),
            summary=record.get("summary"),
        )

    def schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or {"type": "object", "properties": {}},
            },
        }

    def describe_success(self, args: dict[str, Any]) -> str:
        if self.summary is not None:
            return self.summary(args)
        return f"{self.name} completed"


def _first_choice(chunk: Any) -> dict[str, Any] | None:
    """choices[0] of a completion chunk; None for chunks without choices."""
    if not isinstance(chunk, dict):
        raise StreamProtocolError(f"expected object chunk, got {type(chunk).__name__}")
    choices = chunk.get("choices")
    if choices is None:
        return None
    if not isinstance(choices, list):
        raise StreamProtocolError("'choices' is not a list")
    if not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        raise StreamProtocolError("choice is not an object")
    return choice


def build_messages(request: ChatRequest, system_prompt: str) -> list[dict[str, Any]]:
    """System preamble, prior turns (agent -> assistant), then the new prompt."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for entry in request.history:
        role = entry.role if not isinstance(entry, Mapping) else entry.get("role")
        content = entry.content if not isinstance(entry, Mapping) else entry.get("content")
        messages.append(
            {"role": "assistant" if role == "agent" else "user", "content": content}
        )
    messages.append({"role": "user", "content": request.prompt})
    return messages


class ToolAgent:
    """Chat participant handler: ``await agent(request, stream)``."""

    def __init__(
        self,
        complete: CompletionStream,
        tools: Sequence[AgentTool | Mapping[str, Any]] = (),
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        self._complete = complete
        self._tools = {t.name: t for t in (AgentTool.from_record(r) for r in tools)}
        self._system_prompt = system_prompt
        self._max_rounds = max_rounds

    async def __call__(self, request: ChatRequest, stream: ChatResponseStream) -> None:
        try:
            stream.status("thinking")
            messages = build_messages(request, self._system_prompt)
            for round_no in range(1, self._max_rounds + 1):
                text, calls = await self._run_round(messages, stream)
                if not calls:
                    break
                messages.append(
                    {
                        "role": "assistant",
                        "content": text or None,
                        "tool_calls": [c.to_message() for c in calls],
                    }
                )
                for call in calls:
                    result = await self._execute(call, stream)
                    messages.append(
                        {"role": "tool", "tool_call_id": call.id, "content": result}
                    )
                if round_no == self._max_rounds:
                    logger.info("Agent turn stopped at the %d-round limit", self._max_rounds)
        except Exception as e:
            logger.exception("Agent turn failed: %s", e)
            stream.error(str(e) or type(e).__name__)
            return
        stream.done()

    async def _run_round(
        self, messages: list[dict[str, Any]], stream: ChatResponseStream
    ) -> tuple[str, list[ToolCall]]:
        """One streamed completion. Returns (text, tool calls)."""
        request: dict[str, Any] = {"messages": messages, "stream": True}
        if self._tools:
            request["tools"] = [t.schema() for t in self._tools.values()]
        accumulator = ToolCallAccumulator()
        text_parts: list[str] = []
        completion = self._complete(request)
        stream.status("streaming")
        try:
            async for chunk in completion:
                try:
                    choice = _first_choice(chunk)
                except StreamProtocolError as e:
                    logger.warning("Dropping malformed delta: %s", e)
                    continue
                if choice is None:
                    continue
                delta = choice.get("delta") or {}
                content = delta.get("content")
                if content:
                    text_parts.append(content)
                    stream.markdown(content)
                for tool_delta in delta.get("tool_calls") or []:
                    try:
                        accumulator.merge(tool_delta)
                    except (AttributeError, TypeError, ValueError) as e:
                        logger.warning("Dropping malformed tool call delta %r: %s", tool_delta, e)
                if choice.get("finish_reason") == "tool_calls":
                    break
        finally:
            aclose = getattr(completion, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(text_parts), accumulator.calls()

    async def _invoke_tool(self, call: ToolCall) -> tuple[AgentTool, dict[str, Any], Any]:
        name = call.function_name
        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, f"Unknown tool: {name}")
        try:
            args = json.loads(call.arguments_text) if call.arguments_text.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolExecutionError(name, f"Invalid arguments: {e}") from e
        if not isinstance(args, dict):
            raise ToolExecutionError(name, "Arguments must be a JSON object")
        try:
            result = tool.handler(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise ToolExecutionError(name, str(e) or type(e).__name__) from e
        return tool, args, result

    async def _execute(self, call: ToolCall, stream: ChatResponseStream) -> str:
        """Run one tool call, reporting progress. Returns the text fed back to the model."""
        name, args_text = call.function_name, call.arguments_text
        stream.tool_call(name, args_text, "calling")
        try:
            tool, args, result = await self._invoke_tool(call)
        except ToolExecutionError as e:
            message = f"Error: {e}"
            logger.info("Tool %s failed: %s", name, e)
            stream.tool_call(name, args_text, "error", message)
            return message
        stream.tool_call(name, args_text, "success", tool.describe_success(args))
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)
