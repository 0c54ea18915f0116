"""Merge incremental tool-call deltas from a streamed model turn into complete calls."""

from dataclasses import dataclass
from typing import Any


@dataclass
class ToolCall:
    id: str = ""
    function_name: str = ""
    arguments_text: str = ""

    def is_empty(self) -> bool:
        return not (self.id or self.function_name or self.arguments_text)

    def to_message(self) -> dict[str, Any]:
        """OpenAI chat-completions shape for an assistant message's tool_calls entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.function_name, "arguments": self.arguments_text},
        }


class ToolCallAccumulator:
    """Per-turn tool-call builder keyed by the delta's declared index.

    The first delta for an index creates an empty record; later deltas append to
    ``arguments_text`` and overwrite ``id`` / ``function_name`` only with non-empty
    values. Deltas may arrive for any index in any order.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCall] = {}

    def merge(self, delta: dict[str, Any]) -> None:
        index = delta.get("index", 0)
        if not isinstance(index, int):
            raise ValueError(f"tool call delta index must be int, got {index!r}")
        call = self._calls.setdefault(index, ToolCall())
        if delta.get("id"):
            call.id = delta["id"]
        function = delta.get("function") or {}
        if function.get("name"):
            call.function_name = function["name"]
        if function.get("arguments"):
            call.arguments_text += function["arguments"]

    def calls(self) -> list[ToolCall]:
        """Non-empty calls in index order."""
        return [self._calls[i] for i in sorted(self._calls) if not self._calls[i].is_empty()]

    def __bool__(self) -> bool:
        return bool(self.calls())
