"""Chat transcript: routes user prompts to participants and collects their streamed answers."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from exthost.chat.models import (
    ChatRequest,
    HistoryEntry,
    StreamStatus,
    ToolCallStatus,
)
from exthost.chat.registry import ChatParticipantRegistry

logger = logging.getLogger(__name__)

PartKind = Literal["markdown", "diff", "tool_call"]


@dataclass
class MessagePart:
    kind: PartKind
    content: str = ""
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatMessage:
    role: Literal["user", "agent"]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    parts: list[MessagePart] = field(default_factory=list)
    participant_id: str | None = None
    status: StreamStatus | None = None
    error: str | None = None

    @property
    def text(self) -> str:
        """Concatenated markdown parts."""
        return "".join(p.content for p in self.parts if p.kind == "markdown")


@dataclass
class EditorContext:
    """Snapshot of the active editor attached to a request."""

    selection: str | None = None
    file_path: str | None = None
    file_content: str | None = None


class MessageStream:
    """ChatResponseStream writing into one agent message."""

    def __init__(self, message: ChatMessage, on_update: Callable[[], None] | None = None) -> None:
        self._message = message
        self._on_update = on_update
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _changed(self) -> None:
        if self._on_update is not None:
            self._on_update()

    def _writable(self, op: str) -> bool:
        if self._closed:
            logger.debug("Ignoring %s on finished message %s", op, self._message.id)
            return False
        return True

    def markdown(self, content: str) -> None:
        if not self._writable("markdown"):
            return
        parts = self._message.parts
        if parts and parts[-1].kind == "markdown":
            parts[-1].content += content
        else:
            parts.append(MessagePart("markdown", content))
        self._changed()

    def diff(self, original: str, modified: str, language: str, path: str | None = None) -> None:
        if not self._writable("diff"):
            return
        self._message.parts.append(
            MessagePart(
                "diff",
                data={"original": original, "modified": modified, "language": language, "path": path},
            )
        )
        self._changed()

    def tool_call(
        self, name: str, args: Any, status: ToolCallStatus, result: str | None = None
    ) -> None:
        if not self._writable("tool_call"):
            return
        self._message.parts.append(
            MessagePart(
                "tool_call",
                data={"name": name, "args": args, "status": status, "result": result},
            )
        )
        self._changed()

    def status(self, status: StreamStatus) -> None:
        if not self._writable("status"):
            return
        self._message.status = status
        self._changed()

    def done(self) -> None:
        if not self._writable("done"):
            return
        self._closed = True
        self._message.status = "done"
        self._changed()

    def error(self, message: str) -> None:
        if not self._writable("error"):
            return
        self._closed = True
        self._message.status = "error"
        self._message.error = message
        self._changed()


def parse_command(text: str) -> tuple[str | None, str]:
    """'/fix the bug' -> ('fix', 'the bug'). Text without a leading slash has no command."""
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None, stripped
    head, _, rest = stripped[1:].partition(" ")
    if not head:
        return None, stripped
    return head, rest.strip()


class ChatSession:
    """One chat panel's transcript.

    context_provider, when given, supplies the active editor state for each request.
    """

    def __init__(
        self,
        registry: ChatParticipantRegistry,
        context_provider: Callable[[], EditorContext] | None = None,
        on_update: Callable[[], None] | None = None,
    ) -> None:
        self._registry = registry
        self._context_provider = context_provider
        self._on_update = on_update
        self.messages: list[ChatMessage] = []

    def _history(self) -> list[HistoryEntry]:
        return [
            HistoryEntry(m.role, m.text)
            for m in self.messages
            if any(p.kind == "markdown" for p in m.parts)
        ]

    async def send(self, text: str, participant_id: str | None = None) -> ChatMessage:
        """Append the user's message, run the participant and return the agent message."""
        if participant_id is not None:
            participant = self._registry.get(participant_id)
        else:
            participants = self._registry.list()
            participant = participants[0] if participants else None

        history = self._history()
        self.messages.append(ChatMessage("user", parts=[MessagePart("markdown", text)]))
        reply = ChatMessage("agent", participant_id=participant.id if participant else None)
        self.messages.append(reply)
        stream = MessageStream(reply, self._on_update)

        if participant is None:
            wanted = f"'{participant_id}'" if participant_id else "any"
            stream.markdown(
                f"No chat participant available ({wanted}). Install or enable a chat extension."
            )
            stream.done()
            return reply

        command, prompt = parse_command(text)
        if command is not None and not any(c.name == command for c in participant.commands):
            # Unknown slash command: hand the whole text to the participant.
            command, prompt = None, text.strip()
        context = self._context_provider() if self._context_provider else EditorContext()
        request = ChatRequest(
            prompt=prompt,
            command=command,
            selection=context.selection,
            file_path=context.file_path,
            file_content=context.file_content,
            history=history,
        )
        try:
            await participant.handler(request, stream)
        except Exception as e:
            logger.exception("Chat participant %s failed: %s", participant.id, e)
            stream.error(str(e) or type(e).__name__)
        return reply

    def clear(self) -> None:
        self.messages.clear()
        if self._on_update is not None:
            self._on_update()
