"""Chat data model: requests, participants and the response stream contract."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Protocol

HistoryRole = Literal["user", "agent"]
ToolCallStatus = Literal["calling", "success", "error"]
StreamStatus = Literal["thinking", "streaming", "done", "error"]


@dataclass(frozen=True)
class HistoryEntry:
    role: HistoryRole
    content: str


@dataclass
class ChatRequest:
    prompt: str
    command: str | None = None
    selection: str | None = None
    file_path: str | None = None
    file_content: str | None = None
    history: list[HistoryEntry] = field(default_factory=list)


class ChatResponseStream(Protocol):
    """Sink a participant handler writes its answer to.

    markdown() calls are cumulative: the receiver concatenates them in call order.
    Exactly one of done() / error() ends a turn.
    """

    def markdown(self, content: str) -> None: ...

    def diff(
        self, original: str, modified: str, language: str, path: str | None = None
    ) -> None: ...

    def tool_call(
        self, name: str, args: Any, status: ToolCallStatus, result: str | None = None
    ) -> None: ...

    def status(self, status: StreamStatus) -> None: ...

    def done(self) -> None: ...

    def error(self, message: str) -> None: ...


ChatHandler = Callable[[ChatRequest, ChatResponseStream], Awaitable[None]]


@dataclass(frozen=True)
class ChatCommand:
    name: str
    description: str = ""


@dataclass
class ChatParticipant:
    id: str
    name: str
    full_name: str
    handler: ChatHandler
    description: str | None = None
    icon: str | None = None
    commands: list[ChatCommand] = field(default_factory=list)
    owner: str | None = None
