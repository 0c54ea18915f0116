"""Shared fixtures: an in-memory host bridge and a host context wired to it."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from exthost.errors import HostCallError
from exthost.extensions import ExtensionManager, HostContext, ScriptSandbox, ShellCallbacks
from exthost.host import EventHub
from exthost.host.protocol import STREAM_DONE
from exthost.settings import allowed_imports, get_default_settings
from exthost.store import MemorySettingsStore


class FakeHost:
    """HostBridge over a dict of command handlers and an EventHub.

    ``plugins`` maps install path -> (manifest data, source, is_builtin); list_plugins
    and read_plugin_file are served from it.
    """

    def __init__(self) -> None:
        self.events = EventHub()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.plugins: dict[str, tuple[dict[str, Any], str, bool]] = {}
        self.handlers: dict[str, Callable[..., Any]] = {
            "list_plugins": self._list_plugins,
            "read_plugin_file": self._read_plugin_file,
        }

    def add_plugin(
        self, name: str, source: str, is_builtin: bool = True, **manifest: Any
    ) -> str:
        path = f"/plugins/{name}"
        data = {"name": name, "version": "1.0.0", "author": "test", "entry": "main.py", **manifest}
        self.plugins[path] = (data, source, is_builtin)
        return path

    def _list_plugins(self) -> list[list[Any]]:
        return [[path, data, builtin] for path, (data, _, builtin) in self.plugins.items()]

    def _read_plugin_file(self, path: str) -> str:
        for install_path, (data, source, _) in self.plugins.items():
            if path == f"{install_path}/{data.get('entry')}":
                return source
        raise FileNotFoundError(path)

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        self.calls.append((command, args or {}))
        handler = self.handlers.get(command)
        if handler is None:
            raise HostCallError(command, "unknown command")
        try:
            result = handler(**(args or {}))
            if hasattr(result, "__await__"):
                result = await result
            return result
        except HostCallError:
            raise
        except Exception as e:
            raise HostCallError(command, str(e)) from e

    async def listen(self, topic: str, handler: Callable[[Any], Any]) -> Callable[[], None]:
        return await self.events.listen(topic, handler)

    def emit(self, topic: str, payload: Any = None) -> None:
        self.events.emit(topic, payload)

    def command_calls(self, command: str) -> list[dict[str, Any]]:
        return [args for name, args in self.calls if name == command]

    def script_llm(self, *scripts: list[Any]) -> None:
        """Serve llm_chat: the n-th call pushes scripts[n] (chunks, then [DONE]) to the channel."""
        remaining = list(scripts)

        async def llm_chat(request: dict[str, Any], channel: str) -> None:
            messages = remaining.pop(0) if remaining else []
            for message in messages:
                self.emit(channel, message if isinstance(message, str) else json.dumps(message))
            self.emit(channel, STREAM_DONE)

        self.handlers["llm_chat"] = llm_chat


def text_chunk(text: str, finish_reason: str | None = None) -> dict[str, Any]:
    return {"choices": [{"delta": {"content": text}, "finish_reason": finish_reason}]}


def tool_chunk(
    index: int,
    call_id: str = "",
    name: str = "",
    arguments: str = "",
    finish_reason: str | None = None,
) -> dict[str, Any]:
    return {
        "choices": [
            {
                "delta": {
                    "tool_calls": [
                        {"index": index, "id": call_id, "function": {"name": name, "arguments": arguments}}
                    ]
                },
                "finish_reason": finish_reason,
            }
        ]
    }


class RecordingStream:
    """ChatResponseStream that records every call in order."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def markdown(self, content: str) -> None:
        self.events.append(("markdown", content))

    def diff(self, original: str, modified: str, language: str, path: str | None = None) -> None:
        self.events.append(("diff", path))

    def tool_call(self, name: str, args: Any, status: str, result: str | None = None) -> None:
        self.events.append(("tool_call", name, status, result))

    def status(self, status: str) -> None:
        self.events.append(("status", status))

    def done(self) -> None:
        self.events.append(("done",))

    def error(self, message: str) -> None:
        self.events.append(("error", message))

    def kinds(self) -> list[str]:
        return [e[0] for e in self.events]

    def text(self) -> str:
        return "".join(e[1] for e in self.events if e[0] == "markdown")


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@dataclass
class RecordingShell(ShellCallbacks):
    """Shell callbacks that remember notifications and tab open/close calls."""

    notifications: list[str] = field(default_factory=list)
    opened: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.notify = self.notifications.append
        self.open_tab = lambda tab_id, title, component: self.opened.append(tab_id)
        self.close_tab = self.closed.append


@pytest.fixture
def shell() -> RecordingShell:
    return RecordingShell(components={"ChatPanel": lambda **props: ("ChatPanel", props)})


@pytest.fixture
def context(fake_host: FakeHost, shell: ShellCallbacks) -> HostContext:
    allowed = allowed_imports(get_default_settings())
    return HostContext(
        fake_host,
        store=MemorySettingsStore(),
        shell=shell,
        sandbox=ScriptSandbox(allowed),
    )


@pytest.fixture
def manager(context: HostContext) -> ExtensionManager:
    return ExtensionManager(context)
