"""HostBridge protocol: the only way the extension host reaches privileged functionality."""

import inspect
from typing import Any, Callable, Protocol, runtime_checkable

EventHandler = Callable[[Any], Any]
# Removes an event subscription. May return an awaitable.
Disposer = Callable[[], Any]


@runtime_checkable
class HostBridge(Protocol):
    """Privileged host process as seen from the extension host."""

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Run a host command. Raises HostCallError on failure; never retried here."""

    async def listen(self, topic: str, handler: EventHandler) -> Disposer:
        """Subscribe handler(payload) to a topic. Returns the disposer."""


async def call_disposer(disposer: Disposer) -> None:
    """Call a disposer, awaiting its result when it is awaitable."""
    result = disposer()
    if inspect.isawaitable(result):
        await result


# Terminal message on a push channel (llm_chat). Error payloads are JSON objects {"error": ...}.
STREAM_DONE = "[DONE]"
