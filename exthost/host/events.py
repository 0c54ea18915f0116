"""In-process topic hub used by the local host to push events and channel messages."""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any

from exthost.host.protocol import Disposer, EventHandler

logger = logging.getLogger(__name__)


class EventHub:
    """Topic -> handlers. emit() is synchronous; async handlers run as tasks."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()

    async def listen(self, topic: str, handler: EventHandler) -> Disposer:
        self._handlers[topic].append(handler)

        def dispose() -> None:
            handlers = self._handlers.get(topic)
            if handlers is None:
                return
            self._handlers[topic] = [h for h in handlers if h is not handler]
            if not self._handlers[topic]:
                del self._handlers[topic]

        return dispose

    def emit(self, topic: str, payload: Any = None) -> None:
        """Deliver payload to every handler of topic, in subscription order."""
        for handler in list(self._handlers.get(topic, [])):
            try:
                result = handler(payload)
            except Exception as e:
                logger.exception("Event handler error [%s]: %s", topic, e)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async event handler failed: %s", task.exception())

    def has_listeners(self, topic: str) -> bool:
        return bool(self._handlers.get(topic))

    async def drain(self) -> None:
        """Wait for async handlers started by emit()."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
