"""Adapt a host push channel (message-by-message callback) into async pull iteration."""

import asyncio
import json
import logging
import uuid
from collections import deque
from typing import Any, AsyncIterator, Callable

from exthost.errors import HostCallError, StreamProtocolError
from exthost.host.protocol import STREAM_DONE, Disposer, HostBridge, call_disposer

logger = logging.getLogger(__name__)

# Registers a disposer with the owning extension; returns a callable that forgets it again.
TrackSubscription = Callable[[Disposer], Callable[[], None]]


class ChannelReader:
    """Buffer for one push channel.

    push() is the host-side callback. Iteration yields buffered payloads in arrival
    order and suspends while the buffer is empty. "[DONE]" ends the sequence; an
    {"error": ...} payload ends it by raising after everything buffered before it is
    drained. close() is the consumer-side dispose: buffered payloads are dropped and
    iteration ends without error.
    """

    def __init__(self, name: str = "channel") -> None:
        self.name = name
        self._queue: deque[Any] = deque()
        self._wake = asyncio.Event()
        self._finished = False
        self._error: BaseException | None = None

    @property
    def finished(self) -> bool:
        return self._finished

    def push(self, message: Any) -> None:
        if self._finished:
            return
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        if message == STREAM_DONE:
            self._finished = True
        else:
            try:
                data = self._decode(message)
            except StreamProtocolError as e:
                logger.warning("Dropping malformed message on %s: %s", self.name, e)
                return
            if isinstance(data, dict) and data.get("error") is not None:
                self.fail(HostCallError("llm_chat", str(data["error"])))
                return
            self._queue.append(data)
        self._wake.set()

    def _decode(self, message: Any) -> Any:
        if not isinstance(message, str):
            return message
        try:
            return json.loads(message)
        except json.JSONDecodeError as e:
            raise StreamProtocolError(f"invalid JSON ({e}): {message[:80]!r}") from e

    def fail(self, error: BaseException) -> None:
        """End the sequence with error (raised after buffered payloads)."""
        if self._finished:
            return
        self._error = error
        self._finished = True
        self._wake.set()

    def close(self) -> None:
        self._queue.clear()
        self._finished = True
        self._error = None
        self._wake.set()

    def __aiter__(self) -> "ChannelReader":
        return self

    async def __anext__(self) -> Any:
        while True:
            if self._queue:
                return self._queue.popleft()
            if self._finished:
                if self._error is not None:
                    error, self._error = self._error, None
                    raise error
                raise StopAsyncIteration
            self._wake.clear()
            await self._wake.wait()


async def model_stream(
    host: HostBridge,
    request: dict[str, Any],
    owner: str,
    track_subscription: TrackSubscription,
) -> AsyncIterator[Any]:
    """Lazy, finite, non-restartable sequence of llm_chat fragments.

    Nothing happens until the first fragment is requested. The channel subscription
    is tracked against ``owner`` so unloading the extension stops delivery.
    """
    topic = f"llm_stream.{owner}.{uuid.uuid4().hex}"
    reader = ChannelReader(topic)
    disposer = await host.listen(topic, reader.push)

    def dispose() -> Any:
        reader.close()
        return disposer()

    untrack = track_subscription(dispose)

    def on_invoke_done(task: "asyncio.Task[Any]") -> None:
        if task.cancelled():
            reader.fail(HostCallError("llm_chat", "cancelled"))
        elif task.exception() is not None:
            reader.fail(task.exception())

    call = asyncio.ensure_future(host.invoke("llm_chat", {"request": request, "channel": topic}))
    call.add_done_callback(on_invoke_done)
    try:
        async for fragment in reader:
            yield fragment
    finally:
        untrack()
        await call_disposer(disposer)
