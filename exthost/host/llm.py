"""llm_chat: streamed chat completion pushed message-by-message onto a channel topic."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from openai import AsyncOpenAI

from exthost.host.events import EventHub
from exthost.host.protocol import STREAM_DONE

logger = logging.getLogger(__name__)

SecretsGetter = Callable[[str], Awaitable[str | None]]


class LlmChat:
    """OpenAI-compatible chat completions. Each chunk is emitted as JSON, then "[DONE]".

    Failures while opening the stream raise (the host call fails); failures while
    streaming are pushed as {"error": "..."} before the final "[DONE]".
    """

    def __init__(
        self,
        config: dict[str, Any],
        events: EventHub,
        secrets_getter: SecretsGetter,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = config.get("model") or "gpt-4o"
        self._base_url = config.get("base_url")
        self._api_key_secret = config.get("api_key_secret") or "OPENAI_API_KEY"
        self._timeout = float(config.get("timeout") or 60.0)
        self._events = events
        self._secrets_getter = secrets_getter
        self._client = client
        self._tasks: set[asyncio.Task[None]] = set()

    async def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            api_key = await self._secrets_getter(self._api_key_secret)
            self._client = AsyncOpenAI(
                base_url=self._base_url,
                api_key=api_key or "not-required",
                timeout=self._timeout,
            )
        return self._client

    async def chat(self, request: dict[str, Any], channel: str) -> None:
        """Open the completion stream and return; chunks are pushed by a background task."""
        params = dict(request)
        params.setdefault("model", self._model)
        params["stream"] = True
        client = await self._get_client()
        stream = await client.chat.completions.create(**params)
        task = asyncio.create_task(self._pump(stream, channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _pump(self, stream: Any, channel: str) -> None:
        try:
            async for chunk in stream:
                self._events.emit(channel, chunk.model_dump_json())
        except Exception as e:
            logger.exception("LLM stream on %s failed: %s", channel, e)
            self._events.emit(channel, json.dumps({"error": str(e)}))
        finally:
            self._events.emit(channel, STREAM_DONE)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
