"""Process, environment, output-channel and window commands of the local host."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

from exthost.host.events import EventHub

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 60


class SystemCommands:
    """system_get_env / system_exec / output_* / window_*."""

    def __init__(
        self,
        events: EventHub,
        cwd: Path,
        exec_timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._events = events
        self._cwd = cwd
        self._exec_timeout = exec_timeout
        self._outputs: dict[str, list[str]] = {}
        self._windows: dict[str, dict[str, Any]] = {}

    async def get_env(self, name: str) -> str | None:
        return os.environ.get(name)

    async def exec(self, program: str, args: list[str] | None = None) -> dict[str, Any]:
        """Run program with args (no shell). Returns stdout, stderr, exit_code."""
        proc = await asyncio.create_subprocess_exec(
            program,
            *(args or []),
            cwd=self._cwd,
            env=os.environ.copy(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self._exec_timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            raise TimeoutError(f"{program} timed out after {self._exec_timeout}s") from None
        return {
            "stdout": stdout_bytes.decode("utf-8", errors="ignore"),
            "stderr": stderr_bytes.decode("utf-8", errors="ignore"),
            "exit_code": proc.returncode,
        }

    async def output_append(self, channel: str, content: str) -> None:
        self._outputs.setdefault(channel, []).append(content)
        self._events.emit("output_updated", {"channel": channel, "content": content})

    async def output_clear(self, channel: str) -> None:
        self._outputs[channel] = []
        self._events.emit("output_updated", {"channel": channel, "content": None})

    async def output_show(self, channel: str) -> None:
        self._events.emit("output_show", {"channel": channel})

    def get_output(self, channel: str) -> str:
        return "".join(self._outputs.get(channel, []))

    async def window_create(self, label: str, options: dict[str, Any] | None = None) -> None:
        if label in self._windows:
            raise ValueError(f"Window already exists: {label}")
        opts = {"title": label, "width": 800, "height": 600, "decorations": True}
        opts.update(options or {})
        self._windows[label] = opts
        self._events.emit("window_created", {"label": label, "options": opts})

    async def window_close(self, label: str) -> None:
        if self._windows.pop(label, None) is not None:
            self._events.emit("window_closed", {"label": label})

    def windows(self) -> list[str]:
        return list(self._windows)
