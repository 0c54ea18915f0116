"""fs_watch / fs_unwatch: filesystem change notifications via watchfiles."""

import asyncio
import logging
from typing import Any

from watchfiles import Change, awatch

from exthost.host.events import EventHub
from exthost.host.fs import Workspace

logger = logging.getLogger(__name__)

CHANGE_TOPICS = {
    Change.added: "fs_create",
    Change.modified: "fs_change",
    Change.deleted: "fs_delete",
}


class FileWatcher:
    """One watchfiles task per watched path; changes are emitted as fs_* events."""

    def __init__(self, workspace: Workspace, events: EventHub) -> None:
        self._workspace = workspace
        self._events = events
        self._watches: dict[str, tuple[asyncio.Task[Any], asyncio.Event]] = {}

    async def watch(self, path: str) -> None:
        target = self._workspace.resolve(path)
        key = str(target)
        if key in self._watches:
            return
        stop = asyncio.Event()
        task = asyncio.create_task(self._run(key, stop))
        self._watches[key] = (task, stop)
        logger.debug("Watching %s", key)

    async def _run(self, path: str, stop: asyncio.Event) -> None:
        try:
            async for changes in awatch(path, stop_event=stop):
                for change, changed_path in sorted(changes, key=lambda c: c[1]):
                    self._events.emit(CHANGE_TOPICS[change], changed_path)
        except Exception as e:
            logger.exception("Watcher for %s failed: %s", path, e)

    async def unwatch(self, path: str) -> None:
        key = str(self._workspace.resolve(path))
        entry = self._watches.pop(key, None)
        if entry is None:
            return
        task, stop = entry
        stop.set()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def watched(self) -> list[str]:
        return list(self._watches)

    async def close(self) -> None:
        for key in list(self._watches):
            await self.unwatch(key)
