"""LocalHost: in-process implementation of the privileged host command table."""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from exthost.errors import HostCallError
from exthost.host.events import EventHub
from exthost.host.fs import Workspace
from exthost.host.llm import LlmChat, SecretsGetter
from exthost.host.plugins import PluginDirectory
from exthost.host.protocol import Disposer, EventHandler
from exthost.host.system import SystemCommands
from exthost.host.watcher import FileWatcher
from exthost.secrets import get_secret_async
from exthost.settings import get_setting

logger = logging.getLogger(__name__)

CommandHandler = Callable[..., Awaitable[Any]]


class LocalHost:
    """Host commands by name; events through an EventHub.

    Every handler failure (including unknown commands and bad arguments) is
    reported as HostCallError; the caller decides what to do with it.
    """

    def __init__(
        self,
        workspace_root: Path,
        builtin_dir: Path,
        user_dir: Path | None = None,
        settings: dict[str, Any] | None = None,
        events: EventHub | None = None,
        secrets_getter: SecretsGetter = get_secret_async,
        llm: LlmChat | None = None,
    ) -> None:
        settings = settings or {}
        self.events = events or EventHub()
        self.workspace = Workspace(workspace_root)
        self.plugins = PluginDirectory(builtin_dir, user_dir)
        self.system = SystemCommands(
            self.events,
            cwd=self.workspace.root,
            exec_timeout=float(get_setting(settings, "system.exec_timeout", 60)),
        )
        self.watcher = FileWatcher(self.workspace, self.events)
        self.llm = llm or LlmChat(settings.get("llm", {}), self.events, secrets_getter)
        self._commands: dict[str, CommandHandler] = {
            "list_plugins": self.plugins.list_plugins,
            "read_plugin_file": self.plugins.read_plugin_file,
            "delete_plugin": self.plugins.delete_plugin,
            "read_file": self.workspace.read_file,
            "write_file": self.workspace.write_file,
            "fs_stat": self.workspace.stat,
            "read_dir": self.workspace.read_dir,
            "fs_find_files": self.workspace.find_files,
            "fs_watch": self.watcher.watch,
            "fs_unwatch": self.watcher.unwatch,
            "system_get_env": self.system.get_env,
            "system_exec": self.system.exec,
            "output_append": self.system.output_append,
            "output_clear": self.system.output_clear,
            "output_show": self.system.output_show,
            "window_create": self.system.window_create,
            "window_close": self.system.window_close,
            "llm_chat": self.llm.chat,
        }

    def register_command(self, name: str, handler: CommandHandler) -> None:
        """Add or replace a host command (used by the shell embedding the host)."""
        self._commands[name] = handler

    def commands(self) -> list[str]:
        return sorted(self._commands)

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        handler = self._commands.get(command)
        if handler is None:
            raise HostCallError(command, "unknown command")
        try:
            return await handler(**(args or {}))
        except HostCallError:
            raise
        except Exception as e:
            logger.warning("Host command %s failed: %s", command, e)
            raise HostCallError(command, str(e) or type(e).__name__) from e

    async def listen(self, topic: str, handler: EventHandler) -> Disposer:
        return await self.events.listen(topic, handler)

    def emit(self, topic: str, payload: Any = None) -> None:
        """Publish a shell event (file_saved, active_editor_changed, ...)."""
        self.events.emit(topic, payload)

    async def close(self) -> None:
        await self.watcher.close()
        await self.llm.close()
        await self.events.drain()
