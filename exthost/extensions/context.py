"""HostContext: root owner of the registries, the settings store and the shell collaborators."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from exthost import __version__
from exthost.chat.registry import ChatParticipantRegistry
from exthost.extensions.contributions import ContributionRegistry
from exthost.extensions.sandbox import ScriptSandbox
from exthost.host.protocol import HostBridge
from exthost.registries import AuthRegistry, CommandRegistry, StatusBarRegistry, ViewRegistry
from exthost.store import MemorySettingsStore, SettingsStore

logger = logging.getLogger(__name__)


def _noop(*args: Any, **kwargs: Any) -> None:
    return None


async def _noop_async(*args: Any, **kwargs: Any) -> None:
    return None


def _log_notification(message: str) -> None:
    logger.info("Notification: %s", message)


@dataclass
class ShellCallbacks:
    """UI collaborators supplied by the shell embedding the host.

    The defaults make a headless shell: edits are dropped and notifications are
    logged.
    """

    insert_text: Callable[[str], None] = _noop
    get_content: Callable[[], str] = lambda: ""
    get_selection: Callable[[], str] = lambda: ""
    show_diff: Callable[..., Awaitable[Any]] = _noop_async
    notify: Callable[[str], None] = _log_notification
    open_tab: Callable[[str, str, Any], None] = _noop
    close_tab: Callable[[str], None] = _noop
    components: Mapping[str, Any] = field(default_factory=dict)
    ui_bindings: Any = None
    icons: Any = None


class HostContext:
    """Everything the extension manager and capability APIs share, owned in one place."""

    def __init__(
        self,
        host: HostBridge,
        store: SettingsStore | None = None,
        shell: ShellCallbacks | None = None,
        sandbox: ScriptSandbox | None = None,
        version: str | None = None,
    ) -> None:
        self.host = host
        self.store = store if store is not None else MemorySettingsStore()
        self.shell = shell or ShellCallbacks()
        self.sandbox = sandbox or ScriptSandbox()
        self.version = version or __version__
        self.commands = CommandRegistry()
        self.views = ViewRegistry()
        self.status_bar = StatusBarRegistry()
        self.auth = AuthRegistry()
        self.chat = ChatParticipantRegistry()
        self.contributions = ContributionRegistry(
            self.views,
            self.status_bar,
            self.commands,
            self.chat,
            self.auth,
            close_tab=lambda tab_id: self.shell.close_tab(tab_id),
            components=lambda: self.shell.components,
        )

    def notify(self, message: str) -> None:
        """Show a non-fatal notification. A failing shell callback is logged, never raised."""
        try:
            self.shell.notify(message)
        except Exception as e:
            logger.exception("Notification callback failed: %s", e)
