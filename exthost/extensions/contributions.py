"""Contribution registry: per-extension ledger of everything an extension contributed.

Each loaded extension gets one ResourceHandle. The capability API appends to it on
every registration, and teardown() retires the whole set as a unit.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from exthost.chat.registry import ChatParticipantRegistry
from exthost.extensions.manifest import ExtensionManifest
from exthost.registries import (
    AuthRegistry,
    CommandRegistry,
    ListenerSet,
    StatusBarRegistry,
    View,
    ViewRegistry,
)

logger = logging.getLogger(__name__)

DEFAULT_VIEW_ICON = "Puzzle"
CHAT_PANEL_COMPONENT = "ChatPanel"


@dataclass
class ResourceHandle:
    """Ids contributed by one extension, in registration order."""

    views: list[str] = field(default_factory=list)
    status_items: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    opened_tabs: list[str] = field(default_factory=list)
    chat_participants: list[str] = field(default_factory=list)
    auth_providers: list[str] = field(default_factory=list)

    @staticmethod
    def track(ids: list[str], item_id: str) -> None:
        if item_id not in ids:
            ids.append(item_id)


@dataclass
class FileMenuEntry:
    label: str
    command_id: str
    order: int | None = None
    owner: str | None = None


def render_chat_panel(
    components: Callable[[], Mapping[str, Any]], participant_id: str, title: str
) -> Any:
    """View component for a declared chat view: the shell's chat panel bound to one participant."""
    panel = components().get(CHAT_PANEL_COMPONENT)
    if panel is None:
        return None
    return panel(participant_id=participant_id, title=title)


class ContributionRegistry:
    """Resource handles by extension name, plus the File menu entries extensions add."""

    def __init__(
        self,
        views: ViewRegistry,
        status_bar: StatusBarRegistry,
        commands: CommandRegistry,
        chat: ChatParticipantRegistry,
        auth: AuthRegistry,
        close_tab: Callable[[str], Any] | None = None,
        components: Callable[[], Mapping[str, Any]] | None = None,
    ) -> None:
        self._views = views
        self._status_bar = status_bar
        self._commands = commands
        self._chat = chat
        self._auth = auth
        self._close_tab = close_tab
        self._components = components or dict
        self._handles: dict[str, ResourceHandle] = {}
        self._file_menu: list[FileMenuEntry] = []
        self._listeners = ListenerSet()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def get_handle(self, name: str) -> ResourceHandle:
        """Existing handle for name, or a new empty one."""
        handle = self._handles.get(name)
        if handle is None:
            handle = self._handles[name] = ResourceHandle()
        return handle

    def has_handle(self, name: str) -> bool:
        return name in self._handles

    def record_opened_tab(self, name: str, tab_id: str) -> None:
        ResourceHandle.track(self.get_handle(name).opened_tabs, tab_id)

    def handle_declarations(self, manifest: ExtensionManifest) -> None:
        """Register views declared under contributes.views as chat panels."""
        handle = self.get_handle(manifest.name)
        for decl in manifest.contributes.views:
            if decl.id in handle.views:
                logger.debug("Skipping duplicate declared view %s", decl.id)
                continue
            handle.views.append(decl.id)
            self._views.register(
                View(
                    id=decl.id,
                    title=decl.title,
                    icon=decl.icon or manifest.icon or DEFAULT_VIEW_ICON,
                    component=functools.partial(
                        render_chat_panel, self._components, decl.id, decl.title
                    ),
                    owner=manifest.name,
                )
            )

    def teardown(self, name: str) -> None:
        """Retire everything name contributed. Unknown names are a no-op."""
        handle = self._handles.pop(name, None)
        if handle is not None:
            for view_id in handle.views:
                self._views.unregister(view_id, owner=name)
            for item_id in handle.status_items:
                self._status_bar.unregister(item_id, owner=name)
            for command_id in handle.commands:
                self._commands.unregister(command_id, owner=name)
            for participant_id in handle.chat_participants:
                self._chat.unregister(participant_id, owner=name)
            for provider_id in handle.auth_providers:
                self._auth.unregister(provider_id, owner=name)
            for tab_id in handle.opened_tabs:
                if self._close_tab is None:
                    break
                try:
                    self._close_tab(tab_id)
                except Exception as e:
                    logger.exception("Failed to close tab %s of %s: %s", tab_id, name, e)
        before = len(self._file_menu)
        self._file_menu = [m for m in self._file_menu if m.owner != name]
        if len(self._file_menu) != before:
            self._listeners.notify()

    def register_file_menu_entry(self, entry: FileMenuEntry) -> None:
        self._file_menu.append(entry)
        self._listeners.notify()

    def list_file_menu_entries(self) -> list[FileMenuEntry]:
        """Entries ascending by order (missing = 0); equal orders keep insertion order."""
        return sorted(self._file_menu, key=lambda m: m.order or 0)
