"""Capability API: the object an extension receives. Everything it can do goes through here.

One ExtensionAPI is built per loaded extension. Every registration is attributed
to the extension (owner) and recorded in its ResourceHandle before it reaches the
global registry, so unloading can retire it. Host-forwarding methods raise
HostCallError into extension code; nothing here swallows or retries them.

Groups never hold the HostContext, a registry or the store. build_extension_api
hands each group a few callables already bound to this extension's name, so an
extension can only act on its own entries and its own storage namespace.
"""

import json
import logging
from types import MappingProxyType
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Sequence

from exthost.chat.agent import DEFAULT_SYSTEM_PROMPT, AgentTool, ToolAgent
from exthost.chat.models import ChatCommand, ChatParticipant
from exthost.chat.streaming import TrackSubscription, model_stream
from exthost.extensions.contributions import FileMenuEntry, ResourceHandle
from exthost.extensions.context import HostContext
from exthost.extensions.manifest import ExtensionManifest
from exthost.host.protocol import Disposer, EventHandler
from exthost.registries import AuthProvider, Command, StatusBarItem, View
from exthost.store import plugin_key

logger = logging.getLogger(__name__)

Forward = Callable[..., Awaitable[Any]]
Listen = Callable[[str, EventHandler], Awaitable[Disposer]]


def _fields(record: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Merge a dict record with keyword fields (keywords win)."""
    if record is None:
        return dict(fields)
    if not isinstance(record, Mapping):
        raise TypeError(f"expected a mapping, got {type(record).__name__}")
    return {**record, **fields}


def _record_fields(record: Any, record_type: type, fields: Mapping[str, Any]) -> dict[str, Any]:
    """Fields of a dataclass instance or mapping record; the caller-supplied owner is dropped."""
    if isinstance(record, record_type):
        data = {k: v for k, v in vars(record).items() if k != "owner"}
        data.update(fields)
        return data
    data = _fields(record, fields)
    data.pop("owner", None)
    return data


class _Group:
    """Shared plumbing for API groups: host forwarding and tracked subscriptions."""

    def __init__(self, owner: str, forward: Forward, listen: Listen) -> None:
        self._owner = owner
        self._forward_call = forward
        self._listen_call = listen

    async def _forward(self, command: str, args: dict[str, Any] | None = None) -> Any:
        return await self._forward_call(command, args)

    async def _listen(
        self, topic: str, handler: EventHandler, adapt: Callable[[Any], Any] | None = None
    ) -> Disposer:
        """Subscribe to a host topic; the disposer is tracked for unload."""
        if adapt is None:
            listener = handler
        else:

            def listener(payload: Any) -> Any:
                return handler(adapt(payload))

        return await self._listen_call(topic, listener)


class EditorAPI(_Group):
    def __init__(self, *args: Any, shell: Any) -> None:
        super().__init__(*args)
        self._insert_text = lambda text: shell.insert_text(text)
        self._get_content = lambda: shell.get_content()
        self._get_selection = lambda: shell.get_selection()
        self._show_diff = lambda *a: shell.show_diff(*a)

    def insert_text(self, text: str) -> None:
        self._insert_text(text)

    def get_content(self) -> str:
        return self._get_content()

    def get_selection(self) -> str:
        return self._get_selection()

    async def show_diff(
        self, original_path: str, modified_content: str, title: str | None = None
    ) -> Any:
        return await self._show_diff(original_path, modified_content, title)


class CommandsAPI(_Group):
    def __init__(
        self,
        *args: Any,
        register: Callable[[Command], None],
        execute: Callable[..., Awaitable[Any]],
    ) -> None:
        super().__init__(*args)
        self._register = register
        self._execute = execute

    def register(self, record: Command | Mapping[str, Any] | None = None, **fields: Any) -> None:
        """Register a command. Accepts ``callback`` or ``handler`` for the function."""
        data = _record_fields(record, Command, fields)
        callback = data.get("callback") or data.get("handler")
        if callback is None:
            raise ValueError(f"command {data.get('id')!r} has no callback")
        self._register(
            Command(
                id=data["id"],
                title=data.get("title") or data["id"],
                callback=callback,
                category=data.get("category"),
                description=data.get("description"),
                keybinding=data.get("keybinding"),
                owner=self._owner,
            )
        )

    async def execute(self, command_id: str, *args: Any) -> Any:
        return await self._execute(command_id, *args)


class FileSystemWatcher:
    """Handle returned by workspace.create_file_system_watcher(path)."""

    def __init__(self, group: "WorkspaceAPI", path: str) -> None:
        self._group = group
        self.path = path

    async def on_did_create(self, handler: EventHandler) -> Disposer:
        return await self._group._listen("fs_create", handler)

    async def on_did_change(self, handler: EventHandler) -> Disposer:
        return await self._group._listen("fs_change", handler)

    async def on_did_delete(self, handler: EventHandler) -> Disposer:
        return await self._group._listen("fs_delete", handler)

    async def dispose(self) -> None:
        await self._group._forward("fs_unwatch", {"path": self.path})


class WorkspaceAPI(_Group):
    async def read_file(self, path: str) -> str:
        return await self._forward("read_file", {"path": path})

    async def write_file(self, path: str, content: str) -> None:
        await self._forward("write_file", {"path": path, "content": content})

    async def stat(self, path: str) -> dict[str, Any]:
        return await self._forward("fs_stat", {"path": path})

    async def read_directory(self, path: str) -> list[dict[str, Any]]:
        return await self._forward("read_dir", {"path": path})

    async def find_files(
        self, base_dir: str, include: str, exclude: str | None = None
    ) -> list[str]:
        return await self._forward(
            "fs_find_files", {"base_dir": base_dir, "include": include, "exclude": exclude}
        )

    async def create_file_system_watcher(self, path: str) -> FileSystemWatcher:
        await self._forward("fs_watch", {"path": path})
        return FileSystemWatcher(self, path)

    async def on_did_save_text_document(self, handler: EventHandler) -> Disposer:
        return await self._listen("file_saved", handler, lambda p: {"uri": p})

    async def on_did_open_text_document(self, handler: EventHandler) -> Disposer:
        return await self._listen("active_editor_changed", handler, lambda p: {"uri": p})

    async def on_did_create_files(self, handler: EventHandler) -> Disposer:
        return await self._listen("fs_create", handler)

    async def on_did_change_files(self, handler: EventHandler) -> Disposer:
        return await self._listen("fs_change", handler)

    async def on_did_delete_files(self, handler: EventHandler) -> Disposer:
        return await self._listen("fs_delete", handler)


class StatusBarAPI(_Group):
    def __init__(self, *args: Any, register: Callable[[StatusBarItem], None]) -> None:
        super().__init__(*args)
        self._register = register

    def register_item(self, record: StatusBarItem | Mapping[str, Any] | None = None, **fields: Any) -> None:
        data = _record_fields(record, StatusBarItem, fields)
        self._register(StatusBarItem(**{**data, "owner": self._owner}))


class ViewsAPI(_Group):
    def __init__(self, *args: Any, register: Callable[[View], None]) -> None:
        super().__init__(*args)
        self._register = register

    def register(self, record: View | Mapping[str, Any] | None = None, **fields: Any) -> None:
        data = _record_fields(record, View, fields)
        self._register(View(**{**data, "owner": self._owner}))


class MenusAPI(_Group):
    def __init__(self, *args: Any, register: Callable[[FileMenuEntry], None]) -> None:
        super().__init__(*args)
        self._register = register

    def register_file_menu(self, record: Mapping[str, Any] | None = None, **fields: Any) -> None:
        """Add a File-menu entry. The command id may be given as command_id or commandId."""
        data = _fields(record, fields)
        command_id = data.get("command_id") or data.get("commandId")
        if not data.get("label") or not command_id:
            raise ValueError("file menu entry needs a label and a command_id")
        self._register(
            FileMenuEntry(
                label=data["label"],
                command_id=command_id,
                order=data.get("order"),
                owner=self._owner,
            )
        )


class OutputChannel:
    """Named output pane; forwards to the host's output_* commands."""

    def __init__(self, group: _Group, name: str) -> None:
        self._group = group
        self.name = name

    async def append(self, value: str) -> None:
        await self._group._forward("output_append", {"channel": self.name, "content": value})

    async def append_line(self, value: str) -> None:
        await self.append(value + "\n")

    async def clear(self) -> None:
        await self._group._forward("output_clear", {"channel": self.name})

    async def show(self) -> None:
        await self._group._forward("output_show", {"channel": self.name})


def _selection_event(payload: Any) -> dict[str, Any] | None:
    """selection_changed payload (JSON text or object with path/line/col) -> event record."""
    try:
        data = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
        return {
            "text_editor": {"uri": data["path"]},
            "selections": [{"line": data["line"], "col": data["col"]}],
        }
    except (json.JSONDecodeError, TypeError, KeyError) as e:
        logger.debug("Dropping malformed selection_changed payload %r: %s", payload, e)
        return None


class WindowAPI(_Group):
    def __init__(self, *args: Any, open_tab: Callable[[str, str, Any], None]) -> None:
        super().__init__(*args)
        self._open_tab = open_tab

    async def create(self, label: str, options: Mapping[str, Any] | None = None) -> None:
        await self._forward("window_create", {"label": label, "options": dict(options or {})})

    async def close(self, label: str) -> None:
        await self._forward("window_close", {"label": label})

    def open_tab(self, tab_id: str, title: str, component: Any) -> None:
        """Open a shell tab; it is recorded first so unload closes it."""
        self._open_tab(tab_id, title, component)

    def create_output_channel(self, name: str) -> OutputChannel:
        return OutputChannel(self, name)

    async def on_did_change_active_text_editor(self, handler: EventHandler) -> Disposer:
        return await self._listen(
            "active_editor_changed", handler, lambda p: {"uri": p} if p else None
        )

    async def on_did_change_window_state(self, handler: EventHandler) -> Disposer:
        return await self._listen("window_state_changed", handler, lambda p: {"focused": bool(p)})

    async def on_did_change_text_editor_selection(self, handler: EventHandler) -> Disposer:
        def listener(payload: Any) -> Any:
            event = _selection_event(payload)
            if event is None:
                return None
            return handler(event)

        return await self._listen("selection_changed", listener)


class EventsAPI(_Group):
    async def on(self, topic: str, handler: EventHandler) -> Disposer:
        """Subscribe to any host topic. '-' in the name is treated as '_'."""
        return await self._listen(topic.replace("-", "_"), handler)


class AiAPI(_Group):
    def __init__(self, *args: Any, stream: Callable[[dict[str, Any]], AsyncIterator[Any]]) -> None:
        super().__init__(*args)
        self._stream = stream

    def stream(self, request: Mapping[str, Any]) -> AsyncIterator[Any]:
        """Lazy sequence of parsed llm_chat fragments (chat completion chunks)."""
        return self._stream(dict(request))


class ChatAPI(_Group):
    def __init__(
        self, *args: Any, ai: AiAPI, register: Callable[[ChatParticipant], None]
    ) -> None:
        super().__init__(*args)
        self._ai = ai
        self._register = register

    def register_chat_participant(
        self, participant: ChatParticipant | Mapping[str, Any]
    ) -> None:
        data = _record_fields(participant, ChatParticipant, {})
        data["commands"] = [
            c if isinstance(c, ChatCommand) else ChatCommand(**c)
            for c in data.get("commands") or []
        ]
        self._register(ChatParticipant(**{**data, "owner": self._owner}))

    def create_tool_agent(
        self,
        tools: Sequence[AgentTool | Mapping[str, Any]] = (),
        system_prompt: str | None = None,
    ) -> ToolAgent:
        """Chat handler running the tool loop over ai.stream."""
        return ToolAgent(self._ai.stream, tools, system_prompt or DEFAULT_SYSTEM_PROMPT)


class StorageAPI(_Group):
    """Private key-value storage, namespaced by extension name."""

    def __init__(
        self, *args: Any, read: Callable[[str], Any], write: Callable[[str, Any], None]
    ) -> None:
        super().__init__(*args)
        self._read = read
        self._write = write

    async def get(self, key: str) -> Any:
        return self._read(key)

    async def set(self, key: str, value: Any) -> None:
        self._write(key, value)


class UiAPI(_Group):
    def __init__(self, *args: Any, notify: Callable[[str], None]) -> None:
        super().__init__(*args)
        self._notify = notify

    def notify(self, message: str) -> None:
        self._notify(message)


class AuthAPI(_Group):
    def __init__(
        self,
        *args: Any,
        register: Callable[[AuthProvider], None],
        unregister: Callable[[str], bool],
        set_account: Callable[[str, str | None], None],
    ) -> None:
        super().__init__(*args)
        self._register = register
        self._unregister = unregister
        self._set_account = set_account

    def register_authentication_provider(
        self, provider: AuthProvider | Mapping[str, Any]
    ) -> None:
        data = _record_fields(provider, AuthProvider, {})
        self._register(AuthProvider(**{**data, "owner": self._owner}))

    def unregister_authentication_provider(self, provider_id: str) -> None:
        self._unregister(provider_id)

    def set_account(self, provider_id: str, account_name: str | None) -> None:
        """Update the signed-in account label of one of this extension's providers."""
        self._set_account(provider_id, account_name)


class SystemAPI(_Group):
    def __init__(self, *args: Any, version: str) -> None:
        super().__init__(*args)
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    async def invoke(self, command: str, args: dict[str, Any] | None = None) -> Any:
        """Raw host command call."""
        return await self._forward(command, args)

    async def get_env(self, name: str) -> str | None:
        return await self._forward("system_get_env", {"name": name})

    async def exec(self, program: str, args: Sequence[str] = ()) -> dict[str, Any]:
        return await self._forward("system_exec", {"program": program, "args": list(args)})


class ExtensionAPI:
    """Capability object injected into an extension's entry module as ``api``."""

    def __init__(self, name: str, components: Mapping[str, Any], **groups: _Group) -> None:
        self.name = name
        self.editor: EditorAPI = groups["editor"]
        self.commands: CommandsAPI = groups["commands"]
        self.workspace: WorkspaceAPI = groups["workspace"]
        self.status_bar: StatusBarAPI = groups["status_bar"]
        self.views: ViewsAPI = groups["views"]
        self.menus: MenusAPI = groups["menus"]
        self.window: WindowAPI = groups["window"]
        self.events: EventsAPI = groups["events"]
        self.ai: AiAPI = groups["ai"]
        self.chat: ChatAPI = groups["chat"]
        self.storage: StorageAPI = groups["storage"]
        self.ui: UiAPI = groups["ui"]
        self.auth: AuthAPI = groups["auth"]
        self.system: SystemAPI = groups["system"]
        self.components = MappingProxyType(dict(components))


def build_extension_api(
    manifest: ExtensionManifest,
    handle: ResourceHandle,
    context: HostContext,
    track_subscription: TrackSubscription,
) -> ExtensionAPI:
    """Wire one extension's API. Every callable below is bound to this extension's name."""
    owner = manifest.name
    host = context.host
    shell = context.shell
    store = context.store
    contributions = context.contributions

    async def forward(command: str, args: dict[str, Any] | None = None) -> Any:
        return await host.invoke(command, args)

    async def listen(topic: str, listener: EventHandler) -> Disposer:
        disposer = await host.listen(topic, listener)
        track_subscription(disposer)
        return disposer

    def owned(ids: list[str], register: Callable[[Any], Any]) -> Callable[[Any], None]:
        def add(entry: Any) -> None:
            ResourceHandle.track(ids, entry.id)
            register(entry)

        return add

    def open_tab(tab_id: str, title: str, component: Any) -> None:
        contributions.record_opened_tab(owner, tab_id)
        shell.open_tab(tab_id, title, component)

    def unregister_auth(provider_id: str) -> bool:
        removed = context.auth.unregister(provider_id, owner=owner)
        if removed:
            handle.auth_providers[:] = [i for i in handle.auth_providers if i != provider_id]
        return removed

    def set_account(provider_id: str, account_name: str | None) -> None:
        provider = context.auth.get(provider_id)
        if provider is not None and provider.owner == owner:
            context.auth.update_account(provider_id, account_name)

    base = (owner, forward, listen)
    ai = AiAPI(
        *base, stream=lambda request: model_stream(host, request, owner, track_subscription)
    )
    return ExtensionAPI(
        owner,
        shell.components,
        editor=EditorAPI(*base, shell=shell),
        commands=CommandsAPI(
            *base,
            register=owned(handle.commands, context.commands.register),
            execute=context.commands.execute,
        ),
        workspace=WorkspaceAPI(*base),
        status_bar=StatusBarAPI(*base, register=owned(handle.status_items, context.status_bar.register)),
        views=ViewsAPI(*base, register=owned(handle.views, context.views.register)),
        menus=MenusAPI(*base, register=contributions.register_file_menu_entry),
        window=WindowAPI(*base, open_tab=open_tab),
        events=EventsAPI(*base),
        ai=ai,
        chat=ChatAPI(
            *base, ai=ai, register=owned(handle.chat_participants, context.chat.register)
        ),
        storage=StorageAPI(
            *base,
            read=lambda key: store.get(plugin_key(owner, key)),
            write=lambda key, value: store.set(plugin_key(owner, key), value),
        ),
        ui=UiAPI(*base, notify=lambda message: context.notify(message)),
        auth=AuthAPI(
            *base,
            register=owned(handle.auth_providers, context.auth.register),
            unregister=unregister_auth,
            set_account=set_account,
        ),
        system=SystemAPI(*base, version=context.version),
    )
