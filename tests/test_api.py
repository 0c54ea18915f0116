"""Tests for the capability API built per extension."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeHost, RecordingStream, text_chunk
from exthost.chat.models import ChatRequest
from exthost.errors import CommandNotFoundError, HostCallError
from exthost.extensions import HostContext, build_extension_api
from exthost.extensions.contributions import ContributionRegistry, ResourceHandle
from exthost.extensions.manifest import parse_manifest
from exthost.registries import Command, CommandRegistry
from exthost.store import MemorySettingsStore


def _api(context: HostContext, name: str = "demo"):
    manifest = parse_manifest({"name": name, "entry": "main.py"}, f"/plugins/{name}")
    handle = context.contributions.get_handle(name)
    tracked: list = []

    def track(disposer):
        tracked.append(disposer)
        return lambda: tracked.remove(disposer) if disposer in tracked else None

    return build_extension_api(manifest, handle, context, track), handle, tracked


class TestCommands:
    @pytest.mark.asyncio
    async def test_register_with_handler_alias(self, context: HostContext) -> None:
        api, handle, _ = _api(context)
        api.commands.register(id="demo.hello", title="Hello", handler=lambda: "hi")
        assert handle.commands == ["demo.hello"]
        assert context.commands.get("demo.hello").owner == "demo"
        assert await api.commands.execute("demo.hello") == "hi"

    def test_register_record_and_dataclass(self, context: HostContext) -> None:
        api, handle, _ = _api(context)
        api.commands.register({"id": "demo.a", "title": "A", "callback": print})
        api.commands.register(Command("demo.b", "B", print, owner="someone-else"))
        assert handle.commands == ["demo.a", "demo.b"]
        assert context.commands.get("demo.b").owner == "demo"

    def test_identical_reregistration_no_notification(self, context: HostContext) -> None:
        api, handle, _ = _api(context)
        listener = MagicMock()
        context.commands.subscribe(listener)
        api.commands.register(id="demo.a", title="A", callback=print)
        api.commands.register(id="demo.a", title="A", callback=print)
        assert listener.call_count == 1
        assert handle.commands == ["demo.a"]

    def test_missing_callback_rejected(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        with pytest.raises(ValueError):
            api.commands.register(id="demo.nothing", title="Nothing")

    @pytest.mark.asyncio
    async def test_execute_unknown(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        with pytest.raises(CommandNotFoundError):
            await api.commands.execute("missing")


class TestWorkspaceForwarding:
    @pytest.mark.asyncio
    async def test_read_file_forwards_to_host(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.handlers["read_file"] = lambda path: f"content of {path}"
        api, _, _ = _api(context)
        assert await api.workspace.read_file("a.txt") == "content of a.txt"
        assert fake_host.command_calls("read_file") == [{"path": "a.txt"}]

    @pytest.mark.asyncio
    async def test_host_failure_surfaces_as_host_call_error(
        self, context: HostContext, fake_host: FakeHost
    ) -> None:
        def fail(path: str) -> str:
            raise PermissionError("outside workspace")

        fake_host.handlers["fs_stat"] = fail
        api, _, _ = _api(context)
        with pytest.raises(HostCallError) as exc_info:
            await api.workspace.stat("/etc/passwd")
        assert exc_info.value.command == "fs_stat"
        assert len(fake_host.command_calls("fs_stat")) == 1

    @pytest.mark.asyncio
    async def test_find_files_argument_names(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.handlers["fs_find_files"] = lambda base_dir, include, exclude: [base_dir, include, exclude]
        api, _, _ = _api(context)
        assert await api.workspace.find_files("src", "*.py") == ["src", "*.py", None]

    @pytest.mark.asyncio
    async def test_file_system_watcher(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.handlers["fs_watch"] = lambda path: None
        fake_host.handlers["fs_unwatch"] = lambda path: None
        api, _, tracked = _api(context)
        watcher = await api.workspace.create_file_system_watcher("src")
        created: list = []
        await watcher.on_did_create(created.append)
        fake_host.emit("fs_create", "src/new.py")
        await watcher.dispose()
        assert created == ["src/new.py"]
        assert len(tracked) == 1
        assert fake_host.command_calls("fs_unwatch") == [{"path": "src"}]


class TestEvents:
    @pytest.mark.asyncio
    async def test_on_normalises_topic_and_tracks(self, context: HostContext, fake_host: FakeHost) -> None:
        api, _, tracked = _api(context)
        seen: list = []
        dispose = await api.events.on("file-saved", seen.append)
        fake_host.emit("file_saved", "a.py")
        dispose()
        fake_host.emit("file_saved", "b.py")
        assert seen == ["a.py"]
        assert len(tracked) == 1

    @pytest.mark.asyncio
    async def test_save_event_payload_shape(self, context: HostContext, fake_host: FakeHost) -> None:
        api, _, _ = _api(context)
        seen: list = []
        await api.workspace.on_did_save_text_document(seen.append)
        fake_host.emit("file_saved", "a.py")
        assert seen == [{"uri": "a.py"}]

    @pytest.mark.asyncio
    async def test_selection_event_parsed_and_malformed_dropped(
        self, context: HostContext, fake_host: FakeHost
    ) -> None:
        api, _, _ = _api(context)
        seen: list = []
        await api.window.on_did_change_text_editor_selection(seen.append)
        fake_host.emit("selection_changed", json.dumps({"path": "a.py", "line": 3, "col": 7}))
        fake_host.emit("selection_changed", "{garbage")
        assert seen == [{"text_editor": {"uri": "a.py"}, "selections": [{"line": 3, "col": 7}]}]

    @pytest.mark.asyncio
    async def test_active_editor_none_payload(self, context: HostContext, fake_host: FakeHost) -> None:
        api, _, _ = _api(context)
        seen: list = []
        await api.window.on_did_change_active_text_editor(seen.append)
        fake_host.emit("active_editor_changed", None)
        fake_host.emit("active_editor_changed", "b.py")
        assert seen == [None, {"uri": "b.py"}]


class TestWindowAndMenus:
    def test_open_tab_recorded_before_shell_call(self, context: HostContext, shell) -> None:
        api, handle, _ = _api(context)

        def open_tab(tab_id, title, component):
            assert handle.opened_tabs == [tab_id]
            shell.opened.append(tab_id)

        context.shell.open_tab = open_tab
        api.window.open_tab("demo-tab", "Demo", object())
        assert shell.opened == ["demo-tab"]

    @pytest.mark.asyncio
    async def test_output_channel(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.handlers["output_append"] = lambda channel, content: None
        fake_host.handlers["output_show"] = lambda channel: None
        api, _, _ = _api(context)
        channel = api.window.create_output_channel("Demo")
        await channel.append_line("hello")
        await channel.show()
        assert fake_host.command_calls("output_append") == [{"channel": "Demo", "content": "hello\n"}]
        assert fake_host.command_calls("output_show") == [{"channel": "Demo"}]

    def test_file_menu_owned_by_extension(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        api.menus.register_file_menu(label="Demo", command_id="demo.open", order=5)
        entries = context.contributions.list_file_menu_entries()
        assert [(e.label, e.owner, e.order) for e in entries] == [("Demo", "demo", 5)]

    def test_file_menu_accepts_camel_case_command_id(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        api.menus.register_file_menu({"label": "Demo", "commandId": "demo.open"})
        entries = context.contributions.list_file_menu_entries()
        assert [(e.command_id, e.owner) for e in entries] == [("demo.open", "demo")]

    def test_file_menu_without_command_rejected(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        with pytest.raises(ValueError, match="command_id"):
            api.menus.register_file_menu(label="Demo")
        assert context.contributions.list_file_menu_entries() == []


class TestStorageAndSystem:
    @pytest.mark.asyncio
    async def test_storage_is_namespaced(self, context: HostContext) -> None:
        api_a, _, _ = _api(context, "a")
        api_b, _, _ = _api(context, "b")
        await api_a.storage.set("count", 3)
        assert await api_a.storage.get("count") == 3
        assert await api_b.storage.get("count") is None
        assert context.store.get("plugin:a:count") == 3

    @pytest.mark.asyncio
    async def test_system_forwarding(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.handlers["system_exec"] = lambda program, args: {"stdout": " ".join([program, *args])}
        fake_host.handlers["custom"] = lambda value: value * 2
        api, _, _ = _api(context)
        assert (await api.system.exec("echo", ["hi"]))["stdout"] == "echo hi"
        assert await api.system.invoke("custom", {"value": 4}) == 8
        assert api.system.version == context.version

    def test_editor_and_notify_use_shell(self, context: HostContext, shell) -> None:
        context.shell.get_content = lambda: "buffer"
        context.shell.insert_text = MagicMock()
        api, _, _ = _api(context)
        api.editor.insert_text("x")
        api.ui.notify("hello")
        assert api.editor.get_content() == "buffer"
        context.shell.insert_text.assert_called_once_with("x")
        assert shell.notifications == ["hello"]

    @pytest.mark.asyncio
    async def test_show_diff_awaited(self, context: HostContext) -> None:
        context.shell.show_diff = AsyncMock(return_value="accepted")
        api, _, _ = _api(context)
        assert await api.editor.show_diff("a.py", "new") == "accepted"
        context.shell.show_diff.assert_awaited_once_with("a.py", "new", None)

    def test_components_read_only(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        assert "ChatPanel" in api.components
        with pytest.raises(TypeError):
            api.components["Other"] = object()  # type: ignore[index]


class TestChatAndAuth:
    @pytest.mark.asyncio
    async def test_participant_with_tool_agent(self, context: HostContext, fake_host: FakeHost) -> None:
        fake_host.script_llm([text_chunk("Hi there")])
        api, handle, _ = _api(context)
        api.chat.register_chat_participant(
            {
                "id": "demo.chat",
                "name": "Demo",
                "full_name": "Demo Chat",
                "commands": [{"name": "explain", "description": "Explain code"}],
                "handler": api.chat.create_tool_agent(),
            }
        )
        participant = context.chat.get("demo.chat")
        assert participant.owner == "demo"
        assert participant.commands[0].name == "explain"
        assert handle.chat_participants == ["demo.chat"]

        stream = RecordingStream()
        await participant.handler(ChatRequest(prompt="hello"), stream)
        assert stream.text() == "Hi there"
        assert stream.kinds()[-1] == "done"

    def test_auth_provider_lifecycle(self, context: HostContext) -> None:
        api, handle, _ = _api(context)
        api.auth.register_authentication_provider(
            {"id": "demo.auth", "label": "Demo", "on_login": AsyncMock(), "on_logout": AsyncMock()}
        )
        api.auth.set_account("demo.auth", "alice")
        assert context.auth.get("demo.auth").account_name == "alice"
        api.auth.unregister_authentication_provider("demo.auth")
        assert context.auth.get("demo.auth") is None
        assert handle.auth_providers == []


class TestGroupState:
    def test_groups_hold_no_shared_host_objects(self, context: HostContext) -> None:
        api, _, _ = _api(context)
        shared = (HostContext, ContributionRegistry, ResourceHandle, MemorySettingsStore, CommandRegistry)
        groups = [g for g in vars(api).values() if hasattr(g, "__dict__")]
        assert len(groups) == 14
        for group in groups:
            for value in vars(group).values():
                assert not isinstance(value, shared), (type(group).__name__, value)

    def test_auth_account_only_for_own_provider(self, context: HostContext) -> None:
        api_a, _, _ = _api(context, "a")
        api_b, _, _ = _api(context, "b")
        api_a.auth.register_authentication_provider(
            {"id": "a.auth", "label": "A", "on_login": AsyncMock(), "on_logout": AsyncMock()}
        )
        api_b.auth.set_account("a.auth", "mallory")
        api_b.auth.unregister_authentication_provider("a.auth")
        assert context.auth.get("a.auth").account_name is None
