"""Tests for ContributionRegistry: handles, teardown, file menu, declared views."""

from unittest.mock import MagicMock

from exthost.chat.models import ChatParticipant
from exthost.extensions import HostContext
from exthost.extensions.contributions import FileMenuEntry
from exthost.extensions.manifest import parse_manifest
from exthost.registries import AuthProvider, Command, StatusBarItem, View


async def _handler(request, stream) -> None:
    stream.done()


def _contribute(context: HostContext, name: str, suffix: str = "") -> None:
    """Register one of everything for name, tracked in its handle."""
    handle = context.contributions.get_handle(name)
    ids = {
        "view": f"{name}.view{suffix}",
        "item": f"{name}.item{suffix}",
        "cmd": f"{name}.cmd{suffix}",
        "chat": f"{name}.chat{suffix}",
        "auth": f"{name}.auth{suffix}",
    }
    handle.views.append(ids["view"])
    context.views.register(View(ids["view"], "V", owner=name))
    handle.status_items.append(ids["item"])
    context.status_bar.register(StatusBarItem(ids["item"], "I", owner=name))
    handle.commands.append(ids["cmd"])
    context.commands.register(Command(ids["cmd"], "C", lambda: None, owner=name))
    handle.chat_participants.append(ids["chat"])
    context.chat.register(ChatParticipant(ids["chat"], "n", "full", _handler, owner=name))
    handle.auth_providers.append(ids["auth"])
    context.auth.register(AuthProvider(ids["auth"], "A", MagicMock(), MagicMock(), owner=name))


class TestHandles:
    def test_get_handle_is_idempotent(self, context: HostContext) -> None:
        first = context.contributions.get_handle("a")
        assert context.contributions.get_handle("a") is first

    def test_record_opened_tab_appends_once(self, context: HostContext) -> None:
        context.contributions.record_opened_tab("a", "tab-1")
        context.contributions.record_opened_tab("a", "tab-1")
        assert context.contributions.get_handle("a").opened_tabs == ["tab-1"]


class TestTeardown:
    """teardown(name) removes exactly what name contributed."""

    def test_removes_only_own_ids(self, context: HostContext) -> None:
        _contribute(context, "a")
        _contribute(context, "b")
        context.contributions.teardown("a")
        assert [v.id for v in context.views.list()] == ["b.view"]
        assert [i.id for i in context.status_bar.list()] == ["b.item"]
        assert [c.id for c in context.commands.list()] == ["b.cmd"]
        assert [p.id for p in context.chat.list()] == ["b.chat"]
        assert [p.id for p in context.auth.list()] == ["b.auth"]
        assert not context.contributions.has_handle("a")
        assert context.contributions.has_handle("b")

    def test_is_idempotent(self, context: HostContext) -> None:
        _contribute(context, "a")
        context.contributions.teardown("a")
        snapshot = [c.id for c in context.commands.list()]
        context.contributions.teardown("a")
        context.contributions.teardown("never-loaded")
        assert [c.id for c in context.commands.list()] == snapshot

    def test_keeps_id_taken_over_by_later_owner(self, context: HostContext) -> None:
        context.contributions.get_handle("a").commands.append("shared")
        context.commands.register(Command("shared", "From A", lambda: None, owner="a"))
        context.contributions.get_handle("b").commands.append("shared")
        context.commands.register(Command("shared", "From B", lambda: None, owner="b"))
        context.contributions.teardown("a")
        assert context.commands.get("shared").title == "From B"

    def test_closes_tracked_tabs(self, context: HostContext, shell) -> None:
        context.contributions.record_opened_tab("a", "t1")
        context.contributions.record_opened_tab("a", "t2")
        context.contributions.teardown("a")
        assert shell.closed == ["t1", "t2"]

    def test_tab_close_failure_does_not_stop_the_rest(self, context: HostContext) -> None:
        closed: list[str] = []

        def close(tab_id: str) -> None:
            if tab_id == "t1":
                raise RuntimeError("already gone")
            closed.append(tab_id)

        context.shell.close_tab = close
        context.contributions.record_opened_tab("a", "t1")
        context.contributions.record_opened_tab("a", "t2")
        context.contributions.teardown("a")
        assert closed == ["t2"]


class TestFileMenu:
    def test_sorted_by_order_missing_is_zero_stable(self, context: HostContext) -> None:
        reg = context.contributions
        reg.register_file_menu_entry(FileMenuEntry("Late", "late", order=999, owner="a"))
        reg.register_file_menu_entry(FileMenuEntry("First", "first", owner="a"))
        reg.register_file_menu_entry(FileMenuEntry("Early", "early", order=-1, owner="b"))
        reg.register_file_menu_entry(FileMenuEntry("Second", "second", order=0, owner="b"))
        assert [m.label for m in reg.list_file_menu_entries()] == ["Early", "First", "Second", "Late"]

    def test_teardown_drops_entries_and_notifies(self, context: HostContext) -> None:
        reg = context.contributions
        reg.register_file_menu_entry(FileMenuEntry("A", "a.cmd", owner="a"))
        reg.register_file_menu_entry(FileMenuEntry("B", "b.cmd", owner="b"))
        listener = MagicMock()
        reg.subscribe(listener)
        reg.teardown("a")
        assert [m.label for m in reg.list_file_menu_entries()] == ["B"]
        listener.assert_called_once()


class TestDeclaredViews:
    def test_declared_views_registered_as_chat_panels(self, context: HostContext) -> None:
        manifest = parse_manifest(
            {
                "name": "chatty",
                "entry": "main.py",
                "icon": "Bot",
                "contributes": {"views": [{"id": "chatty.panel", "title": "Chatty"}]},
            },
            "/plugins/chatty",
        )
        context.contributions.handle_declarations(manifest)
        context.contributions.handle_declarations(manifest)
        view = context.views.get("chatty.panel")
        assert view.icon == "Bot"
        assert view.owner == "chatty"
        assert context.contributions.get_handle("chatty").views == ["chatty.panel"]
        assert view.component() == ("ChatPanel", {"participant_id": "chatty.panel", "title": "Chatty"})
        context.contributions.teardown("chatty")
        assert context.views.get("chatty.panel") is None
