"""Global feature registries: commands, views, status bar items, account providers."""

from exthost.registries.auth import AuthProvider, AuthRegistry
from exthost.registries.base import ListenerSet, OwnedRegistry
from exthost.registries.commands import Command, CommandRegistry
from exthost.registries.status_bar import StatusBarItem, StatusBarRegistry
from exthost.registries.views import View, ViewRegistry

__all__ = [
    "AuthProvider",
    "AuthRegistry",
    "Command",
    "CommandRegistry",
    "ListenerSet",
    "OwnedRegistry",
    "StatusBarItem",
    "StatusBarRegistry",
    "View",
    "ViewRegistry",
]
