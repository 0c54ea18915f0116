"""Command registry: every named action (host or extension) is registered and executed here."""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from exthost.errors import CommandNotFoundError
from exthost.registries.base import OwnedRegistry

logger = logging.getLogger(__name__)


@dataclass
class Command:
    id: str
    title: str
    callback: Callable[..., Any]
    category: str | None = None
    description: str | None = None
    keybinding: str | None = None
    owner: str | None = None


class CommandRegistry(OwnedRegistry[Command]):
    """Commands by id. Identity for no-op re-registration: title, category, callback,
    description, keybinding."""

    kind = "command"

    def _identical(self, existing: Command, entry: Command) -> bool:
        return (
            existing.title == entry.title
            and existing.category == entry.category
            and existing.callback is entry.callback
            and existing.description == entry.description
            and existing.keybinding == entry.keybinding
        )

    async def execute(self, command_id: str, *args: Any) -> Any:
        """Run a command's callback, awaiting it if it returns an awaitable.

        Raises CommandNotFoundError for unknown ids. Callback errors are logged and
        re-raised to the caller.
        """
        command = self.get(command_id)
        if command is None:
            raise CommandNotFoundError(command_id)
        try:
            result = command.callback(*args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            logger.exception("Error executing command %s: %s", command_id, e)
            raise
