"""Listener sets and the owner-aware id -> entry registry shared by all feature registries."""

import logging
from typing import Callable, Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ListenerSet:
    """Payload-less change listeners. A failing listener never blocks the others."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Add listener; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [l for l in self._listeners if l is not listener]

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.exception("Registry listener failed: %s", e)

    def __len__(self) -> int:
        return len(self._listeners)


class _Owned(Protocol):
    id: str
    owner: str | None


T = TypeVar("T", bound=_Owned)


class OwnedRegistry(Generic[T]):
    """Map of id -> entry with owner attribution.

    Re-registering a semantically identical entry is a silent no-op. A different
    entry under the same id replaces the old one (last write wins); a warning is
    logged when the owner changes. ``unregister(id, owner)`` only removes the entry
    while ``owner`` still holds it, so retiring one extension cannot delete an id
    another extension has since taken over.
    """

    kind = "entry"

    def __init__(self) -> None:
        self._entries: dict[str, T] = {}
        self._listeners = ListenerSet()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def _identical(self, existing: T, entry: T) -> bool:
        raise NotImplementedError

    def register(self, entry: T) -> bool:
        """Add or replace entry. Returns False when nothing changed (no notification)."""
        existing = self._entries.get(entry.id)
        if existing is not None:
            if self._identical(existing, entry):
                return False
            if existing.owner != entry.owner:
                logger.warning(
                    "%s '%s' already registered by %s, overriding with %s",
                    self.kind.capitalize(),
                    entry.id,
                    existing.owner or "host",
                    entry.owner or "host",
                )
        self._entries[entry.id] = entry
        self._listeners.notify()
        return True

    def unregister(self, entry_id: str, owner: str | None = None) -> bool:
        """Remove entry. With owner given, only if that owner still holds the id."""
        existing = self._entries.get(entry_id)
        if existing is None:
            return False
        if owner is not None and existing.owner != owner:
            logger.debug(
                "%s '%s' now owned by %s, not removing for %s",
                self.kind.capitalize(),
                entry_id,
                existing.owner,
                owner,
            )
            return False
        del self._entries[entry_id]
        self._listeners.notify()
        return True

    def get(self, entry_id: str) -> T | None:
        return self._entries.get(entry_id)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def list(self) -> list[T]:
        return list(self._entries.values())
