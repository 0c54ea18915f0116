"""Chat participant registry: directory of chat-capable handlers the UI subscribes to."""

import logging
from typing import Callable

from exthost.chat.models import ChatParticipant
from exthost.registries.base import ListenerSet

logger = logging.getLogger(__name__)


class ChatParticipantRegistry:
    """Flat id -> participant map. Listeners are called (no payload) on every change."""

    def __init__(self) -> None:
        self._participants: dict[str, ChatParticipant] = {}
        self._listeners = ListenerSet()

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def register(self, participant: ChatParticipant) -> None:
        """Add or overwrite by id, then notify."""
        existing = self._participants.get(participant.id)
        if existing is not None and existing.owner != participant.owner:
            logger.warning(
                "Chat participant '%s' already registered by %s, overriding with %s",
                participant.id,
                existing.owner or "host",
                participant.owner or "host",
            )
        self._participants[participant.id] = participant
        self._listeners.notify()

    def unregister(self, participant_id: str, owner: str | None = None) -> bool:
        """Remove and notify only if present (and still held by owner, when given)."""
        existing = self._participants.get(participant_id)
        if existing is None:
            return False
        if owner is not None and existing.owner != owner:
            return False
        del self._participants[participant_id]
        self._listeners.notify()
        return True

    def get(self, participant_id: str) -> ChatParticipant | None:
        return self._participants.get(participant_id)

    def list(self) -> list[ChatParticipant]:
        return list(self._participants.values())
