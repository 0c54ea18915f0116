"""Status bar registry."""

from dataclasses import dataclass
from typing import Any, Callable, Literal

from exthost.registries.base import OwnedRegistry

Alignment = Literal["left", "right"]


@dataclass
class StatusBarItem:
    id: str
    text: str
    alignment: Alignment = "left"
    priority: int = 0
    tooltip: str | None = None
    on_click: Callable[[], Any] | None = None
    owner: str | None = None


class StatusBarRegistry(OwnedRegistry[StatusBarItem]):
    kind = "status bar item"

    def _identical(self, existing: StatusBarItem, entry: StatusBarItem) -> bool:
        return (
            existing.text == entry.text
            and existing.alignment == entry.alignment
            and existing.priority == entry.priority
            and existing.tooltip == entry.tooltip
            and existing.on_click is entry.on_click
        )

    def items(self, alignment: Alignment) -> list[StatusBarItem]:
        """Items for one side of the bar, highest priority first."""
        return sorted(
            (item for item in self.list() if item.alignment == alignment),
            key=lambda item: item.priority,
            reverse=True,
        )
