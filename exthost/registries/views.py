"""View registry: side panels contributed by the host and extensions."""

from dataclasses import dataclass
from typing import Any

from exthost.registries.base import OwnedRegistry

DEFAULT_VIEW_ORDER = 100


@dataclass
class View:
    id: str
    title: str
    icon: Any = None
    component: Any = None
    order: int | None = DEFAULT_VIEW_ORDER
    owner: str | None = None


class ViewRegistry(OwnedRegistry[View]):
    kind = "view"

    def _identical(self, existing: View, entry: View) -> bool:
        return (
            existing.title == entry.title
            and existing.icon == entry.icon
            and existing.component is entry.component
            and existing.order == entry.order
        )

    def list(self) -> list[View]:
        """Views sorted ascending by order (missing order = 100)."""
        return sorted(
            super().list(),
            key=lambda v: v.order if v.order is not None else DEFAULT_VIEW_ORDER,
        )
