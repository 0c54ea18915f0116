"""Account (authentication) provider registry."""

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from exthost.registries.base import OwnedRegistry


@dataclass
class AuthProvider:
    id: str
    label: str
    on_login: Callable[[], Awaitable[Any]]
    on_logout: Callable[[], Awaitable[Any]]
    account_name: str | None = None
    owner: str | None = None


class AuthRegistry(OwnedRegistry[AuthProvider]):
    kind = "auth provider"

    def _identical(self, existing: AuthProvider, entry: AuthProvider) -> bool:
        return (
            existing.label == entry.label
            and existing.account_name == entry.account_name
            and existing.on_login is entry.on_login
            and existing.on_logout is entry.on_logout
        )

    def update_account(self, provider_id: str, account_name: str | None) -> None:
        """Set the signed-in account label shown for a provider."""
        existing = self.get(provider_id)
        if existing is None:
            return
        self.register(replace(existing, account_name=account_name))
