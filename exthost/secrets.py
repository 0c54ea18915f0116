"""Credentials for the model backend (llm_chat API keys).

Lookup order: OS keyring under the ``exthost`` service, then the process
environment (which includes anything loaded from ``.env``).
"""

import asyncio
import logging
import os

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)
SERVICE_NAME = "exthost"


def is_keyring_available() -> bool:
    """False when only keyring's fail backend is installed (headless CI, containers)."""
    try:
        return not isinstance(keyring.get_keyring(), FailKeyring)
    except KeyringError:
        return False


def _from_keyring(name: str) -> str | None:
    try:
        return keyring.get_password(SERVICE_NAME, name) or None
    except KeyringError as e:
        logger.debug("Keyring lookup for %s failed (%s); using environment", name, e)
        return None


def get_secret(name: str) -> str | None:
    return _from_keyring(name) or os.environ.get(name)


async def get_secret_async(name: str) -> str | None:
    """get_secret with the keyring call moved off the event loop."""
    return await asyncio.to_thread(_from_keyring, name) or os.environ.get(name)


def set_secret(name: str, value: str) -> None:
    """Store in the OS keyring. Raises KeyringError when no backend can store it."""
    keyring.set_password(SERVICE_NAME, name, value)


def delete_secret(name: str) -> bool:
    """Remove from the keyring. Returns False when nothing was stored."""
    try:
        keyring.delete_password(SERVICE_NAME, name)
    except PasswordDeleteError:
        return False
    return True
