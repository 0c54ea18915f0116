"""Host-wide persistent key-value settings store.

One store holds both the disabled-extension list and every extension's private
storage. Extension keys are namespaced as ``plugin:<extension>:<key>`` so two
extensions can never read or overwrite each other's values.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

logger = logging.getLogger(__name__)

DISABLED_EXTENSIONS_KEY = "extensions.disabled"
_TEMP_SUFFIX = ".tmp"


def plugin_key(extension_name: str, key: str) -> str:
    """Storage key for an extension-private value."""
    return f"plugin:{extension_name}:{key}"


@runtime_checkable
class SettingsStore(Protocol):
    """Persistent key-value store. Values must be plain data (YAML/JSON serializable)."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemorySettingsStore:
    """In-process store. Used by tests and by hosts that do not persist settings."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class YamlSettingsStore(MemorySettingsStore):
    """YAML file-backed store. Atomic writes via temp file + replace."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._temp_path = path.with_name(path.name + _TEMP_SUFFIX)
        super().__init__(self._load())

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Settings store %s unreadable, starting empty: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._temp_path.write_text(
            yaml.safe_dump(self._data, allow_unicode=True, sort_keys=True),
            encoding="utf-8",
        )
        self._temp_path.replace(self._path)

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self._save()

    def delete(self, key: str) -> None:
        if key in self._data:
            super().delete(key)
            self._save()


def read_disabled(store: SettingsStore) -> list[str]:
    """Persisted list of disabled extension names. Tolerates a corrupted value."""
    value = store.get(DISABLED_EXTENSIONS_KEY, [])
    if not isinstance(value, list):
        logger.warning("Ignoring malformed %s value: %r", DISABLED_EXTENSIONS_KEY, value)
        return []
    return [str(v) for v in value]


def write_disabled(store: SettingsStore, names: list[str]) -> None:
    store.set(DISABLED_EXTENSIONS_KEY, list(names))
