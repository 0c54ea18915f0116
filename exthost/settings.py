"""Host settings: built-in defaults overlaid with config/settings.yaml.

EXTHOST_CONFIG_DIR overrides the config directory.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "EXTHOST_CONFIG_DIR"
_DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


_DEFAULTS: dict[str, Any] = {
    "extensions": {
        "builtin_dir": "sandbox/extensions",
        "user_dir": "~/.exthost/extensions",
        # Modules extension code may import. Everything else is reachable only through the API.
        "allowed_imports": [
            "collections",
            "dataclasses",
            "datetime",
            "enum",
            "functools",
            "itertools",
            "json",
            "math",
            "re",
            "string",
            "textwrap",
            "typing",
        ],
    },
    "workspace": {
        "root": ".",
    },
    "storage": {
        "path": "sandbox/data/settings.yaml",
    },
    "llm": {
        "base_url": None,
        "model": "gpt-4o",
        "api_key_secret": "OPENAI_API_KEY",
        "timeout": 60.0,
    },
    "system": {
        "exec_timeout": 60,
    },
    "logging": {
        "file": "sandbox/logs/exthost.log",
        "level": "INFO",
        "log_to_console": False,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

_cached: dict[str, Any] | None = None


def _overlay(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Apply overrides onto base in place. Nested sections merge; lists and scalars replace; None keeps the default."""
    for key, value in overrides.items():
        if value is None:
            continue
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _overlay(current, value)
        else:
            base[key] = value
    return base


def get_default_settings() -> dict[str, Any]:
    """Independent copy of the built-in defaults."""
    return copy.deepcopy(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'extensions.builtin_dir')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def allowed_imports(settings: dict[str, Any]) -> list[str]:
    """Module names extension code may import, deduplicated, in configured order."""
    names = get_setting(settings, "extensions.allowed_imports") or []
    return list(dict.fromkeys(str(n).strip() for n in names if str(n).strip()))


def reload_settings() -> None:
    """Forget the cached settings; the next load_settings() reads the file again."""
    global _cached
    _cached = None


def _resolve_config_dir(config_dir: Path | None) -> Path:
    if config_dir is not None:
        return config_dir
    from_env = os.environ.get(CONFIG_DIR_ENV)
    return Path(from_env).expanduser() if from_env else _DEFAULT_CONFIG_DIR


def load_settings(config_dir: Path | None = None) -> dict[str, Any]:
    """Defaults overlaid with <config_dir>/settings.yaml. Cached after the first call.

    A missing file means defaults only. An unreadable or malformed file is
    logged and ignored so the host still starts.
    """
    global _cached
    if _cached is not None:
        return _cached

    path = _resolve_config_dir(config_dir) / "settings.yaml"
    result = get_default_settings()
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        else:
            if isinstance(data, dict):
                _overlay(result, data)
            elif data is not None:
                logger.warning("Ignoring settings file %s: top level must be a mapping", path)

    _cached = result
    return result
