"""Extension package discovery on disk: built-in and user extension directories."""

import logging
import shutil
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("manifest.yaml", "manifest.json")


def find_manifest(directory: Path) -> Path | None:
    for name in MANIFEST_FILES:
        path = directory / name
        if path.exists():
            return path
    return None


def read_manifest_data(path: Path) -> dict[str, Any]:
    """Parse a manifest file (YAML; JSON is accepted as a YAML subset)."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be an object: {path}")
    return data


class PluginDirectory:
    """list_plugins / read_plugin_file / delete_plugin."""

    def __init__(self, builtin_dir: Path, user_dir: Path | None = None) -> None:
        self._builtin_dir = builtin_dir.resolve()
        self._user_dir = user_dir.expanduser().resolve() if user_dir else None

    def _roots(self) -> list[tuple[Path, bool]]:
        roots = [(self._builtin_dir, True)]
        if self._user_dir is not None and self._user_dir != self._builtin_dir:
            roots.append((self._user_dir, False))
        return roots

    async def list_plugins(self) -> list[list[Any]]:
        """[install_path, raw manifest, is_builtin] triples; built-ins first, then by directory."""
        found: list[list[Any]] = []
        for root, is_builtin in self._roots():
            if not root.is_dir():
                continue
            for d in sorted(root.iterdir()):
                if not d.is_dir():
                    continue
                manifest_path = find_manifest(d)
                if manifest_path is None:
                    continue
                try:
                    data = read_manifest_data(manifest_path)
                except (yaml.YAMLError, ValueError, OSError) as e:
                    logger.warning("Skipping unreadable manifest %s: %s", manifest_path, e)
                    continue
                found.append([str(d), data, is_builtin])
        return found

    def _inside(self, path: Path, roots: list[Path]) -> bool:
        for root in roots:
            try:
                path.relative_to(root)
                return True
            except ValueError:
                continue
        return False

    async def read_plugin_file(self, path: str) -> str:
        target = Path(path).expanduser().resolve()
        if not self._inside(target, [root for root, _ in self._roots()]):
            raise PermissionError(f"Not inside an extension directory: {path}")
        return target.read_text(encoding="utf-8")

    async def delete_plugin(self, path: str) -> None:
        """Remove a user-installed extension directory. Built-ins cannot be deleted."""
        target = Path(path).expanduser().resolve()
        if self._user_dir is None or target == self._user_dir or not self._inside(
            target, [self._user_dir]
        ):
            raise PermissionError(f"Only user-installed extensions can be deleted: {path}")
        shutil.rmtree(target)
        logger.info("Deleted extension directory %s", target)
