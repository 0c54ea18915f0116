"""Workspace file commands. Every path is confined to the workspace root."""

import fnmatch
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_ACCESS_DENIED_MSG = "Access denied: path is outside the workspace."


class Workspace:
    """read_file / write_file / fs_stat / read_dir / fs_find_files over one root directory."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str) -> Path:
        """Resolve path relative to the workspace root. Rejects anything outside it."""
        candidate = Path(path).expanduser()
        target = candidate if candidate.is_absolute() else (self.root / candidate)
        target = target.resolve()
        try:
            target.relative_to(self.root)
        except ValueError:
            raise PermissionError(f"{_ACCESS_DENIED_MSG} Path: {path}") from None
        return target

    def relative(self, path: Path) -> str:
        return path.resolve().relative_to(self.root).as_posix()

    async def read_file(self, path: str) -> str:
        return self.resolve(path).read_text(encoding="utf-8")

    async def write_file(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    async def stat(self, path: str) -> dict[str, Any]:
        target = self.resolve(path)
        info = target.lstat()
        if target.is_symlink():
            file_type = "symlink"
        elif target.is_dir():
            file_type = "dir"
        elif target.is_file():
            file_type = "file"
        else:
            file_type = "unknown"
        return {"file_type": file_type, "size": info.st_size, "mtime": int(info.st_mtime)}

    async def read_dir(self, path: str) -> list[dict[str, Any]]:
        """Directory entries, directories first, then by name."""
        target = self.resolve(path)
        entries = [
            {"name": p.name, "path": self.relative(p), "is_dir": p.is_dir()}
            for p in target.iterdir()
        ]
        return sorted(entries, key=lambda e: (not e["is_dir"], e["name"]))

    async def find_files(
        self, base_dir: str, include: str, exclude: str | None = None
    ) -> list[str]:
        """Workspace-relative paths of files under base_dir matching include (glob)."""
        base = self.resolve(base_dir)
        found: list[str] = []
        for p in sorted(base.glob(include)):
            if not p.is_file():
                continue
            rel = self.relative(p)
            if exclude and (
                fnmatch.fnmatch(rel, exclude) or fnmatch.fnmatch(p.name, exclude)
            ):
                continue
            found.append(rel)
        return found
