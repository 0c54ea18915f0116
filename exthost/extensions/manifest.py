"""Extension manifest: Pydantic model and YAML loader.

Manifests live next to the entry module as manifest.yaml (or manifest.json, which
the YAML loader parses as well). ``install_path`` and ``is_builtin`` are not read
from the file; discovery fills them in.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ViewDeclaration(BaseModel):
    """Declarative chat-panel view (contributes.views)."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    icon: str | None = None


class Contributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    views: list[ViewDeclaration] = Field(default_factory=list)


class ExtensionManifest(BaseModel):
    """Manifest schema for <extensions_dir>/<name>/manifest.yaml."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = "0.0.0"
    author: str = ""
    entry: str
    description: str = ""
    icon: str | None = None
    install_path: str = ""
    is_builtin: bool = False
    contributes: Contributes = Field(default_factory=Contributes)

    @field_validator("name", "entry")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def entry_path(self) -> Path:
        """Entry module resolved against the install directory."""
        return Path(self.install_path) / self.entry

    def to_record(self, enabled: bool) -> dict[str, Any]:
        """Plain-data view for the extension management UI (id = name)."""
        record = self.model_dump()
        record["id"] = self.name
        record["enabled"] = enabled
        return record


def parse_manifest(
    data: Any, install_path: str | Path = "", is_builtin: bool = False
) -> ExtensionManifest:
    """Validate raw manifest data. Raises ValueError / pydantic.ValidationError."""
    if not isinstance(data, dict):
        raise ValueError("Manifest must be an object")
    return ExtensionManifest.model_validate(
        {**data, "install_path": str(install_path), "is_builtin": bool(is_builtin)}
    )


def load_manifest(path: Path, is_builtin: bool = False) -> ExtensionManifest:
    """Read and validate a manifest file. Raises on invalid YAML or validation error."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a YAML object: {path}")
    return parse_manifest(data, path.parent, is_builtin)
