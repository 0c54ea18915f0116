"""Extension lifecycle: manifests, sandbox, capability API, contributions and the manager."""

from exthost.extensions.api import ExtensionAPI, build_extension_api
from exthost.extensions.context import HostContext, ShellCallbacks
from exthost.extensions.contributions import ContributionRegistry, FileMenuEntry, ResourceHandle
from exthost.extensions.manager import ExtensionManager, ExtensionState, LoadedExtension
from exthost.extensions.manifest import ExtensionManifest, load_manifest, parse_manifest
from exthost.extensions.sandbox import ScriptSandbox

__all__ = [
    "ContributionRegistry",
    "ExtensionAPI",
    "ExtensionManager",
    "ExtensionManifest",
    "ExtensionState",
    "FileMenuEntry",
    "HostContext",
    "LoadedExtension",
    "ResourceHandle",
    "ScriptSandbox",
    "ShellCallbacks",
    "build_extension_api",
    "load_manifest",
    "parse_manifest",
]
