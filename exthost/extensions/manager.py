"""Extension manager: discover, load, activate, unload, enable and disable extensions."""

import inspect
import logging
import types
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from exthost.errors import DiscoveryError, LoadError
from exthost.extensions.api import ExtensionAPI, build_extension_api
from exthost.extensions.context import HostContext
from exthost.extensions.contributions import FileMenuEntry
from exthost.extensions.manifest import ExtensionManifest, parse_manifest
from exthost.host.protocol import Disposer, call_disposer
from exthost.logging_config import extension_logger
from exthost.registries import ListenerSet
from exthost.store import read_disabled, write_disabled

logger = logging.getLogger(__name__)

# Raised by extension code, these must not end the host; asyncio.CancelledError is left alone.
EXTENSION_EXIT_EXCEPTIONS = (SystemExit, KeyboardInterrupt, GeneratorExit)


class ExtensionState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    ACTIVE = "active"
    UNLOADING = "unloading"
    ERROR = "error"


@dataclass
class LoadedExtension:
    manifest: ExtensionManifest
    api: ExtensionAPI | None = None
    module: types.ModuleType | None = None
    subscriptions: list[Disposer] = field(default_factory=list)


class ExtensionManager:
    """Extension lifecycle: list -> validate -> sandbox -> activate; unload retires everything.

    Loading is sequential in discovery order. One extension failing to load is
    logged, reported through the shell notification and isolated from the rest.
    """

    def __init__(self, context: HostContext) -> None:
        self._context = context
        self._manifests: dict[str, ExtensionManifest] = {}
        self._loaded: dict[str, LoadedExtension] = {}
        self._state: dict[str, ExtensionState] = {}
        self._listeners = ListenerSet()

    @property
    def context(self) -> HostContext:
        return self._context

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Called (no payload) after load_all, disable, uninstall."""
        return self._listeners.subscribe(listener)

    def _report(self, message: str) -> None:
        self._context.notify(message)

    async def load_all(self) -> None:
        """Full rescan: unload everything, then load every enabled extension the host lists."""
        disabled = set(read_disabled(self._context.store))
        try:
            entries = await self._context.host.invoke("list_plugins")
            if not isinstance(entries, list):
                raise TypeError(f"list_plugins returned {type(entries).__name__}")
        except Exception as e:
            logger.exception("Extension discovery failed: %s", e)
            await self._unload_all()
            self._manifests.clear()
            self._state.clear()
            self._report(f"Failed to initialize extension system: {e}")
            self._listeners.notify()
            raise DiscoveryError(str(e)) from e

        await self._unload_all()
        self._manifests.clear()
        self._state.clear()

        for entry in entries:
            manifest = self._validate(entry)
            if manifest is None:
                continue
            if manifest.name in self._manifests:
                logger.warning(
                    "Duplicate extension name %s at %s, keeping %s",
                    manifest.name,
                    manifest.install_path,
                    self._manifests[manifest.name].install_path,
                )
                continue
            self._manifests[manifest.name] = manifest
            self._state[manifest.name] = ExtensionState.UNLOADED
            if manifest.name in disabled:
                logger.info("Extension %s is disabled", manifest.name)
                continue
            try:
                await self._load_one(manifest)
            except LoadError as e:
                self._state[manifest.name] = ExtensionState.ERROR
                extension_logger(manifest.name).exception("Failed to load: %s", e)
                self._report(f"Extension '{manifest.name}' failed to load: {e}")
        self._listeners.notify()

    def _validate(self, entry: Any) -> ExtensionManifest | None:
        try:
            install_path, data, is_builtin = entry
            return parse_manifest(data, install_path, is_builtin)
        except (TypeError, ValueError, ValidationError) as e:
            logger.warning("Invalid extension manifest %r: %s", entry, e)
            self._report(f"Invalid extension manifest: {e}")
            return None

    def _track(self, loaded: LoadedExtension) -> Callable[[Disposer], Callable[[], None]]:
        def track(disposer: Disposer) -> Callable[[], None]:
            loaded.subscriptions.append(disposer)

            def untrack() -> None:
                loaded.subscriptions[:] = [d for d in loaded.subscriptions if d is not disposer]

            return untrack

        return track

    async def _load_one(self, manifest: ExtensionManifest) -> None:
        """Sandbox the entry module and activate it. Raises LoadError."""
        name = manifest.name
        context = self._context
        self._state[name] = ExtensionState.LOADING
        # Registered before activation so partial contributions are retired on unload.
        loaded = self._loaded[name] = LoadedExtension(manifest)
        try:
            context.contributions.handle_declarations(manifest)
            handle = context.contributions.get_handle(name)
            loaded.api = build_extension_api(manifest, handle, context, self._track(loaded))
            entry_path = str(manifest.entry_path)
            source = await context.host.invoke("read_plugin_file", {"path": entry_path})
            ui, icons = context.shell.ui_bindings, context.shell.icons
            loaded.module = context.sandbox.run(
                source,
                entry_path,
                {"api": loaded.api, "ui": ui, "icons": icons},
                extension=name,
            )
            activate = getattr(loaded.module, "activate", None)
            if callable(activate):
                result = activate(loaded.api, ui, icons)
                if inspect.isawaitable(result):
                    await result
        except LoadError:
            raise
        except EXTENSION_EXIT_EXCEPTIONS as e:
            raise LoadError(name, f"{type(e).__name__} raised during load: {e}") from e
        except Exception as e:
            raise LoadError(name, str(e) or type(e).__name__) from e
        self._state[name] = ExtensionState.ACTIVE
        logger.info("Loaded extension %s %s", name, manifest.version)

    async def unload_plugin(self, name: str, keep_manifest: bool = False) -> None:
        """Deactivate, dispose subscriptions and retire contributions of one extension."""
        loaded = self._loaded.get(name)
        if name in self._state:
            self._state[name] = ExtensionState.UNLOADING
        if loaded is not None and loaded.module is not None:
            deactivate = getattr(loaded.module, "deactivate", None)
            if callable(deactivate):
                try:
                    result = deactivate()
                    if inspect.isawaitable(result):
                        await result
                except (Exception, *EXTENSION_EXIT_EXCEPTIONS) as e:
                    extension_logger(name).exception("deactivate failed: %r", e)
        if loaded is not None:
            for disposer in list(loaded.subscriptions):
                try:
                    await call_disposer(disposer)
                except Exception as e:
                    extension_logger(name).exception("Failed to dispose subscription: %s", e)
            loaded.subscriptions.clear()
        self._context.contributions.teardown(name)
        self._loaded.pop(name, None)
        if keep_manifest and name in self._manifests:
            self._state[name] = ExtensionState.UNLOADED
        else:
            self._manifests.pop(name, None)
            self._state.pop(name, None)

    async def _unload_all(self) -> None:
        for name in reversed(list(self._loaded)):
            await self.unload_plugin(name, keep_manifest=True)

    async def enable_plugin(self, name: str) -> None:
        disabled = read_disabled(self._context.store)
        write_disabled(self._context.store, [n for n in disabled if n != name])
        await self.load_all()

    async def disable_plugin(self, name: str) -> None:
        await self.unload_plugin(name, keep_manifest=True)
        disabled = read_disabled(self._context.store)
        if name not in disabled:
            disabled.append(name)
            write_disabled(self._context.store, disabled)
        self._listeners.notify()

    async def uninstall_plugin(self, name: str) -> None:
        """Unload a user-installed extension and delete it from disk. Built-ins are refused."""
        manifest = self._manifests.get(name)
        if manifest is None:
            raise KeyError(f"Unknown extension: {name}")
        if manifest.is_builtin:
            raise PermissionError(f"Built-in extension '{name}' cannot be uninstalled")
        await self.unload_plugin(name)
        await self._context.host.invoke("delete_plugin", {"path": manifest.install_path})
        disabled = read_disabled(self._context.store)
        if name in disabled:
            write_disabled(self._context.store, [n for n in disabled if n != name])
        logger.info("Uninstalled extension %s", name)
        self._listeners.notify()

    def get_loaded_plugins(self) -> list[dict[str, Any]]:
        """Every known manifest with id = name and derived enabled flag, disabled ones included."""
        disabled = set(read_disabled(self._context.store))
        return [m.to_record(enabled=m.name not in disabled) for m in self._manifests.values()]

    def get_state(self, name: str) -> ExtensionState:
        return self._state.get(name, ExtensionState.UNLOADED)

    def get_module(self, name: str) -> types.ModuleType | None:
        loaded = self._loaded.get(name)
        return loaded.module if loaded else None

    def get_file_menu_entries(self) -> list[FileMenuEntry]:
        return self._context.contributions.list_file_menu_entries()

    async def shutdown(self) -> None:
        """Unload every extension, last loaded first."""
        await self._unload_all()
        logger.info("Extension manager shut down")
