"""Entry point for the headless extension host: settings, logging, host, manager; waits for shutdown."""

import asyncio
import logging
import signal
from pathlib import Path

from dotenv import load_dotenv

from exthost.extensions import ExtensionManager, HostContext, ScriptSandbox, ShellCallbacks
from exthost.host import LocalHost
from exthost.logging_config import setup_logging
from exthost.registries import Command
from exthost.settings import allowed_imports, get_setting, load_settings
from exthost.store import YamlSettingsStore

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _project_path(value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else _PROJECT_ROOT / path


def _build_host(settings: dict) -> LocalHost:
    user_dir = get_setting(settings, "extensions.user_dir")
    return LocalHost(
        workspace_root=_project_path(get_setting(settings, "workspace.root", ".")),
        builtin_dir=_project_path(get_setting(settings, "extensions.builtin_dir", "sandbox/extensions")),
        user_dir=_project_path(user_dir) if user_dir else None,
        settings=settings,
    )


def _headless_shell() -> ShellCallbacks:
    """Shell callbacks without a UI: tabs and notifications go to the log."""
    shell_logger = logging.getLogger("exthost.shell")
    return ShellCallbacks(
        notify=lambda message: shell_logger.warning("%s", message),
        open_tab=lambda tab_id, title, component: shell_logger.info("Open tab %s (%s)", tab_id, title),
        close_tab=lambda tab_id: shell_logger.info("Close tab %s", tab_id),
    )


def _register_host_commands(manager: ExtensionManager) -> None:
    commands = manager.context.commands
    commands.register(
        Command(
            id="extensions.reload",
            title="Reload Extensions",
            category="Extensions",
            callback=manager.load_all,
        )
    )
    commands.register(
        Command(
            id="extensions.list",
            title="List Extensions",
            category="Extensions",
            callback=manager.get_loaded_plugins,
        )
    )


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handler for %s not supported here", sig)


async def main_async() -> None:
    """Bootstrap: settings -> logging -> host -> context -> load extensions -> wait for shutdown."""
    settings = load_settings()
    setup_logging(_PROJECT_ROOT, settings)
    host = _build_host(settings)
    store = YamlSettingsStore(_project_path(get_setting(settings, "storage.path", "sandbox/data/settings.yaml")))
    context = HostContext(
        host,
        store=store,
        shell=_headless_shell(),
        sandbox=ScriptSandbox(allowed_imports(settings)),
    )
    manager = ExtensionManager(context)
    _register_host_commands(manager)
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)
    try:
        await manager.load_all()
        logger.info(
            "Extension host ready: %d extension(s), %d command(s)",
            len(manager.get_loaded_plugins()),
            len(context.commands.list()),
        )
        await shutdown_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await manager.shutdown()
        await host.close()


def main() -> None:
    """Synchronous entry for the extension host process."""
    load_dotenv(_PROJECT_ROOT / ".env")
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass


__all__ = ["main"]
