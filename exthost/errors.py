"""Error taxonomy of the extension host."""


class ExtensionHostError(Exception):
    """Base class for all extension host errors."""


class DiscoveryError(ExtensionHostError):
    """Host enumeration of installed extensions failed. Aborts load_all."""


class LoadError(ExtensionHostError):
    """Fetch, compile or activate failed for one extension. Never propagates out of load_all."""

    def __init__(self, extension: str, message: str) -> None:
        super().__init__(f"{extension}: {message}")
        self.extension = extension


class SandboxError(LoadError):
    """Extension source failed to compile or touched something outside its bindings."""


class HostCallError(ExtensionHostError):
    """A command forwarded to the host failed. Surfaced to extension code as-is."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"{command}: {message}")
        self.command = command
        self.message = message


class StreamProtocolError(ExtensionHostError):
    """Malformed payload on a model channel. Logged and dropped, never fatal to the stream."""


class ToolExecutionError(ExtensionHostError):
    """A tool handler failed. Reported to the chat stream and fed back to the model."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(message)
        self.tool = tool


class CommandNotFoundError(ExtensionHostError, KeyError):
    """commands.execute was called with an id that is not registered."""

    def __init__(self, command_id: str) -> None:
        super().__init__(f"Command not found: {command_id}")
        self.command_id = command_id

    def __str__(self) -> str:
        return self.args[0]
