"""Extension host: loads, sandboxes and retires extensions; chat agent streaming protocol."""

__version__ = "0.1.0"
