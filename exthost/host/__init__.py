"""Boundary to the privileged host: command forwarding and event subscription."""

from exthost.host.events import EventHub
from exthost.host.local import LocalHost
from exthost.host.protocol import Disposer, EventHandler, HostBridge, call_disposer

__all__ = [
    "Disposer",
    "EventHandler",
    "EventHub",
    "HostBridge",
    "LocalHost",
    "call_disposer",
]
