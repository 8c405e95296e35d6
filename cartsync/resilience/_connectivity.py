"""
Connectivity signal.
"""

from __future__ import annotations

from typing import Protocol


class Connectivity(Protocol):
    def is_online(self) -> bool: ...


class AlwaysOnline:
    """Default when the runtime exposes no connectivity signal."""

    def is_online(self) -> bool:
        return True


class ManualConnectivity:
    """Connectivity flipped by the host application (or a test)."""

    def __init__(self, online: bool = True) -> None:
        self._online = online

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        self._online = online


OFFLINE_MESSAGE = "You appear to be offline. Some features may be limited until connection is restored."


__all__ = (
    "Connectivity",
    "AlwaysOnline",
    "ManualConnectivity",
    "OFFLINE_MESSAGE",
)
