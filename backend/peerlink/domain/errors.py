"""Root of the peerlink exception hierarchy."""

from __future__ import annotations


class PeerlinkError(Exception):
    """Base class for peerlink errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason
