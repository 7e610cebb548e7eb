"""Domain-level exceptions for suggestions and their intents."""

from __future__ import annotations

from peerlink.domain.errors import PeerlinkError


class SuggestionError(PeerlinkError):
    """Base class for suggestion feature errors."""


class InvalidWeightsError(SuggestionError):
    reason = "invalid_weights"


class InvalidSuggestionTarget(SuggestionError):
    reason = "invalid_target"


class ConnectRequestFailed(SuggestionError):
    """Raised to the presentation layer when a connect request does not go through."""

    reason = "connect_failed"

    def __init__(self, reason: str | None = None, *, user_id: str | None = None) -> None:
        super().__init__(reason)
        self.user_id = user_id
