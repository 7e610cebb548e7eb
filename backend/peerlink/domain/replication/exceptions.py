"""Exceptions raised by the replicated state store."""

from __future__ import annotations

from peerlink.domain.errors import PeerlinkError


class ReplicationError(PeerlinkError):
    """Base class for replication errors."""


class MalformedDeltaError(ReplicationError):
    reason = "malformed_delta"


class ReentrantChangeError(ReplicationError):
    """Raised when change/merge is invoked from inside a running mutator."""

    reason = "reentrant_change"


class InvalidMutationError(ReplicationError):
    reason = "invalid_mutation"
