"""Replicated suggestion state exports."""

from . import crdt  # noqa: F401
from .crdt import PendingConnection, ReplicatedDocument  # noqa: F401
from .exceptions import MalformedDeltaError, ReentrantChangeError  # noqa: F401
from .store import ReplicatedStore, StoreState  # noqa: F401
