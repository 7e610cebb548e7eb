"""Sync session exports."""

from .channel import Channel, ChannelEvent, ChannelEventKind  # noqa: F401
from .session import SessionState, SyncSession  # noqa: F401
