"""Durable key-value store contract used by the snapshot bridge."""

from __future__ import annotations

from typing import Optional, Protocol

from peerlink.domain.errors import PeerlinkError


class StoreError(PeerlinkError):
	"""Raised when the durable store rejects a read or write."""

	reason = "store_error"


class StoreCapacityExceeded(StoreError):
	"""Raised when a write fails because the store is full."""

	reason = "store_capacity_exceeded"


class KeyValueStore(Protocol):
	"""Storage contract for opaque snapshot strings."""

	async def get(self, key: str) -> Optional[str]:
		...

	async def set(self, key: str, value: str) -> None:
		...

	async def remove(self, key: str) -> None:
		...
