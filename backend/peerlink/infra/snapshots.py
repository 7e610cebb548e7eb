"""Durable snapshot bridge: persists serialized documents to a key-value store."""

from __future__ import annotations

import asyncio
from typing import Optional, Union

from peerlink.domain.replication import crdt
from peerlink.domain.replication.crdt import ReplicatedDocument
from peerlink.domain.replication.exceptions import MalformedDeltaError
from peerlink.infra.kv import KeyValueStore, StoreCapacityExceeded, StoreError
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink
from peerlink.settings import settings


def snapshot_key(user_id: str, *, prefix: Optional[str] = None) -> str:
	return f"{settings.snapshot_key_prefix if prefix is None else prefix}{user_id}"


class SnapshotBridge:
	"""Saves and restores document snapshots; never raises to its caller.

	A failed write is retried once after ``retry_delay`` seconds. When the
	failure was a capacity error the key is removed before the retry. A second
	failure is reported as ``snapshot.save_failed`` and swallowed: the in-memory
	document stays authoritative.
	"""

	def __init__(
		self,
		store: KeyValueStore,
		*,
		events: Optional[EventSink] = None,
		retry_delay: Optional[float] = None,
	) -> None:
		self._store = store
		self._events = events if events is not None else EventSink()
		self._retry_delay = float(settings.snapshot_retry_delay_seconds if retry_delay is None else retry_delay)
		self._pending: set[asyncio.Task] = set()
		# Writes land in the order they were requested.
		self._lock = asyncio.Lock()

	@property
	def pending(self) -> int:
		return len(self._pending)

	async def save(self, key: str, data: Union[bytes, str]) -> bool:
		value = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
		async with self._lock:
			try:
				await self._store.set(key, value)
			except StoreError as exc:
				obs_metrics.inc_snapshot_write("retry")
				self._events.warning("snapshot.save_retry", error=exc, key=key, reason=exc.reason)
				return await self._retry(key, value, capacity=isinstance(exc, StoreCapacityExceeded))
		obs_metrics.inc_snapshot_write("ok")
		return True

	def schedule_save(self, key: str, data: Union[bytes, str]) -> asyncio.Task:
		"""Fire-and-forget save; ``drain`` awaits whatever is still in flight."""
		task = asyncio.create_task(self.save(key, data), name=f"snapshot-save:{key}")
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)
		return task

	async def drain(self) -> None:
		while self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)

	async def load_bytes(self, key: str) -> Optional[bytes]:
		try:
			value = await self._store.get(key)
		except StoreError as exc:
			obs_metrics.inc_snapshot_load("failed")
			self._events.warning("snapshot.load_failed", error=exc, key=key)
			return None
		if value is None:
			obs_metrics.inc_snapshot_load("missing")
			return None
		return value.encode("utf-8") if isinstance(value, str) else bytes(value)

	async def load(self, key: str) -> ReplicatedDocument:
		"""Restore a document; the empty document when absent or unreadable."""
		data = await self.load_bytes(key)
		if data is None:
			return crdt.empty_document()
		try:
			document = crdt.deserialize(data)
		except MalformedDeltaError as exc:
			obs_metrics.inc_snapshot_load("corrupt")
			self._events.warning("snapshot.corrupt", error=exc, key=key)
			return crdt.empty_document()
		obs_metrics.inc_snapshot_load("ok")
		return document

	async def _retry(self, key: str, value: str, *, capacity: bool) -> bool:
		await asyncio.sleep(self._retry_delay)
		try:
			if capacity:
				await self._store.remove(key)
			await self._store.set(key, value)
		except StoreError as exc:
			obs_metrics.inc_snapshot_write("failed")
			self._events.error("snapshot.save_failed", error=exc, key=key, reason=exc.reason)
			return False
		obs_metrics.inc_snapshot_write("ok")
		return True
