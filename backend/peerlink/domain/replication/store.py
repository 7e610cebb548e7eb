"""Replicated state store owning one document id for this process."""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional, Union

from peerlink.domain.replication import crdt
from peerlink.domain.replication.crdt import Mutator, ReplicatedDocument
from peerlink.domain.replication.exceptions import MalformedDeltaError, ReentrantChangeError
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink

Delta = Union[bytes, bytearray, str]


class StoreState(str, Enum):
	UNINITIALIZED = "uninitialized"
	LOCAL = "local"
	MERGING = "merging"


class ReplicatedStore:
	"""Holds the current document and applies local changes and remote deltas.

	All calls happen on the event loop thread; ``change``/``merge`` are
	synchronous. Calling either from inside a running mutator raises
	``ReentrantChangeError`` and leaves the document untouched.
	"""

	def __init__(
		self,
		actor_id: str,
		document: Optional[ReplicatedDocument] = None,
		*,
		events: Optional[EventSink] = None,
		clock: Callable[[], int] = crdt.now_ms,
	) -> None:
		if not actor_id:
			raise ValueError("actor_id is required")
		self.actor_id = actor_id
		self._document = document
		self._events = events if events is not None else EventSink()
		self._clock = clock
		self._busy = False
		self._state = StoreState.LOCAL if document is not None else StoreState.UNINITIALIZED

	@property
	def state(self) -> StoreState:
		return self._state

	@property
	def document(self) -> ReplicatedDocument:
		"""Current document; an empty one when nothing has happened yet."""
		return self._document if self._document is not None else crdt.empty_document()

	def initialize(self, document: Optional[ReplicatedDocument] = None) -> ReplicatedDocument:
		with self._guard():
			if self._document is None:
				self._document = document or crdt.empty_document()
			elif document is not None:
				self._document = crdt.join(self._document, document)
			self._state = StoreState.LOCAL
			return self._document

	def change(self, mutator: Mutator) -> tuple[ReplicatedDocument, Optional[bytes]]:
		"""Apply a local mutation atomically and return ``(document, delta)``."""
		with self._guard():
			base = self.document
			document, delta = crdt.apply_change(base, self.actor_id, mutator, clock=self._clock)
			self._document = document
			self._state = StoreState.LOCAL
		if delta is not None:
			obs_metrics.inc_replica_change()
		return document, delta

	def merge(self, delta: Delta) -> bool:
		"""Merge one remote delta. Returns True when the document changed.

		Malformed deltas are dropped and reported; the document is left as is.
		"""
		with self._guard():
			return self._merge_one(delta)

	def merge_many(self, deltas: Iterable[Delta]) -> bool:
		"""Merge deltas one by one in receipt order."""
		changed = False
		with self._guard():
			self._state = StoreState.MERGING
			try:
				for delta in deltas:
					changed = self._merge_one(delta) or changed
			finally:
				self._state = StoreState.LOCAL if self._document is not None else StoreState.UNINITIALIZED
		return changed

	def serialize(self) -> bytes:
		return crdt.serialize(self.document)

	def _merge_one(self, delta: Delta) -> bool:
		base = self.document
		try:
			merged = crdt.merge(base, delta)
		except MalformedDeltaError as exc:
			obs_metrics.inc_merge("rejected")
			self._events.warning("merge.rejected", error=exc, actor_id=self.actor_id)
			return False
		self._document = merged
		if self._state is StoreState.UNINITIALIZED:
			self._state = StoreState.LOCAL
		if merged == base:
			obs_metrics.inc_merge("duplicate")
			return False
		obs_metrics.inc_merge("applied")
		return True

	@contextmanager
	def _guard(self) -> Iterator[None]:
		if self._busy:
			raise ReentrantChangeError()
		self._busy = True
		try:
			yield
		finally:
			self._busy = False
