"""People-you-may-know service: ranking over replicated suggestion state."""

from __future__ import annotations

import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from peerlink.domain.replication.backend import DisabledReplicationBackend, ReplicationBackend
from peerlink.domain.replication.crdt import DocumentDraft, ReplicatedDocument
from peerlink.domain.replication.store import ReplicatedStore
from peerlink.domain.suggestions import cards as suggestion_cards
from peerlink.domain.suggestions import ranker
from peerlink.domain.suggestions.cards import DebugSummary, SuggestionCard
from peerlink.domain.suggestions.exceptions import ConnectRequestFailed, InvalidSuggestionTarget
from peerlink.domain.suggestions.gateway import ConnectGateway, SimulatedConnectGateway
from peerlink.domain.suggestions.models import (
	DEFAULT_RANKING_WEIGHTS,
	ConnectionEdge,
	RankingWeights,
	ScoredCandidate,
	User,
	utcnow,
)
from peerlink.infra.snapshots import SnapshotBridge
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink
from peerlink.settings import settings

SuggestionsListener = Callable[[list[ScoredCandidate]], Union[Awaitable[None], None]]


def document_id(user_id: str) -> str:
	return f"suggestions_{user_id}"


def _to_ms(moment: datetime) -> int:
	return int(moment.timestamp() * 1000)


class SuggestionService:
	"""Owns the replicated store for one user and turns intents into changes.

	Every local change is applied to the store, persisted through the snapshot
	bridge and published through the replication backend. Remote changes are
	persisted too. Subscribers get the re-ranked list after either.
	"""

	def __init__(
		self,
		current_user: User,
		users: Sequence[User],
		connections: Sequence[ConnectionEdge],
		*,
		store: ReplicatedStore,
		snapshots: Optional[SnapshotBridge] = None,
		snapshot_key: Optional[str] = None,
		backend: Optional[ReplicationBackend] = None,
		gateway: Optional[ConnectGateway] = None,
		weights: RankingWeights = DEFAULT_RANKING_WEIGHTS,
		limit: Any = None,
		events: Optional[EventSink] = None,
		clock: Callable[[], datetime] = utcnow,
	) -> None:
		self.current_user = current_user
		self.users = list(users)
		self.connections = list(connections)
		self.store = store
		self.weights = weights
		self.limit = ranker.clamp_limit(settings.default_suggestion_limit if limit is None else limit)
		self._snapshots = snapshots
		self._snapshot_key = snapshot_key
		self._backend: ReplicationBackend = backend or DisabledReplicationBackend()
		self._gateway: ConnectGateway = gateway or SimulatedConnectGateway()
		self._events = events if events is not None else EventSink()
		self._clock = clock
		self._listeners: list[SuggestionsListener] = []
		self._backend.add_listener(self._on_remote_change)

	@property
	def doc_id(self) -> str:
		return document_id(self.current_user.id)

	@property
	def sync_enabled(self) -> bool:
		return self._backend.enabled

	@property
	def document(self) -> ReplicatedDocument:
		return self.store.document

	async def start(self) -> None:
		await self._backend.start()

	async def close(self) -> None:
		"""Stop syncing and wait for in-flight snapshot writes."""
		await self._backend.stop()
		if self._snapshots is not None:
			await self._snapshots.drain()

	def suggestions(self) -> list[ScoredCandidate]:
		return ranker.rank(
			self.users,
			self.current_user,
			self.connections,
			self.store.document.dismissed_user_ids,
			self.weights,
			self.limit,
			now=self._clock(),
			events=self._events,
		)

	def cards(self) -> list[SuggestionCard]:
		now = self._clock()
		return [
			suggestion_cards.build_card(candidate, self.current_user, self.connections, now=now)
			for candidate in self.suggestions()
		]

	def subscribe(self, listener: SuggestionsListener) -> Callable[[], None]:
		"""Register for re-ranked suggestions; returns an unsubscribe callable."""
		self._listeners.append(listener)

		def _unsubscribe() -> None:
			if listener in self._listeners:
				self._listeners.remove(listener)

		return _unsubscribe

	async def dismiss(self, user_id: str) -> bool:
		"""Hide ``user_id`` from suggestions on every replica. Returns True when newly dismissed."""
		if not isinstance(user_id, str) or not user_id.strip():
			raise InvalidSuggestionTarget("invalid_user_id")
		if self.store.document.is_dismissed(user_id):
			return False
		stamp = _to_ms(self._clock())

		def _mutate(draft: DocumentDraft) -> None:
			draft.dismiss(user_id)
			draft.touch(stamp)

		_, delta = self.store.change(_mutate)
		self._events.info("suggestion.dismissed", user_id=user_id)
		await self._after_local_change(delta)
		return True

	async def connect(self, user: User) -> None:
		"""Send a connection request and record it as pending.

		Raises ``ConnectRequestFailed`` when the request does not go through;
		nothing is recorded in that case.
		"""
		if not isinstance(user, User) or not user.id or not user.name:
			raise InvalidSuggestionTarget("invalid_user")
		self._events.info("connect.requested", user_id=user.id)
		try:
			await self._gateway.request(user)
		except ConnectRequestFailed as exc:
			obs_metrics.inc_connect_request("failed")
			self._events.warning("connect.failed", error=exc, user_id=user.id, reason=exc.reason)
			raise
		except Exception as exc:
			obs_metrics.inc_connect_request("failed")
			self._events.warning("connect.failed", error=exc, user_id=user.id, reason="unexpected")
			raise ConnectRequestFailed("unexpected", user_id=user.id) from exc
		obs_metrics.inc_connect_request("ok")
		stamp = _to_ms(self._clock())

		def _mutate(draft: DocumentDraft) -> None:
			draft.add_pending_connection(user.id, stamp)
			draft.touch(stamp)

		_, delta = self.store.change(_mutate)
		await self._after_local_change(delta)

	def view(self, user: User) -> None:
		if isinstance(user, User) and user.name:
			self._events.info("suggestion.viewed", user_id=user.id)

	def debug_summary(self) -> DebugSummary:
		document = self.store.document
		return DebugSummary(
			current_user_id=self.current_user.id,
			current_user_name=self.current_user.name,
			total_users=len(self.users),
			connections=len(self.connections),
			dismissed=len(document.dismissed_user_ids),
			pending_connections=len(document.pending_connections),
			sync_enabled=self._backend.enabled,
			sync_state=self._backend.state,
		)

	async def _after_local_change(self, delta: Optional[bytes]) -> None:
		if delta is None:
			return
		self._persist()
		await self._backend.publish(delta)
		await self._notify()

	async def _on_remote_change(self, document: ReplicatedDocument) -> None:
		self._persist()
		await self._notify()

	def _persist(self) -> None:
		if self._snapshots is None or not self._snapshot_key:
			return
		self._snapshots.schedule_save(self._snapshot_key, self.store.serialize())

	async def _notify(self) -> None:
		if not self._listeners:
			return
		ranked = self.suggestions()
		for listener in list(self._listeners):
			try:
				result = listener(list(ranked))
				if inspect.isawaitable(result):
					await result
			except Exception as exc:
				self._events.error("subscriber.failed", error=exc, doc_id=self.doc_id)
