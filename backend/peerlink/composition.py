"""Wiring for a ready-to-use suggestion service."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from peerlink.domain.replication.backend import (
	DisabledReplicationBackend,
	ReplicationBackend,
	SessionReplicationBackend,
)
from peerlink.domain.replication.store import ReplicatedStore
from peerlink.domain.suggestions.exceptions import InvalidSuggestionTarget
from peerlink.domain.suggestions.gateway import ConnectGateway
from peerlink.domain.suggestions.models import DEFAULT_RANKING_WEIGHTS, RankingWeights, utcnow
from peerlink.domain.suggestions.schemas import validate_connections, validate_user, validate_users
from peerlink.domain.suggestions.service import SuggestionService, document_id
from peerlink.domain.sync.channel import ChannelFactory
from peerlink.domain.sync.session import SyncSession
from peerlink.infra.kv import KeyValueStore
from peerlink.infra.redis import RedisKeyValueStore
from peerlink.infra.snapshots import SnapshotBridge, snapshot_key
from peerlink.infra.socketio_channel import socketio_channel_factory
from peerlink.obs.events import EventSink
from peerlink.obs.logging import get_logger
from peerlink.settings import settings

logger = get_logger(__name__)


def _resolve_weights(weights: Union[RankingWeights, Mapping[str, Any], None]) -> RankingWeights:
	if weights is None:
		return DEFAULT_RANKING_WEIGHTS
	if isinstance(weights, RankingWeights):
		return weights
	return RankingWeights.from_mapping(dict(weights))


async def create_suggestion_service(
	current_user: Any,
	users: Iterable[Any],
	connections: Iterable[Any],
	*,
	weights: Union[RankingWeights, Mapping[str, Any], None] = None,
	limit: Any = None,
	enable_sync: bool = False,
	kv_store: Optional[KeyValueStore] = None,
	channel_factory: Optional[ChannelFactory] = None,
	gateway: Optional[ConnectGateway] = None,
	actor_id: Optional[str] = None,
	events: Optional[EventSink] = None,
	clock: Callable[[], datetime] = utcnow,
	start: bool = True,
) -> SuggestionService:
	"""Validate raw inputs, restore the user's snapshot and start syncing if enabled.

	Raises ``InvalidSuggestionTarget`` when ``current_user`` is unusable.
	"""
	events = events if events is not None else EventSink()
	moment = clock()
	user = validate_user(current_user, now=moment)
	if user is None:
		raise InvalidSuggestionTarget("invalid_current_user")
	actor = actor_id or settings.replica_id or uuid.uuid4().hex

	snapshots = SnapshotBridge(kv_store or RedisKeyValueStore(), events=events)
	key = snapshot_key(user.id)
	store = ReplicatedStore(actor, events=events)
	store.initialize(await snapshots.load(key))

	doc_id = document_id(user.id)
	backend: ReplicationBackend
	if enable_sync:
		session = SyncSession(doc_id, store, channel_factory or socketio_channel_factory(doc_id), events=events)
		backend = SessionReplicationBackend(session)
	else:
		backend = DisabledReplicationBackend()

	service = SuggestionService(
		user,
		validate_users(users, now=moment, events=events),
		validate_connections(connections, events=events),
		store=store,
		snapshots=snapshots,
		snapshot_key=key,
		backend=backend,
		gateway=gateway,
		weights=_resolve_weights(weights),
		limit=limit,
		events=events,
		clock=clock,
	)
	logger.info(
		"suggestion service ready",
		extra={"doc_id": doc_id, "sync_enabled": enable_sync, "users": len(service.users)},
	)
	if start:
		await service.start()
	return service
