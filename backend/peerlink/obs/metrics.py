"""Central registry for Prometheus metrics used across peerlink."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

RANKING_PASSES = Counter(
	"peerlink_ranking_passes_total",
	"Suggestion ranking passes computed",
)

RANKING_CANDIDATES = Histogram(
	"peerlink_ranking_candidates",
	"Candidates considered per ranking pass",
	buckets=(0, 1, 5, 10, 25, 50, 100, 250, 1000),
)

RANKING_RESULTS = Histogram(
	"peerlink_ranking_results",
	"Suggestions returned per ranking pass",
	buckets=(0, 1, 2, 4, 8, 16, 32, 50),
)

VALIDATION_DROPS = Counter(
	"peerlink_validation_dropped_total",
	"Input records dropped during validation",
	["kind"],
)

REPLICA_CHANGES = Counter(
	"peerlink_replica_changes_total",
	"Local changes applied to replicated documents",
)

REPLICA_MERGES = Counter(
	"peerlink_replica_merges_total",
	"Remote deltas processed by the replicated store",
	["result"],
)

SYNC_STATE = Gauge(
	"peerlink_sync_sessions",
	"Sync sessions per state",
	["state"],
)

SYNC_FRAMES = Counter(
	"peerlink_sync_frames_total",
	"Sync frames sent or received",
	["direction", "result"],
)

SYNC_RECONNECTS = Counter(
	"peerlink_sync_reconnects_total",
	"Reconnect attempts scheduled by sync sessions",
)

SYNC_CONNECT_TIMEOUTS = Counter(
	"peerlink_sync_connect_timeouts_total",
	"Channel connect attempts aborted by timeout",
)

SNAPSHOT_WRITES = Counter(
	"peerlink_snapshot_writes_total",
	"Durable snapshot writes",
	["result"],
)

SNAPSHOT_LOADS = Counter(
	"peerlink_snapshot_loads_total",
	"Durable snapshot loads",
	["result"],
)

CONNECT_REQUESTS = Counter(
	"peerlink_connect_requests_total",
	"Connect intents processed",
	["result"],
)

RELAY_CLIENTS = Gauge(
	"peerlink_relay_clients",
	"Active Socket.IO clients per relay namespace",
	["namespace"],
)

RELAY_EVENTS = Counter(
	"peerlink_relay_events_total",
	"Socket.IO events handled by the relay",
	["namespace", "event"],
)

INTERNAL_EVENTS = Counter(
	"peerlink_internal_events_total",
	"Contained internal events reported to the event sink",
	["event", "level"],
)


def observe_ranking(candidates: int, results: int) -> None:
	RANKING_PASSES.inc()
	RANKING_CANDIDATES.observe(candidates)
	RANKING_RESULTS.observe(results)


def inc_validation_drop(kind: str, count: int = 1) -> None:
	if count > 0:
		VALIDATION_DROPS.labels(kind=kind).inc(count)


def inc_replica_change() -> None:
	REPLICA_CHANGES.inc()


def inc_merge(result: str) -> None:
	REPLICA_MERGES.labels(result=result).inc()


def set_sync_state(previous: str | None, current: str) -> None:
	if previous == current:
		return
	if previous is not None:
		SYNC_STATE.labels(state=previous).dec()
	SYNC_STATE.labels(state=current).inc()


def inc_sync_frame(direction: str, result: str) -> None:
	SYNC_FRAMES.labels(direction=direction, result=result).inc()


def inc_sync_reconnect() -> None:
	SYNC_RECONNECTS.inc()


def inc_sync_connect_timeout() -> None:
	SYNC_CONNECT_TIMEOUTS.inc()


def inc_snapshot_write(result: str) -> None:
	SNAPSHOT_WRITES.labels(result=result).inc()


def inc_snapshot_load(result: str) -> None:
	SNAPSHOT_LOADS.labels(result=result).inc()


def inc_connect_request(result: str) -> None:
	CONNECT_REQUESTS.labels(result=result).inc()


def relay_connected(namespace: str) -> None:
	RELAY_CLIENTS.labels(namespace=namespace).inc()


def relay_disconnected(namespace: str) -> None:
	RELAY_CLIENTS.labels(namespace=namespace).dec()


def relay_event(namespace: str, event: str) -> None:
	RELAY_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_internal_event(event: str, level: str) -> None:
	INTERNAL_EVENTS.labels(event=event, level=level).inc()
