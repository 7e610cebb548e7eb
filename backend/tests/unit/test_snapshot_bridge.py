import pytest

from peerlink.domain.replication import crdt
from peerlink.domain.replication.store import ReplicatedStore
from peerlink.infra.kv import StoreCapacityExceeded, StoreError
from peerlink.infra.redis import RedisKeyValueStore
from peerlink.infra.snapshots import SnapshotBridge, snapshot_key


class FlakyStore:
	"""In-memory store whose next writes fail with the queued errors."""

	def __init__(self, *failures):
		self.data = {}
		self.failures = list(failures)
		self.calls = []

	async def get(self, key):
		self.calls.append(("get", key))
		return self.data.get(key)

	async def set(self, key, value):
		self.calls.append(("set", key))
		if self.failures:
			raise self.failures.pop(0)
		self.data[key] = value

	async def remove(self, key):
		self.calls.append(("remove", key))
		self.data.pop(key, None)


def _document():
	store = ReplicatedStore("phone")
	store.change(lambda draft: draft.dismiss("jane"))
	return store.document


@pytest.mark.asyncio
async def test_save_and_load_round_trip_through_redis(events):
	bridge = SnapshotBridge(RedisKeyValueStore(), events=events, retry_delay=0)
	document = _document()

	assert await bridge.save(snapshot_key("user123"), crdt.serialize(document)) is True

	assert await bridge.load(snapshot_key("user123")) == document
	assert snapshot_key("user123") == "peerlink:doc:user123"


@pytest.mark.asyncio
async def test_missing_key_loads_empty_document(events):
	bridge = SnapshotBridge(RedisKeyValueStore(), events=events, retry_delay=0)
	assert await bridge.load("peerlink:doc:nobody") == crdt.empty_document()
	assert await bridge.load_bytes("peerlink:doc:nobody") is None
	assert len(events) == 0


@pytest.mark.asyncio
async def test_corrupt_snapshot_loads_empty_document(fake_redis, events):
	await fake_redis.set("peerlink:doc:user123", "{definitely not a document")
	bridge = SnapshotBridge(RedisKeyValueStore(), events=events, retry_delay=0)

	assert await bridge.load("peerlink:doc:user123") == crdt.empty_document()
	assert events.count("snapshot.corrupt") == 1


@pytest.mark.asyncio
async def test_capacity_failure_clears_key_and_retries(events):
	store = FlakyStore(StoreCapacityExceeded())
	bridge = SnapshotBridge(store, events=events, retry_delay=0)

	assert await bridge.save("k", b"{}") is True

	assert store.calls == [("set", "k"), ("remove", "k"), ("set", "k")]
	assert store.data == {"k": "{}"}


@pytest.mark.asyncio
async def test_other_failures_retry_without_clearing(events):
	store = FlakyStore(StoreError("timeout"))
	bridge = SnapshotBridge(store, events=events, retry_delay=0)

	assert await bridge.save("k", b"{}") is True
	assert store.calls == [("set", "k"), ("set", "k")]


@pytest.mark.asyncio
async def test_second_failure_is_reported_and_swallowed(events):
	store = FlakyStore(StoreCapacityExceeded(), StoreCapacityExceeded())
	bridge = SnapshotBridge(store, events=events, retry_delay=0)

	assert await bridge.save("k", b"{}") is False

	(event,) = events.named("snapshot.save_failed")
	assert event.fields["reason"] == "store_capacity_exceeded"
	assert store.data == {}


@pytest.mark.asyncio
async def test_scheduled_saves_are_drained(events):
	store = FlakyStore()
	bridge = SnapshotBridge(store, events=events, retry_delay=0)

	bridge.schedule_save("a", b"1")
	bridge.schedule_save("b", b"2")
	await bridge.drain()

	assert store.data == {"a": "1", "b": "2"}
	assert bridge.pending == 0
