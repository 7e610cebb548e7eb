import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from peerlink.obs.events import EventSink
from peerlink.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from peerlink.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep retries and simulated latency out of the way of the test clock."""
	original_delay = settings.snapshot_retry_delay_seconds
	original_connect_delay = settings.connect_delay_seconds
	original_failure = settings.connect_failure_probability
	settings.snapshot_retry_delay_seconds = 0.0
	settings.connect_delay_seconds = 0.0
	settings.connect_failure_probability = 0.0
	try:
		yield
	finally:
		settings.snapshot_retry_delay_seconds = original_delay
		settings.connect_delay_seconds = original_connect_delay
		settings.connect_failure_probability = original_failure


@pytest.fixture
def events() -> EventSink:
	return EventSink()


@pytest.fixture
def now() -> datetime:
	return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
