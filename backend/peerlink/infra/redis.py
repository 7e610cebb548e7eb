"""Redis connection management and the Redis-backed snapshot store.

Provides a stable proxy object so imports like `from peerlink.infra.redis import redis_client`
always reference the same proxy instance. The underlying client can be swapped at
runtime (e.g., to fakeredis in tests) without breaking previously imported references.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError

from peerlink.infra.kv import StoreCapacityExceeded, StoreError
from peerlink.settings import settings


class RedisProxy:
	"""Lightweight proxy that forwards attribute access to an underlying Redis client.

	This lets us swap the real client for a FakeRedis instance in tests while keeping
	the same imported symbol across the codebase.
	"""

	def __init__(self, client: redis.Redis):
		self._client: redis.Redis = client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	# Fallback: delegate everything else to the underlying client
	def __getattr__(self, item):
		return getattr(self._client, item)


# Create proxy with the real client by default
_real_client = redis.from_url(settings.redis_url, decode_responses=True)
redis_client: RedisProxy = RedisProxy(_real_client)


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)


def _is_capacity_error(exc: RedisError) -> bool:
	return isinstance(exc, ResponseError) and str(exc).upper().startswith("OOM")


class RedisKeyValueStore:
	"""`KeyValueStore` over redis.asyncio. Redis OOM replies map to capacity failures."""

	def __init__(self, client: Optional[RedisProxy] = None) -> None:
		self._redis = client or redis_client

	async def get(self, key: str) -> Optional[str]:
		try:
			value = await self._redis.get(key)
		except RedisError as exc:
			raise StoreError(f"get_failed:{type(exc).__name__}") from exc
		if isinstance(value, (bytes, bytearray)):
			return value.decode("utf-8", errors="replace")
		return value

	async def set(self, key: str, value: str) -> None:
		try:
			await self._redis.set(key, value)
		except RedisError as exc:
			if _is_capacity_error(exc):
				raise StoreCapacityExceeded() from exc
			raise StoreError(f"set_failed:{type(exc).__name__}") from exc

	async def remove(self, key: str) -> None:
		try:
			await self._redis.delete(key)
		except RedisError as exc:
			raise StoreError(f"remove_failed:{type(exc).__name__}") from exc
