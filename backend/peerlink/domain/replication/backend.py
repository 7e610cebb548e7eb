"""Replication capability: how local deltas leave the process and remote ones arrive."""

from __future__ import annotations

from typing import Optional, Protocol

from peerlink.domain.sync.session import RemoteChangeListener, SyncSession


class ReplicationBackend(Protocol):
	"""Contract the suggestion service uses to publish and receive deltas."""

	@property
	def enabled(self) -> bool:
		...

	@property
	def state(self) -> Optional[str]:
		...

	def add_listener(self, listener: RemoteChangeListener) -> None:
		...

	async def start(self) -> None:
		...

	async def publish(self, delta: Optional[bytes]) -> bool:
		...

	async def stop(self) -> None:
		...


class DisabledReplicationBackend:
	"""Local-only mode: deltas stay in this process."""

	enabled = False
	state = None

	def add_listener(self, listener: RemoteChangeListener) -> None:
		return None

	async def start(self) -> None:
		return None

	async def publish(self, delta: Optional[bytes]) -> bool:
		return False

	async def stop(self) -> None:
		return None


class SessionReplicationBackend:
	"""Publishes through a ``SyncSession`` and forwards its remote changes."""

	enabled = True

	def __init__(self, session: SyncSession) -> None:
		self.session = session

	@property
	def state(self) -> Optional[str]:
		return self.session.state.value

	def add_listener(self, listener: RemoteChangeListener) -> None:
		self.session.add_listener(listener)

	async def start(self) -> None:
		await self.session.start()

	async def publish(self, delta: Optional[bytes]) -> bool:
		return await self.session.broadcast(delta)

	async def stop(self) -> None:
		await self.session.stop()
