"""Outbound connect requests."""

from __future__ import annotations

import asyncio
import random
from typing import Optional, Protocol

from peerlink.domain.suggestions.exceptions import ConnectRequestFailed
from peerlink.domain.suggestions.models import User
from peerlink.settings import settings


class ConnectGateway(Protocol):
	"""Sends a connection request; raises ``ConnectRequestFailed`` when it does not go through."""

	async def request(self, user: User) -> None:
		...


class SimulatedConnectGateway:
	"""Stand-in network round trip that fails with a configurable probability."""

	def __init__(
		self,
		*,
		failure_probability: Optional[float] = None,
		delay_seconds: Optional[float] = None,
		rng: Optional[random.Random] = None,
	) -> None:
		probability = settings.connect_failure_probability if failure_probability is None else failure_probability
		self.failure_probability = max(0.0, min(1.0, float(probability)))
		self.delay_seconds = max(0.0, float(settings.connect_delay_seconds if delay_seconds is None else delay_seconds))
		self._rng = rng or random.Random()

	async def request(self, user: User) -> None:
		if self.delay_seconds:
			await asyncio.sleep(self.delay_seconds)
		if self._rng.random() < self.failure_probability:
			raise ConnectRequestFailed("network_timeout", user_id=user.id)
