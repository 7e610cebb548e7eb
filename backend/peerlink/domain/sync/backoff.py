"""Reconnect delay policy for sync sessions."""

from __future__ import annotations

from dataclasses import dataclass, field

from peerlink.settings import settings


@dataclass
class ReconnectBackoff:
	"""Exponential delay capped at ``maximum``; never gives up."""

	base: float = field(default_factory=lambda: settings.sync_reconnect_base_seconds)
	factor: float = field(default_factory=lambda: settings.sync_reconnect_factor)
	maximum: float = field(default_factory=lambda: settings.sync_reconnect_max_seconds)
	attempts: int = 0

	def next_delay(self) -> float:
		base = max(0.0, float(self.base))
		cap = max(base, float(self.maximum))
		delay = min(base * (max(1.0, float(self.factor)) ** self.attempts), cap)
		if delay < cap:
			self.attempts += 1
		return delay

	def reset(self) -> None:
		self.attempts = 0
