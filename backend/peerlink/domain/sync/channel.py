"""Contract for the duplex, message-oriented channel used by sync sessions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Union

Frame = Union[str, bytes]


class ChannelEventKind(str, Enum):
	OPEN = "open"
	MESSAGE = "message"
	ERROR = "error"
	CLOSE = "close"


@dataclass(frozen=True, slots=True)
class ChannelEvent:
	kind: ChannelEventKind
	data: Optional[Frame] = None
	reason: Optional[str] = None

	@classmethod
	def opened(cls) -> "ChannelEvent":
		return cls(ChannelEventKind.OPEN)

	@classmethod
	def message(cls, data: Frame) -> "ChannelEvent":
		return cls(ChannelEventKind.MESSAGE, data=data)

	@classmethod
	def error(cls, reason: str) -> "ChannelEvent":
		return cls(ChannelEventKind.ERROR, reason=reason)

	@classmethod
	def closed(cls, reason: Optional[str] = None) -> "ChannelEvent":
		return cls(ChannelEventKind.CLOSE, reason=reason)


ChannelEventHandler = Callable[[ChannelEvent], Awaitable[None]]


class Channel(Protocol):
	"""A single connection attempt. Lifecycle events go to the bound handler."""

	@property
	def is_open(self) -> bool: ...

	async def connect(self) -> None:
		"""Start connecting. May return before ``open`` fires; raises on immediate failure."""
		...

	async def send(self, frame: Frame) -> None: ...

	async def close(self) -> None: ...


ChannelFactory = Callable[[ChannelEventHandler], Channel]
