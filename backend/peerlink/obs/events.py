"""Observable sink for contained (logged-and-swallowed) failures.

Subsystems that must never crash their caller report what they swallowed here
instead of only writing to a logger. Each event is logged with structured
extras, counted in Prometheus and kept in a bounded in-memory ring so callers
and tests can inspect what happened.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Iterator, Optional

from peerlink.obs import metrics as obs_metrics
from peerlink.obs.logging import get_logger

_DEFAULT_CAPACITY = 256


@dataclass(slots=True, frozen=True)
class ObsEvent:
	"""A single contained occurrence."""

	name: str
	level: int
	fields: dict[str, Any] = field(default_factory=dict)
	error: Optional[str] = None
	at: float = field(default_factory=time.time)


class EventSink:
	"""Structured event sink backed by logging, metrics and a bounded ring."""

	def __init__(self, *, logger: Optional[logging.Logger] = None, capacity: int = _DEFAULT_CAPACITY) -> None:
		self._logger = logger or get_logger("peerlink.events")
		self._events: Deque[ObsEvent] = deque(maxlen=max(1, int(capacity)))

	def emit(
		self,
		name: str,
		*,
		level: int = logging.INFO,
		error: BaseException | None = None,
		**fields: Any,
	) -> ObsEvent:
		event = ObsEvent(
			name=name,
			level=level,
			fields=dict(fields),
			error=f"{type(error).__name__}: {error}" if error is not None else None,
		)
		self._events.append(event)
		obs_metrics.inc_internal_event(name, logging.getLevelName(level).lower())
		extra = {"event": name, **fields}
		if event.error:
			extra["error"] = event.error
		self._logger.log(level, name, extra=extra)
		return event

	def debug(self, name: str, **fields: Any) -> ObsEvent:
		return self.emit(name, level=logging.DEBUG, **fields)

	def info(self, name: str, **fields: Any) -> ObsEvent:
		return self.emit(name, level=logging.INFO, **fields)

	def warning(self, name: str, *, error: BaseException | None = None, **fields: Any) -> ObsEvent:
		return self.emit(name, level=logging.WARNING, error=error, **fields)

	def error(self, name: str, *, error: BaseException | None = None, **fields: Any) -> ObsEvent:
		return self.emit(name, level=logging.ERROR, error=error, **fields)

	def named(self, name: str) -> list[ObsEvent]:
		return [event for event in self._events if event.name == name]

	def count(self, name: str) -> int:
		return sum(1 for event in self._events if event.name == name)

	def clear(self) -> None:
		self._events.clear()

	def __iter__(self) -> Iterator[ObsEvent]:
		return iter(list(self._events))

	def __len__(self) -> int:
		return len(self._events)

	# An empty sink is still a sink.
	def __bool__(self) -> bool:
		return True
