"""Delta-state CRDT document shared by all replicas of one user.

Every delta is itself a (small) document, and merging is the lattice join of
two documents:

- ``clock``: version vector, pointwise max.
- ``lamport``/``updated_at``: max registers.
- ``dismissed``: grow-only set of user ids, keeping the smallest stamp seen.
- ``pending``: grow-only map keyed by globally unique dots (``actor:seq:index``).
- ``registers``: last-writer-wins per field, ordered by ``(lamport, actor)``.

Each component join is commutative, associative and idempotent, so replicas
converge no matter how deltas are ordered, duplicated or batched.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from peerlink.domain.replication.exceptions import InvalidMutationError, MalformedDeltaError

Stamp = tuple[int, str]

FORMAT_VERSION = 1


def now_ms() -> int:
	return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class PendingConnection:
	"""A connection request recorded by one of the user's replicas."""

	user_id: str
	timestamp: int


@dataclass(frozen=True, slots=True)
class FieldRegister:
	value: Any
	lamport: int
	actor: str

	@property
	def stamp(self) -> Stamp:
		return (self.lamport, self.actor)


@dataclass(frozen=True, slots=True)
class ReplicatedDocument:
	"""Immutable document value. Never mutate the mappings in place."""

	clock: Mapping[str, int] = field(default_factory=dict)
	lamport: int = 0
	updated_at: int = 0
	dismissed: Mapping[str, Stamp] = field(default_factory=dict)
	pending: Mapping[str, PendingConnection] = field(default_factory=dict)
	registers: Mapping[str, FieldRegister] = field(default_factory=dict)

	@property
	def dismissed_user_ids(self) -> tuple[str, ...]:
		"""Dismissed ids in first-dismissal order."""
		return tuple(uid for uid, _ in sorted(self.dismissed.items(), key=lambda item: (item[1], item[0])))

	@property
	def pending_connections(self) -> tuple[PendingConnection, ...]:
		ordered = sorted(self.pending.items(), key=lambda item: (item[1].timestamp, item[0]))
		return tuple(entry for _, entry in ordered)

	@property
	def last_updated_at(self) -> Optional[int]:
		return self.updated_at or None

	def is_dismissed(self, user_id: str) -> bool:
		return user_id in self.dismissed

	def get(self, name: str, default: Any = None) -> Any:
		register = self.registers.get(name)
		return register.value if register is not None else default

	def seen(self, actor: str) -> int:
		return int(self.clock.get(actor, 0))


def empty_document() -> ReplicatedDocument:
	return ReplicatedDocument()


def _canonical(value: Any) -> str:
	return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _pick_register(left: FieldRegister, right: FieldRegister) -> FieldRegister:
	return max((left, right), key=lambda reg: (reg.lamport, reg.actor, _canonical(reg.value)))


def _pick_pending(left: PendingConnection, right: PendingConnection) -> PendingConnection:
	return min((left, right), key=lambda entry: (entry.timestamp, entry.user_id))


def join(left: ReplicatedDocument, right: ReplicatedDocument) -> ReplicatedDocument:
	"""Least upper bound of two documents."""
	clock = dict(left.clock)
	for actor, seq in right.clock.items():
		clock[actor] = max(clock.get(actor, 0), seq)

	dismissed = dict(left.dismissed)
	for user_id, stamp in right.dismissed.items():
		current = dismissed.get(user_id)
		dismissed[user_id] = stamp if current is None else min(current, stamp)

	pending = dict(left.pending)
	for dot, entry in right.pending.items():
		current = pending.get(dot)
		pending[dot] = entry if current is None else _pick_pending(current, entry)

	registers = dict(left.registers)
	for name, register in right.registers.items():
		current = registers.get(name)
		registers[name] = register if current is None else _pick_register(current, register)

	return ReplicatedDocument(
		clock=clock,
		lamport=max(left.lamport, right.lamport),
		updated_at=max(left.updated_at, right.updated_at),
		dismissed=dismissed,
		pending=pending,
		registers=registers,
	)


class DocumentDraft:
	"""Mutation recorder handed to ``change`` mutators.

	Reads go to the document as it was before the change; writes are collected
	and turned into a single delta once the mutator returns.
	"""

	def __init__(self, base: ReplicatedDocument, *, clock: Callable[[], int] = now_ms) -> None:
		self._base = base
		self._clock = clock
		self._dismissed: list[str] = []
		self._pending: list[PendingConnection] = []
		self._registers: dict[str, Any] = {}
		self._updated_at = 0

	@property
	def document(self) -> ReplicatedDocument:
		return self._base

	@property
	def is_empty(self) -> bool:
		return not (self._dismissed or self._pending or self._registers or self._updated_at)

	def dismiss(self, user_id: str) -> None:
		if not isinstance(user_id, str) or not user_id:
			raise InvalidMutationError("dismiss_requires_user_id")
		if self._base.is_dismissed(user_id) or user_id in self._dismissed:
			return
		self._dismissed.append(user_id)

	def add_pending_connection(self, user_id: str, timestamp: Optional[int] = None) -> None:
		if not isinstance(user_id, str) or not user_id:
			raise InvalidMutationError("pending_requires_user_id")
		stamp = self._clock() if timestamp is None else int(timestamp)
		if stamp < 0:
			raise InvalidMutationError("negative_timestamp")
		self._pending.append(PendingConnection(user_id=user_id, timestamp=stamp))

	def set_field(self, name: str, value: Any) -> None:
		if not isinstance(name, str) or not name:
			raise InvalidMutationError("field_requires_name")
		try:
			# Stored in JSON form so a serialisation round trip is lossless.
			self._registers[name] = json.loads(json.dumps(value, allow_nan=False))
		except (TypeError, ValueError) as exc:
			raise InvalidMutationError("field_not_json") from exc

	def touch(self, timestamp: Optional[int] = None) -> None:
		stamp = self._clock() if timestamp is None else int(timestamp)
		self._updated_at = max(self._updated_at, max(0, stamp))

	def build_delta(self, actor: str) -> ReplicatedDocument:
		seq = self._base.seen(actor) + 1
		lamport = self._base.lamport + 1
		stamp: Stamp = (lamport, actor)
		return ReplicatedDocument(
			clock={actor: seq},
			lamport=lamport,
			updated_at=self._updated_at,
			dismissed={user_id: stamp for user_id in self._dismissed},
			pending={f"{actor}:{seq}:{index}": entry for index, entry in enumerate(self._pending)},
			registers={name: FieldRegister(value=value, lamport=lamport, actor=actor) for name, value in self._registers.items()},
		)


Mutator = Callable[[DocumentDraft], Any]


def apply_change(
	document: ReplicatedDocument,
	actor: str,
	mutator: Mutator,
	*,
	clock: Callable[[], int] = now_ms,
) -> tuple[ReplicatedDocument, Optional[bytes]]:
	"""Run ``mutator`` against ``document`` and return the new document and delta.

	Returns the unchanged document and ``None`` when the mutator wrote nothing.
	"""
	if not actor:
		raise InvalidMutationError("actor_required")
	draft = DocumentDraft(document, clock=clock)
	mutator(draft)
	if draft.is_empty:
		return document, None
	delta = draft.build_delta(actor)
	return join(document, delta), serialize(delta)


class _RegisterPayload(BaseModel):
	model_config = ConfigDict(extra="forbid")

	value: Any = None
	lamport: int = Field(ge=1)
	actor: str = Field(min_length=1)


class _PendingPayload(BaseModel):
	model_config = ConfigDict(extra="forbid")

	user_id: str = Field(min_length=1)
	timestamp: int = Field(ge=0)


class DocumentPayload(BaseModel):
	"""Wire and storage shape of a document or delta."""

	model_config = ConfigDict(extra="forbid")

	v: Literal[1] = FORMAT_VERSION
	clock: dict[str, int] = Field(default_factory=dict)
	lamport: int = Field(default=0, ge=0)
	updated_at: int = Field(default=0, ge=0)
	dismissed: dict[str, tuple[int, str]] = Field(default_factory=dict)
	pending: dict[str, _PendingPayload] = Field(default_factory=dict)
	registers: dict[str, _RegisterPayload] = Field(default_factory=dict)

	@model_validator(mode="after")
	def _check_references(self) -> "DocumentPayload":
		for actor, seq in self.clock.items():
			if not actor or seq < 1:
				raise ValueError("invalid clock entry")

		def _known(actor: str, lamport: int) -> None:
			if actor not in self.clock:
				raise ValueError("stamp references unknown actor")
			if lamport < 1 or lamport > self.lamport:
				raise ValueError("stamp outside lamport range")

		for user_id, (lamport, actor) in self.dismissed.items():
			if not user_id:
				raise ValueError("empty dismissed id")
			_known(actor, lamport)
		for name, register in self.registers.items():
			if not name:
				raise ValueError("empty register name")
			_known(register.actor, register.lamport)
		for dot in self.pending:
			parts = dot.rsplit(":", 2)
			if len(parts) != 3 or not parts[1].isdigit() or not parts[2].isdigit():
				raise ValueError("malformed dot")
			actor, seq = parts[0], int(parts[1])
			if actor not in self.clock or seq < 1 or seq > self.clock[actor]:
				raise ValueError("dot references unknown history")
		return self


def serialize(document: ReplicatedDocument) -> bytes:
	payload = DocumentPayload(
		clock=dict(sorted(document.clock.items())),
		lamport=document.lamport,
		updated_at=document.updated_at,
		dismissed={uid: document.dismissed[uid] for uid in sorted(document.dismissed)},
		pending={
			dot: _PendingPayload(user_id=entry.user_id, timestamp=entry.timestamp)
			for dot, entry in sorted(document.pending.items())
		},
		registers={
			name: _RegisterPayload(value=reg.value, lamport=reg.lamport, actor=reg.actor)
			for name, reg in sorted(document.registers.items())
		},
	)
	return payload.model_dump_json().encode("utf-8")


def deserialize(data: Union[bytes, bytearray, str]) -> ReplicatedDocument:
	"""Parse serialized bytes; raises ``MalformedDeltaError`` on any defect."""
	try:
		raw = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
		if not isinstance(raw, str):
			raise MalformedDeltaError("not_text")
		payload = DocumentPayload.model_validate_json(raw)
	except (ValidationError, UnicodeDecodeError, ValueError) as exc:
		raise MalformedDeltaError("unparseable") from exc
	return ReplicatedDocument(
		clock=dict(payload.clock),
		lamport=payload.lamport,
		updated_at=payload.updated_at,
		dismissed={uid: (int(stamp[0]), str(stamp[1])) for uid, stamp in payload.dismissed.items()},
		pending={
			dot: PendingConnection(user_id=entry.user_id, timestamp=entry.timestamp)
			for dot, entry in payload.pending.items()
		},
		registers={
			name: FieldRegister(value=reg.value, lamport=reg.lamport, actor=reg.actor)
			for name, reg in payload.registers.items()
		},
	)


def merge(document: ReplicatedDocument, delta: Union[bytes, bytearray, str]) -> ReplicatedDocument:
	"""Join a serialized delta into ``document``; raises ``MalformedDeltaError``."""
	return join(document, deserialize(delta))
