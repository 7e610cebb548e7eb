"""Pydantic schemas that validate raw user/connection input.

Input arrives from the client in its own camelCase shape (``lastActive`` as
epoch milliseconds, ``mutualFollowers``...). Invalid records are dropped and
missing optional fields are normalised; nothing here raises to the caller.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from peerlink.domain.suggestions.models import DEFAULT_CONNECTION_STRENGTH, ConnectionEdge, User, utcnow
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink

logger = logging.getLogger(__name__)


def _required_text(value: Any) -> str:
	if value is None or isinstance(value, (dict, list, tuple, set)):
		raise ValueError("missing")
	text = str(value).strip()
	if not text:
		raise ValueError("empty")
	return text


def _string_items(value: Any, *, unique: bool) -> list[str]:
	if not isinstance(value, (list, tuple)):
		return []
	items: list[str] = []
	seen: set[str] = set()
	for item in value:
		if item is None or isinstance(item, (dict, list, tuple, set)):
			continue
		text = str(item).strip()
		if not text:
			continue
		if unique:
			if text in seen:
				continue
			seen.add(text)
		items.append(text)
	return items


def _parse_timestamp(value: Any) -> Optional[datetime]:
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, datetime):
		return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
	if isinstance(value, (int, float)):
		if not math.isfinite(value):
			return None
		try:
			return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
		except (OverflowError, OSError, ValueError):
			return None
	if isinstance(value, str):
		try:
			parsed = datetime.fromisoformat(value.strip())
		except ValueError:
			return None
		return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
	return None


class UserInput(BaseModel):
	"""Raw user payload as produced by the client."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	id: str
	name: str
	avatar_ref: Optional[str] = Field(default=None, validation_alias=AliasChoices("avatar", "avatarRef", "avatar_ref"))
	interests: list[str] = Field(default_factory=list)
	groups: list[str] = Field(default_factory=list)
	last_active_at: Optional[datetime] = Field(
		default=None,
		validation_alias=AliasChoices("lastActive", "lastActiveAt", "last_active", "last_active_at"),
	)
	is_online: bool = Field(default=False, validation_alias=AliasChoices("isOnline", "is_online"))

	@field_validator("id", "name", mode="before")
	def _require_text(cls, value: Any) -> str:
		return _required_text(value)

	@field_validator("avatar_ref", mode="before")
	def _optional_avatar(cls, value: Any) -> Optional[str]:
		if not value or not isinstance(value, str):
			return None
		return value

	@field_validator("interests", "groups", mode="before")
	def _set_like(cls, value: Any) -> list[str]:
		return _string_items(value, unique=True)

	@field_validator("last_active_at", mode="before")
	def _timestamp(cls, value: Any) -> Optional[datetime]:
		return _parse_timestamp(value)

	@field_validator("is_online", mode="before")
	def _truthy(cls, value: Any) -> bool:
		return bool(value)

	def to_domain(self, *, now: Optional[datetime] = None) -> User:
		return User(
			id=self.id,
			name=self.name,
			avatar_ref=self.avatar_ref,
			interests=tuple(self.interests),
			groups=tuple(self.groups),
			last_active_at=self.last_active_at or now or utcnow(),
			is_online=self.is_online,
		)


class ConnectionInput(BaseModel):
	"""Raw connection edge payload."""

	model_config = ConfigDict(populate_by_name=True, extra="ignore")

	target_user_id: str = Field(validation_alias=AliasChoices("userId", "targetUserId", "target_user_id"))
	strength: float = DEFAULT_CONNECTION_STRENGTH
	mutual_follower_ids: list[str] = Field(
		default_factory=list,
		validation_alias=AliasChoices("mutualFollowers", "mutualFollowerIds", "mutual_follower_ids"),
	)

	@field_validator("target_user_id", mode="before")
	def _require_target(cls, value: Any) -> str:
		return _required_text(value)

	@field_validator("strength", mode="before")
	def _clamp_strength(cls, value: Any) -> float:
		if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
			return DEFAULT_CONNECTION_STRENGTH
		return max(0.0, min(1.0, float(value)))

	@field_validator("mutual_follower_ids", mode="before")
	def _followers(cls, value: Any) -> list[str]:
		# Duplicates are kept: the mutual count is the length of this list.
		return _string_items(value, unique=False)

	def to_domain(self) -> ConnectionEdge:
		return ConnectionEdge(
			target_user_id=self.target_user_id,
			strength=self.strength,
			mutual_follower_ids=tuple(self.mutual_follower_ids),
		)


def validate_user(raw: Any, *, now: Optional[datetime] = None) -> Optional[User]:
	"""Return a validated ``User`` or ``None`` when the record is unusable."""
	if isinstance(raw, User):
		return raw
	if not isinstance(raw, Mapping):
		return None
	try:
		return UserInput.model_validate(dict(raw)).to_domain(now=now)
	except ValidationError:
		return None


def validate_connection(raw: Any) -> Optional[ConnectionEdge]:
	"""Return a validated ``ConnectionEdge`` or ``None``."""
	if isinstance(raw, ConnectionEdge):
		return raw
	if not isinstance(raw, Mapping):
		return None
	try:
		return ConnectionInput.model_validate(dict(raw)).to_domain()
	except ValidationError:
		return None


def validate_users(
	raw_users: Iterable[Any],
	*,
	now: Optional[datetime] = None,
	events: Optional[EventSink] = None,
) -> list[User]:
	items = list(raw_users or [])
	validated = [user for user in (validate_user(raw, now=now) for raw in items) if user is not None]
	_report_drops("user", len(items), len(validated), events)
	return validated


def validate_connections(raw_connections: Iterable[Any], *, events: Optional[EventSink] = None) -> list[ConnectionEdge]:
	items = list(raw_connections or [])
	validated = [edge for edge in (validate_connection(raw) for raw in items) if edge is not None]
	_report_drops("connection", len(items), len(validated), events)
	return validated


def _report_drops(kind: str, total: int, kept: int, events: Optional[EventSink]) -> None:
	logger.debug("validated %s out of %s %s records", kept, total, kind)
	dropped = total - kept
	if dropped <= 0:
		return
	obs_metrics.inc_validation_drop(kind, dropped)
	if events is not None:
		events.info("validation.dropped", kind=kind, dropped=dropped, total=total)
