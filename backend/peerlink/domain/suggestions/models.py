"""Domain models for people-you-may-know suggestions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Optional

from peerlink.domain.suggestions.exceptions import InvalidWeightsError

MUTUAL_FOLLOWERS_NORMALIZER = 10
ACTIVITY_DECAY_DAYS = 30
RECENT_ACTIVITY_DAYS = 7
MAX_INTERESTS_DISPLAY = 3
AVATAR_SIZE = 144

DEFAULT_SUGGESTION_LIMIT = 8
MIN_SUGGESTION_LIMIT = 1
MAX_SUGGESTION_LIMIT = 50

DEFAULT_CONNECTION_STRENGTH = 0.5


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class User:
	"""Validated copy of a user profile as seen by the ranking core."""

	id: str
	name: str
	avatar_ref: Optional[str] = None
	interests: tuple[str, ...] = ()
	groups: tuple[str, ...] = ()
	last_active_at: datetime = field(default_factory=utcnow)
	is_online: bool = False


@dataclass(frozen=True, slots=True)
class ConnectionEdge:
	"""Existing relationship between the current user and ``target_user_id``."""

	target_user_id: str
	strength: float = DEFAULT_CONNECTION_STRENGTH
	mutual_follower_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RankingWeights:
	"""Relative importance of each sub-score; not required to sum to 1."""

	mutual_followers: float = 0.4
	recent_activity: float = 0.2
	shared_interests: float = 0.25
	common_groups: float = 0.15

	def __post_init__(self) -> None:
		for item in fields(self):
			value = getattr(self, item.name)
			if not isinstance(value, (int, float)) or isinstance(value, bool):
				raise InvalidWeightsError(f"{item.name}_not_numeric")
			if not math.isfinite(value) or value < 0:
				raise InvalidWeightsError(f"{item.name}_negative")

	@classmethod
	def from_mapping(cls, data: dict) -> "RankingWeights":
		"""Build weights from either camelCase (client) or snake_case keys."""
		aliases = {
			"mutualFollowers": "mutual_followers",
			"recentActivity": "recent_activity",
			"sharedInterests": "shared_interests",
			"commonGroups": "common_groups",
		}
		values = {aliases.get(key, key): value for key, value in data.items()}
		known = {item.name for item in fields(cls)}
		unknown = set(values) - known
		if unknown:
			raise InvalidWeightsError("unknown_weight")
		return cls(**values)


DEFAULT_RANKING_WEIGHTS = RankingWeights()


@dataclass(frozen=True, slots=True)
class ScoredCandidate(User):
	"""A candidate user together with its relevance score in [0, 1]."""

	score: float = 0.0

	@classmethod
	def from_user(cls, user: User, score: float) -> "ScoredCandidate":
		values = {item.name: getattr(user, item.name) for item in fields(User)}
		return cls(**values, score=score)

