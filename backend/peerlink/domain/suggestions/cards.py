"""Card details handed to the presentation layer alongside ranked suggestions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence
from urllib.parse import quote

from pydantic import BaseModel, Field

from peerlink.domain.suggestions.models import (
	AVATAR_SIZE,
	MAX_INTERESTS_DISPLAY,
	RECENT_ACTIVITY_DAYS,
	ConnectionEdge,
	ScoredCandidate,
	User,
	utcnow,
)

_AVATAR_SERVICE = "https://ui-avatars.com/api/"
_AVATAR_NAME_MAX = 50


class SuggestionCard(BaseModel):
	user_id: str
	name: str
	avatar_url: str
	score: float = Field(ge=0.0, le=1.0)
	mutual_connections: int = 0
	shared_interests: list[str] = Field(default_factory=list)
	is_recently_active: bool = False
	is_online: bool = False


class DebugSummary(BaseModel):
	current_user_id: str
	current_user_name: str
	total_users: int
	connections: int
	dismissed: int
	pending_connections: int
	sync_enabled: bool
	sync_state: Optional[str] = None


def fallback_avatar_url(name: Optional[str]) -> str:
	"""Generated initials avatar used when a user has no (or a broken) avatar."""
	safe = "User"
	if isinstance(name, str) and name.strip():
		safe = quote(name.strip()[:_AVATAR_NAME_MAX], safe="")
	return f"{_AVATAR_SERVICE}?name={safe}&size={AVATAR_SIZE}&background=6D83F2&color=ffffff&font-size=0.6"


def mutual_connections(connections: Sequence[ConnectionEdge], user_id: str) -> int:
	"""Number of existing connections that list ``user_id`` as a mutual follower."""
	if not user_id:
		return 0
	return sum(1 for edge in connections or () if user_id in (edge.mutual_follower_ids or ()))


def shared_interests(user: User, current_user: User) -> list[str]:
	mine = set(current_user.interests or ())
	return [interest for interest in user.interests or () if interest in mine][:MAX_INTERESTS_DISPLAY]


def is_recently_active(last_active_at: Optional[datetime], *, now: Optional[datetime] = None) -> bool:
	if last_active_at is None:
		return False
	days = ((now or utcnow()) - last_active_at).total_seconds() / 86_400.0
	return days < RECENT_ACTIVITY_DAYS


def build_card(
	candidate: ScoredCandidate,
	current_user: User,
	connections: Sequence[ConnectionEdge],
	*,
	now: Optional[datetime] = None,
) -> SuggestionCard:
	return SuggestionCard(
		user_id=candidate.id,
		name=candidate.name,
		avatar_url=candidate.avatar_ref or fallback_avatar_url(candidate.name),
		score=candidate.score,
		mutual_connections=mutual_connections(connections, candidate.id),
		shared_interests=shared_interests(candidate, current_user),
		is_recently_active=is_recently_active(candidate.last_active_at, now=now),
		is_online=candidate.is_online,
	)
