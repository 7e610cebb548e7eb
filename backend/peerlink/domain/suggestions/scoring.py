"""Relevance scoring for suggestion candidates."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable, Optional, Sequence

from peerlink.domain.suggestions.models import (
	ACTIVITY_DECAY_DAYS,
	MUTUAL_FOLLOWERS_NORMALIZER,
	ConnectionEdge,
	RankingWeights,
	User,
	utcnow,
)
from peerlink.obs.events import EventSink

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400.0


def _clamp01(value: float) -> float:
	if not math.isfinite(value):
		return 0.0
	return max(0.0, min(1.0, value))


def mutual_count(connections: Iterable[ConnectionEdge], candidate_id: str) -> int:
	"""Count mutual followers linking ``candidate_id`` to the current user.

	Edges pointing at the candidate contribute all of their mutual followers;
	any other edge listing the candidate as a mutual follower contributes one.
	"""
	total = 0
	for edge in connections:
		followers = edge.mutual_follower_ids or ()
		if edge.target_user_id == candidate_id:
			total += len(followers)
		if candidate_id in followers:
			total += 1
	return total


def mutual_score(connections: Iterable[ConnectionEdge], candidate_id: str) -> float:
	return _clamp01(mutual_count(connections, candidate_id) / MUTUAL_FOLLOWERS_NORMALIZER)


def activity_score(last_active_at: Optional[datetime], *, now: datetime) -> float:
	"""Linear decay from 1 (active now) to 0 after ``ACTIVITY_DECAY_DAYS``."""
	if last_active_at is None:
		return 0.0
	days = max(0.0, (now - last_active_at).total_seconds() / _SECONDS_PER_DAY)
	return _clamp01(1.0 - days / ACTIVITY_DECAY_DAYS)


def overlap_score(candidate_values: Sequence[str], current_values: Sequence[str]) -> float:
	"""Share of the candidate's values that the current user also has."""
	candidate_values = candidate_values or ()
	if not candidate_values:
		return 0.0
	current = set(current_values or ())
	shared = sum(1 for value in candidate_values if value in current)
	return _clamp01(shared / len(candidate_values))


def score(
	candidate: User,
	current_user: User,
	connections: Sequence[ConnectionEdge],
	weights: RankingWeights,
	*,
	now: Optional[datetime] = None,
	events: Optional[EventSink] = None,
) -> float:
	"""Score ``candidate`` for ``current_user``; always a float in [0, 1]."""
	try:
		if candidate is None or current_user is None:
			return 0.0
		moment = now or utcnow()
		edges = connections or ()
		final = (
			mutual_score(edges, candidate.id) * weights.mutual_followers
			+ activity_score(candidate.last_active_at, now=moment) * weights.recent_activity
			+ overlap_score(candidate.interests, current_user.interests) * weights.shared_interests
			+ overlap_score(candidate.groups, current_user.groups) * weights.common_groups
		)
		return _clamp01(final)
	except Exception as exc:
		if events is not None:
			events.error("score.failed", error=exc, candidate_id=getattr(candidate, "id", None))
		else:
			logger.exception("suggestion score failed")
		return 0.0
