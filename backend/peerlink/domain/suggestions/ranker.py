"""Candidate filtering and ranking for people-you-may-know."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Collection, Iterable, Optional, Sequence

from peerlink.domain.suggestions import scoring
from peerlink.domain.suggestions.models import (
	DEFAULT_SUGGESTION_LIMIT,
	MAX_SUGGESTION_LIMIT,
	MIN_SUGGESTION_LIMIT,
	ConnectionEdge,
	RankingWeights,
	ScoredCandidate,
	User,
	utcnow,
)
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink


def clamp_limit(limit: Any) -> int:
	"""Clamp a caller supplied limit into [1, 50]."""
	if isinstance(limit, bool) or not isinstance(limit, (int, float)):
		return DEFAULT_SUGGESTION_LIMIT
	if limit != limit:  # NaN
		return DEFAULT_SUGGESTION_LIMIT
	if limit == float("inf"):
		return MAX_SUGGESTION_LIMIT
	if limit == float("-inf"):
		return MIN_SUGGESTION_LIMIT
	return max(MIN_SUGGESTION_LIMIT, min(MAX_SUGGESTION_LIMIT, int(limit)))


def filter_candidates(
	all_users: Iterable[User],
	current_user: User,
	connections: Iterable[ConnectionEdge],
	dismissed_ids: Collection[str],
) -> list[User]:
	"""Drop self, already-connected and dismissed users, keeping input order."""
	connected = {edge.target_user_id for edge in connections}
	dismissed = set(dismissed_ids or ())
	return [
		user
		for user in all_users
		if user is not None
		and user.id
		and user.id != current_user.id
		and user.id not in connected
		and user.id not in dismissed
	]


def rank(
	all_users: Sequence[User],
	current_user: User,
	connections: Sequence[ConnectionEdge],
	dismissed_ids: Collection[str],
	weights: RankingWeights,
	limit: Any = DEFAULT_SUGGESTION_LIMIT,
	*,
	now: Optional[datetime] = None,
	events: Optional[EventSink] = None,
) -> list[ScoredCandidate]:
	"""Return the best scoring candidates, highest score first.

	Ties are broken by user id ascending, then by input position, so that
	the output is reproducible for the same snapshot of inputs.
	"""
	moment = now or utcnow()
	edges = list(connections or ())
	candidates = filter_candidates(all_users or (), current_user, edges, dismissed_ids)

	scored: list[tuple[int, ScoredCandidate]] = []
	for position, user in enumerate(candidates):
		value = scoring.score(user, current_user, edges, weights, now=moment, events=events)
		if value <= 0:
			continue
		scored.append((position, ScoredCandidate.from_user(user, value)))

	scored.sort(key=lambda item: (-item[1].score, item[1].id, item[0]))
	results = [candidate for _, candidate in scored[: clamp_limit(limit)]]
	obs_metrics.observe_ranking(len(candidates), len(results))
	return results
