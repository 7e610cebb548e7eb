import math
from datetime import timedelta

import pytest

from peerlink.domain.suggestions import scoring
from peerlink.domain.suggestions.models import DEFAULT_RANKING_WEIGHTS, ConnectionEdge, RankingWeights, User


def _current_user(now):
	return User(
		id="user123",
		name="Alex Johnson",
		interests=("music", "travel", "tech", "cooking"),
		groups=("developers", "music-lovers"),
		last_active_at=now,
	)


def _jane(now):
	return User(
		id="user456",
		name="Jane Smith",
		interests=("music", "art", "travel"),
		groups=("developers", "artists"),
		last_active_at=now - timedelta(milliseconds=86_400_000),
	)


def test_jane_scenario_matches_reference_score(now):
	connections = [ConnectionEdge(target_user_id="user999", mutual_follower_ids=("user456", "user789"))]

	value = scoring.score(_jane(now), _current_user(now), connections, DEFAULT_RANKING_WEIGHTS, now=now)

	expected = 0.4 * 0.1 + 0.2 * (1 - 1 / 30) + 0.25 * (2 / 3) + 0.15 * 0.5
	assert value == pytest.approx(expected)
	assert value == pytest.approx(0.475, abs=1e-3)


def test_mutual_count_sums_target_edges_and_follower_membership():
	connections = [
		ConnectionEdge(target_user_id="a", mutual_follower_ids=("x", "y", "z")),
		ConnectionEdge(target_user_id="a", mutual_follower_ids=("w",)),
		ConnectionEdge(target_user_id="b", mutual_follower_ids=("a",)),
	]
	assert scoring.mutual_count(connections, "a") == 5
	assert scoring.mutual_score(connections, "a") == pytest.approx(0.5)


def test_mutual_score_is_capped_at_one():
	followers = tuple(f"f{i}" for i in range(25))
	connections = [ConnectionEdge(target_user_id="a", mutual_follower_ids=followers)]
	assert scoring.mutual_score(connections, "a") == 1.0


def test_candidate_without_interests_scores_zero_overlap(now):
	candidate = User(id="c", name="C", interests=(), groups=(), last_active_at=now - timedelta(days=60))
	value = scoring.score(candidate, _current_user(now), [], DEFAULT_RANKING_WEIGHTS, now=now)
	assert value == 0.0
	assert scoring.overlap_score((), ("music",)) == 0.0


def test_future_activity_counts_as_now(now):
	assert scoring.activity_score(now + timedelta(days=3), now=now) == 1.0
	assert scoring.activity_score(now - timedelta(days=45), now=now) == 0.0


@pytest.mark.parametrize(
	"weights",
	[
		RankingWeights(0, 0, 0, 0),
		RankingWeights(5, 5, 5, 5),
		RankingWeights(1, 0, 0, 0),
		RankingWeights(0.1, 10, 0.2, 3),
	],
)
def test_score_stays_within_unit_interval(now, weights):
	connections = [ConnectionEdge(target_user_id="z", mutual_follower_ids=("user456",) * 40)]
	value = scoring.score(_jane(now), _current_user(now), connections, weights, now=now)
	assert 0.0 <= value <= 1.0
	assert math.isfinite(value)


def test_score_failure_is_contained(now, events):
	class Broken:
		id = "broken"
		last_active_at = "not-a-datetime"
		interests = ()
		groups = ()

	value = scoring.score(Broken(), _current_user(now), [], DEFAULT_RANKING_WEIGHTS, now=now, events=events)

	assert value == 0.0
	assert events.count("score.failed") == 1
