from datetime import datetime, timezone

from peerlink.domain.suggestions import schemas


def test_user_accepts_client_payload(now):
	user = schemas.validate_user(
		{
			"id": "user456",
			"name": "  Jane Smith ",
			"avatar": "https://example.test/jane.png",
			"interests": ["music", "art", "music", "", None],
			"groups": ["developers"],
			"lastActive": 1_714_564_800_000,
			"isOnline": True,
		},
		now=now,
	)

	assert user is not None
	assert user.name == "Jane Smith"
	assert user.avatar_ref == "https://example.test/jane.png"
	assert user.interests == ("music", "art")
	assert user.last_active_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
	assert user.is_online is True


def test_user_defaults_fill_missing_fields(now):
	user = schemas.validate_user({"id": "u1", "name": "Solo"}, now=now)
	assert user.interests == ()
	assert user.groups == ()
	assert user.last_active_at == now
	assert user.avatar_ref is None
	assert user.is_online is False


def test_invalid_users_are_dropped_and_reported(now, events):
	users = schemas.validate_users(
		[{"id": "ok", "name": "Ok"}, {"id": "", "name": "Nameless"}, {"name": "No id"}, "garbage", None],
		now=now,
		events=events,
	)

	assert [user.id for user in users] == ["ok"]
	(event,) = events.named("validation.dropped")
	assert event.fields == {"kind": "user", "dropped": 4, "total": 5}


def test_connection_aliases_and_strength_clamp(events):
	edges = schemas.validate_connections(
		[
			{"userId": "a", "strength": 3, "mutualFollowers": ["x", "x", "y"]},
			{"targetUserId": "b", "strength": "strong"},
			{"strength": 0.2},
		],
		events=events,
	)

	assert [edge.target_user_id for edge in edges] == ["a", "b"]
	assert edges[0].strength == 1.0
	assert edges[0].mutual_follower_ids == ("x", "x", "y")
	assert edges[1].strength == 0.5
	assert events.count("validation.dropped") == 1


def test_iso_timestamps_are_normalised_to_utc(now):
	user = schemas.validate_user({"id": "u", "name": "U", "lastActive": "2024-04-30T12:00:00"}, now=now)
	assert user.last_active_at == datetime(2024, 4, 30, 12, 0, tzinfo=timezone.utc)
