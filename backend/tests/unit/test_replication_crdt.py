import json

import pytest

from peerlink.domain.replication import crdt
from peerlink.domain.replication.exceptions import InvalidMutationError, MalformedDeltaError


def _clock(start=1_000):
	ticks = iter(range(start, start + 10_000))
	return lambda: next(ticks)


def _change(document, actor, mutate):
	return crdt.apply_change(document, actor, mutate, clock=_clock())


def test_change_produces_delta_and_new_document():
	base = crdt.empty_document()

	document, delta = _change(base, "phone", lambda draft: draft.dismiss("jane"))

	assert delta is not None
	assert document.dismissed_user_ids == ("jane",)
	assert document.seen("phone") == 1
	assert base.dismissed_user_ids == ()


def test_empty_mutator_yields_no_delta():
	base = crdt.empty_document()
	document, delta = _change(base, "phone", lambda draft: None)
	assert delta is None
	assert document is base


def test_raising_mutator_leaves_document_untouched():
	base, _ = _change(crdt.empty_document(), "phone", lambda draft: draft.dismiss("a"))

	def _mutate(draft):
		draft.dismiss("b")
		raise RuntimeError("boom")

	with pytest.raises(RuntimeError):
		_change(base, "phone", _mutate)
	assert base.dismissed_user_ids == ("a",)


def test_merge_is_idempotent():
	_, delta = _change(crdt.empty_document(), "phone", lambda draft: draft.add_pending_connection("bob", 5))
	once = crdt.merge(crdt.empty_document(), delta)
	assert crdt.merge(once, delta) == once


def test_concurrent_deltas_commute():
	base, _ = _change(crdt.empty_document(), "phone", lambda draft: draft.dismiss("seed"))

	def _on_phone(draft):
		draft.dismiss("jane")
		draft.set_field("theme", "dark")
		draft.add_pending_connection("bob", 10)

	def _on_laptop(draft):
		draft.dismiss("jane")
		draft.set_field("theme", "light")
		draft.add_pending_connection("bob", 10)
		draft.touch(99)

	_, a = _change(base, "phone", _on_phone)
	_, b = _change(base, "laptop", _on_laptop)

	ab = crdt.merge(crdt.merge(base, a), b)
	ba = crdt.merge(crdt.merge(base, b), a)

	assert ab == ba
	assert len(ab.pending_connections) == 2
	assert ab.get("theme") == "dark"
	assert ab.last_updated_at == 99


def test_join_is_associative():
	docs = []
	for actor in ("a", "b", "c"):
		document, _ = _change(crdt.empty_document(), actor, lambda draft, actor=actor: draft.dismiss(f"user-{actor}"))
		docs.append(document)
	left = crdt.join(crdt.join(docs[0], docs[1]), docs[2])
	right = crdt.join(docs[0], crdt.join(docs[1], docs[2]))
	assert left == right


def test_later_change_wins_register_after_merge():
	first, _ = _change(crdt.empty_document(), "laptop", lambda draft: draft.set_field("theme", "light"))
	merged = crdt.merge(crdt.empty_document(), crdt.serialize(first))
	second, _ = _change(merged, "phone", lambda draft: draft.set_field("theme", "dark"))
	assert crdt.join(first, second).get("theme") == "dark"


def test_dismissal_is_never_resurrected():
	dismissed, delta = _change(crdt.empty_document(), "phone", lambda draft: draft.dismiss("jane"))
	other, _ = _change(crdt.empty_document(), "laptop", lambda draft: draft.set_field("x", 1))
	assert crdt.join(other, dismissed).is_dismissed("jane")
	assert crdt.merge(other, delta).is_dismissed("jane")


def test_serialize_round_trip():
	def _mutate(draft):
		draft.dismiss("jane")
		draft.add_pending_connection("bob", 1_700_000_000_000)
		draft.set_field("suggestions", [{"id": "jane", "score": 0.475}])
		draft.touch(1_700_000_000_001)

	document, _ = _change(crdt.empty_document(), "phone", _mutate)
	assert crdt.deserialize(crdt.serialize(document)) == document
	assert crdt.deserialize(crdt.serialize(crdt.empty_document())) == crdt.empty_document()


@pytest.mark.parametrize(
	"payload",
	[
		b"not json",
		b"\xff\xfe",
		json.dumps({"v": 1, "unexpected": True}).encode(),
		json.dumps({"v": 1, "lamport": 1, "dismissed": {"jane": [1, "ghost"]}}).encode(),
		json.dumps({"v": 1, "clock": {"a": 1}, "pending": {"a:7:0": {"user_id": "b", "timestamp": 1}}}).encode(),
		json.dumps({"v": 2}).encode(),
	],
)
def test_malformed_deltas_are_rejected(payload):
	with pytest.raises(MalformedDeltaError):
		crdt.merge(crdt.empty_document(), payload)


def test_set_field_requires_json_values():
	with pytest.raises(InvalidMutationError):
		_change(crdt.empty_document(), "phone", lambda draft: draft.set_field("bad", object()))
