import json
import logging

from peerlink.domain.replication.store import ReplicatedStore
from peerlink.obs.events import EventSink
from peerlink.obs.logging import JSONLogFormatter, bind_context, reset_context


def test_event_sink_keeps_bounded_history():
	sink = EventSink(capacity=2)
	sink.info("a")
	sink.warning("b", error=ValueError("bad"))
	sink.error("c", key="k")

	assert [event.name for event in sink] == ["b", "c"]
	assert sink.named("b")[0].error == "ValueError: bad"
	assert sink.named("c")[0].fields == {"key": "k"}
	sink.clear()
	assert len(sink) == 0


def test_event_sink_logs_structured_extras(caplog):
	sink = EventSink()
	with caplog.at_level(logging.WARNING, logger="peerlink.events"):
		sink.warning("snapshot.save_retry", key="peerlink:doc:u1")

	(record,) = caplog.records
	assert record.event == "snapshot.save_retry"
	assert record.key == "peerlink:doc:u1"


def test_formatter_includes_bound_context_and_redacts_secrets():
	formatter = JSONLogFormatter()
	tokens = bind_context(doc_id="suggestions_u1", actor_id="phone")
	try:
		record = logging.LogRecord("peerlink.test", logging.INFO, __file__, 1, "hello", None, None)
		record.auth_token = "abc"
		record.changes = list(range(20))
		payload = json.loads(formatter.format(record))
	finally:
		reset_context(tokens)

	assert payload["doc_id"] == "suggestions_u1"
	assert payload["actor_id"] == "phone"
	assert payload["auth_token"] == "[redacted]"
	assert len(payload["changes"]) == 11
	after = json.loads(formatter.format(logging.LogRecord("peerlink.test", logging.INFO, __file__, 1, "x", None, None)))
	assert "doc_id" not in after


def test_empty_sink_passed_to_a_component_receives_its_events():
	sink = EventSink()
	assert bool(sink) is True

	store = ReplicatedStore("phone", events=sink)
	assert store.merge(b"{not json") is False

	assert sink.count("merge.rejected") == 1
