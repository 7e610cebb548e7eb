from peerlink.domain.sync.backoff import ReconnectBackoff


def test_backoff_grows_exponentially_up_to_cap():
	backoff = ReconnectBackoff(base=5, factor=2, maximum=60)
	assert [backoff.next_delay() for _ in range(6)] == [5, 10, 20, 40, 60, 60]


def test_backoff_reset_after_successful_open():
	backoff = ReconnectBackoff(base=1, factor=3, maximum=100)
	backoff.next_delay()
	backoff.next_delay()
	backoff.reset()
	assert backoff.next_delay() == 1


def test_backoff_defaults_come_from_settings():
	backoff = ReconnectBackoff()
	assert backoff.next_delay() == 5.0
	assert backoff.maximum == 60.0
