import pytest

from peerlink.domain.sync.channel import ChannelEventKind
from peerlink.infra.socketio_channel import SocketIOChannel, socketio_channel_factory


class FakeClient:
	def __init__(self):
		self.handlers = {}
		self.connected_with = None
		self.emitted = []
		self.disconnected = False

	def on(self, event, handler=None, namespace=None):
		self.handlers[(event, namespace)] = handler

	async def connect(self, url, **kwargs):
		self.connected_with = (url, kwargs)

	async def emit(self, event, data=None, namespace=None):
		self.emitted.append((event, data, namespace))

	async def disconnect(self):
		self.disconnected = True
		await self.handlers[("disconnect", "/sync")]("client disconnect")

	async def fire(self, event, *args):
		await self.handlers[(event, "/sync")](*args)


@pytest.fixture
def recorder():
	received = []

	async def _handler(event):
		received.append(event)

	_handler.received = received
	return _handler


@pytest.mark.asyncio
async def test_channel_connects_with_doc_id_and_reports_open(recorder):
	client = FakeClient()
	channel = SocketIOChannel(recorder, doc_id="suggestions_u1", url="http://relay.test", client_factory=lambda: client)

	await channel.connect()
	await client.fire("connect")

	url, options = client.connected_with
	assert url == "http://relay.test"
	assert options["namespaces"] == ["/sync"]
	assert options["auth"] == {"docId": "suggestions_u1"}
	assert channel.is_open is True
	assert [event.kind for event in recorder.received] == [ChannelEventKind.OPEN]


@pytest.mark.asyncio
async def test_channel_sends_and_receives_sync_frames(recorder):
	client = FakeClient()
	channel = socketio_channel_factory("doc", client_factory=lambda: client)(recorder)
	await channel.connect()
	await client.fire("connect")

	await channel.send('{"type":"sync"}')
	await client.fire("sync", {"type": "sync", "docId": "doc", "changes": []})

	assert client.emitted == [("sync", '{"type":"sync"}', "/sync")]
	message = recorder.received[-1]
	assert message.kind is ChannelEventKind.MESSAGE
	assert '"docId": "doc"' in message.data


@pytest.mark.asyncio
async def test_send_requires_open_channel(recorder):
	channel = SocketIOChannel(recorder, doc_id="doc", client_factory=FakeClient)
	with pytest.raises(ConnectionError):
		await channel.send("{}")


@pytest.mark.asyncio
async def test_remote_disconnect_is_reported_but_local_close_is_not(recorder):
	client = FakeClient()
	channel = SocketIOChannel(recorder, doc_id="doc", client_factory=lambda: client)
	await channel.connect()
	await client.fire("connect")

	await client.fire("disconnect", "transport close")
	assert recorder.received[-1].kind is ChannelEventKind.CLOSE
	assert recorder.received[-1].reason == "transport close"

	await client.fire("connect")
	await channel.close()
	assert client.disconnected is True
	assert channel.is_open is False
	assert recorder.received[-1].kind is ChannelEventKind.OPEN


@pytest.mark.asyncio
async def test_connect_error_is_reported(recorder):
	client = FakeClient()
	SocketIOChannel(recorder, doc_id="doc", client_factory=lambda: client)

	await client.fire("connect_error", "refused")

	assert recorder.received[-1].kind is ChannelEventKind.ERROR
	assert recorder.received[-1].reason == "connect_error:refused"
