"""Sync channel over a python-socketio client connection."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import socketio

from peerlink.domain.sync.channel import ChannelEvent, ChannelEventHandler, ChannelFactory, Frame
from peerlink.settings import settings

SYNC_EVENT = "sync"

ClientFactory = Callable[[], socketio.AsyncClient]


def _default_client() -> socketio.AsyncClient:
	# The sync session owns reconnects and backoff.
	return socketio.AsyncClient(reconnection=False)


class SocketIOChannel:
	"""One Socket.IO connection attempt for a single document id."""

	def __init__(
		self,
		handler: ChannelEventHandler,
		*,
		doc_id: str,
		url: Optional[str] = None,
		namespace: Optional[str] = None,
		connect_timeout: Optional[float] = None,
		client_factory: Optional[ClientFactory] = None,
	) -> None:
		self._handler = handler
		self.doc_id = doc_id
		self.url = url or settings.sync_url
		self.namespace = namespace or settings.sync_namespace
		self._connect_timeout = float(
			settings.sync_connect_timeout_seconds if connect_timeout is None else connect_timeout
		)
		self._client = (client_factory or _default_client)()
		self._open = False
		self._closing = False
		self._client.on("connect", self._on_connect, namespace=self.namespace)
		self._client.on("connect_error", self._on_connect_error, namespace=self.namespace)
		self._client.on("disconnect", self._on_disconnect, namespace=self.namespace)
		self._client.on(SYNC_EVENT, self._on_sync, namespace=self.namespace)

	@property
	def is_open(self) -> bool:
		return self._open

	async def connect(self) -> None:
		await self._client.connect(
			self.url,
			namespaces=[self.namespace],
			auth={"docId": self.doc_id},
			wait_timeout=self._connect_timeout,
		)

	async def send(self, frame: Frame) -> None:
		if not self._open:
			raise ConnectionError("channel not open")
		await self._client.emit(SYNC_EVENT, frame, namespace=self.namespace)

	async def close(self) -> None:
		self._closing = True
		self._open = False
		await self._client.disconnect()

	async def _on_connect(self) -> None:
		self._open = True
		await self._handler(ChannelEvent.opened())

	async def _on_connect_error(self, data: Any = None) -> None:
		self._open = False
		await self._handler(ChannelEvent.error(f"connect_error:{data}" if data else "connect_error"))

	async def _on_disconnect(self, *args: Any) -> None:
		self._open = False
		if self._closing:
			return
		reason = str(args[0]) if args else None
		await self._handler(ChannelEvent.closed(reason))

	async def _on_sync(self, data: Any) -> None:
		if isinstance(data, (dict, list)):
			data = json.dumps(data)
		await self._handler(ChannelEvent.message(data))


def socketio_channel_factory(
	doc_id: str,
	*,
	url: Optional[str] = None,
	namespace: Optional[str] = None,
	connect_timeout: Optional[float] = None,
	client_factory: Optional[ClientFactory] = None,
) -> ChannelFactory:
	"""Bind connection details so the session only supplies the event handler."""

	def _factory(handler: ChannelEventHandler) -> SocketIOChannel:
		return SocketIOChannel(
			handler,
			doc_id=doc_id,
			url=url,
			namespace=namespace,
			connect_timeout=connect_timeout,
			client_factory=client_factory,
		)

	return _factory
