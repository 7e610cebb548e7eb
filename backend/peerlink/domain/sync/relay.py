"""Socket.IO namespace that relays sync frames between replicas of a document."""

from __future__ import annotations

from typing import Any, Optional

import socketio

from peerlink import obs
from peerlink.obs import metrics as obs_metrics
from peerlink.settings import settings


class SyncRelayNamespace(socketio.AsyncNamespace):
	"""Keeps each client in the room of its document and fans frames out to the others."""

	def __init__(self, namespace: Optional[str] = None) -> None:
		super().__init__(namespace or settings.sync_namespace)
		self._documents: dict[str, str] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.relay_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		doc_id = auth_payload.get("docId") if isinstance(auth_payload, dict) else None
		if not doc_id or not isinstance(doc_id, str):
			obs_metrics.relay_disconnected(self.namespace)
			raise ConnectionRefusedError("missing doc id")
		self._documents[sid] = doc_id
		await self.enter_room(sid, self.doc_room(doc_id))

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		obs_metrics.relay_disconnected(self.namespace)
		doc_id = self._documents.pop(sid, None)
		if doc_id:
			await self.leave_room(sid, self.doc_room(doc_id))

	async def on_sync(self, sid: str, payload: Any = None) -> None:
		doc_id = self._documents.get(sid)
		if not doc_id:
			raise ConnectionRefusedError("unauthenticated")
		if payload is None:
			return
		obs_metrics.relay_event(self.namespace, "sync")
		await self.emit("sync", payload, room=self.doc_room(doc_id), skip_sid=sid)

	def document_of(self, sid: str) -> Optional[str]:
		return self._documents.get(sid)

	@staticmethod
	def doc_room(doc_id: str) -> str:
		return f"doc:{doc_id}"


def create_relay_app(*, cors_allowed_origins: Any = "*") -> socketio.ASGIApp:
	"""ASGI app serving the relay namespace (``uvicorn --factory peerlink.domain.sync.relay:create_relay_app``)."""
	obs.init()
	sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=cors_allowed_origins)
	sio.register_namespace(SyncRelayNamespace())
	return socketio.ASGIApp(sio)
