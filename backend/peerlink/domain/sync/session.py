"""Sync session: keeps one replicated document in step with its peers.

State machine per document id::

    DISCONNECTED -> CONNECTING -> CONNECTED -> BROADCASTING -> CONNECTED
    CONNECTED/CONNECTING -> DISCONNECTED   (error, close, connect timeout)
    DISCONNECTED -> CONNECTING              (after backoff, while active)
    * -> STOPPED                            (teardown)

Local deltas are only sent while CONNECTED; they are not queued while the
channel is down. Every transition to CONNECTED pushes the full local state,
which peers merge idempotently, so missed deltas are recovered then.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import inspect
from contextlib import suppress
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional, Union

from peerlink.domain.replication.crdt import ReplicatedDocument
from peerlink.domain.replication.exceptions import ReentrantChangeError
from peerlink.domain.replication.store import ReplicatedStore
from peerlink.domain.sync.backoff import ReconnectBackoff
from peerlink.domain.sync.channel import Channel, ChannelEvent, ChannelEventKind, ChannelFactory, Frame
from peerlink.domain.sync.frames import decode_frame, encode_sync_frame, to_delta
from peerlink.obs import metrics as obs_metrics
from peerlink.obs.events import EventSink
from peerlink.obs.logging import bind_context
from peerlink.settings import settings

RemoteChangeListener = Callable[[ReplicatedDocument], Union[Awaitable[None], None]]


class SessionState(str, Enum):
	DISCONNECTED = "disconnected"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	BROADCASTING = "broadcasting"
	STOPPED = "stopped"


class SyncSession:
	def __init__(
		self,
		doc_id: str,
		store: ReplicatedStore,
		channel_factory: ChannelFactory,
		*,
		events: Optional[EventSink] = None,
		connect_timeout: Optional[float] = None,
		backoff: Optional[ReconnectBackoff] = None,
		on_remote_change: Optional[RemoteChangeListener] = None,
	) -> None:
		if not doc_id:
			raise ValueError("doc_id is required")
		self.doc_id = doc_id
		self._store = store
		self._factory = channel_factory
		self._events = events if events is not None else EventSink()
		self._connect_timeout = float(
			settings.sync_connect_timeout_seconds if connect_timeout is None else connect_timeout
		)
		self._backoff = backoff or ReconnectBackoff()
		self._listeners: list[RemoteChangeListener] = [on_remote_change] if on_remote_change else []
		self._state = SessionState.DISCONNECTED
		obs_metrics.set_sync_state(None, self._state.value)
		self._active = False
		self._channel: Optional[Channel] = None
		self._generation = 0
		self._timeout_task: Optional[asyncio.Task] = None
		self._reconnect_task: Optional[asyncio.Task] = None
		self._send_lock = asyncio.Lock()

	@property
	def state(self) -> SessionState:
		return self._state

	@property
	def is_active(self) -> bool:
		return self._active

	@property
	def is_connected(self) -> bool:
		return self._state in (SessionState.CONNECTED, SessionState.BROADCASTING)

	def add_listener(self, listener: RemoteChangeListener) -> None:
		self._listeners.append(listener)

	async def start(self) -> None:
		"""Begin connecting; keeps retrying until ``stop`` is called."""
		if self._active:
			return
		self._active = True
		self._set_state(SessionState.DISCONNECTED)
		await self._connect()

	async def stop(self) -> None:
		"""Close the channel and cancel pending timers; nothing fires afterwards."""
		self._active = False
		# Events from the current channel are stale from here on.
		self._generation += 1
		pending = [task for task in (self._timeout_task, self._reconnect_task) if task is not None]
		self._timeout_task = None
		self._reconnect_task = None
		current = asyncio.current_task()
		for task in pending:
			if task is not current:
				task.cancel()
		channel = self._channel
		self._channel = None
		self._set_state(SessionState.STOPPED)
		if channel is not None:
			await self._close_channel(channel)
		for task in pending:
			if task is current:
				continue
			with suppress(asyncio.CancelledError):
				await task

	async def broadcast(self, delta: Optional[bytes]) -> bool:
		"""Send a local delta if the channel is open. Returns True when sent."""
		if delta is None:
			return False
		if not self._can_send(self._channel):
			return self._skip_broadcast()
		# Sends go out one at a time, in call order.
		async with self._send_lock:
			channel = self._channel
			if not self._can_send(channel):
				return self._skip_broadcast()
			self._set_state(SessionState.BROADCASTING)
			try:
				return await self._send(channel, [delta])
			finally:
				if self._state is SessionState.BROADCASTING:
					self._set_state(SessionState.CONNECTED)

	def _can_send(self, channel: Optional[Channel]) -> bool:
		return self.is_connected and channel is not None and channel.is_open

	def _skip_broadcast(self) -> bool:
		obs_metrics.inc_sync_frame("out", "skipped")
		self._events.debug("sync.broadcast_skipped", doc_id=self.doc_id, state=self._state.value)
		return False

	async def handle_event(self, generation: int, event: ChannelEvent) -> None:
		"""Drive the state machine with one channel event."""
		if generation != self._generation:
			self._events.debug("sync.stale_event", doc_id=self.doc_id, kind=event.kind.value)
			return
		if event.kind is ChannelEventKind.OPEN:
			await self._on_open()
		elif event.kind is ChannelEventKind.MESSAGE:
			await self._on_message(event.data)
		elif event.kind is ChannelEventKind.ERROR:
			self._events.warning("sync.channel_error", doc_id=self.doc_id, reason=event.reason)
			await self._lost(generation, event.reason or "error", close_channel=True)
		elif event.kind is ChannelEventKind.CLOSE:
			await self._lost(generation, event.reason or "closed", close_channel=False)

	async def _connect(self) -> None:
		if not self._active:
			return
		self._generation += 1
		generation = self._generation
		self._set_state(SessionState.CONNECTING)
		try:
			channel = self._factory(functools.partial(self.handle_event, generation))
		except Exception as exc:
			self._events.warning("sync.connect_failed", error=exc, doc_id=self.doc_id)
			await self._lost(generation, "factory_failed", close_channel=False)
			return
		self._channel = channel
		self._timeout_task = self._spawn(self._watch_connect_timeout(generation), "connect-timeout")
		try:
			await channel.connect()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			self._events.warning("sync.connect_failed", error=exc, doc_id=self.doc_id)
			await self._lost(generation, "connect_failed", close_channel=True)

	async def _on_open(self) -> None:
		if self._state is not SessionState.CONNECTING:
			return
		self._cancel_timeout()
		self._set_state(SessionState.CONNECTED)
		self._backoff.reset()
		self._events.info("sync.connected", doc_id=self.doc_id)
		await self.broadcast(self._store.serialize())

	async def _on_message(self, data: Optional[Frame]) -> None:
		frame = decode_frame(data) if data is not None else None
		if frame is None or frame.doc_id != self.doc_id:
			obs_metrics.inc_sync_frame("in", "ignored")
			self._events.debug("sync.frame_ignored", doc_id=self.doc_id)
			return
		deltas: list[bytes] = []
		for change in frame.changes:
			delta = to_delta(change)
			if delta is None:
				obs_metrics.inc_merge("rejected")
				self._events.warning("merge.rejected", doc_id=self.doc_id, reason="not_bytes")
				continue
			deltas.append(delta)
		obs_metrics.inc_sync_frame("in", "received")
		if not deltas:
			return
		try:
			changed = self._store.merge_many(deltas)
		except ReentrantChangeError as exc:
			self._events.error("sync.merge_reentrant", error=exc, doc_id=self.doc_id)
			return
		if changed:
			await self._notify(self._store.document)

	async def _lost(self, generation: int, reason: str, *, close_channel: bool) -> None:
		if generation != self._generation:
			return
		if self._state in (SessionState.DISCONNECTED, SessionState.STOPPED):
			return
		self._cancel_timeout()
		channel = self._channel
		self._channel = None
		self._set_state(SessionState.DISCONNECTED)
		self._events.info("sync.disconnected", doc_id=self.doc_id, reason=reason)
		if close_channel and channel is not None:
			await self._close_channel(channel)
		if self._active:
			self._schedule_reconnect()

	def _schedule_reconnect(self) -> None:
		delay = self._backoff.next_delay()
		obs_metrics.inc_sync_reconnect()
		self._events.info("sync.reconnect_scheduled", doc_id=self.doc_id, delay=delay)
		self._reconnect_task = self._spawn(self._reconnect_after(delay), "reconnect")

	async def _reconnect_after(self, delay: float) -> None:
		await asyncio.sleep(delay)
		if not self._active or self._state is not SessionState.DISCONNECTED:
			return
		await self._connect()

	async def _watch_connect_timeout(self, generation: int) -> None:
		await asyncio.sleep(self._connect_timeout)
		if generation != self._generation or self._state is not SessionState.CONNECTING:
			return
		obs_metrics.inc_sync_connect_timeout()
		self._events.warning("sync.connect_timeout", doc_id=self.doc_id, timeout=self._connect_timeout)
		await self._lost(generation, "timeout", close_channel=True)

	async def _send(self, channel: Channel, deltas: list[bytes]) -> bool:
		try:
			await channel.send(encode_sync_frame(self.doc_id, deltas))
		except Exception as exc:
			obs_metrics.inc_sync_frame("out", "failed")
			self._events.warning("sync.send_failed", error=exc, doc_id=self.doc_id)
			return False
		obs_metrics.inc_sync_frame("out", "sent")
		return True

	async def _close_channel(self, channel: Channel) -> None:
		try:
			await channel.close()
		except Exception as exc:
			self._events.warning("sync.close_failed", error=exc, doc_id=self.doc_id)

	async def _notify(self, document: ReplicatedDocument) -> None:
		for listener in list(self._listeners):
			try:
				result = listener(document)
				if inspect.isawaitable(result):
					await result
			except Exception as exc:
				self._events.error("sync.listener_failed", error=exc, doc_id=self.doc_id)

	def _cancel_timeout(self) -> None:
		task = self._timeout_task
		self._timeout_task = None
		if task is not None and task is not asyncio.current_task() and not task.done():
			task.cancel()

	def _spawn(self, coro: Coroutine[Any, Any, None], label: str) -> asyncio.Task:
		context = contextvars.copy_context()
		context.run(bind_context, doc_id=self.doc_id, actor_id=self._store.actor_id)
		return asyncio.create_task(coro, name=f"sync-{label}:{self.doc_id}", context=context)

	def _set_state(self, state: SessionState) -> None:
		previous = self._state
		self._state = state
		obs_metrics.set_sync_state(previous.value, state.value)
