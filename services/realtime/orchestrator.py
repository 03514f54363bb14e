"""Drive one realtime voice session about an artwork.

`SessionOrchestrator` owns the lifecycle state machine

	idle -> resolving -> ready -> connecting -> connected -> ready | error

and the single `SessionHandle` a visitor UI may hold. Starting a
conversation runs an ordered sequence of suspension points: credential
exchange, microphone acquisition, offer creation, negotiation and remote
description. The UI only sees `connected` once the transport itself reports
an established connection. When the control channel opens, the context
injection task sends the session configuration, then the optional image
item, then the response request.

Every await inside an attempt is followed by a currency check: if
`stop_conversation()` ran in the meantime the attempt's handle is already
closed, so late results are dropped instead of being applied.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, List, Optional, Set

from models.session_models import ArtworkContext, SessionHandle, SessionState
from services.realtime import control_events
from services.realtime.clients import ContextResolver, CredentialBroker, NegotiationEndpoint
from services.realtime.control_channel import ControlChannel
from services.realtime.control_events import InboundEvent, ResponseCreate, SessionUpdate, TurnDetection
from services.realtime.errors import (
	ChannelProtocolError,
	ImageInjectionError,
	NegotiationError,
	ResolutionError,
	SessionError,
	TransportDisconnect,
)
from services.realtime.image_injection import ImageInjector
from services.realtime.prompts import greeting_instructions
from services.realtime.trace_log import TraceLog
from services.realtime.transport import AudioTrack, MediaAcquisition, PlaybackSink, TransportFactory
from utils.settings import RealtimeSettings

LOGGER = logging.getLogger(__name__)

StateListener = Callable[[SessionState, str], None]
EventListener = Callable[[InboundEvent], None]

TERMINAL_TRANSPORT_STATES = frozenset({"failed", "closed"})


class _AttemptAbandoned(Exception):
	"""Raised inside an attempt whose handle was released while it was suspended."""


class SessionOrchestrator:
	"""Connect a visitor to the realtime model for one artwork at a time."""

	def __init__(
		self,
		*,
		resolver: ContextResolver,
		broker: CredentialBroker,
		negotiator: NegotiationEndpoint,
		media: MediaAcquisition,
		transport_factory: TransportFactory,
		image_injector: Optional[ImageInjector] = None,
		playback: Optional[PlaybackSink] = None,
		settings: Optional[RealtimeSettings] = None,
		trace: Optional[TraceLog] = None,
	) -> None:
		self._resolver = resolver
		self._broker = broker
		self._negotiator = negotiator
		self._media = media
		self._transport_factory = transport_factory
		self._image_injector = image_injector
		self._playback = playback
		self._settings = settings or RealtimeSettings()
		self.trace = trace or TraceLog()

		self._state = SessionState.IDLE
		self._error_message = ""
		self._context: Optional[ArtworkContext] = None
		self._handle: Optional[SessionHandle] = None
		self._state_listeners: List[StateListener] = []
		self._event_listeners: List[EventListener] = []
		self._background: Set["asyncio.Task[Any]"] = set()

	# Observation -----------------------------------------------------------

	@property
	def state(self) -> SessionState:
		return self._state

	@property
	def error_message(self) -> str:
		return self._error_message

	@property
	def context(self) -> Optional[ArtworkContext]:
		return self._context

	@property
	def handle(self) -> Optional[SessionHandle]:
		"""The open handle, if any. Read-only for the UI layer."""
		return self._handle

	def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
		"""Observe `(state, error_message)` changes; returns an unsubscribe callable."""
		self._state_listeners.append(listener)
		return lambda: self._state_listeners.remove(listener) if listener in self._state_listeners else None

	def add_event_listener(self, listener: EventListener) -> Callable[[], None]:
		"""Observe every decoded inbound control event, deltas included."""
		self._event_listeners.append(listener)
		return lambda: self._event_listeners.remove(listener) if listener in self._event_listeners else None

	# Commands --------------------------------------------------------------

	async def activate(self, identifier: Optional[str] = None, short_name: Optional[str] = None) -> Optional[ArtworkContext]:
		"""Resolve the artwork and move to `ready`, or to `error` on failure."""
		if self._state in (SessionState.RESOLVING, SessionState.CONNECTING, SessionState.CONNECTED):
			LOGGER.info("Activation ignored while %s", self._state.value)
			return None
		self._context = None
		self._transition(SessionState.RESOLVING)
		try:
			context = await self._resolver.resolve(identifier=identifier, short_name=short_name)
		except ResolutionError as exc:
			self._transition(SessionState.ERROR, str(exc))
			return None
		except Exception as exc:
			LOGGER.exception("Unexpected failure resolving artwork")
			self._transition(SessionState.ERROR, f"Could not load artwork: {exc}")
			return None
		if self._state is not SessionState.RESOLVING:
			# torn down while resolving
			return None
		self._context = context
		self.trace.append(f"Artwork resolved: {context.title}")
		self._transition(SessionState.READY)
		return context

	async def start_conversation(self) -> bool:
		"""Open the realtime session. Returns True once the transport is connected.

		Ignored (returns False) unless the state is `ready`, so a second call
		made while a first is connecting never opens another handle.
		"""
		context = self._context
		if self._state is not SessionState.READY or context is None:
			LOGGER.info("start_conversation ignored while %s", self._state.value)
			return False

		handle = SessionHandle()
		self._handle = handle
		self._transition(SessionState.CONNECTING)
		self.trace.append("Starting connection flow...")
		try:
			await self._connect(handle, context)
		except _AttemptAbandoned:
			await handle.close()
			self.trace.append("Connection attempt ended before it completed")
			return False
		except SessionError as exc:
			await self._fail(handle, exc)
			return False
		except asyncio.CancelledError:
			owned = self._handle is handle
			await self._release(handle)
			if owned and self._state is SessionState.CONNECTING:
				self._transition(SessionState.READY)
			raise
		except Exception as exc:
			LOGGER.exception("Unexpected failure while connecting")
			await self._fail(handle, exc)
			return False
		return True

	async def stop_conversation(self) -> None:
		"""Release the handle, if any, and return to `ready`.

		Safe in every state and idempotent. Transport, channel and local tracks
		are closed before this returns. Without a resolved context the state
		is left as is.
		"""
		handle = self._handle
		if handle is not None:
			self.trace.append("Stopping conversation")
			await self._release(handle)
		if self._context is not None and self._state in (
			SessionState.CONNECTING,
			SessionState.CONNECTED,
			SessionState.ERROR,
		):
			self._transition(SessionState.READY)

	async def teardown(self) -> None:
		"""Release everything on component unmount and return to `idle`."""
		await self.stop_conversation()
		for task in list(self._background):
			task.cancel()
		if self._background:
			await asyncio.gather(*self._background, return_exceptions=True)
		if self._playback is not None:
			await self._playback.close()
		self._context = None
		if self._state is not SessionState.IDLE:
			self._transition(SessionState.IDLE)

	# Connection flow -------------------------------------------------------

	async def _connect(self, handle: SessionHandle, context: ArtworkContext) -> None:
		self.trace.append("Fetching ephemeral token...")
		credential = await self._broker.issue(context)
		self._ensure_current(handle)
		handle.credential = credential
		self.trace.append("Ephemeral token received.")

		transport = self._transport_factory()
		handle.transport = transport
		handle.transport_ready = asyncio.get_running_loop().create_future()
		transport.on_connection_state_change(lambda state: self._on_connection_state(handle, state))
		transport.on_ice_state_change(lambda state: self.trace.append(f"ICE State: {state}"))
		transport.on_track(lambda track: self._on_track(handle, track))

		track = await self._media.acquire_microphone()
		if handle.closed:
			track.stop()
			raise _AttemptAbandoned()
		handle.local_track = track
		self.trace.append("Microphone acquired.")
		transport.add_track(track)

		channel = transport.create_data_channel(self._settings.channel_label)
		handle.channel = channel
		channel.on_message(lambda raw: self._on_channel_message(handle, raw))
		channel.on_close(lambda: self._on_channel_close(handle))
		handle.injection_task = self._spawn(self._inject_context(handle, context))

		self.trace.append("Creating offer...")
		offer_sdp = await transport.create_offer()
		self._ensure_current(handle)

		self.trace.append("Sending SDP to realtime endpoint...")
		credential, handle.credential = handle.credential, None
		answer_sdp = await self._negotiator.negotiate(offer_sdp, credential)
		self._ensure_current(handle)
		self.trace.append("Received answer SDP.")

		await transport.set_remote_answer(answer_sdp)
		self._ensure_current(handle)

		timeout = self._settings.connect_timeout
		try:
			await asyncio.wait_for(handle.transport_ready, timeout)
		except asyncio.TimeoutError as exc:
			raise NegotiationError(f"Transport did not connect within {timeout:g}s") from exc
		self._ensure_current(handle)
		self._transition(SessionState.CONNECTED)

	def _ensure_current(self, handle: SessionHandle) -> None:
		if handle.closed or self._handle is not handle:
			raise _AttemptAbandoned()

	async def _release(self, handle: SessionHandle) -> None:
		if self._handle is handle:
			self._handle = None
		await handle.close()

	async def _fail(self, handle: SessionHandle, exc: BaseException) -> None:
		"""End the attempt owning `handle` in `error`."""
		if handle is not self._handle:
			await handle.close()
			return
		LOGGER.error("Realtime session failed: %s", exc)
		self.trace.append(f"ERROR: {exc}")
		await self._release(handle)
		self._transition(SessionState.ERROR, str(exc) or exc.__class__.__name__)

	async def _on_remote_disconnect(self, handle: SessionHandle, reason: TransportDisconnect) -> None:
		if handle is not self._handle:
			return
		self.trace.append(f"Call ended: {reason}")
		await self._release(handle)
		if self._context is not None and self._state in (SessionState.CONNECTING, SessionState.CONNECTED):
			self._transition(SessionState.READY)

	# Transport observers ---------------------------------------------------

	def _on_connection_state(self, handle: SessionHandle, state: str) -> None:
		self.trace.append(f"PC State: {state}")
		if handle.closed or handle is not self._handle:
			return
		ready = handle.transport_ready
		if state == "connected":
			if ready is not None and not ready.done():
				ready.set_result(True)
		elif state in TERMINAL_TRANSPORT_STATES:
			if ready is not None and not ready.done():
				ready.set_exception(NegotiationError(f"Transport {state} before connecting"))
			else:
				self._spawn(self._on_remote_disconnect(handle, TransportDisconnect(f"transport {state}")))

	def _on_track(self, handle: SessionHandle, track: AudioTrack) -> None:
		self.trace.append(f"Received audio track: {track.id}")
		if handle.closed:
			track.stop()
			return
		handle.remote_track = track
		if self._playback is not None:
			self._spawn(self._start_playback(track))

	async def _start_playback(self, track: AudioTrack) -> None:
		try:
			await self._playback.play(track)
		except Exception as exc:
			LOGGER.warning("Playback failed to start: %s", exc)
			self.trace.append(f"Autoplay failed: {exc}")

	def _on_channel_message(self, handle: SessionHandle, raw: str) -> None:
		if handle.closed:
			return
		try:
			event = control_events.decode(raw)
		except ChannelProtocolError as exc:
			LOGGER.debug("Dropped control frame: %s", exc)
			return
		except Exception:
			LOGGER.exception("Dropped control frame that could not be classified")
			return
		for listener in list(self._event_listeners):
			try:
				listener(event)
			except Exception:
				LOGGER.exception("Event listener failed")
		if not control_events.is_streaming_delta(event):
			self.trace.append(control_events.describe(event))

	def _on_channel_close(self, handle: SessionHandle) -> None:
		self.trace.append("Data Channel CLOSED")

	# Context injection -----------------------------------------------------

	async def _inject_context(self, handle: SessionHandle, context: ArtworkContext) -> None:
		"""Send configuration, optional image item, then the response request."""
		channel = handle.channel
		try:
			await channel.wait_open()
		except ConnectionError as exc:
			if not handle.closed:
				await self._fail(handle, ChannelProtocolError(f"Data channel closed before opening: {exc}"))
			return
		if handle.closed:
			return
		self.trace.append("Data Channel OPEN! Sending initial instructions...")
		control = ControlChannel(channel, on_sent=lambda event: self.trace.append(f"Sent event: {event.TYPE}"))
		handle.control = control
		try:
			control.send(self._session_update(context))
			if context.image_reference and self._image_injector is not None:
				item = await self._build_image_item(context)
				if handle.closed:
					return
				if item is not None:
					control.send(item)
			control.send(
				ResponseCreate(
					modalities=self._settings.modalities,
					instructions=self._settings.greeting or greeting_instructions(),
				)
			)
		except ChannelProtocolError as exc:
			if not handle.closed:
				await self._fail(handle, exc)

	def _session_update(self, context: ArtworkContext) -> SessionUpdate:
		vad = self._settings.vad
		turn_detection = None
		if vad.enabled:
			turn_detection = TurnDetection(
				threshold=vad.threshold,
				prefix_padding_ms=vad.prefix_padding_ms,
				silence_duration_ms=vad.silence_duration_ms,
			)
		return SessionUpdate(
			instructions=context.instruction_text,
			voice=self._settings.voice,
			modalities=self._settings.modalities,
			turn_detection=turn_detection,
		)

	async def _build_image_item(self, context: ArtworkContext) -> Optional[control_events.ConversationItemCreate]:
		self.trace.append("Fetching artwork image...")
		try:
			item = await self._image_injector.build_item(context)
		except ImageInjectionError as exc:
			LOGGER.warning("Image injection skipped for %s: %s", context.identifier, exc)
			self.trace.append(f"Image injection skipped: {exc}")
			return None
		except Exception as exc:
			LOGGER.exception("Unexpected image injection failure for %s", context.identifier)
			self.trace.append(f"Image injection skipped: {exc}")
			return None
		self.trace.append("Artwork image encoded.")
		return item

	# Helpers ---------------------------------------------------------------

	def _transition(self, state: SessionState, message: str = "") -> None:
		previous = self._state
		self._state = state
		self._error_message = message if state is SessionState.ERROR else ""
		suffix = f" ({message})" if message else ""
		self.trace.append(f"State: {previous.value} -> {state.value}{suffix}")
		for listener in list(self._state_listeners):
			try:
				listener(state, self._error_message)
			except Exception:
				LOGGER.exception("State listener failed")

	def _spawn(self, coro: Coroutine[Any, Any, Any]) -> "asyncio.Task[Any]":
		task = asyncio.create_task(coro)
		self._background.add(task)
		task.add_done_callback(self._background.discard)
		return task
