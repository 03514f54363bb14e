"""aiortc implementation of the realtime transport contracts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRecorder
from aiortc.mediastreams import MediaStreamTrack

from services.realtime.errors import MicrophonePermissionError
from services.realtime.transport import (
	AudioTrack,
	ChannelMessageHandler,
	DataChannel,
	MediaAcquisition,
	PeerTransport,
	PlaybackSink,
	StateHandler,
)

LOGGER = logging.getLogger(__name__)


class AiortcAudioTrack(AudioTrack):
	"""Wrap an aiortc media track, optionally with the player that feeds it."""

	def __init__(self, track: MediaStreamTrack, player: Optional[MediaPlayer] = None) -> None:
		self.track = track
		self._player = player

	@property
	def id(self) -> str:
		return self.track.id

	def stop(self) -> None:
		self.track.stop()
		if self._player is not None:
			# MediaPlayer keeps the capture device open until its tracks stop
			for other in (self._player.audio, self._player.video):
				if other is not None and other is not self.track:
					other.stop()
			self._player = None


class AiortcDataChannel(DataChannel):
	"""Adapter over `aiortc.RTCDataChannel`."""

	def __init__(self, channel: Any) -> None:
		self._channel = channel
		self._opened = asyncio.Event()
		self._closed = asyncio.Event()
		self._close_handlers: List[Callable[[], None]] = []
		channel.on("open", self._opened.set)
		channel.on("close", self._handle_close)

	@property
	def label(self) -> str:
		return self._channel.label

	@property
	def ready_state(self) -> str:
		return self._channel.readyState

	def send(self, text: str) -> None:
		self._channel.send(text)

	def close(self) -> None:
		if self._channel.readyState not in ("closing", "closed"):
			self._channel.close()

	async def wait_open(self) -> None:
		if self._channel.readyState == "open":
			return
		if self._channel.readyState == "closed":
			raise ConnectionError("Data channel is closed")
		opened = asyncio.ensure_future(self._opened.wait())
		closed = asyncio.ensure_future(self._closed.wait())
		try:
			await asyncio.wait({opened, closed}, return_when=asyncio.FIRST_COMPLETED)
		finally:
			opened.cancel()
			closed.cancel()
		if not self._opened.is_set():
			raise ConnectionError("Data channel closed before opening")

	def on_message(self, handler: ChannelMessageHandler) -> None:
		def _dispatch(message: Any) -> None:
			if isinstance(message, bytes):
				message = message.decode("utf-8", errors="replace")
			handler(message)

		self._channel.on("message", _dispatch)

	def on_close(self, handler: Callable[[], None]) -> None:
		self._close_handlers.append(handler)

	def _handle_close(self) -> None:
		self._closed.set()
		for handler in list(self._close_handlers):
			handler()


class AiortcPeerTransport(PeerTransport):
	"""One `RTCPeerConnection` to the realtime endpoint.

	Args:
		ice_servers: Optional STUN/TURN URLs. aiortc gathers candidates before
			the offer is returned, so the offer SDP is complete (no trickle).
	"""

	def __init__(self, ice_servers: Optional[Sequence[str]] = None) -> None:
		configuration = None
		if ice_servers:
			configuration = RTCConfiguration(iceServers=[RTCIceServer(urls=list(ice_servers))])
		self._pc = RTCPeerConnection(configuration=configuration)
		self._channels: List[AiortcDataChannel] = []
		self._tracks: List[AudioTrack] = []

	@property
	def connection_state(self) -> str:
		return self._pc.connectionState

	def on_connection_state_change(self, handler: StateHandler) -> None:
		self._pc.on("connectionstatechange", lambda: handler(self._pc.connectionState))

	def on_ice_state_change(self, handler: StateHandler) -> None:
		self._pc.on("iceconnectionstatechange", lambda: handler(self._pc.iceConnectionState))

	def on_track(self, handler: Callable[[AudioTrack], None]) -> None:
		def _dispatch(track: MediaStreamTrack) -> None:
			if track.kind != "audio":
				LOGGER.debug("Ignoring inbound %s track", track.kind)
				return
			wrapped = AiortcAudioTrack(track)
			self._tracks.append(wrapped)
			handler(wrapped)

		self._pc.on("track", _dispatch)

	def add_track(self, track: AudioTrack) -> None:
		if not isinstance(track, AiortcAudioTrack):
			raise TypeError("AiortcPeerTransport only accepts AiortcAudioTrack instances")
		self._pc.addTrack(track.track)
		self._tracks.append(track)

	def create_data_channel(self, label: str) -> DataChannel:
		channel = AiortcDataChannel(self._pc.createDataChannel(label))
		self._channels.append(channel)
		return channel

	async def create_offer(self) -> str:
		offer = await self._pc.createOffer()
		await self._pc.setLocalDescription(offer)
		return self._pc.localDescription.sdp

	async def set_remote_answer(self, sdp: str) -> None:
		await self._pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="answer"))

	async def close(self) -> None:
		for channel in self._channels:
			channel.close()
		for track in self._tracks:
			track.stop()
		await self._pc.close()


class MicrophoneSource(MediaAcquisition):
	"""Capture the local microphone through FFmpeg via `MediaPlayer`.

	Args:
		device: FFmpeg input, e.g. "default" (PulseAudio), ":0" (avfoundation)
			or a file path for canned audio.
		format: FFmpeg input format, e.g. "pulse", "alsa", "avfoundation", "dshow".
		options: Extra FFmpeg options.
	"""

	def __init__(self, device: str = "default", format: Optional[str] = "pulse", options: Optional[Dict[str, str]] = None) -> None:
		self.device = device
		self.format = format
		self.options = options or {}

	async def acquire_microphone(self) -> AudioTrack:
		try:
			# opening the capture device is blocking -> run in thread
			player = await asyncio.to_thread(MediaPlayer, self.device, format=self.format, options=self.options)
		except Exception as exc:
			raise MicrophonePermissionError(f"Microphone unavailable ({self.device}): {exc}") from exc
		if player.audio is None:
			raise MicrophonePermissionError(f"No audio stream on capture device {self.device}")
		return AiortcAudioTrack(player.audio, player=player)


class RecorderPlayback(PlaybackSink):
	"""Play remote audio through a `MediaRecorder` (or discard it when no target is set).

	Args:
		target: FFmpeg output, e.g. "default" with format "pulse", or a file path.
		format: FFmpeg output format.
	"""

	def __init__(self, target: Optional[str] = None, format: Optional[str] = None) -> None:
		self.target = target
		self.format = format
		self._recorder: Any = None

	async def play(self, track: AudioTrack) -> None:
		if not isinstance(track, AiortcAudioTrack):
			raise TypeError("RecorderPlayback only accepts AiortcAudioTrack instances")
		if self._recorder is not None:
			await self._recorder.stop()
		if self.target is None:
			self._recorder = MediaBlackhole()
		else:
			self._recorder = MediaRecorder(self.target, format=self.format)
		self._recorder.addTrack(track.track)
		await self._recorder.start()

	async def close(self) -> None:
		if self._recorder is not None:
			recorder, self._recorder = self._recorder, None
			await recorder.stop()
