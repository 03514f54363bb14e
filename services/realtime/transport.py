"""Transport contracts the session orchestrator drives.

The orchestrator never touches a WebRTC library directly. It talks to a
`PeerTransport` (peer connection), a `DataChannel` (control events) and
`AudioTrack` objects, and obtains local capture and remote playback through
`MediaAcquisition` and `PlaybackSink`. `services.realtime.aiortc_transport`
provides the aiortc-backed implementation; tests provide in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

ChannelMessageHandler = Callable[[str], None]
StateHandler = Callable[[str], None]


class AudioTrack(ABC):
	"""A local or remote audio stream."""

	@property
	@abstractmethod
	def id(self) -> str:
		"""Track identifier for diagnostics."""

	@abstractmethod
	def stop(self) -> None:
		"""Stop the track. Calling it twice has no further effect."""


class DataChannel(ABC):
	"""Ordered, reliable control channel carrying JSON text frames."""

	@property
	@abstractmethod
	def label(self) -> str:
		"""Channel label negotiated with the remote side."""

	@property
	@abstractmethod
	def ready_state(self) -> str:
		"""One of `connecting`, `open`, `closing`, `closed`."""

	@abstractmethod
	def send(self, text: str) -> None:
		"""Queue a text frame. Only valid while `ready_state == "open"`."""

	@abstractmethod
	def close(self) -> None:
		"""Close the channel."""

	@abstractmethod
	async def wait_open(self) -> None:
		"""Suspend until the channel opens.

		Raises:
			ConnectionError: If the channel closes before it ever opened.
		"""

	@abstractmethod
	def on_message(self, handler: ChannelMessageHandler) -> None:
		"""Register the handler for inbound text frames."""

	@abstractmethod
	def on_close(self, handler: Callable[[], None]) -> None:
		"""Register the handler invoked once the channel closes."""


class PeerTransport(ABC):
	"""A single peer connection to the realtime endpoint."""

	@property
	@abstractmethod
	def connection_state(self) -> str:
		"""Current connection state (`new`, `connecting`, `connected`, `failed`, `closed`)."""

	@abstractmethod
	def on_connection_state_change(self, handler: StateHandler) -> None:
		"""Register the observer for connection-state transitions."""

	@abstractmethod
	def on_ice_state_change(self, handler: StateHandler) -> None:
		"""Register the observer for ICE connection-state transitions."""

	@abstractmethod
	def on_track(self, handler: Callable[[AudioTrack], None]) -> None:
		"""Register the observer for inbound media tracks."""

	@abstractmethod
	def add_track(self, track: AudioTrack) -> None:
		"""Attach a local track before the offer is created."""

	@abstractmethod
	def create_data_channel(self, label: str) -> DataChannel:
		"""Create the control channel. Must be called before the offer."""

	@abstractmethod
	async def create_offer(self) -> str:
		"""Create the offer, apply it locally and return its SDP."""

	@abstractmethod
	async def set_remote_answer(self, sdp: str) -> None:
		"""Apply the endpoint's answer as the remote description."""

	@abstractmethod
	async def close(self) -> None:
		"""Close the connection and every resource it owns."""


class MediaAcquisition(ABC):
	"""Source of local microphone capture."""

	@abstractmethod
	async def acquire_microphone(self) -> AudioTrack:
		"""Return a live capture track.

		Raises:
			MicrophonePermissionError: If capture is denied or unavailable.
		"""


class PlaybackSink(ABC):
	"""Local output for the model's audio."""

	@abstractmethod
	async def play(self, track: AudioTrack) -> None:
		"""Start playing the track. Failures are reported to the caller."""

	async def close(self) -> None:
		"""Release the sink. Optional for sinks that hold nothing."""
		return None


TransportFactory = Callable[[], PeerTransport]
