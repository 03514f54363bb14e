"""Shared fakes for orchestrator tests.

The fakes implement the abstract transport and collaborator contracts in
memory, so tests drive the full state machine without a network or audio
device.
"""

import asyncio
import io
import json
from typing import Dict, List, Optional, Tuple

import pytest
from PIL import Image

from models.session_models import ArtworkContext, EphemeralCredential
from services.image_encoder import ImageEncoder
from services.realtime.clients import ContextResolver, CredentialBroker, ImageSource, NegotiationEndpoint, context_from_record
from services.realtime.errors import (
	CredentialError,
	ImageInjectionError,
	MicrophonePermissionError,
	NegotiationError,
	ResolutionError,
)
from services.realtime.image_injection import ImageInjector
from services.realtime.orchestrator import SessionOrchestrator
from services.realtime.transport import AudioTrack, DataChannel, MediaAcquisition, PeerTransport, PlaybackSink
from utils.settings import RealtimeSettings

ANSWER_SDP = "v=0\r\no=- 1 2 IN IP4 127.0.0.1\r\ns=-\r\n"


class FakeTrack(AudioTrack):
	def __init__(self, track_id: str = "mic-1") -> None:
		self._id = track_id
		self.stopped = False

	@property
	def id(self) -> str:
		return self._id

	def stop(self) -> None:
		self.stopped = True


class FakeDataChannel(DataChannel):
	def __init__(self, label: str) -> None:
		self._label = label
		self.state = "connecting"
		self.sent: List[dict] = []
		self._wakeup = asyncio.Event()
		self._message_handler = None
		self._close_handlers = []

	@property
	def label(self) -> str:
		return self._label

	@property
	def ready_state(self) -> str:
		return self.state

	def send(self, text: str) -> None:
		if self.state != "open":
			raise RuntimeError("channel not open")
		self.sent.append(json.loads(text))

	def close(self) -> None:
		if self.state == "closed":
			return
		self.state = "closed"
		self._wakeup.set()
		for handler in self._close_handlers:
			handler()

	async def wait_open(self) -> None:
		if self.state == "open":
			return
		if self.state == "closed":
			raise ConnectionError("closed")
		await self._wakeup.wait()
		if self.state != "open":
			raise ConnectionError("closed before open")

	def on_message(self, handler) -> None:
		self._message_handler = handler

	def on_close(self, handler) -> None:
		self._close_handlers.append(handler)

	def open(self) -> None:
		self.state = "open"
		self._wakeup.set()

	def receive(self, raw) -> None:
		self._message_handler(raw)

	@property
	def sent_types(self) -> List[str]:
		return [event["type"] for event in self.sent]


class FakeTransport(PeerTransport):
	def __init__(self, auto_connect: bool = True, open_channel: bool = True) -> None:
		self.auto_connect = auto_connect
		self.open_channel = open_channel
		self.state = "new"
		self.closed = False
		self.tracks: List[AudioTrack] = []
		self.channels: List[FakeDataChannel] = []
		self.remote_answer: Optional[str] = None
		self.observers_before_offer = False
		self._state_handlers = []
		self._ice_handlers = []
		self._track_handlers = []

	@property
	def connection_state(self) -> str:
		return self.state

	def on_connection_state_change(self, handler) -> None:
		self._state_handlers.append(handler)

	def on_ice_state_change(self, handler) -> None:
		self._ice_handlers.append(handler)

	def on_track(self, handler) -> None:
		self._track_handlers.append(handler)

	def add_track(self, track: AudioTrack) -> None:
		self.tracks.append(track)

	def create_data_channel(self, label: str) -> DataChannel:
		channel = FakeDataChannel(label)
		self.channels.append(channel)
		return channel

	async def create_offer(self) -> str:
		self.observers_before_offer = bool(self._state_handlers and self._ice_handlers and self._track_handlers)
		await asyncio.sleep(0)
		return "v=0\r\no=- offer\r\n"

	async def set_remote_answer(self, sdp: str) -> None:
		self.remote_answer = sdp
		if self.auto_connect:
			asyncio.get_running_loop().call_soon(self.connect)

	def connect(self) -> None:
		self.emit_ice("connected")
		self.emit_state("connected")
		if self.open_channel:
			for channel in self.channels:
				channel.open()

	def emit_state(self, state: str) -> None:
		self.state = state
		for handler in list(self._state_handlers):
			handler(state)

	def emit_ice(self, state: str) -> None:
		for handler in list(self._ice_handlers):
			handler(state)

	def emit_track(self, track: AudioTrack) -> None:
		for handler in list(self._track_handlers):
			handler(track)

	async def close(self) -> None:
		self.closed = True
		self.state = "closed"
		for channel in self.channels:
			channel.close()

	@property
	def channel(self) -> FakeDataChannel:
		return self.channels[0]


class TransportRecorder:
	"""Transport factory that remembers every transport it created."""

	def __init__(self, **kwargs) -> None:
		self.kwargs = kwargs
		self.created: List[FakeTransport] = []

	def __call__(self) -> FakeTransport:
		transport = FakeTransport(**self.kwargs)
		self.created.append(transport)
		return transport

	@property
	def last(self) -> FakeTransport:
		return self.created[-1]

	@property
	def open_transports(self) -> List[FakeTransport]:
		return [t for t in self.created if not t.closed]


class FakeMedia(MediaAcquisition):
	def __init__(self, deny: bool = False) -> None:
		self.deny = deny
		self.tracks: List[FakeTrack] = []

	async def acquire_microphone(self) -> AudioTrack:
		await asyncio.sleep(0)
		if self.deny:
			raise MicrophonePermissionError("Permission denied by user")
		track = FakeTrack(f"mic-{len(self.tracks) + 1}")
		self.tracks.append(track)
		return track


class FakePlayback(PlaybackSink):
	def __init__(self, fail: bool = False) -> None:
		self.fail = fail
		self.played: List[AudioTrack] = []

	async def play(self, track: AudioTrack) -> None:
		if self.fail:
			raise RuntimeError("play() failed because the user didn't interact with the document first")
		self.played.append(track)


class FakeResolver(ContextResolver):
	def __init__(self, records: Dict[str, dict]) -> None:
		self.records = records
		self.calls = 0

	async def resolve(self, identifier=None, short_name=None) -> ArtworkContext:
		self.calls += 1
		await asyncio.sleep(0)
		if not identifier and not short_name:
			raise ResolutionError("No artwork ID or slug was provided.")
		for record in self.records.values():
			if (identifier and record.get("id") == identifier) or (short_name and record.get("slug") == short_name):
				return context_from_record(record)
		raise ResolutionError("Artwork not found")


class FakeBroker(CredentialBroker):
	def __init__(self, fail: bool = False) -> None:
		self.fail = fail
		self.issued: List[ArtworkContext] = []

	async def issue(self, context: ArtworkContext) -> EphemeralCredential:
		await asyncio.sleep(0)
		self.issued.append(context)
		if self.fail:
			raise CredentialError("Credential broker returned status 500")
		return EphemeralCredential(value=f"ek_test_{len(self.issued)}_secret")


class FakeNegotiator(NegotiationEndpoint):
	def __init__(self, status: int = 201, body: str = ANSWER_SDP) -> None:
		self.status = status
		self.body = body
		self.calls: List[Tuple[str, EphemeralCredential]] = []
		self.gate: Optional[asyncio.Event] = None

	async def negotiate(self, offer_sdp: str, credential: EphemeralCredential) -> str:
		self.calls.append((offer_sdp, credential))
		if self.gate is not None:
			await self.gate.wait()
		await asyncio.sleep(0)
		if self.status >= 400:
			raise NegotiationError(f"Realtime endpoint rejected the offer ({self.status})", status=self.status, body=self.body)
		return self.body


class FakeImageSource(ImageSource):
	def __init__(self, fail: bool = False, content_type: str = "image/png") -> None:
		self.fail = fail
		self.content_type = content_type
		self.fetched: List[str] = []

	async def fetch(self, reference: str) -> Tuple[bytes, str]:
		self.fetched.append(reference)
		if self.fail:
			raise ImageInjectionError("Image fetch returned status 404")
		return png_bytes(), self.content_type


def png_bytes(size=(32, 16), color=(200, 30, 30, 255)) -> bytes:
	buf = io.BytesIO()
	Image.new("RGBA", size, color).save(buf, format="PNG")
	return buf.getvalue()


STARRY_NIGHT = {
	"id": "a1",
	"slug": "starry-night",
	"title": "Starry Night",
	"facts": "Oil on canvas, 1889",
	"description": "A swirling night sky over Saint-Remy.",
	"image_url": None,
}

MONA_LISA = {
	"id": "a2",
	"slug": "mona-lisa",
	"title": "Mona Lisa",
	"facts": "Oil on poplar panel, c. 1503",
	"description": "",
	"image_url": "https://museum.example/images/mona-lisa.png",
}


class Harness:
	"""Bundle of an orchestrator and the fakes behind it."""

	def __init__(
		self,
		*,
		broker_fail: bool = False,
		deny_microphone: bool = False,
		negotiation_status: int = 201,
		image_fail: bool = False,
		playback_fail: bool = False,
		auto_connect: bool = True,
		open_channel: bool = True,
		settings: Optional[RealtimeSettings] = None,
	) -> None:
		self.resolver = FakeResolver({"a1": STARRY_NIGHT, "a2": MONA_LISA})
		self.broker = FakeBroker(fail=broker_fail)
		self.negotiator = FakeNegotiator(status=negotiation_status)
		self.media = FakeMedia(deny=deny_microphone)
		self.transports = TransportRecorder(auto_connect=auto_connect, open_channel=open_channel)
		self.image_source = FakeImageSource(fail=image_fail)
		self.playback = FakePlayback(fail=playback_fail)
		self.orchestrator = SessionOrchestrator(
			resolver=self.resolver,
			broker=self.broker,
			negotiator=self.negotiator,
			media=self.media,
			transport_factory=self.transports,
			image_injector=ImageInjector(self.image_source, ImageEncoder(max_size=(64, 64))),
			playback=self.playback,
			settings=settings or RealtimeSettings(connect_timeout=1.0),
		)

	async def ready(self, identifier: str = "a1") -> ArtworkContext:
		context = await self.orchestrator.activate(identifier=identifier)
		assert context is not None
		return context

	async def injected(self, timeout: float = 2.0) -> None:
		"""Wait until the context injection sequence has finished."""
		handle = self.orchestrator.handle
		assert handle is not None and handle.injection_task is not None
		await asyncio.wait_for(asyncio.shield(handle.injection_task), timeout)


@pytest.fixture
def harness_factory():
	return Harness


@pytest.fixture
def harness() -> Harness:
	return Harness()
