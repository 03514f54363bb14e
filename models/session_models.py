"""Session domain models for realtime visitor conversations."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
	from services.realtime.control_channel import ControlChannel
	from services.realtime.transport import AudioTrack, DataChannel, PeerTransport


class SessionState(str, Enum):
	"""Lifecycle states exposed to the UI layer."""

	IDLE = "idle"
	RESOLVING = "resolving"
	READY = "ready"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	ERROR = "error"


@dataclass(frozen=True)
class ArtworkContext:
	"""Read-only snapshot of an artwork used to seed one session.

	Attributes:
		identifier: Opaque record id (or the short-name when no id is known).
		title: Non-empty artwork title.
		descriptive_facts: Curator-supplied facts, possibly empty.
		image_reference: Optional URI of the artwork image.
		instruction_text: Narrative prompt derived from title, facts and description.
		short_name: Optional slug the visitor URL was built from.
		description: Optional free-text description.
	"""

	identifier: str
	title: str
	descriptive_facts: str = ""
	image_reference: Optional[str] = None
	instruction_text: str = ""
	short_name: Optional[str] = None
	description: str = ""


@dataclass(frozen=True)
class EphemeralCredential:
	"""Single-use secret authorising exactly one negotiation call."""

	value: str = field(repr=False)
	expires_at: Optional[int] = None

	@property
	def masked(self) -> str:
		"""Return a log-safe rendering of the secret."""
		if len(self.value) <= 8:
			return "****"
		return f"{self.value[:4]}…{self.value[-2:]}"

	def is_expired(self, now: Optional[float] = None) -> bool:
		if self.expires_at is None:
			return False
		return (now if now is not None else time.time()) >= self.expires_at


@dataclass
class TraceEntry:
	"""Timestamped diagnostic line."""

	message: str
	created_at: float = field(default_factory=lambda: time.time())

	def render(self) -> str:
		return f"{time.strftime('%H:%M:%S', time.localtime(self.created_at))} - {self.message}"


@dataclass
class SessionHandle:
	"""The live connection owned by one orchestrator.

	Transport, control channel and media tracks are released together by
	`close()`, which is safe to call more than once.
	"""

	transport: Optional["PeerTransport"] = None
	channel: Optional["DataChannel"] = None
	local_track: Optional["AudioTrack"] = None
	remote_track: Optional["AudioTrack"] = None
	credential: Optional[EphemeralCredential] = None
	injection_task: Optional["asyncio.Task[Any]"] = None
	transport_ready: Optional["asyncio.Future[bool]"] = None
	control: Optional["ControlChannel"] = None
	closed: bool = False

	async def close(self) -> None:
		"""Close the channel, stop both tracks and close the transport."""
		if self.closed:
			return
		self.closed = True
		self.credential = None
		task = self.injection_task
		if task is not None and not task.done() and task is not asyncio.current_task():
			task.cancel()
		ready = self.transport_ready
		if ready is not None:
			if not ready.done():
				ready.set_result(False)
			elif not ready.cancelled():
				ready.exception()
		try:
			if self.channel is not None:
				self.channel.close()
			for track in (self.local_track, self.remote_track):
				if track is not None:
					track.stop()
		finally:
			if self.transport is not None:
				await self.transport.close()
