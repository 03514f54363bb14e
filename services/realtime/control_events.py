"""Control protocol codec for the realtime data channel.

Outbound and inbound messages are modelled as small dataclasses keyed by
their `type` string. `encode` turns an outbound event into the JSON text sent
over the channel; `decode` classifies an inbound frame and raises
`ChannelProtocolError` for anything that is not a JSON object with a `type`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from services.realtime.errors import ChannelProtocolError

DEFAULT_MODALITIES: Tuple[str, ...] = ("text", "audio")


# Outbound ------------------------------------------------------------------


@dataclass(frozen=True)
class TurnDetection:
	"""Server-side voice activity detection parameters."""

	threshold: float = 0.5
	prefix_padding_ms: int = 300
	silence_duration_ms: int = 500
	type: str = "server_vad"

	def to_dict(self) -> Dict[str, Any]:
		return {
			"type": self.type,
			"threshold": self.threshold,
			"prefix_padding_ms": self.prefix_padding_ms,
			"silence_duration_ms": self.silence_duration_ms,
		}


@dataclass(frozen=True)
class SessionUpdate:
	"""Session configuration: instructions, voice, modalities and turn detection."""

	TYPE: ClassVar[str] = "session.update"

	instructions: str
	voice: str
	modalities: Sequence[str] = DEFAULT_MODALITIES
	turn_detection: Optional[TurnDetection] = None

	def to_dict(self) -> Dict[str, Any]:
		session: Dict[str, Any] = {
			"instructions": self.instructions,
			"voice": self.voice,
			"modalities": list(self.modalities),
		}
		if self.turn_detection is not None:
			session["turn_detection"] = self.turn_detection.to_dict()
		return {"type": self.TYPE, "session": session}


@dataclass(frozen=True)
class InputText:
	text: str

	def to_dict(self) -> Dict[str, Any]:
		return {"type": "input_text", "text": self.text}


@dataclass(frozen=True)
class InputImage:
	"""Inline image block; `image_url` is a base64 data URL."""

	image_url: str

	def to_dict(self) -> Dict[str, Any]:
		return {"type": "input_image", "image_url": self.image_url}


ContentBlock = Union[InputText, InputImage]


@dataclass(frozen=True)
class ConversationItemCreate:
	"""A user message whose content is an ordered list of blocks."""

	TYPE: ClassVar[str] = "conversation.item.create"

	content: Tuple[ContentBlock, ...]
	role: str = "user"

	@property
	def has_image(self) -> bool:
		return any(isinstance(block, InputImage) for block in self.content)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"type": self.TYPE,
			"item": {
				"type": "message",
				"role": self.role,
				"content": [block.to_dict() for block in self.content],
			},
		}


@dataclass(frozen=True)
class ResponseCreate:
	"""Ask the model to produce a turn."""

	TYPE: ClassVar[str] = "response.create"

	modalities: Sequence[str] = DEFAULT_MODALITIES
	instructions: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		response: Dict[str, Any] = {"modalities": list(self.modalities)}
		if self.instructions:
			response["instructions"] = self.instructions
		return {"type": self.TYPE, "response": response}


OutboundEvent = Union[SessionUpdate, ConversationItemCreate, ResponseCreate]


def encode(event: OutboundEvent) -> str:
	"""Return the JSON text frame for an outbound event."""
	return json.dumps(event.to_dict())


# Inbound -------------------------------------------------------------------

AUDIO_DELTA_TYPES = frozenset({"response.audio.delta", "response.output_audio.delta"})
TRANSCRIPT_DELTA_TYPES = frozenset(
	{
		"response.audio_transcript.delta",
		"response.output_audio_transcript.delta",
		"response.text.delta",
		"response.output_text.delta",
	}
)


@dataclass(frozen=True)
class AudioDelta:
	type: str
	delta: str = ""


@dataclass(frozen=True)
class TranscriptDelta:
	type: str
	delta: str = ""


@dataclass(frozen=True)
class ServerError:
	"""An `error` event reported by the model service."""

	type: str
	message: str = ""
	code: Optional[str] = None


@dataclass(frozen=True)
class ServerNotification:
	"""Any other server event, kept with its raw payload."""

	type: str
	payload: Dict[str, Any] = field(default_factory=dict)


InboundEvent = Union[AudioDelta, TranscriptDelta, ServerError, ServerNotification]


def decode(raw: Union[str, bytes]) -> InboundEvent:
	"""Classify an inbound frame.

	Raises:
		ChannelProtocolError: If the frame is not a JSON object with a string `type`.
	"""
	try:
		payload = json.loads(raw)
	except RecursionError as exc:
		raise ChannelProtocolError("Inbound control frame is nested too deeply") from exc
	except (TypeError, ValueError) as exc:
		raise ChannelProtocolError("Inbound control frame is not JSON") from exc
	if not isinstance(payload, dict):
		raise ChannelProtocolError("Inbound control frame is not a JSON object")
	event_type = payload.get("type")
	if not isinstance(event_type, str) or not event_type:
		raise ChannelProtocolError("Inbound control frame has no type")

	if event_type in AUDIO_DELTA_TYPES:
		return AudioDelta(type=event_type, delta=str(payload.get("delta") or ""))
	if event_type in TRANSCRIPT_DELTA_TYPES:
		return TranscriptDelta(type=event_type, delta=str(payload.get("delta") or ""))
	if event_type == "error":
		error = payload.get("error") if isinstance(payload.get("error"), dict) else {}
		return ServerError(type=event_type, message=str(error.get("message") or ""), code=error.get("code"))
	return ServerNotification(type=event_type, payload=payload)


def is_streaming_delta(event: InboundEvent) -> bool:
	"""Return True for the high-frequency fragments kept out of the trace."""
	return isinstance(event, (AudioDelta, TranscriptDelta))


def describe(event: InboundEvent) -> str:
	"""Return the trace line for a classified inbound event."""
	if isinstance(event, ServerError):
		detail = event.message or "no message"
		return f"Received event: {event.type} ({detail})"
	return f"Received event: {event.type}"


def image_item(framing_text: str, image_url: str) -> ConversationItemCreate:
	"""Build the conversation item carrying the framing text then the image."""
	blocks: List[ContentBlock] = [InputText(text=framing_text), InputImage(image_url=image_url)]
	return ConversationItemCreate(content=tuple(blocks))
