"""Tests for the control channel codec and the ordered sender."""

import json

import pytest

from services.realtime import control_events
from services.realtime.control_channel import ControlChannel
from services.realtime.control_events import (
	AudioDelta,
	ResponseCreate,
	ServerError,
	ServerNotification,
	SessionUpdate,
	TranscriptDelta,
	TurnDetection,
)
from services.realtime.errors import ChannelProtocolError

from conftest import FakeDataChannel


def test_session_update_wire_shape() -> None:
	event = SessionUpdate(instructions="Talk about art", voice="alloy", turn_detection=TurnDetection())

	payload = json.loads(control_events.encode(event))

	assert payload == {
		"type": "session.update",
		"session": {
			"instructions": "Talk about art",
			"voice": "alloy",
			"modalities": ["text", "audio"],
			"turn_detection": {
				"type": "server_vad",
				"threshold": 0.5,
				"prefix_padding_ms": 300,
				"silence_duration_ms": 500,
			},
		},
	}


def test_image_item_orders_text_before_image() -> None:
	item = control_events.image_item("Here is the painting.", "data:image/png;base64,AAAA")

	payload = item.to_dict()

	assert item.has_image
	assert payload["type"] == "conversation.item.create"
	assert payload["item"]["role"] == "user"
	assert payload["item"]["content"] == [
		{"type": "input_text", "text": "Here is the painting."},
		{"type": "input_image", "image_url": "data:image/png;base64,AAAA"},
	]


def test_response_create_omits_empty_instructions() -> None:
	assert ResponseCreate().to_dict() == {"type": "response.create", "response": {"modalities": ["text", "audio"]}}
	assert ResponseCreate(instructions="Say hi").to_dict()["response"]["instructions"] == "Say hi"


@pytest.mark.parametrize(
	"raw,expected",
	[
		('{"type": "response.audio.delta", "delta": "AAAA"}', AudioDelta),
		('{"type": "response.audio_transcript.delta", "delta": "Hi"}', TranscriptDelta),
		('{"type": "error", "error": {"message": "oops", "code": "bad"}}', ServerError),
		('{"type": "session.created", "session": {}}', ServerNotification),
	],
)
def test_decode_classifies_events(raw, expected) -> None:
	assert isinstance(control_events.decode(raw), expected)


@pytest.mark.parametrize("raw", ["not json", "[]", "42", '{"type": ""}', '{"kind": "x"}', b"\xff\xfe"])
def test_decode_rejects_malformed_frames(raw) -> None:
	with pytest.raises(ChannelProtocolError):
		control_events.decode(raw)


def test_decode_rejects_frames_nested_past_the_recursion_limit() -> None:
	with pytest.raises(ChannelProtocolError, match="nested too deeply"):
		control_events.decode("[" * 200000)


def test_describe_and_delta_filter() -> None:
	error = control_events.decode('{"type": "error", "error": {"message": "oops"}}')
	delta = control_events.decode('{"type": "response.text.delta", "delta": "x"}')
	notice = control_events.decode('{"type": "response.done"}')

	assert control_events.describe(error) == "Received event: error (oops)"
	assert control_events.describe(notice) == "Received event: response.done"
	assert control_events.is_streaming_delta(delta)
	assert not control_events.is_streaming_delta(notice)


def test_control_channel_refuses_unopened_channel() -> None:
	channel = FakeDataChannel("oai-events")
	control = ControlChannel(channel)

	with pytest.raises(ChannelProtocolError):
		control.send(SessionUpdate(instructions="x", voice="alloy"))
	assert channel.sent == []


def test_control_channel_requires_configuration_first() -> None:
	channel = FakeDataChannel("oai-events")
	channel.open()
	sent = []
	control = ControlChannel(channel, on_sent=sent.append)

	with pytest.raises(ChannelProtocolError):
		control.send(ResponseCreate())

	control.send(SessionUpdate(instructions="x", voice="alloy"))
	control.send(control_events.image_item("text", "data:image/png;base64,AA"))
	control.send(ResponseCreate())

	assert control.configured
	assert control.sent == ["session.update", "conversation.item.create", "response.create"]
	assert channel.sent_types == control.sent
	assert [event.TYPE for event in sent] == control.sent


def test_control_channel_wraps_send_failures() -> None:
	class BrokenChannel(FakeDataChannel):
		def send(self, text: str) -> None:
			raise OSError("sctp transport gone")

	channel = BrokenChannel("oai-events")
	channel.open()
	control = ControlChannel(channel)

	with pytest.raises(ChannelProtocolError, match="sctp transport gone"):
		control.send(SessionUpdate(instructions="x", voice="alloy"))
	assert control.sent == []
