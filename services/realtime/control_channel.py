"""Ordered outbound sender for the realtime control channel."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from services.realtime.control_events import (
	ConversationItemCreate,
	OutboundEvent,
	ResponseCreate,
	SessionUpdate,
	encode,
)
from services.realtime.errors import ChannelProtocolError
from services.realtime.transport import DataChannel

LOGGER = logging.getLogger(__name__)


class ControlChannel:
	"""Send control events over one data channel, enforcing protocol order.

	A `session.update` must go out before any conversation item or response
	request, and nothing is sent unless the underlying channel is open. The
	`sent` list records event types in the order they left, which callers use
	for diagnostics.
	"""

	def __init__(self, channel: DataChannel, on_sent: Optional[Callable[[OutboundEvent], None]] = None) -> None:
		self.channel = channel
		self.on_sent = on_sent
		self.sent: List[str] = []

	@property
	def configured(self) -> bool:
		return SessionUpdate.TYPE in self.sent

	def send(self, event: OutboundEvent) -> None:
		"""Encode and send `event`.

		Raises:
			ChannelProtocolError: If the channel is not open, or the event would
				break configuration-before-content ordering.
		"""
		state = self.channel.ready_state
		if state != "open":
			raise ChannelProtocolError(f"Cannot send {event.TYPE}: data channel is {state}")
		if isinstance(event, (ConversationItemCreate, ResponseCreate)) and not self.configured:
			raise ChannelProtocolError(f"Cannot send {event.TYPE} before {SessionUpdate.TYPE}")
		try:
			self.channel.send(encode(event))
		except ChannelProtocolError:
			raise
		except Exception as exc:
			raise ChannelProtocolError(f"Failed to send {event.TYPE}: {exc}") from exc
		self.sent.append(event.TYPE)
		LOGGER.debug("Sent control event %s on %s", event.TYPE, self.channel.label)
		if self.on_sent is not None:
			self.on_sent(event)
