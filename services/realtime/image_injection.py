"""Fetch an artwork image and package it as a conversation item."""

from __future__ import annotations

import asyncio
import logging

from models.session_models import ArtworkContext
from services.image_encoder import ImageEncoder
from services.realtime.clients import ImageSource
from services.realtime.control_events import ConversationItemCreate, image_item
from services.realtime.errors import ImageInjectionError
from services.realtime.prompts import image_framing_text

LOGGER = logging.getLogger(__name__)


class ImageInjector:
	"""Build the `conversation.item.create` event carrying the artwork image."""

	def __init__(self, source: ImageSource, encoder: ImageEncoder) -> None:
		self.source = source
		self.encoder = encoder

	async def build_item(self, context: ArtworkContext) -> ConversationItemCreate:
		"""Return a text-then-image conversation item for the context's image.

		Raises:
			ImageInjectionError: If the context has no image, or it cannot be
				fetched or encoded.
		"""
		if not context.image_reference:
			raise ImageInjectionError("Artwork has no image reference")
		data, content_type = await self.source.fetch(context.image_reference)
		try:
			# Pillow decoding is blocking -> run in thread
			data_url = await asyncio.to_thread(self.encoder.to_data_url, data, content_type)
		except ValueError as exc:
			raise ImageInjectionError(f"Image encoding failed: {exc}") from exc
		LOGGER.debug("Encoded %s (%s, %d bytes) for injection", context.image_reference, content_type, len(data))
		return image_item(image_framing_text(context.title), data_url)
