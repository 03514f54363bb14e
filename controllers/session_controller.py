"""Credential broker: issue ephemeral realtime sessions bound to an artwork."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from dal.artwork_dal import ArtworkDAL
from models.artwork_record import ArtworkRecord
from services.realtime.prompts import DEFAULT_INSTRUCTIONS, artwork_instructions
from utils.settings import ServerSettings

LOGGER = logging.getLogger(__name__)


async def _find_artwork(dal: ArtworkDAL, artwork_id: Optional[str], slug: Optional[str]) -> Optional[ArtworkRecord]:
	if artwork_id:
		record = await dal.get_artwork_by_id(artwork_id)
		if record is not None:
			return record
	if slug:
		return await dal.get_artwork_by_slug(slug)
	return None


async def issue_session(request: Request, artwork_id: Optional[str] = None, slug: Optional[str] = None) -> Dict[str, Any]:
	"""Create a realtime session whose instructions describe the artwork.

	Unknown or missing artworks fall back to generic assistant instructions.
	The returned payload carries `client_secret.value`, the ephemeral key the
	visitor uses for exactly one negotiation.
	"""
	client = getattr(request.app.state, "openai_client", None)
	if client is None:
		raise HTTPException(status_code=500, detail="OpenAI API Key is missing on server")
	settings: ServerSettings = request.app.state.settings

	instructions = DEFAULT_INSTRUCTIONS
	record = await _find_artwork(ArtworkDAL(request.app.state.db_initializer), artwork_id, slug)
	if record is not None:
		instructions = artwork_instructions(
			record.title,
			record.facts or "",
			record.description or "",
			image_provided=bool(record.image_url),
		)
	elif artwork_id or slug:
		LOGGER.warning("No artwork for id=%s slug=%s; issuing generic session", artwork_id, slug)

	try:
		session = await client.beta.realtime.sessions.create(
			model=settings.model,
			voice=settings.voice,
			instructions=instructions,
		)
	except Exception as exc:
		LOGGER.error("Error creating OpenAI realtime session: %s", exc)
		raise HTTPException(status_code=502, detail="Failed to create OpenAI session") from exc

	return session.model_dump() if hasattr(session, "model_dump") else dict(session)
