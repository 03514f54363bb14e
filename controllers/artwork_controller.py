"""Artwork record helpers backing the Context Resolver endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import HTTPException, Request

from dal.artwork_dal import ArtworkDAL, DuplicateSlugError
from models.artwork_record import ArtworkRecord
from utils.media_validation import validate_image_reference
from utils.settings import ServerSettings


def _visitor_url(settings: ServerSettings, record: ArtworkRecord) -> str:
	query = f"slug={record.slug}" if record.slug else f"id={record.id}"
	return f"{settings.client_url}/talk?{query}"


def _present(request: Request, record: ArtworkRecord) -> Dict[str, Any]:
	payload = record.to_dict()
	payload["visitor_url"] = _visitor_url(request.app.state.settings, record)
	return payload


async def create_artwork(
	request: Request,
	title: str,
	slug: Optional[str] = None,
	description: Optional[str] = None,
	facts: Optional[str] = None,
	image_url: Optional[str] = None,
) -> Dict[str, Any]:
	"""Validate and store a new artwork record."""
	title = (title or "").strip()
	if not title:
		raise HTTPException(status_code=400, detail="Title is required")
	try:
		image_url = validate_image_reference(image_url)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc)) from exc

	record = ArtworkRecord(
		id=uuid4().hex,
		title=title,
		slug=(slug or "").strip() or None,
		description=description,
		facts=facts,
		image_url=image_url,
	)
	try:
		record = await ArtworkDAL(request.app.state.db_initializer).create_artwork(record)
	except DuplicateSlugError as exc:
		raise HTTPException(status_code=400, detail="Slug already exists") from exc
	return _present(request, record)


async def get_artwork(request: Request, artwork_id: str) -> Dict[str, Any]:
	record = await ArtworkDAL(request.app.state.db_initializer).get_artwork_by_id(artwork_id)
	if record is None:
		raise HTTPException(status_code=404, detail="Artwork not found")
	return _present(request, record)


async def get_artwork_by_slug(request: Request, slug: str) -> Dict[str, Any]:
	record = await ArtworkDAL(request.app.state.db_initializer).get_artwork_by_slug(slug)
	if record is None:
		raise HTTPException(status_code=404, detail="Artwork not found")
	return _present(request, record)


async def list_artworks(request: Request, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
	records = await ArtworkDAL(request.app.state.db_initializer).list_artworks(limit=limit, offset=offset)
	return [_present(request, record) for record in records]
