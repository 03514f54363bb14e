"""FastAPI routes for artwork records."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.artwork_controller import create_artwork, get_artwork, get_artwork_by_slug, list_artworks

router = APIRouter(prefix="/api/artworks")


class ArtworkPayload(BaseModel):
	title: str
	slug: Optional[str] = None
	description: Optional[str] = None
	facts: Optional[str] = None
	image_url: Optional[str] = None


@router.post("")
async def create_artwork_route(request: Request, payload: ArtworkPayload):
	try:
		return await create_artwork(
			request,
			payload.title,
			slug=payload.slug,
			description=payload.description,
			facts=payload.facts,
			image_url=payload.image_url,
		)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("")
async def list_artworks_route(request: Request, limit: int = 100, offset: int = 0):
	try:
		return await list_artworks(request, limit=limit, offset=offset)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/slug/{slug}")
async def get_artwork_by_slug_route(request: Request, slug: str):
	try:
		return await get_artwork_by_slug(request, slug)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/{artwork_id}")
async def get_artwork_route(request: Request, artwork_id: str):
	try:
		return await get_artwork(request, artwork_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
