"""FastAPI route for the realtime credential broker."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.session_controller import issue_session

router = APIRouter(prefix="/api")


@router.get("/session")
async def issue_session_route(
	request: Request,
	artwork_id: Optional[str] = Query(default=None, alias="artworkId"),
	slug: Optional[str] = None,
):
	"""Return an ephemeral realtime session for the requested artwork."""
	try:
		return await issue_session(request, artwork_id, slug)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
