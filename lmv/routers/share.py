"""Gist sharing API router."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from lmv.errors import UpstreamServiceError
from lmv.models import ShareRequest, ShareResponse, ShareStatus
from lmv.services import gist

share_router = APIRouter(prefix="/api/share", tags=["share"])


@share_router.get("", response_model=ShareStatus)
def get_share_status():
    """Whether a GitHub token is configured."""
    return ShareStatus(configured=gist.is_configured())


@share_router.post("", response_model=ShareResponse)
async def create_share(payload: ShareRequest):
    if not gist.is_configured():
        raise HTTPException(
            status_code=400,
            detail="GITHUB_TOKEN not configured. Set it in your environment to enable sharing.",
        )
    if not isinstance(payload.content, str) or not payload.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")
    if not isinstance(payload.filename, str) or not payload.filename.strip():
        raise HTTPException(status_code=400, detail="Filename is required")

    try:
        url, gist_id = await gist.create_gist(
            payload.filename,
            payload.content,
            public=payload.public is not False,
        )
    except UpstreamServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ShareResponse(url=url, id=gist_id)
