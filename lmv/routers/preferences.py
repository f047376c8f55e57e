"""Per-directory preferences API router."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, Request

from lmv.models import LastDocument
from lmv.preferences import PreferenceStore
from lmv.routers.files import get_registry
from lmv.services.file_registry import normalize_request_path

preferences_router = APIRouter(prefix="/api/preferences", tags=["preferences"])


def _get_store(request: Request) -> PreferenceStore:
    store = getattr(request.app.state, "preferences", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Preferences not initialized")
    return store


@preferences_router.get("/last-document", response_model=LastDocument)
async def get_last_document(request: Request):
    """Last opened document for this working directory, if still allowed."""
    registry = get_registry(request)
    store = _get_store(request)
    rel_path = await asyncio.to_thread(store.get_last_document, registry.cwd)
    if rel_path is None or rel_path not in registry:
        return LastDocument(path=None)
    return LastDocument(path=rel_path)


@preferences_router.put("/last-document", response_model=LastDocument)
async def set_last_document(request: Request, payload: LastDocument):
    registry = get_registry(request)
    store = _get_store(request)
    rel_path = normalize_request_path(payload.path)
    if not rel_path:
        raise HTTPException(status_code=400, detail="No file specified")
    if rel_path not in registry:
        raise HTTPException(status_code=403, detail="File not allowed")
    await asyncio.to_thread(store.set_last_document, registry.cwd, rel_path)
    return LastDocument(path=rel_path)
