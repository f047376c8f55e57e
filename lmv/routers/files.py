"""File listing, tree and content API router."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request

from lmv.errors import AccessError, FileNotAllowedError
from lmv.models import (
    DEFAULT_SORT_ORDER,
    FileContentResponse,
    FileListResponse,
    FileWriteResponse,
    TreeResponse,
)
from lmv.parsers.frontmatter import parse_frontmatter
from lmv.services.file_registry import FileRegistry
from lmv.services.file_tree import normalize_sort_order
from lmv.services.tree_view import ViewState, compute_view, to_response

logger = logging.getLogger("lmv.files")

files_router = APIRouter(prefix="/api", tags=["files"])


def get_registry(request: Request) -> FileRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Workspace not initialized")
    return registry


@files_router.get("/files", response_model=FileListResponse)
async def list_files(
    request: Request,
    refresh: bool = Query(False, description="Rescan the inputs before listing"),
):
    registry = get_registry(request)
    if refresh:
        await registry.rescan()
    files = await registry.list_files()
    return FileListResponse(
        cwd=str(registry.cwd),
        singleFile=registry.single_file,
        pendingRefresh=registry.pending_refresh,
        files=files,
    )


@files_router.get("/tree", response_model=TreeResponse)
async def get_tree(
    request: Request,
    sort: str = Query(DEFAULT_SORT_ORDER, description="name-asc|name-desc|modified-desc|modified-asc"),
    filter_text: str = Query("", alias="filter", description="Substring filter on relative paths"),
    expanded: list[str] = Query([], description="Manually expanded folder paths"),
    cursor: Optional[str] = Query(None, description="Current keyboard cursor path"),
):
    registry = get_registry(request)
    state = ViewState(
        sort_order=normalize_sort_order(sort),
        filter_text=filter_text,
        expanded_folders=set(expanded),
        cursor_path=cursor or None,
    )
    view = compute_view(await registry.list_files(), state)
    return to_response(view, state)


@files_router.get("/file", response_model=FileContentResponse)
async def read_file(
    request: Request,
    path: Optional[str] = Query(None, description="Relative path; optional in single-file mode"),
):
    registry = get_registry(request)
    try:
        rel_path, absolute_path, content = await registry.read_text(path)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except FileNotAllowedError as exc:
        raise HTTPException(status_code=403, detail="File not allowed") from exc
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="File not found") from exc
    except AccessError as exc:
        logger.warning(f"Failed to read {exc.rel_path}: {exc.reason}")
        raise HTTPException(status_code=500, detail="Failed to read file") from exc

    frontmatter, body = parse_frontmatter(content)
    return FileContentResponse(
        path=rel_path,
        filename=absolute_path.name,
        content=content,
        frontmatter=frontmatter,
        body=body,
    )


@files_router.put("/file", response_model=FileWriteResponse)
async def write_file(
    request: Request,
    path: Optional[str] = Query(None, description="Relative path; optional in single-file mode"),
    payload: Any = Body(None),
):
    registry = get_registry(request)
    content = payload.get("content") if isinstance(payload, dict) else None
    if not isinstance(content, str):
        raise HTTPException(status_code=400, detail="Invalid content")

    try:
        mtime_ms = await registry.write_text(path, content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except FileNotAllowedError as exc:
        raise HTTPException(status_code=403, detail="File not allowed") from exc
    except AccessError as exc:
        logger.warning(f"Failed to write {exc.rel_path}: {exc.reason}")
        raise HTTPException(status_code=500, detail="Failed to write file") from exc
    return FileWriteResponse(success=True, mtimeMs=mtime_ms)
