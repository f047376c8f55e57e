"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

SortOrder = Literal["name-asc", "name-desc", "modified-desc", "modified-asc"]
SORT_ORDERS: tuple[str, ...] = ("name-asc", "name-desc", "modified-desc", "modified-asc")
DEFAULT_SORT_ORDER: SortOrder = "name-asc"

EventType = Literal["ready", "filesystem-changed", "file-changed"]


# ── Discovered files ────────────────────────────────────────────────

class ApiFile(BaseModel):
    path: str  # posix path relative to the working directory
    name: str
    mtimeMs: Optional[float] = None
    isSymlink: bool = False
    error: Optional[str] = None


class FileListResponse(BaseModel):
    cwd: str
    singleFile: bool = False
    pendingRefresh: bool = False
    files: list[ApiFile] = Field(default_factory=list)


class FileContentResponse(BaseModel):
    path: str
    filename: str
    content: str
    frontmatter: Optional[dict[str, Any]] = None
    body: str = ""


class FileWriteResponse(BaseModel):
    success: bool = True
    mtimeMs: Optional[float] = None


# ── Tree ────────────────────────────────────────────────────────────

class FolderNode(BaseModel):
    kind: Literal["folder"] = "folder"
    path: str  # no trailing slash; "" is the implicit root
    name: str
    mtimeMs: float = 0
    children: list[TreeNode] = Field(default_factory=list)


class FileNode(BaseModel):
    kind: Literal["file"] = "file"
    path: str
    name: str
    mtimeMs: float = 0
    isSymlink: bool = False
    error: Optional[str] = None


TreeNode = Annotated[Union[FolderNode, FileNode], Field(discriminator="kind")]
FolderNode.model_rebuild()


class TreeRow(BaseModel):
    path: str
    name: str
    kind: Literal["folder", "file"]
    depth: int
    mtimeMs: float = 0
    expanded: bool = False
    isSymlink: bool = False
    error: Optional[str] = None


class TreeResponse(BaseModel):
    sortOrder: SortOrder = DEFAULT_SORT_ORDER
    filter: str = ""
    autoExpand: list[str] = Field(default_factory=list)
    cursorPath: Optional[str] = None
    rows: list[TreeRow] = Field(default_factory=list)


# ── Notifications ───────────────────────────────────────────────────

class NotificationEvent(BaseModel):
    type: EventType
    pendingRefresh: Optional[bool] = None
    path: Optional[str] = None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(exclude={"type"}, exclude_none=True)


# ── Sharing ─────────────────────────────────────────────────────────

class ShareStatus(BaseModel):
    configured: bool = False


class ShareRequest(BaseModel):
    content: Any = None
    filename: Any = None
    public: Any = True


class ShareResponse(BaseModel):
    url: str
    id: str


# ── Preferences ─────────────────────────────────────────────────────

class LastDocument(BaseModel):
    path: Optional[str] = None
