"""Pydantic schemas for the upload protocol endpoints."""

from typing import Dict, List

from pydantic import BaseModel, Field


class FileEntryModel(BaseModel):
    """CID and size of one batch member."""
    cid: str = Field(..., min_length=1)
    size: int = Field(..., ge=0)


class AuthorizeRequest(BaseModel):
    """Request model for batch authorization."""
    files: List[FileEntryModel] = Field(..., min_length=1)
    meta: str = ""


class AuthorizeResponse(BaseModel):
    """Response model for batch authorization."""
    authorized: List[str]
    received: Dict[str, int]


class ChunkResponse(BaseModel):
    """Response model for an accepted chunk and for a status query."""
    cid: str
    received: int
    size: int
    complete: bool = False
    verified: bool = False


class UploadStatsResponse(BaseModel):
    """Capacity snapshot polled by clients choosing a broker."""
    node: str
    StorageMax: int
    RepoSize: int
    NumObjects: int
