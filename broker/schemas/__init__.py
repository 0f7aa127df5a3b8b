"""Pydantic schemas for API requests and responses."""

from broker.schemas.common import ErrorResponse
from broker.schemas.upload import (
    AuthorizeRequest,
    AuthorizeResponse,
    ChunkResponse,
    FileEntryModel,
    UploadStatsResponse,
)

__all__ = [
    "AuthorizeRequest",
    "AuthorizeResponse",
    "ChunkResponse",
    "ErrorResponse",
    "FileEntryModel",
    "UploadStatsResponse",
]
