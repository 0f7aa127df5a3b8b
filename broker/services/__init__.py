"""Service layer for business logic."""

from broker.services.upload_service import UploadService

__all__ = [
    "UploadService",
]
