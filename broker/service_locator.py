"""Service locator for the broker's upload service."""

from typing import Optional

from broker.config import BROKER_CID_PREFIX, BROKER_NODE_ID, BROKER_STORAGE_MAX
from broker.services.upload_service import UploadService
from common.hashing import Sha256Hasher

_upload_service: Optional[UploadService] = None


def set_upload_service(service: Optional[UploadService]):
    """Set global upload service instance"""
    global _upload_service
    _upload_service = service


def get_upload_service() -> UploadService:
    """Get global upload service instance, creating it from config on first use"""
    global _upload_service
    if _upload_service is None:
        _upload_service = UploadService(
            node_id=BROKER_NODE_ID,
            storage_max=BROKER_STORAGE_MAX,
            hasher=Sha256Hasher(prefix=BROKER_CID_PREFIX),
        )
    return _upload_service
