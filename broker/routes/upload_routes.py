"""Upload protocol API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Header, UploadFile

from broker.schemas.common import ErrorResponse
from broker.schemas.upload import (
    AuthorizeRequest,
    AuthorizeResponse,
    ChunkResponse,
    UploadStatsResponse,
)
from broker.service_locator import get_upload_service
from broker.services.upload_service import UploadService
from common.protocol import split_list

router = APIRouter(
    tags=["Upload"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 412, 507)},
)


@router.post("/upload-authorize", response_model=AuthorizeResponse)
async def authorize_upload(
    request: AuthorizeRequest,
    x_account: Optional[str] = Header(None, alias="X-Account"),
    x_sig: Optional[str] = Header(None, alias="X-Sig"),
    x_contract: Optional[str] = Header(None, alias="X-Contract"),
    x_cids: Optional[str] = Header(None, alias="X-Cids"),
    x_sizes: Optional[str] = Header(None, alias="X-Sizes"),
    x_chain: Optional[str] = Header(None, alias="X-Chain"),
    service: UploadService = Depends(get_upload_service),
):
    """
    Authorize a batch of CIDs for upload under one contract signature.

    Parameters:
        - X-Account, X-Sig, X-Contract headers (required)
        - X-Cids / X-Sizes headers: comma-separated, must match the body
        - body: files (cid, size) and the encoded batch metadata

    Returns:
        - authorized: CIDs accepted for upload
        - received: bytes already held per CID

    Raises:
        - 400: Header and body disagree
        - 401: Missing headers or credentials mismatch
        - 507: Not enough free space
    """
    result = service.authorize(
        account=x_account,
        signature=x_sig,
        contract_id=x_contract,
        files=[(entry.cid, entry.size) for entry in request.files],
        meta=request.meta,
        header_cids=split_list(x_cids),
        header_sizes=split_list(x_sizes),
        chain=x_chain,
    )
    return AuthorizeResponse(**result)


@router.post("/upload", response_model=ChunkResponse)
async def upload_chunk(
    chunk: UploadFile = File(...),
    x_account: Optional[str] = Header(None, alias="X-Account"),
    x_sig: Optional[str] = Header(None, alias="X-Sig"),
    x_contract: Optional[str] = Header(None, alias="X-Contract"),
    x_cid: Optional[str] = Header(None, alias="X-Cid"),
    content_range: Optional[str] = Header(None, alias="Content-Range"),
    service: UploadService = Depends(get_upload_service),
):
    """
    Append one chunk to an authorized upload.

    Parameters:
        - chunk: chunk bytes (multipart/form-data)
        - Content-Range: bytes start-end/total
        - X-Account, X-Sig, X-Contract, X-Cid headers (required)

    Raises:
        - 400: Malformed or inconsistent Content-Range
        - 401: Not authorized, or resume past offset 0 with nothing held
        - 403: Chunk does not start at the held offset (body carries ``received``)
        - 412: Completed payload failed hash verification
    """
    data = await chunk.read()
    result = service.append_chunk(
        account=x_account,
        signature=x_sig,
        contract_id=x_contract,
        cid=x_cid,
        content_range=content_range,
        chunk=data,
    )
    return ChunkResponse(**result)


@router.get("/upload-status", response_model=ChunkResponse)
async def upload_status(
    x_account: Optional[str] = Header(None, alias="X-Account"),
    x_sig: Optional[str] = Header(None, alias="X-Sig"),
    x_contract: Optional[str] = Header(None, alias="X-Contract"),
    x_cid: Optional[str] = Header(None, alias="X-Cid"),
    service: UploadService = Depends(get_upload_service),
):
    """
    Report the bytes held for a CID so an interrupted upload can resume.
    """
    return ChunkResponse(**service.status(x_account, x_sig, x_contract, x_cid))


@router.get("/upload-stats", response_model=UploadStatsResponse)
async def upload_stats(service: UploadService = Depends(get_upload_service)):
    """
    Capacity snapshot used by clients to choose a broker.
    """
    return UploadStatsResponse(**service.stats())
