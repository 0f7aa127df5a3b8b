"""Entry point for the reference broker service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from broker.config import BROKER_HOST, BROKER_NODE_ID, BROKER_PORT
from broker.exceptions import (
    BadChunkError,
    BrokerServiceError,
    InvalidRangeError,
    InvalidSignatureError,
    InvalidUploadRequestError,
    StorageFullError,
    UnauthorizedResumeError,
    UploadNotAuthorizedError,
)
from broker.routes.upload_routes import router as upload_router
from broker.schemas.common import ErrorResponse
from broker.service_locator import get_upload_service
from common.exceptions import VerificationError
from common.logging_config import setup_logging

logger = setup_logging('broker')

app = FastAPI(
    title="LedgerDrop Broker",
    description="Reference storage broker for resumable content-addressed uploads",
    version="1.0.0"
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    account = request.headers.get("X-Account")

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}] "
        f"[account={account or 'anonymous'}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Create the upload service on application startup.
    """
    service = get_upload_service()
    logger.info(f"Broker {BROKER_NODE_ID} starting up with capacity {service.storage_max} bytes")


def _error_response(request: Request, exc: Exception, status_code: int, code: str, **extra) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
    )
    content = ErrorResponse(detail=str(exc), code=code, **extra)
    return JSONResponse(status_code=status_code, content=content.model_dump(exclude_none=True))


@app.exception_handler(UploadNotAuthorizedError)
async def not_authorized_handler(request: Request, exc: UploadNotAuthorizedError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "NOT_AUTHORIZED")


@app.exception_handler(InvalidSignatureError)
async def invalid_signature_handler(request: Request, exc: InvalidSignatureError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "INVALID_SIGNATURE")


@app.exception_handler(UnauthorizedResumeError)
async def unauthorized_resume_handler(request: Request, exc: UnauthorizedResumeError):
    return _error_response(request, exc, status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED_RESUME", received=0)


@app.exception_handler(BadChunkError)
async def bad_chunk_handler(request: Request, exc: BadChunkError):
    return _error_response(request, exc, status.HTTP_403_FORBIDDEN, "BAD_CHUNK", received=exc.received)


@app.exception_handler(InvalidRangeError)
async def invalid_range_handler(request: Request, exc: InvalidRangeError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_RANGE")


@app.exception_handler(InvalidUploadRequestError)
async def invalid_request_handler(request: Request, exc: InvalidUploadRequestError):
    return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST")


@app.exception_handler(VerificationError)
async def verification_failed_handler(request: Request, exc: VerificationError):
    return _error_response(request, exc, status.HTTP_412_PRECONDITION_FAILED, "VERIFICATION_FAILED")


@app.exception_handler(StorageFullError)
async def storage_full_handler(request: Request, exc: StorageFullError):
    return _error_response(request, exc, status.HTTP_507_INSUFFICIENT_STORAGE, "STORAGE_FULL")


@app.exception_handler(BrokerServiceError)
async def broker_error_handler(request: Request, exc: BrokerServiceError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"Broker error: {exc} [request_id={request_id}] path={request.url.path}", exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "code": "BROKER_ERROR"}
    )


app.include_router(upload_router)


@app.get("/")
async def root():
    """
    Health check endpoint.
    """
    return {"status": "running", "service": "LedgerDrop Broker", "node": BROKER_NODE_ID}


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "broker.main:app",
        host=BROKER_HOST,
        port=BROKER_PORT,
    )


if __name__ == "__main__":
    main()
