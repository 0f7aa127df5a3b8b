"""Broker-side errors of the upload protocol."""

from common.exceptions import LedgerDropError


class BrokerServiceError(LedgerDropError):
    """
    Base exception class for errors reported by the broker service.
    """
    pass


class UploadNotAuthorizedError(BrokerServiceError):
    """
    Raised when a request names a contract or CID that was never authorized.
    """
    pass


class InvalidSignatureError(BrokerServiceError):
    """
    Raised when the account or signature headers do not match the authorization.
    """
    pass


class InvalidUploadRequestError(BrokerServiceError):
    """
    Raised when authorization headers and body disagree.
    """
    pass


class InvalidRangeError(BrokerServiceError):
    """
    Raised when a Content-Range header is malformed or does not match the chunk.
    """
    pass


class UnauthorizedResumeError(BrokerServiceError):
    """
    Raised when a chunk starts past offset 0 while the broker holds no bytes.
    """
    pass


class BadChunkError(BrokerServiceError):
    """
    Raised when a chunk does not start at the broker's current offset.
    """

    def __init__(self, message: str, received: int):
        super().__init__(message)
        self.received = received


class StorageFullError(BrokerServiceError):
    """
    Raised when an authorization would exceed the broker's capacity.
    """
    pass
