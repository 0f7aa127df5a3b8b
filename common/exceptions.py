"""Exception taxonomy shared by the codec, the client and the broker."""


class LedgerDropError(Exception):
    """
    Base exception class for all LedgerDrop errors.
    """
    pass


class FormatError(LedgerDropError):
    """
    Raised when an encoded metadata string is malformed, or when a value
    cannot be encoded without ambiguous field boundaries.
    """
    pass


class CapacityError(LedgerDropError):
    """
    Raised when a batch uses more distinct custom folders than there are
    folder index characters.
    """
    pass


class InsufficientCreditsError(LedgerDropError):
    """
    Raised when the account balance cannot cover a contract.
    """

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient credits. Required: {required}, Available: {available}"
        )
        self.required = required
        self.available = available


class NoProviderError(LedgerDropError):
    """
    Raised when no broker has enough free space for a contract.
    """
    pass


class BrokerUnavailableError(LedgerDropError):
    """
    Raised when a broker cannot be reached.
    """
    pass


class AuthorizationError(LedgerDropError):
    """
    Raised when a broker rejects the upload authorization handshake.
    """
    pass


class ResumeMismatchError(LedgerDropError):
    """
    Raised when a chunk does not start at the broker's current byte offset.

    The caller realigns to ``expected_offset`` and retries that chunk only.
    """

    def __init__(self, message: str, expected_offset: int):
        super().__init__(message)
        self.expected_offset = expected_offset


class VerificationError(LedgerDropError):
    """
    Raised when the fully received payload does not hash to the declared CID.
    """
    pass


class UploadCancelledError(LedgerDropError):
    """
    Raised when an upload session is cancelled before completion.
    """
    pass
