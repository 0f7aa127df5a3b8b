"""
Resumable chunked upload of content-addressed files to a broker.

Session states::

    AUTHORIZING -> TRANSFERRING -> VERIFYING -> COMPLETED | FAILED
                                (any non-terminal) -> CANCELLED

Chunks of one file go out strictly in order because the broker accepts a
chunk only at its current byte offset for that file.
"""

import asyncio
from typing import Callable, Optional, Sequence

from client.broker_client import BrokerClient
from common.constants import CHUNK_SIZE_BYTES
from common.exceptions import (
    AuthorizationError,
    ResumeMismatchError,
    UploadCancelledError,
    VerificationError,
)
from common.logging_config import get_logger
from common.protocol import AuthorizationTicket, ContentRange, FileEntry
from common.types import FileRecord, StorageContract, UploadSession, UploadState
from common.utils import format_file_size

logger = get_logger(__name__)

ProgressCallback = Callable[[str, float], None]


class ResumableUploader:
    """
    Drives ``UploadSession`` values through the broker upload protocol.

    The uploader keeps no per-file state of its own; everything needed to
    resume or cancel lives on the session passed in.
    """

    def __init__(self, client: BrokerClient, chunk_size: int = CHUNK_SIZE_BYTES):
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.client = client
        self.chunk_size = chunk_size

    async def authorize(
        self,
        contract: StorageContract,
        metadata: str,
        files: Optional[Sequence[FileEntry]] = None,
    ) -> AuthorizationTicket:
        """
        Authorize a signed batch with the broker.

        Args:
            contract: Signed contract
            metadata: Encoded batch metadata string
            files: Entries to authorize (defaults to every contract member)

        Raises:
            AuthorizationError: If the broker rejects the batch or omits a CID
        """
        if not contract.is_signed:
            raise AuthorizationError(f"Contract {contract.contract_id} has no batch signature")

        entries = list(files) if files is not None else [
            FileEntry(cid=cid, size=size) for cid, size in zip(contract.cids, contract.sizes)
        ]
        ticket = await self.client.authorize(contract, entries, metadata)

        missing = [entry.cid for entry in entries if entry.cid not in ticket.authorized]
        if missing:
            raise AuthorizationError(f"Broker did not authorize: {', '.join(missing)}")

        logger.info(f"Authorized {len(entries)} file(s) for contract {contract.contract_id}")
        return ticket

    def open_session(
        self,
        contract: StorageContract,
        cid: str,
        total_size: int,
        ticket: Optional[AuthorizationTicket] = None,
    ) -> UploadSession:
        """Create a session, starting from the broker's reported offset when known."""
        session = UploadSession(contract_id=contract.contract_id, cid=cid, total_size=total_size)
        if ticket is not None:
            session.acknowledged_bytes = min(ticket.received_for(cid), total_size)
        return session

    def realign(self, session: UploadSession, offset: int) -> None:
        """
        Move a session to the broker-reported offset after a ResumeMismatchError.
        """
        if session.is_finished:
            raise ValueError(f"Session for {session.cid} is already {session.state.value}")
        if not 0 <= offset <= session.total_size:
            raise ValueError(f"Offset {offset} outside 0..{session.total_size}")
        logger.info(f"Realigning {session.cid} from {session.acknowledged_bytes} to {offset}")
        session.acknowledged_bytes = offset

    async def transfer(
        self,
        session: UploadSession,
        data: bytes,
        contract: StorageContract,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadSession:
        """
        Send the remaining chunks of ``data`` starting at the acknowledged offset.

        Raises:
            UploadCancelledError: If the session was cancelled before a chunk
            ResumeMismatchError: If the broker holds a different offset; the
                session is left unchanged so the caller can ``realign``
            VerificationError: If the broker's hash check fails (session FAILED)
        """
        if len(data) != session.total_size:
            raise ValueError(
                f"Payload is {len(data)} bytes but session {session.cid} expects {session.total_size}"
            )
        if session.state == UploadState.COMPLETED:
            return session
        if session.is_finished:
            raise ValueError(f"Session for {session.cid} is already {session.state.value}")

        session.state = UploadState.TRANSFERRING
        total = session.total_size

        try:
            if total > 0 and session.acknowledged_bytes >= total:
                # The broker reported the whole file during authorization.
                session.state = UploadState.COMPLETED
                self._report(session, on_progress)
                return session

            logger.info(
                f"Transferring {session.cid} ({format_file_size(total)}) "
                f"from offset {session.acknowledged_bytes}"
            )
            ack = None
            # A zero-byte file still sends its one empty chunk.
            while ack is None or session.acknowledged_bytes < total:
                if session.cancelled:
                    raise UploadCancelledError(
                        f"Upload of {session.cid} cancelled at {session.acknowledged_bytes}/{total} bytes"
                    )

                start = session.acknowledged_bytes
                chunk = data[start:start + self.chunk_size]
                content_range = ContentRange.for_chunk(start, len(chunk), total)
                if content_range.end == total - 1:
                    session.state = UploadState.VERIFYING

                ack = await self.client.send_chunk(contract, session.cid, content_range, chunk)
                session.acknowledged_bytes = min(ack.received, total)
                logger.debug(f"Chunk {content_range.to_header()} acknowledged for {session.cid}")
                self._report(session, on_progress)

                if session.state == UploadState.VERIFYING and session.acknowledged_bytes < total:
                    session.state = UploadState.TRANSFERRING

            if ack is not None and not ack.verified:
                raise VerificationError(f"Broker did not confirm the hash of {session.cid}")

        except UploadCancelledError:
            session.state = UploadState.CANCELLED
            logger.info(f"Upload of {session.cid} cancelled; {session.acknowledged_bytes} bytes kept by broker")
            raise
        except asyncio.CancelledError:
            session.cancelled = True
            session.state = UploadState.CANCELLED
            logger.info(f"Upload task for {session.cid} cancelled")
            raise
        except ResumeMismatchError as e:
            session.state = UploadState.TRANSFERRING
            logger.warning(
                f"Offset mismatch for {session.cid}: sent {session.acknowledged_bytes}, "
                f"broker expects {e.expected_offset}"
            )
            raise
        except VerificationError:
            session.state = UploadState.FAILED
            session.acknowledged_bytes = 0
            logger.error(f"Verification failed for {session.cid}; broker discarded the partial file")
            raise

        session.state = UploadState.COMPLETED
        logger.info(f"Upload of {session.cid} completed and verified")
        return session

    async def upload(
        self,
        contract: StorageContract,
        record: FileRecord,
        data: bytes,
        ticket: Optional[AuthorizationTicket] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadSession:
        """Open a session for ``record`` and transfer ``data``."""
        session = self.open_session(contract, record.cid, len(data), ticket)
        return await self.transfer(session, data, contract, on_progress)

    async def resume(
        self,
        session: UploadSession,
        data: bytes,
        contract: StorageContract,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadSession:
        """
        Continue an interrupted or cancelled transfer with the same contract and CID.

        The broker's current offset is queried first, so bytes acknowledged
        before the interruption are not sent again.
        """
        status = await self.client.get_status(contract, session.cid)
        session.cancelled = False
        if session.state == UploadState.CANCELLED:
            session.state = UploadState.TRANSFERRING
        self.realign(session, min(status.received, session.total_size))
        return await self.transfer(session, data, contract, on_progress)

    def _report(self, session: UploadSession, on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is not None:
            on_progress(session.cid, session.progress)
