"""End-to-end batch upload: hash, contract, metadata, authorization, transfers."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set

from client.broker_client import BrokerClient
from client.config import Config
from client.contract_negotiator import Beneficiary, ContractNegotiator
from client.upload_transport import ProgressCallback, ResumableUploader
from client.utils import percent, split_file_name
from codec.batch_metadata import BatchMetadataCodec
from common.exceptions import LedgerDropError
from common.hashing import Sha256Hasher
from common.interfaces import ContentHasher
from common.logging_config import get_logger
from common.protocol import FileEntry
from common.types import FileAttributes, FileRecord, StorageContract, UploadSession, UploadState
from common.utils import format_file_size

logger = get_logger(__name__)

BatchProgressCallback = Callable[[float], None]
ClientFactory = Callable[[str], BrokerClient]


@dataclass
class UploadFile:
    """One file selected for upload, with its attributes."""
    content: bytes
    name: str
    ext: str = ""
    path: str = ""
    thumb: Optional[str] = None
    attributes: FileAttributes = field(default_factory=FileAttributes)

    @classmethod
    def from_path(
        cls,
        file_path,
        folder: str = "",
        thumb: Optional[str] = None,
        attributes: Optional[FileAttributes] = None,
    ) -> 'UploadFile':
        """
        Read a file from disk; name and extension come from its file name.
        """
        file_path = Path(file_path)
        name, ext = split_file_name(file_path)
        return cls(
            content=file_path.read_bytes(),
            name=name,
            ext=ext,
            path=folder,
            thumb=thumb,
            attributes=attributes or FileAttributes(),
        )

    @property
    def size(self) -> int:
        return len(self.content)


class CancelToken:
    """
    Cancels the sessions of one batch upload call.

    Cancelling before the sessions exist is honoured once they are
    registered; every session then stops before its next chunk.
    """

    def __init__(self):
        self.cancelled = False
        self._sessions: List[UploadSession] = []

    def register(self, sessions: Sequence[UploadSession]) -> None:
        self._sessions.extend(sessions)
        if self.cancelled:
            self.cancel()

    def cancel(self) -> None:
        self.cancelled = True
        for session in self._sessions:
            if not session.is_finished:
                session.cancel()


@dataclass
class BatchUploadOptions:
    duration_days: Optional[int] = None
    beneficiary: Optional[Beneficiary] = None
    encrypt: Optional[List[str]] = None
    on_progress: Optional[BatchProgressCallback] = None
    on_file_progress: Optional[ProgressCallback] = None
    cancel_token: Optional[CancelToken] = None


@dataclass
class FileUploadResult:
    cid: str
    name: str
    size: int
    status: UploadState
    error: Optional[LedgerDropError] = None

    @property
    def succeeded(self) -> bool:
        return self.status == UploadState.COMPLETED


@dataclass
class BatchUploadResult:
    contract_id: str
    metadata: str
    total_size: int
    credit_cost: int
    results: List[FileUploadResult]

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def failed(self) -> List[FileUploadResult]:
        return [result for result in self.results if not result.succeeded]


class BatchUploader:
    """
    Uploads a batch of files under one contract and one batch signature.

    A single file goes through exactly the same steps as a batch. Contract,
    signing and authorization failures propagate; a failed transfer only marks
    its own file as failed and never undoes files already verified.
    """

    def __init__(
        self,
        negotiator: ContractNegotiator,
        config: Config,
        hasher: Optional[ContentHasher] = None,
        codec: Optional[BatchMetadataCodec] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.negotiator = negotiator
        self.config = config
        self.hasher = hasher or Sha256Hasher()
        self.codec = codec or BatchMetadataCodec()
        self.client_factory = client_factory or (lambda api: BrokerClient(api, config))
        self._active: Set[CancelToken] = set()

    def cancel(self) -> None:
        """Cancel every batch currently uploading through this uploader."""
        for token in list(self._active):
            token.cancel()

    def build_records(self, files: Sequence[UploadFile]) -> List[FileRecord]:
        return [
            FileRecord(
                cid=self.hasher.hash(upload.content),
                name=upload.name,
                ext=upload.ext,
                path=upload.path,
                thumb=upload.thumb,
                size=upload.size,
                attributes=upload.attributes,
            )
            for upload in files
        ]

    async def upload(
        self,
        files: Sequence[UploadFile],
        options: Optional[BatchUploadOptions] = None,
    ) -> BatchUploadResult:
        """
        Upload ``files`` as one batch.

        Raises:
            ValueError: If the batch is empty
            InsufficientCreditsError, NoProviderError: From contract negotiation
            FormatError, CapacityError: From metadata encoding
            AuthorizationError: If the broker rejects the batch
        """
        options = options or BatchUploadOptions()
        if not files:
            raise ValueError("Nothing to upload")

        token = options.cancel_token or CancelToken()
        self._active.add(token)
        try:
            return await self._upload(files, options, token)
        finally:
            self._active.discard(token)

    async def _upload(
        self,
        files: Sequence[UploadFile],
        options: BatchUploadOptions,
        token: CancelToken,
    ) -> BatchUploadResult:
        records = self.build_records(files)
        payloads = {record.cid: upload.content for record, upload in zip(records, files)}
        total_size = sum(record.size for record in records)
        logger.info(f"Uploading batch of {len(records)} file(s), {format_file_size(total_size)}")

        metadata = self.codec.encode(records, encrypt=options.encrypt)

        contract = await self.negotiator.create_contract(
            total_size,
            duration_days=options.duration_days or self.config.duration_days,
            beneficiary=options.beneficiary,
        )
        contract = await self.negotiator.sign_batch(contract, records)

        # Identical content is transferred once even if listed twice.
        entries = list({record.cid: FileEntry(cid=record.cid, size=record.size) for record in records}.values())

        async with self.client_factory(contract.broker.api) as client:
            uploader = ResumableUploader(client, chunk_size=self.config.chunk_size)
            ticket = await uploader.authorize(contract, metadata, entries)

            sessions = [uploader.open_session(contract, entry.cid, entry.size, ticket) for entry in entries]
            token.register(sessions)
            tracker = _ProgressTracker(sessions, options)

            semaphore = asyncio.Semaphore(self.config.max_parallel_uploads)

            async def run(session: UploadSession) -> UploadSession:
                async with semaphore:
                    return await uploader.transfer(session, payloads[session.cid], contract, tracker.update)

            outcomes = await asyncio.gather(*(run(session) for session in sessions), return_exceptions=True)

        by_cid = {}
        for session, outcome in zip(sessions, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, LedgerDropError):
                raise outcome
            by_cid[session.cid] = (session, outcome if isinstance(outcome, LedgerDropError) else None)

        results = []
        for record in records:
            session, error = by_cid[record.cid]
            results.append(FileUploadResult(
                cid=record.cid,
                name=record.name,
                size=record.size,
                status=session.state,
                error=error,
            ))

        batch = BatchUploadResult(
            contract_id=contract.contract_id,
            metadata=metadata,
            total_size=total_size,
            credit_cost=contract.credit_cost,
            results=results,
        )
        self._log_summary(contract, batch)
        return batch

    def _log_summary(self, contract: StorageContract, batch: BatchUploadResult) -> None:
        if batch.succeeded:
            logger.info(f"Batch {contract.contract_id}: all {len(batch.results)} file(s) verified")
            return
        for result in batch.failed:
            logger.warning(f"Batch {contract.contract_id}: {result.name} ({result.cid}) {result.status.value}: {result.error}")


class _ProgressTracker:
    """Forwards per-file progress and aggregates it over the whole batch."""

    def __init__(self, sessions: Sequence[UploadSession], options: BatchUploadOptions):
        self.sessions: Dict[str, UploadSession] = {session.cid: session for session in sessions}
        self.total = sum(session.total_size for session in sessions)
        self.options = options

    def update(self, cid: str, file_percent: float) -> None:
        if self.options.on_file_progress is not None:
            self.options.on_file_progress(cid, file_percent)
        if self.options.on_progress is not None:
            if self.total:
                done = sum(session.acknowledged_bytes for session in self.sessions.values())
                self.options.on_progress(percent(done, self.total))
            else:
                done = sum(session.progress for session in self.sessions.values())
                self.options.on_progress(percent(done, 100 * len(self.sessions)))
