"""In-memory broker side of the resumable upload protocol."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from broker.exceptions import (
    BadChunkError,
    InvalidRangeError,
    InvalidSignatureError,
    InvalidUploadRequestError,
    StorageFullError,
    UnauthorizedResumeError,
    UploadNotAuthorizedError,
)
from common.constants import DEFAULT_CHAIN
from common.exceptions import FormatError, VerificationError
from common.hashing import Sha256Hasher
from common.interfaces import ContentHasher, IncrementalHasher
from common.logging_config import get_logger
from common.protocol import ContentRange
from common.utils import format_file_size

logger = get_logger(__name__)


@dataclass
class ContractAuthorization:
    contract_id: str
    account: str
    signature: str
    meta: str
    cids: List[str]
    chain: str = DEFAULT_CHAIN


@dataclass
class PendingUpload:
    """Bytes received so far for one (contract, CID) pair."""
    contract_id: str
    cid: str
    size: int
    hasher: IncrementalHasher
    data: bytearray = field(default_factory=bytearray)

    @property
    def received(self) -> int:
        return len(self.data)


class UploadService:
    """
    Tracks authorizations, partial uploads and verified objects.

    A chunk is appended only when it starts exactly at the current offset;
    rejected chunks leave the partial upload untouched. When the last byte
    arrives the payload is hashed and either stored or discarded.
    """

    def __init__(
        self,
        node_id: str,
        storage_max: int,
        hasher: Optional[ContentHasher] = None,
    ):
        self.node_id = node_id
        self.storage_max = storage_max
        self.hasher = hasher or Sha256Hasher()
        self._contracts: Dict[str, ContractAuthorization] = {}
        self._pending: Dict[Tuple[str, str], PendingUpload] = {}
        self._objects: Dict[str, bytes] = {}

    @property
    def repo_size(self) -> int:
        stored = sum(len(data) for data in self._objects.values())
        return stored + sum(pending.received for pending in self._pending.values())

    def _reserved(self) -> int:
        stored = sum(len(data) for data in self._objects.values())
        return stored + sum(pending.size for pending in self._pending.values())

    def authorize(
        self,
        account: Optional[str],
        signature: Optional[str],
        contract_id: Optional[str],
        files: Sequence[Tuple[str, int]],
        meta: str,
        header_cids: Sequence[str] = (),
        header_sizes: Sequence[str] = (),
        chain: Optional[str] = None,
    ) -> dict:
        """
        Authorize a batch and report bytes already held for each CID.

        Raises:
            UploadNotAuthorizedError: If identification headers are missing
            InvalidSignatureError: If a known contract is re-authorized with other credentials
            InvalidUploadRequestError: If header and body file lists disagree
            StorageFullError: If the new files do not fit
        """
        if not account or not signature or not contract_id:
            raise UploadNotAuthorizedError("Account, signature and contract headers are required")

        body_cids = [cid for cid, _ in files]
        if header_cids and list(header_cids) != body_cids:
            raise InvalidUploadRequestError("CID header does not match the request body")
        if header_sizes and list(header_sizes) != [str(size) for _, size in files]:
            raise InvalidUploadRequestError("Size header does not match the request body")

        existing = self._contracts.get(contract_id)
        if existing is not None and (existing.account != account or existing.signature != signature):
            raise InvalidSignatureError(f"Contract {contract_id} is authorized for different credentials")

        new_bytes = sum(
            size for cid, size in files
            if cid not in self._objects and (contract_id, cid) not in self._pending
        )
        if self._reserved() + new_bytes > self.storage_max:
            raise StorageFullError(
                f"Cannot reserve {format_file_size(new_bytes)}: "
                f"{format_file_size(self.storage_max - self._reserved())} free"
            )

        received = {}
        for cid, size in files:
            if cid in self._objects:
                received[cid] = len(self._objects[cid])
                continue
            pending = self._pending.get((contract_id, cid))
            if pending is None:
                pending = PendingUpload(contract_id=contract_id, cid=cid, size=size, hasher=self.hasher.incremental())
                self._pending[(contract_id, cid)] = pending
            received[cid] = pending.received

        self._contracts[contract_id] = ContractAuthorization(
            contract_id=contract_id,
            account=account,
            signature=signature,
            meta=meta,
            cids=body_cids,
            chain=chain or DEFAULT_CHAIN,
        )
        logger.info(
            f"Authorized {len(files)} file(s) for contract {contract_id} "
            f"(account={account}, chain={chain or DEFAULT_CHAIN})"
        )
        return {'authorized': body_cids, 'received': received}

    def _check_credentials(self, account: Optional[str], signature: Optional[str], contract_id: Optional[str]) -> None:
        contract = self._contracts.get(contract_id or '')
        if contract is None:
            raise UploadNotAuthorizedError(f"Contract {contract_id!r} is not authorized")
        if contract.account != account or contract.signature != signature:
            raise InvalidSignatureError(f"Credentials do not match contract {contract_id}")

    def append_chunk(
        self,
        account: Optional[str],
        signature: Optional[str],
        contract_id: Optional[str],
        cid: Optional[str],
        content_range: Optional[str],
        chunk: bytes,
    ) -> dict:
        """
        Append one chunk at the current offset.

        Raises:
            UnauthorizedResumeError: If nothing is held and the chunk does not start at 0
            BadChunkError: If the chunk does not start at the held byte count
            VerificationError: If the completed payload does not hash to ``cid``
        """
        self._check_credentials(account, signature, contract_id)

        pending = self._pending.get((contract_id, cid))
        if pending is None:
            if cid in self._objects:
                size = len(self._objects[cid])
                return {'cid': cid, 'received': size, 'size': size, 'complete': True, 'verified': True}
            raise UploadNotAuthorizedError(f"CID {cid} is not part of contract {contract_id}")

        try:
            byte_range = ContentRange.parse(content_range)
        except FormatError as e:
            raise InvalidRangeError(str(e)) from e
        if byte_range.total != pending.size:
            raise InvalidRangeError(f"Range total {byte_range.total} does not match declared size {pending.size}")
        if len(chunk) != byte_range.length:
            raise InvalidRangeError(f"Chunk is {len(chunk)} bytes but range covers {byte_range.length}")

        if pending.received == 0 and byte_range.start != 0:
            raise UnauthorizedResumeError(f"No bytes held for {cid}; upload must start at 0")
        if byte_range.start != pending.received:
            raise BadChunkError(
                f"Expected chunk at offset {pending.received}, got {byte_range.start}",
                received=pending.received,
            )

        pending.data.extend(chunk)
        pending.hasher.update(chunk)
        logger.debug(f"Accepted {byte_range.to_header()} for {cid}")

        if pending.received < pending.size:
            return {'cid': cid, 'received': pending.received, 'size': pending.size,
                    'complete': False, 'verified': False}

        digest = pending.hasher.finalize()
        if digest != cid:
            pending.data = bytearray()
            pending.hasher = self.hasher.incremental()
            logger.warning(f"Verification failed for {cid}: payload hashes to {digest}; partial file discarded")
            raise VerificationError(f"Payload does not hash to {cid}")

        self._objects[cid] = bytes(pending.data)
        del self._pending[(contract_id, cid)]
        logger.info(f"Stored verified object {cid} ({format_file_size(pending.size)})")
        return {'cid': cid, 'received': pending.size, 'size': pending.size, 'complete': True, 'verified': True}

    def status(
        self,
        account: Optional[str],
        signature: Optional[str],
        contract_id: Optional[str],
        cid: Optional[str],
    ) -> dict:
        """Report how many bytes of ``cid`` are held for a contract."""
        self._check_credentials(account, signature, contract_id)
        if cid in self._objects:
            size = len(self._objects[cid])
            return {'cid': cid, 'received': size, 'size': size, 'complete': True, 'verified': True}
        pending = self._pending.get((contract_id, cid))
        if pending is None:
            raise UploadNotAuthorizedError(f"CID {cid} is not part of contract {contract_id}")
        return {'cid': cid, 'received': pending.received, 'size': pending.size,
                'complete': False, 'verified': False}

    def stats(self) -> dict:
        return {
            'node': self.node_id,
            'StorageMax': self.storage_max,
            'RepoSize': self.repo_size,
            'NumObjects': len(self._objects),
        }

    def get_object(self, cid: str) -> Optional[bytes]:
        return self._objects.get(cid)

    def get_metadata(self, contract_id: str) -> Optional[str]:
        contract = self._contracts.get(contract_id)
        return contract.meta if contract else None
