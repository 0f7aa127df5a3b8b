"""Shared data type definitions (FileRecord, FileAttributes, StorageContract, etc.)."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from common.constants import LABELS, LICENSES


@dataclass(frozen=True)
class FileFlags:
    """
    Bit-set of per-file content flags.

    Bits above ``EXECUTABLE`` are reserved; they are carried unchanged.
    """
    value: int = 0

    ENCRYPTED = 1
    HIDDEN = 2
    ADULT = 4
    EXECUTABLE = 8

    def __post_init__(self):
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise ValueError(f"Flag value must be an integer, got {self.value!r}")
        if self.value < 0:
            raise ValueError(f"Flag value must be non-negative, got {self.value}")

    @classmethod
    def of(
        cls,
        encrypted: bool = False,
        hidden: bool = False,
        adult: bool = False,
        executable: bool = False,
    ) -> "FileFlags":
        value = 0
        if encrypted:
            value |= cls.ENCRYPTED
        if hidden:
            value |= cls.HIDDEN
        if adult:
            value |= cls.ADULT
        if executable:
            value |= cls.EXECUTABLE
        return cls(value)

    def has(self, bit: int) -> bool:
        return (self.value & bit) == bit

    def with_flag(self, bit: int) -> "FileFlags":
        return FileFlags(self.value | bit)

    def without_flag(self, bit: int) -> "FileFlags":
        return FileFlags(self.value & ~bit)

    @property
    def encrypted(self) -> bool:
        return self.has(self.ENCRYPTED)

    @property
    def hidden(self) -> bool:
        return self.has(self.HIDDEN)

    @property
    def adult(self) -> bool:
        return self.has(self.ADULT)

    @property
    def executable(self) -> bool:
        return self.has(self.EXECUTABLE)

    def __or__(self, other):
        if isinstance(other, FileFlags):
            return FileFlags(self.value | other.value)
        if isinstance(other, int):
            return FileFlags(self.value | other)
        return NotImplemented

    def __bool__(self) -> bool:
        return self.value != 0


@dataclass(frozen=True)
class FileAttributes:
    """
    Presentation and classification metadata for one file.

    ``labels`` is an ordered string of single-character label codes.
    """
    flags: FileFlags = field(default_factory=FileFlags)
    license: str = ""
    labels: str = ""

    def __post_init__(self):
        if isinstance(self.flags, int):
            object.__setattr__(self, "flags", FileFlags(self.flags))
        if self.license and self.license not in LICENSES:
            raise ValueError(f"Unknown license identifier: {self.license!r}")
        for label in self.labels:
            if label not in LABELS:
                raise ValueError(f"Unknown label: {label!r}")
        if len(set(self.labels)) != len(self.labels):
            raise ValueError(f"Duplicate labels in {self.labels!r}")

    @property
    def is_default(self) -> bool:
        return not self.flags and not self.license and not self.labels

    @property
    def license_name(self) -> Optional[str]:
        return LICENSES.get(self.license)

    @property
    def label_names(self) -> List[str]:
        return [LABELS[label] for label in self.labels]


@dataclass(frozen=True)
class FileRecord:
    """
    One file of a batch, addressed by its content identifier.
    """
    cid: str
    name: str
    ext: str = ""
    path: str = ""
    thumb: Optional[str] = None
    size: int = 0
    attributes: FileAttributes = field(default_factory=FileAttributes)


@dataclass(frozen=True)
class BrokerInfo:
    """
    A storage broker and its capacity snapshot.
    """
    node_id: str
    api: str
    total_space: int = 0
    used_space: int = 0

    @property
    def free_space(self) -> int:
        return max(self.total_space - self.used_space, 0)

    @property
    def free_space_ratio(self) -> float:
        if self.total_space <= 0:
            return 0.0
        return self.free_space / self.total_space


@dataclass(frozen=True)
class StorageContract:
    """
    Broker agreement covering every file of one batch.

    ``signature`` authorizes the whole batch; it is empty until the
    contract has been signed for its member CIDs.
    """
    contract_id: str
    account: str
    broker: BrokerInfo
    total_size: int
    credit_cost: int
    duration_days: int
    created_at: datetime
    expires_at: datetime
    transaction_id: str
    cids: Tuple[str, ...] = ()
    sizes: Tuple[int, ...] = ()
    signature: str = ""
    signed_at: int = 0

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    def size_of(self, cid: str) -> int:
        return self.sizes[self.cids.index(cid)]


class UploadState(str, Enum):
    AUTHORIZING = "authorizing"
    TRANSFERRING = "transferring"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({UploadState.COMPLETED, UploadState.FAILED, UploadState.CANCELLED})


@dataclass
class UploadSession:
    """
    State of one resumable transfer.
    """
    contract_id: str
    cid: str
    total_size: int
    acknowledged_bytes: int = 0
    cancelled: bool = False
    state: UploadState = UploadState.AUTHORIZING

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def progress(self) -> float:
        if self.total_size <= 0:
            # Zero-byte files are done once their empty chunk is acknowledged.
            return 100.0 if self.state in (UploadState.VERIFYING, UploadState.COMPLETED) else 0.0
        return (self.acknowledged_bytes / self.total_size) * 100

    def cancel(self) -> None:
        self.cancelled = True
