"""Interfaces of the external collaborators: signer, broker directory, content hasher."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from common.types import BrokerInfo


class Signer(ABC):
    """
    Signs messages for an account and submits ledger operations.

    Failures propagate as raised; callers do not retry.
    """

    account: str

    @abstractmethod
    async def sign(self, message: str) -> str:
        """Return a signature over ``message``."""

    @abstractmethod
    async def broadcast(self, operations: Sequence[Any]) -> Dict[str, Any]:
        """Submit operations; the result contains ``transaction_id``."""


class BrokerDirectory(ABC):
    """
    Lists candidate brokers with their free/used space counters.
    """

    @abstractmethod
    async def list_brokers(self) -> List[BrokerInfo]:
        """Return brokers with a fresh capacity snapshot."""


class ContentHasher(ABC):
    """
    Produces the canonical content identifier for a byte sequence.

    Client and broker must use the same hasher for verification to succeed.
    """

    @abstractmethod
    def hash(self, data: bytes) -> str:
        """Return the CID of ``data``."""

    def incremental(self) -> "IncrementalHasher":
        """Return a hasher fed piece by piece; defaults to buffering."""
        return BufferedIncrementalHasher(self)


class IncrementalHasher(ABC):

    @abstractmethod
    def update(self, data: bytes) -> None:
        ...

    @abstractmethod
    def finalize(self) -> str:
        ...


class BufferedIncrementalHasher(IncrementalHasher):
    """Collects pieces and hashes them at once with the wrapped hasher."""

    def __init__(self, hasher: ContentHasher):
        self._hasher = hasher
        self._buffer = bytearray()

    def update(self, data: bytes) -> None:
        self._buffer.extend(data)

    def finalize(self) -> str:
        return self._hasher.hash(bytes(self._buffer))
