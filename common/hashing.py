"""SHA-256 content hasher used as the default CID function."""

import hashlib

from common.interfaces import ContentHasher, IncrementalHasher


class Sha256Hasher(ContentHasher):
    """
    Content hasher producing ``<prefix><sha256 hex digest>`` identifiers.

    Hex digests sort and compare as plain strings, which the metadata codec
    relies on for record ordering.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def hash(self, data: bytes) -> str:
        return self.prefix + hashlib.sha256(data).hexdigest()

    def incremental(self) -> "IncrementalSha256":
        return IncrementalSha256(self.prefix)


class IncrementalSha256(IncrementalHasher):
    """
    Calculate a SHA-256 CID incrementally for streamed payloads.

    Usage:
        hasher = IncrementalSha256()
        hasher.update(piece1)
        hasher.update(piece2)
        cid = hasher.finalize()
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix
        self._hasher = hashlib.sha256()
        self._finalized = False

    def update(self, data: bytes) -> None:
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)

    def finalize(self) -> str:
        self._finalized = True
        return self.prefix + self._hasher.hexdigest()
