"""Broker upload protocol message definitions (serialization formats)."""

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from common.exceptions import FormatError

CONTENT_RANGE_PATTERN = re.compile(r'^bytes (\d+)-(\d+)/(\d+)$')

# A zero-byte file is sent as one empty chunk with this range.
EMPTY_CONTENT_RANGE = 'bytes */0'


@dataclass(frozen=True)
class ContentRange:
    """
    Inclusive byte range of one chunk, rendered as ``bytes start-end/total``.

    The empty chunk of a zero-byte file has ``end == -1`` and renders as
    ``bytes */0``.
    """
    start: int
    end: int
    total: int

    @classmethod
    def for_chunk(cls, start: int, length: int, total: int) -> 'ContentRange':
        return cls(start=start, end=start + length - 1, total=total)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def to_header(self) -> str:
        if self.total == 0:
            return EMPTY_CONTENT_RANGE
        return f"bytes {self.start}-{self.end}/{self.total}"

    @classmethod
    def parse(cls, header: Optional[str]) -> 'ContentRange':
        """
        Raises:
            FormatError: If the header is missing or inconsistent
        """
        text = (header or '').strip()
        if text == EMPTY_CONTENT_RANGE:
            return cls(start=0, end=-1, total=0)
        match = CONTENT_RANGE_PATTERN.match(text)
        if not match:
            raise FormatError(f"Invalid Content-Range header: {header!r}")
        start, end, total = (int(group) for group in match.groups())
        if end < start or end >= total:
            raise FormatError(f"Content-Range out of bounds: {header!r}")
        return cls(start=start, end=end, total=total)


@dataclass
class FileEntry:
    """CID and size of one batch member."""
    cid: str
    size: int

    def to_dict(self) -> dict:
        return {'cid': self.cid, 'size': self.size}


@dataclass
class AuthorizeRequest:
    """Body of ``POST /upload-authorize``."""
    files: List[FileEntry]
    meta: str = ''

    def to_json(self) -> bytes:
        return json.dumps({
            'files': [entry.to_dict() for entry in self.files],
            'meta': self.meta,
        }).encode('utf-8')


@dataclass
class AuthorizationTicket:
    """
    Broker answer to an authorization request.

    ``received`` holds the byte count the broker already has per CID, so a
    later transfer can resume instead of restarting.
    """
    authorized: List[str]
    received: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> 'AuthorizationTicket':
        return cls(
            authorized=list(data.get('authorized', [])),
            received={cid: int(count) for cid, count in (data.get('received') or {}).items()},
        )

    def received_for(self, cid: str) -> int:
        return self.received.get(cid, 0)


@dataclass
class ChunkAck:
    """Broker answer to an accepted chunk."""
    cid: str
    received: int
    complete: bool = False
    verified: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> 'ChunkAck':
        return cls(
            cid=data.get('cid', ''),
            received=int(data.get('received', 0)),
            complete=bool(data.get('complete', False)),
            verified=bool(data.get('verified', False)),
        )


@dataclass
class UploadStats:
    """Capacity snapshot served at ``GET /upload-stats``."""
    node: str
    storage_max: int
    repo_size: int
    num_objects: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'UploadStats':
        return cls(
            node=data.get('node', ''),
            storage_max=int(data.get('StorageMax', 0) or 0),
            repo_size=int(data.get('RepoSize', 0) or 0),
            num_objects=int(data.get('NumObjects', 0) or 0),
        )


def join_list(values: Sequence) -> str:
    return ','.join(str(value) for value in values)


def split_list(header: Optional[str]) -> List[str]:
    if not header:
        return []
    return [value.strip() for value in header.split(',') if value.strip()]
