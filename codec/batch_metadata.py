"""
Compact batch metadata encoding for ledger storage.

Format::

    version[#recipient:recipient][|folder|folder],name,ext[.idx],thumb,[flags-license-labels],...

One four-field record per file, in ascending CID order. The header lists
only custom folders, in allocation order; their indices are implied by
position. Root files carry ``.0``, and files in the first custom folder
carry no index at all.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from codec.flags import decode_flags, encode_flags
from codec.folder_index import FolderIndexAllocator, FolderIndexResolver
from common.constants import CUSTOM_FOLDER_ALPHABET, METADATA_VERSION, PRESET_FOLDERS
from common.exceptions import FormatError
from common.logging_config import get_logger
from common.types import FileAttributes, FileRecord

logger = get_logger(__name__)

FIELDS_PER_FILE = 4
RECIPIENT_FORBIDDEN = (",", "|", "#", ":")


@dataclass(frozen=True)
class DecodedFile:
    """
    Attributes of one file recovered from an encoded batch.
    """
    name: str
    ext: str
    path: str
    thumb: Optional[str] = None
    attributes: FileAttributes = field(default_factory=FileAttributes)

    @property
    def full_name(self) -> str:
        return f"{self.name}.{self.ext}" if self.ext else self.name

    @property
    def full_path(self) -> str:
        return f"{self.path}/{self.full_name}" if self.path else self.full_name


@dataclass(frozen=True)
class DecodedBatch:
    version: str
    encrypt: Optional[List[str]]
    files: List[DecodedFile]
    folders: Dict[str, str] = field(default_factory=dict)

    def with_cids(self, cids: Iterable[str]) -> List[Tuple[str, DecodedFile]]:
        """
        Pair records with their CIDs, as a ledger reader holding the
        contract's CID list does. Repeated CIDs keep one pair per record.

        Raises:
            FormatError: If the CID count differs from the record count
        """
        ordered = sorted(cids)
        if len(ordered) != len(self.files):
            raise FormatError(
                f"Batch holds {len(self.files)} records but {len(ordered)} CIDs were given"
            )
        return list(zip(ordered, self.files))


class BatchMetadataCodec:
    """
    Encoder/decoder for the compact batch metadata string.

    The preset folder table and custom alphabet are injectable; both sides
    of an exchange must use the same tables.
    """

    def __init__(
        self,
        presets: Mapping[str, str] = PRESET_FOLDERS,
        alphabet: str = CUSTOM_FOLDER_ALPHABET,
        version: str = METADATA_VERSION,
    ):
        self.presets = presets
        self.alphabet = alphabet
        self.version = version

    def encode(self, files: Sequence[FileRecord], encrypt: Optional[Sequence[str]] = None) -> str:
        """
        Encode file attributes into one comma-delimited string.

        Args:
            files: Records to encode, in any order
            encrypt: Optional encryption recipient identifiers

        Returns:
            Encoded batch string

        Raises:
            FormatError: If a value would create ambiguous field boundaries
            CapacityError: If the batch has too many custom folders
        """
        _check_version(self.version)
        allocator = FolderIndexAllocator(self.presets, self.alphabet)
        ordered = sorted(files, key=lambda record: record.cid)

        records = [self._encode_record(record, allocator) for record in ordered]

        header = self.version
        if encrypt:
            for recipient in encrypt:
                _check_recipient(recipient)
            header += "#" + ":".join(encrypt)
        if allocator.custom_folders:
            header += "|" + "|".join(allocator.custom_folders)

        encoded = ",".join([header] + records)
        logger.debug(
            f"Encoded {len(ordered)} file(s) with {len(allocator.custom_folders)} custom folder(s) "
            f"into {len(encoded)} characters"
        )
        return encoded

    def _encode_record(self, record: FileRecord, allocator: FolderIndexAllocator) -> str:
        _check_value("name", record.name, (",",))
        _check_value("extension", record.ext, (",", "."))
        thumb = record.thumb or ""
        _check_value("thumbnail", thumb, (",",))

        folder_index = allocator.resolve(record.path)
        ext_field = f"{record.ext}.{folder_index}" if folder_index else record.ext

        return ",".join([record.name, ext_field, thumb, _encode_attributes(record.attributes)])

    def decode(self, text: str, cids: Optional[Iterable[str]] = None) -> DecodedBatch:
        """
        Decode an encoded batch string.

        Args:
            text: Encoded batch string
            cids: Optional CID list; when given its size must match the record count

        Raises:
            FormatError: If the string is malformed
        """
        if text is None or "," not in text:
            raise FormatError("Invalid metadata string: missing header separator")

        header, body = text.split(",", 1)
        version, encrypt, custom_folders = _parse_header(header)
        resolver = FolderIndexResolver(custom_folders, self.presets, self.alphabet)

        fields = body.split(",") if body else []
        if len(fields) % FIELDS_PER_FILE != 0:
            raise FormatError(
                f"Invalid metadata string: {len(fields)} record fields is not a multiple of {FIELDS_PER_FILE}"
            )

        files = []
        for offset in range(0, len(fields), FIELDS_PER_FILE):
            name, ext_field, thumb, meta = fields[offset:offset + FIELDS_PER_FILE]
            ext, folder_index = _split_ext_field(ext_field)
            files.append(DecodedFile(
                name=name,
                ext=ext,
                path=resolver.resolve(folder_index),
                thumb=thumb or None,
                attributes=_decode_attributes(meta),
            ))

        batch = DecodedBatch(version=version, encrypt=encrypt, files=files, folders=resolver.folders)
        if cids is not None:
            batch.with_cids(cids)
        return batch


def _check_version(version: str) -> None:
    if len(version) != 1 or not version.isdigit():
        raise FormatError(f"Metadata version must be a single digit, got {version!r}")


def _check_value(label: str, value: str, forbidden: Tuple[str, ...]) -> None:
    for char in forbidden:
        if char in value:
            raise FormatError(f"File {label} {value!r} contains reserved character {char!r}")


def _check_recipient(recipient: str) -> None:
    if not recipient:
        raise FormatError("Encryption recipient cannot be empty")
    _check_value("recipient", recipient, RECIPIENT_FORBIDDEN)


def _encode_attributes(attributes: FileAttributes) -> str:
    if attributes.is_default:
        return ""
    return f"{encode_flags(attributes.flags)}-{attributes.license}-{attributes.labels}"


def _decode_attributes(meta: str) -> FileAttributes:
    if not meta:
        return FileAttributes()
    parts = meta.split("-")
    if len(parts) != 3:
        raise FormatError(f"Invalid attribute field {meta!r}: expected flags-license-labels")
    flag_text, license_id, labels = parts
    try:
        return FileAttributes(flags=decode_flags(flag_text), license=license_id, labels=labels)
    except ValueError as e:
        raise FormatError(f"Invalid attribute field {meta!r}: {e}") from e


def _split_ext_field(ext_field: str) -> Tuple[str, str]:
    ext, dot, folder_index = ext_field.rpartition(".")
    if not dot:
        return ext_field, ""
    return ext, folder_index


def _parse_header(header: str) -> Tuple[str, Optional[List[str]], List[str]]:
    sections = header.split("|")
    version_part = sections[0]
    encrypt = None
    if "#" in version_part:
        version_part, recipients = version_part.split("#", 1)
        encrypt = recipients.split(":") if recipients else []
    if not version_part:
        raise FormatError("Invalid metadata header: missing version")
    folders = sections[1:]
    if any(not entry for entry in folders):
        raise FormatError("Invalid metadata header: empty custom folder entry")
    return version_part, encrypt, folders


_default_codec = BatchMetadataCodec()


def encode(files: Sequence[FileRecord], encrypt: Optional[Sequence[str]] = None) -> str:
    """Encode with the default preset table."""
    return _default_codec.encode(files, encrypt=encrypt)


def decode(text: str, cids: Optional[Iterable[str]] = None) -> DecodedBatch:
    """Decode with the default preset table."""
    return _default_codec.decode(text, cids=cids)
