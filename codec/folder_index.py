"""Virtual folder index allocation for the batch metadata header."""

from typing import Dict, List, Mapping, Optional, Sequence

from common.constants import (
    CUSTOM_FOLDER_ALPHABET,
    FIRST_CUSTOM_FOLDER_INDEX,
    FIRST_CUSTOM_FOLDER_PARENT_REF,
    PRESET_FOLDERS,
    ROOT_FOLDER_INDEX,
)
from common.exceptions import CapacityError, FormatError

FORBIDDEN_SEGMENT_CHARS = (",", "|")


def normalize_path(path: Optional[str]) -> str:
    """
    Normalize a virtual folder path.

    Leading, trailing and repeated slashes are dropped, so ``"/Docs//a/"``
    becomes ``"Docs/a"``. ``None``, ``""`` and ``"/"`` are the root folder.

    Raises:
        FormatError: If a segment contains a metadata delimiter
    """
    if not path:
        return ""
    segments = [segment for segment in path.split("/") if segment]
    for segment in segments:
        for char in FORBIDDEN_SEGMENT_CHARS:
            if char in segment:
                raise FormatError(f"Folder name {segment!r} contains reserved character {char!r}")
    return "/".join(segments)


def custom_index(position: int, alphabet: str = CUSTOM_FOLDER_ALPHABET) -> str:
    """Index of the custom folder at ``position`` in header order."""
    if position == 0:
        return FIRST_CUSTOM_FOLDER_INDEX
    return alphabet[position - 1]


def _check_tables(presets: Mapping[str, str], alphabet: str) -> None:
    reserved = {ROOT_FOLDER_INDEX, FIRST_CUSTOM_FOLDER_INDEX, FIRST_CUSTOM_FOLDER_PARENT_REF}
    for name, index in presets.items():
        if len(index) != 1 or index in reserved:
            raise ValueError(f"Preset folder {name!r} needs a single unreserved index character, got {index!r}")
        if index in alphabet:
            raise ValueError(f"Preset index {index!r} collides with the custom folder alphabet")
        if "/" in name:
            raise ValueError(f"Preset folder name {name!r} must be a single segment")
    if len(set(alphabet)) != len(alphabet):
        raise ValueError("Custom folder alphabet contains duplicate characters")
    if reserved & set(alphabet):
        raise ValueError("Custom folder alphabet contains a reserved index")


class FolderIndexAllocator:
    """
    Assigns compact indices to virtual folders during one encode pass.

    The root folder is ``"0"`` and presets resolve to their fixed index.
    The first custom folder seen gets the empty index, later ones the next
    alphabet character. Nested folders are allocated level by level and
    recorded in the header as ``<parentRef>/<segment>``, where the parent
    reference of the first custom folder is ``"1"``.

    An allocator must not be reused across encode calls.
    """

    def __init__(
        self,
        presets: Mapping[str, str] = PRESET_FOLDERS,
        alphabet: str = CUSTOM_FOLDER_ALPHABET,
    ):
        _check_tables(presets, alphabet)
        self.presets = presets
        self.alphabet = alphabet
        self._indices: Dict[str, str] = {}
        self._custom_folders: List[str] = []

    @property
    def custom_folders(self) -> List[str]:
        """Header display strings in allocation order."""
        return list(self._custom_folders)

    @property
    def capacity(self) -> int:
        return len(self.alphabet) + 1

    def resolve(self, path: Optional[str]) -> str:
        """
        Return the index for ``path``, allocating custom indices as needed.

        Raises:
            FormatError: If the path contains a metadata delimiter
            CapacityError: If the custom alphabet is exhausted
        """
        folder = normalize_path(path)
        if not folder:
            return ROOT_FOLDER_INDEX
        if folder in self.presets:
            return self.presets[folder]
        if folder in self._indices:
            return self._indices[folder]

        current = ""
        parent_index = None
        for depth, segment in enumerate(folder.split("/")):
            current = f"{current}/{segment}" if current else segment
            if depth == 0 and current in self.presets:
                parent_index = self.presets[current]
                continue
            index = self._indices.get(current)
            if index is None:
                display = segment if parent_index is None else f"{_parent_ref(parent_index)}/{segment}"
                index = self._allocate(current, display)
            parent_index = index
        return parent_index

    def lookup(self, index: str) -> Optional[str]:
        """Return the folder already allocated to a custom ``index``, if any."""
        for folder, allocated in self._indices.items():
            if allocated == index:
                return folder
        return None

    def _allocate(self, folder: str, display: str) -> str:
        position = len(self._custom_folders)
        if position >= self.capacity:
            raise CapacityError(
                f"Too many custom folders: {self.capacity} available, "
                f"cannot index {folder!r}"
            )
        index = custom_index(position, self.alphabet)
        self._indices[folder] = index
        self._custom_folders.append(display)
        return index


def _parent_ref(index: str) -> str:
    return FIRST_CUSTOM_FOLDER_PARENT_REF if index == FIRST_CUSTOM_FOLDER_INDEX else index


class FolderIndexResolver:
    """
    Maps folder indices back to full paths when decoding.

    Built from the header's custom folder list plus the preset table. A
    record without a folder index belongs to the first custom folder, or to
    the root when the header lists no custom folders.
    """

    def __init__(
        self,
        custom_folders: Sequence[str],
        presets: Mapping[str, str] = PRESET_FOLDERS,
        alphabet: str = CUSTOM_FOLDER_ALPHABET,
    ):
        if len(custom_folders) > len(alphabet) + 1:
            raise FormatError(
                f"Header lists {len(custom_folders)} custom folders, at most {len(alphabet) + 1} are indexable"
            )
        self._paths: Dict[str, str] = {ROOT_FOLDER_INDEX: ""}
        for name, index in presets.items():
            self._paths[index] = name

        if not custom_folders:
            self._paths[FIRST_CUSTOM_FOLDER_INDEX] = ""
        for position, display in enumerate(custom_folders):
            self._paths[custom_index(position, alphabet)] = self._expand(display)

    def _expand(self, display: str) -> str:
        if not display:
            raise FormatError("Empty custom folder entry in header")
        if "/" not in display:
            return display
        parent_ref, segment = display.split("/", 1)
        if not segment or "/" in segment:
            raise FormatError(f"Malformed nested folder entry {display!r}")
        if parent_ref == FIRST_CUSTOM_FOLDER_PARENT_REF:
            parent_ref = FIRST_CUSTOM_FOLDER_INDEX
        elif parent_ref in (FIRST_CUSTOM_FOLDER_INDEX, ROOT_FOLDER_INDEX):
            raise FormatError(f"Folder entry {display!r} has an invalid parent reference")
        if parent_ref not in self._paths:
            raise FormatError(f"Folder entry {display!r} references unknown parent index {parent_ref!r}")
        return f"{self._paths[parent_ref]}/{segment}"

    def resolve(self, index: str) -> str:
        """
        Raises:
            FormatError: If ``index`` has no resolution
        """
        try:
            return self._paths[index]
        except KeyError:
            raise FormatError(f"Unknown folder index {index!r}") from None

    @property
    def folders(self) -> Dict[str, str]:
        return dict(self._paths)
