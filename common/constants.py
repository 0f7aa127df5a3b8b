"""Project-wide constants (chunk size, folder tables, wire header names)."""

from types import MappingProxyType

CHUNK_SIZE_BYTES: int = 1024 * 1024  # 1 MiB default upload chunk

METADATA_VERSION = "1"

# Preset folders have fixed single-character indices and are never written
# to the metadata header.
PRESET_FOLDERS = MappingProxyType({
    "Documents": "2",
    "Images": "3",
    "Videos": "4",
    "Music": "5",
    "Archives": "6",
    "Code": "7",
    "Trash": "8",
    "Misc": "9",
})

ROOT_FOLDER_INDEX = "0"

# The first custom folder has the empty index, so its records carry no dot.
# Header entries refer to it as parent "1".
FIRST_CUSTOM_FOLDER_INDEX = ""
FIRST_CUSTOM_FOLDER_PARENT_REF = "1"

# Indices of the second and later custom folders. Excludes I, O and l.
CUSTOM_FOLDER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

FLAG_GLYPHS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz+="

LICENSES = MappingProxyType({
    "1": "CC BY",
    "2": "CC BY-SA",
    "3": "CC BY-ND",
    "4": "CC BY-NC-ND",
    "5": "CC BY-NC",
    "6": "CC BY-NC-SA",
    "7": "CC0",
})

LABELS = MappingProxyType({
    "0": "Miscellaneous",
    "1": "Important",
    "2": "Favorite",
    "3": "Random",
    "4": "Red",
    "5": "Orange",
    "6": "Yellow",
    "7": "Green",
    "8": "Blue",
    "9": "Purple",
})

# Credit pricing defaults, used when the network API does not report them.
DEFAULT_BYTES_PER_CREDIT = 1024
DEFAULT_MIN_CREDITS = 100
BASELINE_DURATION_DAYS = 30

DEFAULT_SAFETY_MULTIPLIER = 2
BROKER_STATS_TIMEOUT_SECONDS = 5

DEFAULT_CHAIN = "HIVE"

HEADER_ACCOUNT = "X-Account"
HEADER_SIGNATURE = "X-Sig"
HEADER_CONTRACT = "X-Contract"
HEADER_CID = "X-Cid"
HEADER_CIDS = "X-Cids"
HEADER_SIZES = "X-Sizes"
HEADER_CHAIN = "X-Chain"
