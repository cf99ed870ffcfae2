from vpk_index.archive import (
    SIGNATURE,
    VPKArchive,
    chunk_file_name,
    normalize_dir,
    parse,
)
from vpk_index.binary_cursor import BinaryCursor
from vpk_index.entry import VPKEntry
from vpk_index.errors import ErrorKind, VPKError

__all__ = [
    "SIGNATURE",
    "BinaryCursor",
    "ErrorKind",
    "VPKArchive",
    "VPKEntry",
    "VPKError",
    "chunk_file_name",
    "normalize_dir",
    "parse",
]
