"""Parser and in-memory index for Valve VPK directory files.

Reads the header and the nested type/directory/name table of a VPK
directory file and catalogues every entry.  Entry data itself is only
touched when :meth:`VPKEntry.get_data` is called.

Format reference:
  https://developer.valvesoftware.com/wiki/VPK_File_Format
"""

from __future__ import annotations

import logging
import mmap
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

from vpk_index.binary_cursor import BinaryCursor
from vpk_index.config import settings
from vpk_index.entry import VPKEntry
from vpk_index.errors import VPKError

logger = logging.getLogger(__name__)

SIGNATURE = 0x55AA1234
VERSION_MIN = 1
VERSION_MAX = 2
ENTRY_TERMINATOR = 0xFFFF
MULTI_CHUNK_SUFFIX = "_dir"

_HEADER_SIZES = {1: 12, 2: 28}


def normalize_dir(raw: str) -> str:
    """Normalise a directory string from the table.

    Separators become ``/``, the single-space root marker becomes ``""`` and
    any other non-empty directory ends with exactly one trailing ``/``.
    """
    directory = raw.replace("\\", "/")
    if directory == " ":
        return ""
    if directory and not directory.endswith("/"):
        directory += "/"
    return directory


def chunk_file_name(base_name: str, chunk_index: int) -> str:
    """``pak01`` + 5 -> ``pak01_005.vpk``."""
    return f"{base_name}_{chunk_index:03d}.vpk"


@dataclass(slots=True)
class _Index:
    entries: list[VPKEntry] = field(default_factory=list)
    by_type: dict[str, list[VPKEntry]] = field(default_factory=dict)
    by_dir: dict[str, list[VPKEntry]] = field(default_factory=dict)
    by_path: dict[str, VPKEntry] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _Header:
    version: int
    header_size: int
    dictionary_size: int
    reserved: tuple[int, ...]


def _read_header(cursor: BinaryCursor) -> _Header:
    sig = cursor.read_u32()
    if sig != SIGNATURE:
        raise VPKError.format(f"Unknown signature: 0x{sig:08x} (expected: 0x{SIGNATURE:08x})")

    version = cursor.read_u32()
    if version not in _HEADER_SIZES:
        raise VPKError.format(f"Unsupported version: {version}")

    reserved: tuple[int, ...] = ()
    if version == 2:
        # footer offset, always 0, footer size, always 48; not interpreted
        reserved = tuple(cursor.read_u32() for _ in range(4))

    # dictionary size in v1, meaning unconfirmed in v2
    dictionary_size = cursor.read_u32()
    return _Header(
        version=version,
        header_size=_HEADER_SIZES[version],
        dictionary_size=dictionary_size,
        reserved=reserved,
    )


class VPKArchive:
    """Index of all entries in a VPK archive.

    Load a directory file with :meth:`load` (or the module-level
    :func:`parse`), then query entries by path, directory or type.  A failed
    load leaves the archive untouched.
    """

    def __init__(self, *, read_only: bool = True) -> None:
        self.read_only = read_only
        self.path: Path | None = None
        self.version = VERSION_MIN
        self.is_multi_chunk = False
        self.header_size = _HEADER_SIZES[VERSION_MIN]
        self.dictionary_size = 0
        self.reserved_header: tuple[int, ...] = ()
        self._index = _Index()

    def load(self, path: str | Path) -> None:
        """Load all entries from a VPK directory file.

        For multi-chunk archives *path* must be the ``_dir`` index file;
        chunk files are resolved next to it.

        Raises:
            VPKError: on any format error or truncated input.
            OSError: if the directory file cannot be opened.
        """
        path = Path(path)
        base_name = path.stem

        # it must be a multi-chunk VPK if it ends with _dir
        multi_chunk = base_name.endswith(MULTI_CHUNK_SUFFIX)
        if multi_chunk:
            base_name = base_name[: -len(MULTI_CHUNK_SUFFIX)]

        with path.open("rb") as f:
            if settings.use_mmap and path.stat().st_size > 0:
                with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
                    header, index = self._parse(BinaryCursor(mapped), path, base_name, multi_chunk)
            else:
                header, index = self._parse(BinaryCursor(f.read()), path, base_name, multi_chunk)

        self.path = path
        self.version = header.version
        self.is_multi_chunk = multi_chunk
        self.header_size = header.header_size
        self.dictionary_size = header.dictionary_size
        self.reserved_header = header.reserved
        self._index = index

        logger.info(
            "Loaded %s: version %d, %d entries%s",
            path.name,
            header.version,
            len(index.entries),
            " (multi-chunk)" if multi_chunk else "",
        )

    def _parse(
        self,
        cursor: BinaryCursor,
        path: Path,
        base_name: str,
        multi_chunk: bool,
    ) -> tuple[_Header, _Index]:
        header = _read_header(cursor)
        logger.debug(
            "%s: version=%d header_size=%d dictionary_size=%d reserved=%s",
            path.name,
            header.version,
            header.header_size,
            header.dictionary_size,
            header.reserved,
        )

        if header.version == 2 and not multi_chunk:
            logger.warning(
                "%s: offsets of version 2 single-file archives are not adjusted, "
                "entry data may be read from the wrong position",
                path.name,
            )

        index = _Index()
        limit = settings.string_limit
        charset = settings.charset

        while type_ := cursor.read_null_terminated_string(limit, charset):
            type_entries = index.by_type.setdefault(type_, [])

            while raw_dir := cursor.read_null_terminated_string(limit, charset):
                directory = normalize_dir(raw_dir)
                dir_entries = index.by_dir.setdefault(directory, [])

                while name := cursor.read_null_terminated_string(limit, charset):
                    entry = self._read_entry(
                        cursor, header, path, base_name, multi_chunk, type_, directory, name
                    )
                    if entry.path in index.by_path:
                        raise VPKError.format(f"Duplicate entry path: {entry.path}")

                    index.entries.append(entry)
                    type_entries.append(entry)
                    dir_entries.append(entry)
                    index.by_path[entry.path] = entry

        if header.version == 1:
            actual = cursor.position - header.header_size
            if header.dictionary_size != 0 and actual != header.dictionary_size:
                raise VPKError.format(
                    f"Incorrect dictionary size {actual} (expected {header.dictionary_size})"
                )

        return header, index

    def _read_entry(
        self,
        cursor: BinaryCursor,
        header: _Header,
        path: Path,
        base_name: str,
        multi_chunk: bool,
        type_: str,
        directory: str,
        name: str,
    ) -> VPKEntry:
        crc32 = cursor.read_u32()
        preload_size = cursor.read_u16()
        chunk_index = cursor.read_u16()
        offset = cursor.read_i32()
        size = cursor.read_i32()

        term = cursor.read_u16()
        if term != ENTRY_TERMINATOR:
            raise VPKError.format(
                f"Unexpected terminator 0x{term:04x} for {directory}{name}.{type_}"
            )

        preload = cursor.read_bytes(preload_size) if preload_size else b""

        if multi_chunk:
            source_file = path.with_name(chunk_file_name(base_name, chunk_index))
        else:
            source_file = path
            if header.version == 1:
                # offset is relative to the end of the dictionary
                offset += header.header_size + header.dictionary_size

        return VPKEntry(
            type=type_,
            directory=directory,
            name=name,
            crc32=crc32,
            source_file=source_file,
            offset=offset,
            size=size,
            chunk_index=chunk_index,
            preload_data=preload,
            read_only=self.read_only,
        )

    @property
    def entries(self) -> tuple[VPKEntry, ...]:
        return tuple(self._index.entries)

    @property
    def dirs(self) -> tuple[str, ...]:
        return tuple(self._index.by_dir)

    @property
    def types(self) -> tuple[str, ...]:
        return tuple(self._index.by_type)

    def entries_for_dir(self, directory: str) -> tuple[VPKEntry, ...] | None:
        """Entries inside *directory*, or ``None`` if the directory never appeared."""
        result = self._index.by_dir.get(directory)
        return None if result is None else tuple(result)

    def entries_for_type(self, type_: str) -> tuple[VPKEntry, ...] | None:
        """Entries with extension *type_*, or ``None`` if the type never appeared."""
        result = self._index.by_type.get(type_)
        return None if result is None else tuple(result)

    def entry(self, path: str) -> VPKEntry | None:
        return self._index.by_path.get(path)

    def clear(self) -> None:
        """Remove all loaded entries.  Backing files are not touched."""
        for entry in self._index.entries:
            entry.release()
        self._index = _Index()

    def __len__(self) -> int:
        return len(self._index.entries)

    def __iter__(self) -> Iterator[VPKEntry]:
        return iter(self._index.entries)

    def __contains__(self, path: object) -> bool:
        return path in self._index.by_path

    def __repr__(self) -> str:
        return f"VPKArchive(path={self.path!r}, version={self.version}, entries={len(self)})"


def parse(path: str | Path, *, read_only: bool = True) -> VPKArchive:
    """Load the VPK directory file at *path* into a new :class:`VPKArchive`."""
    archive = VPKArchive(read_only=read_only)
    archive.load(path)
    return archive
