"""A single file catalogued in a VPK directory, with lazy data access."""

from __future__ import annotations

import logging
import mmap
import zlib
from dataclasses import dataclass, field
from pathlib import Path

from vpk_index.config import settings
from vpk_index.errors import VPKError

logger = logging.getLogger(__name__)

MAX_PRELOAD_SIZE = 0xFFFF


@dataclass(slots=True)
class VPKEntry:
    type: str  # extension without the dot
    directory: str  # "" for root, otherwise "/"-terminated
    name: str
    crc32: int
    source_file: Path
    offset: int = 0
    size: int = 0
    chunk_index: int = 0
    preload_data: bytes = b""
    read_only: bool = True
    _view: memoryview | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.preload_data) > MAX_PRELOAD_SIZE:
            raise VPKError.invalid_argument(
                f"Preload data of {len(self.preload_data)} bytes exceeds {MAX_PRELOAD_SIZE}"
            )

    @property
    def path(self) -> str:
        return f"{self.directory}{self.name}.{self.type}"

    @property
    def preload_size(self) -> int:
        return len(self.preload_data)

    @property
    def data_size(self) -> int:
        """Full size of the entry: preload bytes plus external archive bytes."""
        return self.size + len(self.preload_data)

    def get_data(self) -> memoryview:
        """Return the entry's bytes: preload data followed by the external range.

        The view is built once and reused while its length still matches
        :attr:`data_size`.  Views over external data without preload bytes
        are memory-mapped (read-write when the entry is not read-only) unless
        ``settings.use_mmap`` is off.

        Raises:
            VPKError: ``NOT_FOUND`` if the backing file is missing,
                ``TRUNCATED_INPUT`` if the range runs past its end,
                ``FORMAT`` for a negative offset.
        """
        if self.size == 0 and not self.preload_data:
            return memoryview(b"")

        if self._view is not None and len(self._view) == self.data_size:
            return self._view

        if self.size == 0:
            self._view = memoryview(self.preload_data)
        else:
            self._view = self._load_external()
        return self._view

    def release(self) -> None:
        """Drop the cached data view so its mapping can be closed."""
        self._view = None

    def _check_range(self) -> None:
        if self.offset < 0:
            raise VPKError.format(f"Negative data offset {self.offset} for {self.path}")
        if self.size < 0:
            raise VPKError.format(f"Negative data size {self.size} for {self.path}")
        if not self.source_file.is_file():
            raise VPKError.not_found(f"Missing archive file: {self.source_file}")
        file_size = self.source_file.stat().st_size
        if self.offset + self.size > file_size:
            raise VPKError.truncated(
                f"Data for {self.path} ({self.offset}+{self.size}) "
                f"exceeds {self.source_file.name} ({file_size} bytes)"
            )

    def _load_external(self) -> memoryview:
        self._check_range()

        if self.preload_data:
            # concat preloaded and external data into one buffer
            buf = bytearray(self.data_size)
            preload_len = len(self.preload_data)
            buf[:preload_len] = self.preload_data
            with self.source_file.open("rb") as f:
                f.seek(self.offset)
                read = f.readinto(memoryview(buf)[preload_len:])
            if read != self.size:
                raise VPKError.truncated(f"Short read for {self.path}: {read}/{self.size} bytes")
            view = memoryview(buf)
            return view.toreadonly() if self.read_only else view

        if settings.use_mmap:
            return self._map_range()

        with self.source_file.open("rb") as f:
            f.seek(self.offset)
            data = f.read(self.size)
        if len(data) != self.size:
            raise VPKError.truncated(f"Short read for {self.path}: {len(data)}/{self.size} bytes")
        return memoryview(data) if self.read_only else memoryview(bytearray(data))

    def _map_range(self) -> memoryview:
        # mmap offsets must be multiples of the allocation granularity
        aligned = self.offset - self.offset % mmap.ALLOCATIONGRANULARITY
        delta = self.offset - aligned
        access = mmap.ACCESS_READ if self.read_only else mmap.ACCESS_WRITE
        mode = "rb" if self.read_only else "r+b"
        with self.source_file.open(mode) as f:
            mapped = mmap.mmap(f.fileno(), delta + self.size, access=access, offset=aligned)
        logger.debug(
            "Mapped %s from %s at offset %d (%d bytes)",
            self.path,
            self.source_file.name,
            self.offset,
            self.size,
        )
        return memoryview(mapped)[delta : delta + self.size]

    def calc_crc32(self) -> int:
        """Compute the CRC32 of the entry's current data."""
        crc = 0
        view = self.get_data()
        step = settings.crc_chunk_size
        for start in range(0, len(view), step):
            crc = zlib.crc32(view[start : start + step], crc)
        return crc

    def check_data(self) -> None:
        """Compare the stored CRC32 against the actual data.

        Raises:
            VPKError: ``INTEGRITY`` carrying both checksums on mismatch.
        """
        actual = self.calc_crc32()
        if actual != self.crc32:
            raise VPKError.integrity(expected=self.crc32, actual=actual)
