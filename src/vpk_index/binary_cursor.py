"""Sequential little-endian reader over an in-memory or memory-mapped buffer."""

from __future__ import annotations

import mmap
import struct

from vpk_index.errors import VPKError

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")


class BinaryCursor:
    """Reads primitives from *data* strictly in order.

    *data* may be ``bytes``, ``bytearray``, ``memoryview`` or an open
    ``mmap.mmap``; memoryviews are copied once since they lack ``find``.
    """

    __slots__ = ("_data", "_pos", "_end")

    def __init__(self, data: bytes | bytearray | memoryview | mmap.mmap) -> None:
        if isinstance(data, memoryview):
            data = data.tobytes()
        self._data = data
        self._pos = 0
        self._end = len(data)

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._end - self._pos

    def _require(self, size: int) -> None:
        if self._pos + size > self._end:
            raise VPKError.truncated(
                f"Read of {size} bytes at offset {self._pos} "
                f"exceeds end of input at {self._end}"
            )

    def _unpack(self, fmt: struct.Struct) -> int:
        self._require(fmt.size)
        (value,) = fmt.unpack_from(self._data, self._pos)
        self._pos += fmt.size
        return value

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def read_bytes(self, size: int) -> bytes:
        if size < 0:
            raise VPKError.invalid_argument(f"Invalid read size: {size}")
        self._require(size)
        chunk = bytes(self._data[self._pos : self._pos + size])
        self._pos += size
        return chunk

    def read_null_terminated_string(
        self, limit: int, charset: str = "ascii", padded: bool = False
    ) -> str:
        """Read a zero-terminated string of at most *limit* bytes.

        Reading stops after the terminator or once *limit* bytes have been
        consumed, whichever comes first.  With *padded* set, exactly *limit*
        bytes are always consumed and anything after the terminator is
        skipped.  Undecodable bytes are replaced rather than rejected.
        """
        if limit <= 0:
            raise VPKError.invalid_argument(f"Invalid string limit: {limit}")

        start = self._pos
        window_end = min(start + limit, self._end)
        null = self._data.find(b"\x00", start, window_end)

        if null >= 0:
            raw = self._data[start:null]
            consumed = null - start + 1
        else:
            # No terminator inside the window: either the limit was hit or
            # the input ended first.
            self._require(limit)
            raw = self._data[start : start + limit]
            consumed = limit

        if padded:
            self._require(limit)
            consumed = limit

        self._pos = start + consumed
        return bytes(raw).decode(charset, errors="replace")
