"""Error type raised by the VPK parser and entry accessors."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """What went wrong while reading an archive or an entry."""

    FORMAT = "format"
    TRUNCATED_INPUT = "truncated_input"
    INTEGRITY = "integrity"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"


class VPKError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(message)

    @classmethod
    def format(cls, message: str) -> VPKError:
        return cls(ErrorKind.FORMAT, message)

    @classmethod
    def truncated(cls, message: str) -> VPKError:
        return cls(ErrorKind.TRUNCATED_INPUT, message)

    @classmethod
    def integrity(cls, expected: int, actual: int) -> VPKError:
        return cls(
            ErrorKind.INTEGRITY,
            f"CRC32 checksum mismatch: got 0x{actual:08x}, expected 0x{expected:08x}",
            expected=expected,
            actual=actual,
        )

    @classmethod
    def not_found(cls, message: str) -> VPKError:
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def invalid_argument(cls, message: str) -> VPKError:
        return cls(ErrorKind.INVALID_ARGUMENT, message)

    def __repr__(self) -> str:
        return f"VPKError({self.kind.value!r}, {str(self)!r})"
