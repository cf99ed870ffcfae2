import struct
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from vpk_index.archive import SIGNATURE
from vpk_index.config import settings

EntrySpec = dict[str, Any]


def _pack_record(spec: EntrySpec) -> bytes:
    preload: bytes = spec.get("preload", b"")
    record = struct.pack(
        "<IHHiiH",
        spec.get("crc32", 0),
        len(preload),
        spec.get("chunk_index", 0x7FFF),
        spec.get("offset", 0),
        spec.get("size", 0),
        spec.get("terminator", 0xFFFF),
    )
    return record + preload


def build_table(files: list[EntrySpec]) -> bytes:
    """Encode *files* as a nested type/dir/name table.

    Each file needs ``type``, ``dir`` and ``name``; record fields default to
    zero with a valid terminator.  Grouping follows first appearance.
    """
    tree: dict[str, dict[str, list[EntrySpec]]] = {}
    for spec in files:
        tree.setdefault(spec["type"], {}).setdefault(spec["dir"], []).append(spec)

    out = bytearray()
    for type_, dirs in tree.items():
        out += type_.encode() + b"\x00"
        for directory, specs in dirs.items():
            out += directory.encode() + b"\x00"
            for spec in specs:
                out += spec["name"].encode() + b"\x00"
                out += _pack_record(spec)
            out += b"\x00"
        out += b"\x00"
    out += b"\x00"
    return bytes(out)


def build_vpk(
    files: list[EntrySpec],
    *,
    version: int = 1,
    dictionary_size: int | None = None,
    reserved: tuple[int, int, int, int] = (0, 0, 0, 48),
    data: bytes = b"",
) -> bytes:
    """Build a VPK directory file; *data* is appended after the table."""
    table = build_table(files)
    if dictionary_size is None:
        dictionary_size = len(table)
    header = struct.pack("<II", SIGNATURE, version)
    if version == 2:
        header += struct.pack("<4I", *reserved)
    header += struct.pack("<I", dictionary_size)
    return header + table + data


@pytest.fixture
def make_vpk(tmp_path) -> Callable[..., Path]:
    def _make(files: list[EntrySpec], name: str = "test.vpk", **kwargs: Any) -> Path:
        path = tmp_path / name
        path.write_bytes(build_vpk(files, **kwargs))
        return path

    return _make


@pytest.fixture
def no_mmap(monkeypatch):
    monkeypatch.setattr(settings, "use_mmap", False)
