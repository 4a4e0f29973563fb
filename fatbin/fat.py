"""Reading fat (universal) binaries, including hidden arm64 entries."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator

from .cpu import TYPE_ARM64, to_cpu_string
from .macho import (
    MAGIC_32,
    MAGIC_64,
    MAGIC_FAT,
    MAGIC_FAT64,
    FormatError,
    ThinFileError,
    fat_arch_header_size,
    fat_header_size,
)

_FAT_ARCH = struct.Struct(">5I")
_FAT_ARCH64 = struct.Struct(">2I2Q2I")


@dataclass(frozen=True)
class FatHeader:
    """Magic number and number of visible architectures of a fat file."""

    magic: int
    narch: int


@dataclass(eq=False)
class FatArch:
    """One object stored inside a fat file."""

    cpu: int
    subcpu: int
    offset: int
    size: int
    align: int
    source: BinaryIO = field(repr=False)
    hidden: bool = False
    filetype: int = 0

    def cpu_string(self) -> str:
        return to_cpu_string(self.cpu, self.subcpu)

    def read(self) -> bytes:
        """Return the whole content of the object."""
        self.source.seek(self.offset)
        data = self.source.read(self.size)
        if len(data) != self.size:
            raise FormatError(
                f"unexpected end of file: want {self.size} bytes, got {len(data)} bytes"
            )
        return data


class FatReader:
    """Iterates over the architectures of a fat file."""

    def __init__(self, f: BinaryIO):
        self._f = f
        f.seek(0)
        raw = f.read(4)
        if len(raw) < 4:
            raise FormatError("error reading magic number")
        magic = int.from_bytes(raw, "big")
        if magic not in (MAGIC_FAT, MAGIC_FAT64):
            if int.from_bytes(raw, "little") in (MAGIC_32, MAGIC_64):
                raise ThinFileError()
            raise FormatError("invalid magic number")

        raw = f.read(4)
        if len(raw) < 4:
            raise FormatError("invalid fat_header")
        narch = int.from_bytes(raw, "big")
        if narch < 1:
            raise FormatError("file contains no images")

        self.header = FatHeader(magic=magic, narch=narch)

    def __iter__(self) -> Iterator[FatArch]:
        magic = self.header.magic
        entry_size = fat_arch_header_size(magic)
        first_offset = 0
        index = 0
        while True:
            entry_offset = fat_header_size() + entry_size * index
            if index < self.header.narch:
                arch = self._load(entry_offset, hidden=False)
            else:
                # Hidden entries sit between the visible ones and the first object.
                if entry_offset + entry_size > first_offset:
                    return
                try:
                    arch = self._load(entry_offset, hidden=True)
                except FormatError as exc:
                    raise FormatError(f"hideARM64: {exc.detail}") from exc
                if arch.cpu != TYPE_ARM64:
                    return

            if index == 0:
                first_offset = arch.offset
            index += 1
            yield arch

    def _load(self, entry_offset: int, hidden: bool) -> FatArch:
        magic = self.header.magic
        self._f.seek(entry_offset)
        if magic == MAGIC_FAT64:
            raw = self._f.read(_FAT_ARCH64.size)
            if len(raw) != _FAT_ARCH64.size:
                raise FormatError("invalid fat arch64 header")
            cpu, subcpu, offset, size, align, _reserved = _FAT_ARCH64.unpack(raw)
        else:
            raw = self._f.read(_FAT_ARCH.size)
            if len(raw) != _FAT_ARCH.size:
                raise FormatError("invalid fat arch header")
            cpu, subcpu, offset, size, align = _FAT_ARCH.unpack(raw)

        return FatArch(
            cpu=cpu,
            subcpu=subcpu,
            offset=offset,
            size=size,
            align=align,
            source=self._f,
            hidden=hidden,
        )


@dataclass
class FatFile:
    """A fat file's header together with all its architectures."""

    header: FatHeader
    arches: list[FatArch]

    @property
    def magic(self) -> int:
        return self.header.magic

    @property
    def narch(self) -> int:
        return self.header.narch


def read_fat_file(f: BinaryIO) -> FatFile:
    """Read the header and every architecture of the fat file in f."""
    reader = FatReader(f)
    return FatFile(header=reader.header, arches=list(reader))