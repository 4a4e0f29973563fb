"""Reading thin Mach-O headers and deriving segment alignment."""

from __future__ import annotations

import mmap
import os
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional

from .cpu import MASK_SUBCPU_TYPE, TYPE_ARM64, to_cpu_string

MAGIC_32 = 0xFEEDFACE
MAGIC_64 = 0xFEEDFACF
MAGIC_FAT = 0xCAFEBABE
MAGIC_FAT64 = MAGIC_FAT + 1

TYPE_OBJ = 1
TYPE_EXEC = 2

LC_SEGMENT = 0x1
LC_SEGMENT_64 = 0x19

ALIGN_BIT_MAX = 15
ALIGN_BIT_MIN_32 = 2
ALIGN_BIT_MIN_64 = 3

_HEADER_SIZE_32 = 28
_HEADER_SIZE_64 = 32
_SEGMENT_SIZE_32 = 56
_SEGMENT_SIZE_64 = 72
_SUBCPU_VALUE_MASK = ~MASK_SUBCPU_TYPE & 0xFFFFFFFF
_UINT64_MASK = (1 << 64) - 1


class FormatError(Exception):
    """The data is not in the expected binary format."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"invalid file format {detail}")


class ThinFileError(Exception):
    """The file is a thin Mach-O file where a fat file was expected."""

    def __init__(self, message: str = "the file is thin file, not fat"):
        super().__init__(message)


@dataclass(frozen=True)
class MachHeader:
    """A parsed Mach-O header with the addresses of its segments."""

    magic: int
    byte_order: str
    cpu: int
    subcpu: int
    filetype: int
    ncmds: int
    sizeofcmds: int
    flags: int
    segments: tuple[tuple[int, int], ...] = ()

    @property
    def header_size(self) -> int:
        return _HEADER_SIZE_64 if self.magic == MAGIC_64 else _HEADER_SIZE_32


def _byte_order(ident: bytes) -> str:
    big = int.from_bytes(ident, "big")
    little = int.from_bytes(ident, "little")
    if big & ~1 == MAGIC_32 & ~1:
        return ">"
    if little & ~1 == MAGIC_32 & ~1:
        return "<"
    raise FormatError("invalid magic number")


def _segments(cmds: bytes, ncmds: int, order: str) -> Iterator[tuple[int, int]]:
    rest = cmds
    for _ in range(ncmds):
        if len(rest) < 8:
            raise FormatError("command block too small")
        cmd, cmdsize = struct.unpack_from(order + "2I", rest)
        if cmdsize < 8 or cmdsize > len(rest):
            raise FormatError("invalid command block size")
        block, rest = rest[:cmdsize], rest[cmdsize:]
        if cmd == LC_SEGMENT:
            if len(block) < _SEGMENT_SIZE_32:
                raise FormatError("segment command too small")
            yield cmd, struct.unpack_from(order + "I", block, 24)[0]
        elif cmd == LC_SEGMENT_64:
            if len(block) < _SEGMENT_SIZE_64:
                raise FormatError("segment command too small")
            yield cmd, struct.unpack_from(order + "Q", block, 24)[0]


def parse_mach_header(data: bytes) -> MachHeader:
    """Parse a Mach-O header and its load commands from raw bytes."""
    if len(data) < 4:
        raise FormatError("error reading magic number")
    order = _byte_order(data[:4])
    magic = struct.unpack_from(order + "I", data)[0]
    header_size = _HEADER_SIZE_64 if magic == MAGIC_64 else _HEADER_SIZE_32
    if len(data) < header_size:
        raise FormatError("truncated mach header")
    _, cpu, subcpu, filetype, ncmds, sizeofcmds, flags = struct.unpack_from(order + "7I", data)
    cmds = data[header_size:header_size + sizeofcmds]
    if len(cmds) < sizeofcmds:
        raise FormatError("truncated load commands")
    return MachHeader(
        magic=magic,
        byte_order=order,
        cpu=cpu,
        subcpu=subcpu,
        filetype=filetype,
        ncmds=ncmds,
        sizeofcmds=sizeofcmds,
        flags=flags,
        segments=tuple(_segments(cmds, ncmds, order)),
    )


def guess_align_bit(addr: int, min_bit: int, max_bit: int) -> int:
    """Alignment exponent implied by the lowest set bit (from bit 1) of addr."""
    addr &= _UINT64_MASK
    if addr == 0:
        return max_bit
    significant = addr & ~1
    if significant == 0:
        return max_bit
    align = (significant & -significant).bit_length() - 1
    return min(max(align, min_bit), max_bit)


def segment_align_bit(header: MachHeader) -> int:
    """The smallest alignment exponent over all segments of the header."""
    current = ALIGN_BIT_MAX
    for cmd, addr in header.segments:
        min_bit = ALIGN_BIT_MIN_32 if cmd == LC_SEGMENT else ALIGN_BIT_MIN_64
        current = min(current, guess_align_bit(addr, min_bit, ALIGN_BIT_MAX))
    return current


def compare_arches(a, b) -> int:
    """Ordering of objects inside a fat file; arm64 goes last."""
    if a.cpu == b.cpu:
        return (a.subcpu & _SUBCPU_VALUE_MASK) - (b.subcpu & _SUBCPU_VALUE_MASK)
    if a.cpu == TYPE_ARM64:
        return 1
    if b.cpu == TYPE_ARM64:
        return -1
    return a.align - b.align


def fat_header_size() -> int:
    """Size of the fat header: magic and number of architectures."""
    return 4 * 2


def fat_arch_header_size(magic: int) -> int:
    """Size of one fat architecture entry for the given fat magic."""
    if magic == MAGIC_FAT64:
        return 4 * 4 + 8 * 2
    return 4 * 5


@dataclass(eq=False)
class Arch:
    """A thin Mach-O object stored at an offset of a binary file."""

    cpu: int
    subcpu: int
    align: int
    filetype: int
    size: int
    source: BinaryIO = field(repr=False)
    offset: int = 0

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


def _read_header_bytes(f: BinaryIO, offset: int, size: int) -> bytes:
    f.seek(offset)
    prefix = f.read(min(size, _HEADER_SIZE_64))
    if len(prefix) < 24:
        return prefix
    order = _byte_order(prefix[:4])
    magic, = struct.unpack_from(order + "I", prefix)
    sizeofcmds, = struct.unpack_from(order + "I", prefix, 20)
    header_size = _HEADER_SIZE_64 if magic == MAGIC_64 else _HEADER_SIZE_32
    f.seek(offset)
    return f.read(min(size, header_size + sizeofcmds))


def open_arch(f: BinaryIO, offset: int = 0, size: Optional[int] = None) -> Arch:
    """Read the Mach-O object at offset of f and work out its alignment."""
    if size is None:
        size = f.seek(0, os.SEEK_END) - offset
    header = parse_mach_header(_read_header_bytes(f, offset, size))

    align = segment_align_bit(header)
    if header.filetype == TYPE_OBJ:
        min_bit = ALIGN_BIT_MIN_32 if header.magic == MAGIC_32 else ALIGN_BIT_MIN_64
        align = guess_align_bit(mmap.PAGESIZE, min_bit, ALIGN_BIT_MAX)

    return Arch(
        cpu=header.cpu,
        subcpu=header.subcpu,
        align=align,
        filetype=header.filetype,
        size=size,
        source=f,
        offset=offset,
    )