"""Reading ``ar`` archives, including the BSD long-name variant."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Optional

HEADER_SIZE = 60
PREFIX_SYMDEF = "__.SYMDEF"
MAGIC_HEADER = b"!<arch>\n"

_BSD_NAME_MARKER = "#1/"
_END_CHARS = b"`\n"
_DECIMAL = re.compile(r"[+-]?[0-9]+")
_OCTAL = re.compile(r"[+-]?[0-7]+")


class InvalidFormatError(Exception):
    """The data is not a well-formed ar archive."""

    def __init__(self, message: str = "not ar file format"):
        super().__init__(message)


@dataclass(frozen=True)
class Header:
    """The fixed-size header that precedes every archive member."""

    name: str
    size: int
    mod_time: datetime
    uid: int
    gid: int
    mode: int
    name_size: int = 0

    @property
    def perm(self) -> int:
        """Permission bits of the member's mode."""
        return self.mode & 0o777


@dataclass(eq=False)
class Member:
    """One file stored in an archive."""

    header: Header
    source: BinaryIO = field(repr=False)
    offset: int
    size: int

    @property
    def name(self) -> str:
        return self.header.name

    def read(self) -> bytes:
        """Return the whole content of the member."""
        self.source.seek(self.offset)
        data = self.source.read(self.size)
        if len(data) != self.size:
            raise InvalidFormatError(
                f"unexpected end of archive member {self.name}: "
                f"want {self.size} bytes, got {len(data)} bytes"
            )
        return data


def trim_tail_space(data: bytes) -> str:
    """Decode a header field and drop its trailing spaces."""
    return data.decode("utf-8", errors="surrogateescape").rstrip(" ")


def _parse_decimal(text: str, what: str) -> int:
    if not _DECIMAL.fullmatch(text):
        raise InvalidFormatError(f'parse {what}: invalid decimal number "{text}"')
    return int(text, 10)


def _parse_octal(text: str, what: str) -> int:
    if not _OCTAL.fullmatch(text):
        raise InvalidFormatError(f'parse {what}: invalid octal number "{text}"')
    return int(text, 8)


def _parse_header(raw: bytes) -> Header:
    name = trim_tail_space(raw[0:16])
    mtime = _parse_decimal(trim_tail_space(raw[16:28]), "modtime")
    uid = _parse_decimal(trim_tail_space(raw[28:34]), "uid")
    gid = _parse_decimal(trim_tail_space(raw[34:40]), "gid")
    mode = _parse_octal(trim_tail_space(raw[40:48]), "mode")
    size = _parse_decimal(trim_tail_space(raw[48:58]), "size value of name")

    end = raw[58:60]
    if end != _END_CHARS:
        raise InvalidFormatError(
            f"unexpected ending characters want: {_END_CHARS.hex()}, got: {end.hex()}"
        )

    return Header(
        name=name,
        size=size,
        mod_time=datetime.fromtimestamp(mtime, tz=timezone.utc),
        uid=uid,
        gid=gid,
        mode=mode,
    )


class ArchiveReader:
    """Iterates over the members of an ar archive held in a binary file."""

    def __init__(self, f: BinaryIO):
        self._f = f
        f.seek(0)
        magic = f.read(len(MAGIC_HEADER))
        if not magic:
            raise InvalidFormatError()
        if magic != MAGIC_HEADER:
            raise InvalidFormatError(
                f"invalid magic header want: {MAGIC_HEADER.decode()}, "
                f"got: {magic.decode('latin-1')}: not ar file format"
            )

    def __iter__(self) -> Iterator[Member]:
        offset = len(MAGIC_HEADER)
        while True:
            member = self._load(offset)
            if member is None:
                return
            yield member
            offset += member.header.size + HEADER_SIZE

    def _read_at(self, offset: int, size: int) -> bytes:
        self._f.seek(offset)
        return self._f.read(size)

    def _load(self, offset: int) -> Optional[Member]:
        raw = self._read_at(offset, HEADER_SIZE)
        if not raw:
            return None
        if len(raw) != HEADER_SIZE:
            raise InvalidFormatError(
                f"error reading header want: {HEADER_SIZE} bytes, got: {len(raw)} bytes"
            )

        header = _parse_header(raw)
        if header.name.startswith(_BSD_NAME_MARKER):
            name_size = _parse_decimal(header.name[len(_BSD_NAME_MARKER):], "name size")
            name_bytes = self._read_at(offset + HEADER_SIZE, name_size)
            if name_size < 0 or len(name_bytes) != name_size:
                raise InvalidFormatError(f"error reading member name of {name_size} bytes")
            header = replace(
                header,
                name=name_bytes.rstrip(b"\x00").decode("utf-8", errors="surrogateescape"),
                name_size=name_size,
            )

        if header.size < header.name_size:
            raise InvalidFormatError(f"invalid member size {header.size} of {header.name}")

        return Member(
            header=header,
            source=self._f,
            offset=offset + HEADER_SIZE + header.name_size,
            size=header.size - header.name_size,
        )


def read_archive(f: BinaryIO) -> list[Member]:
    """Return every member of the archive in f."""
    return list(ArchiveReader(f))