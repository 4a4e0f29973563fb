"""Opening thin, fat and archive inputs and selecting architectures among them."""

from __future__ import annotations

import enum
import io
import re
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Iterable, Optional, Sequence, TypeVar

from .ar import PREFIX_SYMDEF, ArchiveReader, InvalidFormatError, read_archive
from .cpu import to_cpu
from .fat import FatHeader, FatReader, read_fat_file
from .macho import FormatError, ThinFileError, open_arch
from .util import first_duplicate

T = TypeVar("T")

_MAX_SEGMENT_ALIGN = 0x8000
_HEX = re.compile(r"[+-]?[0-9a-fA-F]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INSPECT_PREFIX_SIZE = 40


class LipoError(Exception):
    """An operation on input or output binaries failed."""


@dataclass
class SegAlignInput:
    """A requested segment alignment, given in hexadecimal, for one architecture."""

    arch: str = ""
    align_hex: str = ""


@dataclass
class ArchInput:
    """An input binary, optionally with the architecture it must have."""

    arch: str = ""
    bin: str = ""


class InspectType(enum.IntEnum):
    """Kind of binary file found on disk."""

    FAT = 1
    THIN = 2
    ARCHIVE = 3
    UNKNOWN = 4


@dataclass(eq=False)
class NamedArch:
    """An object together with the file it came from and an adjustable alignment."""

    obj: Any
    name: str
    align: int
    _file: Optional[BinaryIO] = field(default=None, repr=False)

    @property
    def cpu(self) -> int:
        return self.obj.cpu

    @property
    def subcpu(self) -> int:
        return self.obj.subcpu

    @property
    def size(self) -> int:
        return self.obj.size

    @property
    def filetype(self) -> int:
        return self.obj.filetype

    def cpu_string(self) -> str:
        return self.obj.cpu_string()

    def read(self) -> bytes:
        return self.obj.read()

    def update_align(self, align_bit: int) -> None:
        """Use align_bit as the alignment exponent from now on."""
        self.align = align_bit

    def close(self) -> None:
        if self._file is not None:
            self._file.close()


@dataclass(eq=False)
class OpenFat:
    """An opened fat file and its architectures."""

    header: FatHeader
    arches: list[NamedArch]
    _file: BinaryIO = field(repr=False)

    @property
    def magic(self) -> int:
        return self.header.magic

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "OpenFat":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


@dataclass(eq=False)
class OpenArchive:
    """An opened ar archive and the Mach-O objects it holds."""

    arches: list[NamedArch]
    _file: BinaryIO = field(repr=False)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "OpenArchive":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _describe_os_error(exc: OSError) -> str:
    text = exc.strerror or str(exc)
    return text[:1].lower() + text[1:]


def _open_binary(path) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise LipoError(f"open {path}: {_describe_os_error(exc)}") from exc


def _close_all(arches: Iterable[NamedArch]) -> None:
    for arch in arches:
        arch.close()


def open_fat_file(path) -> OpenFat:
    """Open a fat file; the caller closes the result."""
    f = _open_binary(path)
    try:
        fat = read_fat_file(f)
    except BaseException:
        f.close()
        raise
    arches = [NamedArch(obj=a, name=str(path), align=a.align) for a in fat.arches]
    return OpenFat(header=fat.header, arches=arches, _file=f)


def open_arches(inputs: Sequence[ArchInput]) -> list[NamedArch]:
    """Open each thin input; every returned object owns its file and must be closed."""
    opened: list[NamedArch] = []
    try:
        for item in inputs:
            f = _open_binary(item.bin)
            try:
                obj = open_arch(f)
            except FormatError:
                f.close()
                raise LipoError(
                    f"can't figure out the architecture type of: {item.bin}"
                ) from None
            except BaseException:
                f.close()
                raise

            if item.arch and obj.cpu_string() != item.arch:
                f.close()
                raise LipoError(
                    f"specified architecture: {item.arch} for input file: {item.bin} "
                    "does not match the file's architecture"
                )
            opened.append(NamedArch(obj=obj, name=item.bin, align=obj.align, _file=f))

        dup = first_duplicate(opened, lambda a: a.cpu_string())
        if dup is not None:
            raise LipoError(f"duplicate architecture: {dup}")
    except BaseException:
        _close_all(opened)
        raise
    return opened


def open_archive_arches(path) -> OpenArchive:
    """Open an ar archive whose members must all be Mach-O objects of one architecture."""
    f = _open_binary(path)
    try:
        arches: list[NamedArch] = []
        for member in read_archive(f):
            if member.name.startswith(PREFIX_SYMDEF):
                continue
            try:
                obj = open_arch(f, member.offset, member.size)
            except FormatError as exc:
                try:
                    typ = inspect(path)
                except (LipoError, OSError):
                    typ = InspectType.UNKNOWN
                if typ == InspectType.FAT:
                    raise FormatError(
                        f"archive member {path}({member.name}) is a fat file "
                        "(not allowed in an archive"
                    ) from exc
                raise FormatError(
                    f"archive member {path}({member.name}) is not macho file: {exc}"
                ) from exc
            arches.append(NamedArch(obj=obj, name=member.name, align=obj.align))

        if not arches:
            raise FormatError("no object in the archive")

        first = arches[0]
        for arch in arches:
            if arch.cpu_string() != first.cpu_string():
                raise LipoError(
                    f"archive member {path}({arch.name}) cputype ({arch.cpu}) and "
                    f"cpusubtype ({arch.subcpu}) does not match previous archive members "
                    f"cputype ({first.cpu}) and cpusubtype ({first.subcpu}) "
                    "(all members must match)"
                )
    except BaseException:
        f.close()
        raise
    return OpenArchive(arches=arches, _file=f)


def extract(objects: Iterable[T], *names: str) -> list[T]:
    """Objects whose architecture is one of names."""
    wanted = set(names)
    return [o for o in objects if o.cpu_string() in wanted]


def _family(name: str) -> int:
    found = to_cpu(name)
    return found[0] if found is not None else 0


def extract_family(objects: Iterable[T], *names: str) -> list[T]:
    """Objects whose cputype matches the cputype of one of names."""
    families = {_family(name) for name in names}
    return [o for o in objects if o.cpu in families]


def remove(objects: Iterable[T], *names: str) -> list[T]:
    """Objects whose architecture is not one of names."""
    unwanted = set(names)
    return [o for o in objects if o.cpu_string() not in unwanted]


def replace(objects: Iterable[T], replacements: Sequence[T]) -> list[T]:
    """Objects with those of the replacements' architectures swapped for the replacements."""
    return remove(objects, *cpu_strings(replacements)) + list(replacements)


def cpu_strings(objects: Iterable[Any]) -> list[str]:
    """Architecture names of the objects, in order."""
    return [o.cpu_string() for o in objects]


def contains(objects: Iterable[Any], *others: Any) -> bool:
    """Whether every architecture of others is found among objects."""
    return len(extract(objects, *cpu_strings(others))) == len(others)


def _parse_hex(text: str, original: str) -> int:
    if not _HEX.fullmatch(text):
        raise LipoError(
            f'segalign {original} not a proper hexadecimal number: parsing "{text}": invalid syntax'
        )
    value = int(text, 16)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise LipoError(
            f'segalign {original} not a proper hexadecimal number: parsing "{text}": value out of range'
        )
    return value


def update_align_bit(arches: Sequence[NamedArch], seg_aligns: Sequence[SegAlignInput]) -> None:
    """Apply requested segment alignments to the matching architectures."""
    if not seg_aligns:
        return

    dup = first_duplicate(seg_aligns, lambda s: s.arch)
    if dup is not None:
        raise LipoError(f"segalign {dup} specified multiple times")

    by_name = {a.cpu_string(): a for a in arches}
    for seg in seg_aligns:
        original = seg.align_hex
        text = original[2:] if original.startswith(("0x", "0X")) else original
        align = _parse_hex(text, original)

        if align <= 0 or (align != 1 and align % 2 != 0):
            raise LipoError(f"segalign {text} (hex) must be a non-zero power of two")
        if align > _MAX_SEGMENT_ALIGN:
            raise LipoError(
                f"segalign {text} (hex) must equal to or less than {_MAX_SEGMENT_ALIGN:x} (hex)"
            )

        arch = by_name.get(seg.arch)
        if arch is None:
            raise LipoError(
                f"segalign {seg.arch} specified but resulting fat file does not contain that architecture"
            )
        arch.update_align(align.bit_length() - 1)


def inspect(path) -> InspectType:
    """Tell whether path holds a fat file, a thin Mach-O file or an archive."""
    with _open_binary(path) as f:
        prefix = f.read(_INSPECT_PREFIX_SIZE)

    base = f"can't figure out the architecture type of: {path}"
    if not prefix:
        raise LipoError(f"{base}\ncannot read first 40 bytes")
    prefix = prefix.ljust(_INSPECT_PREFIX_SIZE, b"\x00")

    problems: list[str] = []
    try:
        FatReader(io.BytesIO(prefix))
    except ThinFileError:
        return InspectType.THIN
    except FormatError as exc:
        problems.append(str(exc))
    else:
        return InspectType.FAT

    try:
        ArchiveReader(io.BytesIO(prefix))
    except InvalidFormatError as exc:
        problems.append(str(exc))
    else:
        return InspectType.ARCHIVE

    raise LipoError("\n".join([base, *problems]))