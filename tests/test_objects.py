import struct
from dataclasses import dataclass

import pytest

from fatbin.cpu import to_cpu, to_cpu_string
from fatbin.macho import ALIGN_BIT_MAX, FormatError, guess_align_bit
from fatbin.objects import (
    ArchInput,
    InspectType,
    LipoError,
    NamedArch,
    SegAlignInput,
    contains,
    cpu_strings,
    extract,
    extract_family,
    inspect,
    open_arch,
    open_archive_arches,
    open_arches,
    open_fat_file,
    remove,
    replace,
    update_align_bit,
)
from fatbin.writer import create_fat


def macho_bytes(name, vmaddr=0x4000, filetype=2, body=b"\xab" * 24):
    cpu, sub = to_cpu(name)
    seg = struct.pack("<2I16s4Q2i2I", 0x19, 72, b"__TEXT", vmaddr, 0x1000, 0, 0, 7, 5, 0, 0)
    hdr = struct.pack("<8I", 0xFEEDFACF, cpu, sub, filetype, 1, len(seg), 0, 0)
    return hdr + seg + body


def write_macho(tmp_path, name, **kwargs):
    path = tmp_path / name
    path.write_bytes(macho_bytes(name, **kwargs))
    return str(path)


def ar_member(name, data):
    fields = (
        name.ljust(16) + "0".ljust(12) + "0".ljust(6) + "0".ljust(6)
        + "644".ljust(8) + str(len(data)).ljust(10)
    )
    return fields.encode() + b"`\n" + data


def write_archive(tmp_path, members, filename="lib.a"):
    path = tmp_path / filename
    path.write_bytes(b"!<arch>\n" + b"".join(ar_member(n, d) for n, d in members))
    return str(path)


@dataclass
class _Obj:
    cpu: int
    subcpu: int

    def cpu_string(self):
        return to_cpu_string(self.cpu, self.subcpu)


def obj(name):
    return _Obj(*to_cpu(name))


def named(name, align=3):
    return NamedArch(obj=obj(name), name=name, align=align)


def make_fat(tmp_path, names):
    thin = [ArchInput(bin=write_macho(tmp_path, n)) for n in names]
    arches = open_arches(thin)
    out = tmp_path / "fat"
    try:
        with open(out, "wb") as f:
            create_fat(f, arches)
    finally:
        for a in arches:
            a.close()
    return str(out)


def test_open_arches_reads_cpu_and_alignment(tmp_path):
    path = write_macho(tmp_path, "x86_64")
    arches = open_arches([ArchInput(bin=path)])
    try:
        assert cpu_strings(arches) == ["x86_64"]
        assert arches[0].name == path
        assert arches[0].align == guess_align_bit(0x4000, 3, ALIGN_BIT_MAX)
        assert arches[0].read() == macho_bytes("x86_64")
    finally:
        arches[0].close()


def test_open_arches_arch_mismatch(tmp_path):
    path = write_macho(tmp_path, "arm64")
    with pytest.raises(LipoError) as info:
        open_arches([ArchInput(arch="x86_64", bin=path)])
    assert str(info.value) == (
        f"specified architecture: x86_64 for input file: {path} "
        "does not match the file's architecture"
    )


def test_open_arches_duplicate(tmp_path):
    path = write_macho(tmp_path, "arm64")
    with pytest.raises(LipoError) as info:
        open_arches([ArchInput(arch="arm64", bin=path), ArchInput(arch="arm64", bin=path)])
    assert str(info.value) == "duplicate architecture: arm64"


def test_open_arches_non_macho(tmp_path):
    path = tmp_path / "dummy"
    path.write_bytes(b"dummydummy")
    with pytest.raises(LipoError) as info:
        open_arches([ArchInput(bin=str(path))])
    assert "can't figure out the architecture type of:" in str(info.value)


def test_open_missing_file(tmp_path):
    missing = tmp_path / "not-found"
    with pytest.raises(LipoError) as info:
        open_fat_file(missing)
    assert str(info.value) == f"open {missing}: no such file or directory"


def test_inspect_kinds(tmp_path):
    thin = write_macho(tmp_path, "arm64")
    fat = make_fat(tmp_path, ["x86_64", "arm64"])
    archive = write_archive(tmp_path, [("a.o", macho_bytes("arm64"))])
    assert inspect(thin) == InspectType.THIN
    assert inspect(fat) == InspectType.FAT
    assert inspect(archive) == InspectType.ARCHIVE


def test_inspect_unknown_and_empty(tmp_path):
    junk = tmp_path / "junk"
    junk.write_bytes(b"dummydummy")
    with pytest.raises(LipoError) as info:
        inspect(junk)
    assert str(info.value).startswith(f"can't figure out the architecture type of: {junk}")

    empty = tmp_path / "empty-file"
    empty.write_bytes(b"")
    with pytest.raises(LipoError) as info:
        inspect(empty)
    assert "cannot read first 40 bytes" in str(info.value)


def test_open_fat_file_round_trip(tmp_path):
    fat = make_fat(tmp_path, ["arm64", "x86_64"])
    with open_fat_file(fat) as ff:
        assert ff.magic == 0xCAFEBABE
        assert cpu_strings(ff.arches) == ["x86_64", "arm64"]
        for arch in ff.arches:
            assert arch.name == fat
            assert arch.read() == macho_bytes(arch.cpu_string())


def test_open_fat_file_on_thin_raises(tmp_path):
    from fatbin.macho import ThinFileError

    thin = write_macho(tmp_path, "arm64")
    with pytest.raises(ThinFileError):
        open_fat_file(thin)


def test_open_archive_arches(tmp_path):
    path = write_archive(
        tmp_path,
        [
            ("__.SYMDEF", b"\x00" * 8),
            ("f1.o", macho_bytes("arm64")),
            ("f2.o", macho_bytes("arm64", body=b"\xcd" * 16)),
        ],
    )
    with open_archive_arches(path) as archive:
        assert [a.name for a in archive.arches] == ["f1.o", "f2.o"]
        assert cpu_strings(archive.arches) == ["arm64", "arm64"]
        assert archive.arches[1].read() == macho_bytes("arm64", body=b"\xcd" * 16)


def test_open_archive_mismatch(tmp_path):
    path = write_archive(
        tmp_path, [("a.o", macho_bytes("x86_64")), ("b.o", macho_bytes("arm64"))]
    )
    with pytest.raises(LipoError) as info:
        open_archive_arches(path)
    assert "does not match previous archive members" in str(info.value)
    assert f"archive member {path}(b.o)" in str(info.value)


def test_open_archive_empty_and_bad_member(tmp_path):
    empty = write_archive(tmp_path, [("__.SYMDEF", b"\x00" * 8)], "empty.a")
    with pytest.raises(FormatError) as info:
        open_archive_arches(empty)
    assert str(info.value) == "invalid file format no object in the archive"

    bad = write_archive(tmp_path, [("junk.o", b"garbage!")], "bad.a")
    with pytest.raises(FormatError) as info:
        open_archive_arches(bad)
    assert f"archive member {bad}(junk.o) is not macho file" in str(info.value)


def test_extract_and_remove():
    objects = [obj("x86_64"), obj("arm64"), obj("arm64e")]
    assert cpu_strings(extract(objects, "arm64", "arm64e")) == ["arm64", "arm64e"]
    assert cpu_strings(remove(objects, "arm64", "arm64e")) == ["x86_64"]
    assert extract(objects, "armv7k") == []
    assert remove(objects) == objects


def test_extract_family_matches_cputype():
    objects = [obj("x86_64"), obj("x86_64h"), obj("arm64"), obj("arm64v8")]
    assert cpu_strings(extract_family(objects, "x86_64")) == ["x86_64", "x86_64h"]
    assert cpu_strings(extract_family(objects, "arm64e")) == ["arm64", "arm64v8"]


def test_replace_and_contains():
    objects = [obj("x86_64"), obj("arm64")]
    new_arm64 = obj("arm64")
    result = replace(objects, [new_arm64])
    assert cpu_strings(result) == ["x86_64", "arm64"]
    assert result[1] is new_arm64
    assert contains(objects, obj("arm64"))
    assert not contains(objects, obj("arm64e"))


def test_named_arch_update_align():
    arch = named("arm64", align=14)
    arch.update_align(5)
    assert arch.align == 5
    assert arch.cpu_string() == "arm64"


def test_update_align_bit_applies():
    x86, arm = named("x86_64", align=12), named("arm64", align=14)
    update_align_bit(
        [x86, arm],
        [SegAlignInput(arch="x86_64", align_hex="10"), SegAlignInput(arch="arm64", align_hex="0x8000")],
    )
    assert x86.align == 4
    assert arm.align == ALIGN_BIT_MAX


def test_update_align_bit_without_requests_keeps_alignment():
    arch = named("x86_64", align=12)
    update_align_bit([arch], [])
    assert arch.align == 12


@pytest.mark.parametrize(
    "seg_aligns, message",
    [
        ([SegAlignInput("x86_64", "0")], "segalign 0 (hex) must be a non-zero power of two"),
        (
            [SegAlignInput("x86_64", "10"), SegAlignInput("x86_64", "2")],
            "segalign x86_64 specified multiple times",
        ),
        (
            [SegAlignInput("arm64e", "10")],
            "segalign arm64e specified but resulting fat file does not contain that architecture",
        ),
        (
            [SegAlignInput("x86_64", "0x10000")],
            "segalign 10000 (hex) must equal to or less than 8000 (hex)",
        ),
        ([SegAlignInput("x86_64", "0x")], "segalign 0x not a proper hexadecimal number"),
    ],
)
def test_update_align_bit_errors(seg_aligns, message):
    arches = [named("x86_64"), named("arm64")]
    with pytest.raises(LipoError) as info:
        update_align_bit(arches, seg_aligns)
    assert message in str(info.value)


def test_open_arch_reexport_matches_thin_file(tmp_path):
    path = write_macho(tmp_path, "armv7k")
    with open(path, "rb") as f:
        arch = open_arch(f)
        assert arch.cpu_string() == "armv7k"
        assert arch.size == len(macho_bytes("armv7k"))