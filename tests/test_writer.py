import io
import struct
from dataclasses import dataclass

import pytest

from fatbin.cpu import (
    SUBTYPE_ARM_V6,
    SUBTYPE_ARM_V7,
    SUBTYPE_ARM_V7K,
    SUBTYPE_ARM_V7S,
    SUBTYPE_ARM64_ALL,
    SUBTYPE_ARM64E,
    SUBTYPE_X86_64_ALL,
    SUBTYPE_X86_64_H,
    TYPE_ARM,
    TYPE_ARM64,
    TYPE_X86_64,
)
from fatbin.fat import read_fat_file
from fatbin.macho import (
    LC_SEGMENT_64,
    MAGIC_64,
    MAGIC_FAT,
    MAGIC_FAT64,
    TYPE_EXEC,
    TYPE_OBJ,
    compare_arches,
    open_arch,
)
from fatbin.writer import create_fat


def make_macho(cpu, subcpu, filetype=TYPE_EXEC, vmaddr=0x4000, body=b"payload"):
    seg = struct.pack(
        "<II16sQQQQiiII", LC_SEGMENT_64, 72, b"__TEXT", vmaddr, 0x1000, 0, 0, 5, 5, 0, 0
    )
    header = struct.pack("<8I", MAGIC_64, cpu, subcpu, filetype, 1, len(seg), 0, 0)
    return header + seg + body


def thin(cpu, subcpu, **kwargs):
    return open_arch(io.BytesIO(make_macho(cpu, subcpu, **kwargs)))


@dataclass
class FakeObject:
    cpu: int
    subcpu: int
    size: int
    align: int
    filetype: int = TYPE_EXEC

    def read(self):
        return b"\x00" * self.size


def test_two_arches_round_trip():
    x86 = thin(TYPE_X86_64, SUBTYPE_X86_64_ALL, body=b"x86")
    arm = thin(TYPE_ARM64, SUBTYPE_ARM64_ALL, body=b"arm64-data")
    out = io.BytesIO()
    create_fat(out, [arm, x86])

    raw = out.getvalue()
    assert raw[:8] == b"\xca\xfe\xba\xbe\x00\x00\x00\x02"

    fat = read_fat_file(io.BytesIO(raw))
    assert fat.magic == MAGIC_FAT
    assert [a.cpu_string() for a in fat.arches] == ["x86_64", "arm64"]
    assert [a.offset for a in fat.arches] == [16384, 32768]
    assert [a.align for a in fat.arches] == [14, 14]
    assert fat.arches[0].read() == x86.read()
    assert fat.arches[1].read() == arm.read()
    assert len(raw) == 32768 + arm.size


def test_fat64_magic():
    objs = [thin(TYPE_X86_64, SUBTYPE_X86_64_ALL), thin(TYPE_ARM64, SUBTYPE_ARM64E)]
    out = io.BytesIO()
    create_fat(out, objs, fat64=True)
    fat = read_fat_file(io.BytesIO(out.getvalue()))
    assert fat.magic == MAGIC_FAT64
    assert [a.cpu_string() for a in fat.arches] == ["x86_64", "arm64e"]
    assert fat.arches[0].offset == 16384


def test_hide_arm64_hides_entries():
    objs = [thin(TYPE_ARM64, SUBTYPE_ARM64_ALL), thin(TYPE_ARM, SUBTYPE_ARM_V7K)]
    out = io.BytesIO()
    create_fat(out, objs, hide_arm64=True)
    fat = read_fat_file(io.BytesIO(out.getvalue()))
    assert fat.narch == 1
    assert [(a.cpu_string(), a.hidden) for a in fat.arches] == [
        ("armv7k", False),
        ("arm64", True),
    ]


def test_hide_arm64_without_arm_keeps_count():
    objs = [thin(TYPE_ARM64, SUBTYPE_ARM64_ALL), thin(TYPE_X86_64, SUBTYPE_X86_64_ALL)]
    out = io.BytesIO()
    create_fat(out, objs, hide_arm64=True)
    assert read_fat_file(io.BytesIO(out.getvalue())).narch == 2


def test_hide_arm64_rejects_objects():
    objs = [thin(TYPE_ARM64, SUBTYPE_ARM64_ALL, filetype=TYPE_OBJ)]
    with pytest.raises(ValueError, match="hideARM64 specified but type is not MH_EXECUTE"):
        create_fat(io.BytesIO(), objs, hide_arm64=True)


def test_no_objects():
    with pytest.raises(ValueError, match="file contains no images"):
        create_fat(io.BytesIO(), [])


def test_duplicate_architecture():
    objs = [thin(TYPE_ARM64, SUBTYPE_ARM64_ALL), thin(TYPE_ARM64, SUBTYPE_ARM64_ALL)]
    out = io.BytesIO()
    with pytest.raises(ValueError, match="duplicate architecture arm64"):
        create_fat(out, objs)
    assert out.getvalue() == b""


def test_align_too_large():
    with pytest.raises(ValueError) as info:
        create_fat(io.BytesIO(), [FakeObject(TYPE_ARM64, 0, 16, 16)])
    assert str(info.value) == (
        "align (2^16) too large of fat file (cputype (16777228) "
        "cpusubtype (4278190080)) (maximum 2^15)"
    )


def test_exceeds_32_bit_size():
    with pytest.raises(ValueError, match="exceeds maximum 32 bit size"):
        create_fat(io.BytesIO(), [FakeObject(TYPE_X86_64, 3, 1 << 32, 12)])


def test_many_arches_are_sorted_and_aligned():
    objs = [
        thin(TYPE_ARM64, SUBTYPE_ARM64_ALL, vmaddr=0x4000),
        thin(TYPE_ARM, SUBTYPE_ARM_V7, vmaddr=0x1000),
        thin(TYPE_X86_64, SUBTYPE_X86_64_H, vmaddr=0x2000),
        thin(TYPE_ARM, SUBTYPE_ARM_V6, vmaddr=0x1000),
        thin(TYPE_ARM64, SUBTYPE_ARM64E, vmaddr=0x4000),
        thin(TYPE_X86_64, SUBTYPE_X86_64_ALL, vmaddr=0x2000),
        thin(TYPE_ARM, SUBTYPE_ARM_V7S, vmaddr=0x1000),
        thin(TYPE_ARM, SUBTYPE_ARM_V7K, vmaddr=0x1000),
    ]
    out = io.BytesIO()
    create_fat(out, objs)
    fat = read_fat_file(io.BytesIO(out.getvalue()))

    assert sorted(a.cpu_string() for a in fat.arches) == sorted(o.cpu_string() for o in objs)
    for left, right in zip(fat.arches, fat.arches[1:]):
        assert compare_arches(left, right) <= 0
    assert [a.cpu for a in fat.arches[-2:]] == [TYPE_ARM64, TYPE_ARM64]
    for arch in fat.arches:
        assert arch.offset % (1 << arch.align) == 0
    by_name = {o.cpu_string(): o.read() for o in objs}
    for arch in fat.arches:
        assert arch.read() == by_name[arch.cpu_string()]