"""Writing fat (universal) binaries from thin objects."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterable

from .cpu import MASK_SUBCPU_TYPE, TYPE_ARM, TYPE_ARM64, to_cpu_string
from .macho import (
    ALIGN_BIT_MAX,
    MAGIC_FAT,
    MAGIC_FAT64,
    TYPE_OBJ,
    compare_arches,
    fat_arch_header_size,
    fat_header_size,
)

_FAT_ARCH = struct.Struct(">5I")
_FAT_ARCH64 = struct.Struct(">2I2Q2I")
_UINT32_MASK = 0xFFFFFFFF


@dataclass(eq=False)
class _Slot:
    obj: Any
    cpu: int
    subcpu: int
    size: int
    align: int
    filetype: int
    offset: int = 0


def _insertion_sort(v: list, lo: int, n: int, cmp: Callable[[Any, Any], int]) -> None:
    for pm in range(lo + 1, lo + n):
        pl = pm
        while pl > lo and cmp(v[pl - 1], v[pl]) > 0:
            v[pl], v[pl - 1] = v[pl - 1], v[pl]
            pl -= 1


def _med3(v: list, a: int, b: int, c: int, cmp: Callable[[Any, Any], int]) -> int:
    if cmp(v[a], v[b]) < 0:
        if cmp(v[b], v[c]) < 0:
            return b
        return c if cmp(v[a], v[c]) < 0 else a
    if cmp(v[b], v[c]) > 0:
        return b
    return a if cmp(v[a], v[c]) < 0 else c


def _vecswap(v: list, a: int, b: int, n: int) -> None:
    for i in range(n):
        v[a + i], v[b + i] = v[b + i], v[a + i]


def _qsort(v: list, lo: int, n: int, cmp: Callable[[Any, Any], int]) -> None:
    """In-place BSD qsort, so entries that compare equal keep the same order as the system tool."""
    while True:
        swapped = False
        if n < 7:
            _insertion_sort(v, lo, n, cmp)
            return
        pm = lo + n // 2
        if n > 7:
            pl, pn = lo, lo + n - 1
            if n > 40:
                d = n // 8
                pl = _med3(v, pl, pl + d, pl + 2 * d, cmp)
                pm = _med3(v, pm - d, pm, pm + d, cmp)
                pn = _med3(v, pn - 2 * d, pn - d, pn, cmp)
            pm = _med3(v, pl, pm, pn, cmp)
        v[lo], v[pm] = v[pm], v[lo]

        pa = pb = lo + 1
        pc = pd = lo + n - 1
        while True:
            while pb <= pc:
                r = cmp(v[pb], v[lo])
                if r > 0:
                    break
                if r == 0:
                    swapped = True
                    v[pa], v[pb] = v[pb], v[pa]
                    pa += 1
                pb += 1
            while pb <= pc:
                r = cmp(v[pc], v[lo])
                if r < 0:
                    break
                if r == 0:
                    swapped = True
                    v[pc], v[pd] = v[pd], v[pc]
                    pd -= 1
                pc -= 1
            if pb > pc:
                break
            v[pb], v[pc] = v[pc], v[pb]
            swapped = True
            pb += 1
            pc -= 1

        if not swapped:
            _insertion_sort(v, lo, n, cmp)
            return

        pn = lo + n
        d = min(pa - lo, pb - pa)
        _vecswap(v, lo, pb - d, d)
        d = min(pd - pc, pn - pd - 1)
        _vecswap(v, pb, pn - d, d)

        left = pb - pa
        if left > 1:
            _qsort(v, lo, left, cmp)
        right = pd - pc
        if right <= 1:
            return
        lo, n = pn - right, right


def _align(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) // alignment * alignment


def _visible_count(slots: list[_Slot], hide_arm64: bool) -> int:
    if not (hide_arm64 and any(s.cpu == TYPE_ARM for s in slots)):
        return len(slots)
    return sum(1 for s in slots if s.cpu != TYPE_ARM64)


def _sort_and_place(slots: list[_Slot], magic: int) -> None:
    _qsort(slots, 0, len(slots), compare_arches)
    offset = fat_header_size() + fat_arch_header_size(magic) * len(slots)
    for slot in slots:
        offset = _align(offset, 1 << slot.align)
        slot.offset = offset
        offset += slot.size
        if magic == MAGIC_FAT and offset >= 1 << 32:
            raise ValueError("exceeds maximum 32 bit size. please handle it as fat64")


def _validate(slots: list[_Slot]) -> None:
    seen: set[tuple[int, int]] = set()
    for slot in slots:
        key = (slot.cpu, slot.subcpu)
        if key in seen:
            raise ValueError(f"duplicate architecture {to_cpu_string(slot.cpu, slot.subcpu)}")
        seen.add(key)

    for slot in slots:
        if slot.align > ALIGN_BIT_MAX:
            raise ValueError(
                f"align (2^{slot.align}) too large of fat file "
                f"(cputype ({slot.cpu}) cpusubtype ({slot.subcpu ^ MASK_SUBCPU_TYPE})) "
                f"(maximum 2^{ALIGN_BIT_MAX})"
            )


def _pack_entry(slot: _Slot, magic: int) -> bytes:
    if magic == MAGIC_FAT64:
        return _FAT_ARCH64.pack(slot.cpu, slot.subcpu, slot.offset, slot.size, slot.align, 0)
    return _FAT_ARCH.pack(
        slot.cpu,
        slot.subcpu,
        slot.offset & _UINT32_MASK,
        slot.size & _UINT32_MASK,
        slot.align,
    )


def create_fat(out: BinaryIO, objects: Iterable[Any], fat64: bool = False, hide_arm64: bool = False) -> None:
    """Write a fat file holding the given objects to out.

    Each object needs cpu, subcpu, size, align and filetype attributes and a
    read() method returning its content.
    """
    objects = list(objects)
    if not objects:
        raise ValueError("file contains no images")

    if hide_arm64 and any(obj.filetype == TYPE_OBJ for obj in objects):
        raise ValueError("hideARM64 specified but type is not MH_EXECUTE")

    magic = MAGIC_FAT64 if fat64 else MAGIC_FAT
    slots = [
        _Slot(
            obj=obj,
            cpu=obj.cpu,
            subcpu=obj.subcpu,
            size=obj.size,
            align=obj.align,
            filetype=obj.filetype,
        )
        for obj in objects
    ]
    narch = _visible_count(slots, hide_arm64)
    _sort_and_place(slots, magic)
    _validate(slots)

    out.write(struct.pack(">2I", magic, narch))
    for slot in slots:
        out.write(_pack_entry(slot, magic))

    position = fat_header_size() + fat_arch_header_size(magic) * len(slots)
    for slot in slots:
        if position < slot.offset:
            out.write(b"\x00" * (slot.offset - position))
            position = slot.offset
        data = slot.obj.read()
        if len(data) != slot.size:
            raise ValueError(
                f"error write binary data: want {slot.size} bytes, got {len(data)} bytes"
            )
        out.write(data)
        position += slot.size