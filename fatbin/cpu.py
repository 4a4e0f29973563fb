"""CPU type and subtype names used in Mach-O and fat headers."""

from __future__ import annotations

from typing import NamedTuple, Optional

CPU_ARCH_64 = 0x01000000
CPU_ARCH_64_32 = 0x02000000

TYPE_X86 = 7
TYPE_I386 = TYPE_X86
TYPE_X86_64 = TYPE_I386 | CPU_ARCH_64
TYPE_ARM = 12
TYPE_ARM64 = TYPE_ARM | CPU_ARCH_64
TYPE_ARM64_32 = TYPE_ARM | CPU_ARCH_64_32
TYPE_PPC = 18

MASK_SUBCPU_TYPE = 0xFF000000
_SUBCPU_VALUE_MASK = ~MASK_SUBCPU_TYPE & 0xFFFFFFFF

SUBTYPE_X86_ALL = 3
SUBTYPE_X86_64_ALL = 3
SUBTYPE_X86_ARCH1 = 4
SUBTYPE_X86_64_H = 8

SUBTYPE_ARM_ALL = 0
SUBTYPE_ARM_V4T = 5
SUBTYPE_ARM_V6 = 6
SUBTYPE_ARM_V7 = 9
SUBTYPE_ARM_V7F = 10
SUBTYPE_ARM_V7S = 11
SUBTYPE_ARM_V7K = 12
SUBTYPE_ARM_V6M = 14
SUBTYPE_ARM_V7M = 15
SUBTYPE_ARM_V7EM = 16
SUBTYPE_ARM_V8M = 17

SUBTYPE_ARM64_32_V8 = 1

SUBTYPE_ARM64_ALL = 0
SUBTYPE_ARM64_V8 = 1
SUBTYPE_ARM64E = 2


class _CpuName(NamedTuple):
    cpu: int
    subcpu: int
    name: str


_CPU_NAMES = (
    _CpuName(TYPE_I386, SUBTYPE_X86_ALL, "i386"),
    _CpuName(TYPE_X86_64, SUBTYPE_X86_64_ALL, "x86_64"),
    _CpuName(TYPE_X86_64, SUBTYPE_X86_64_H, "x86_64h"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_ALL, "arm"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V4T, "armv4t"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V6, "armv6"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7, "armv7"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7F, "armv7f"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7S, "armv7s"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7K, "armv7k"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V6M, "armv6m"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7M, "armv7m"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V7EM, "armv7em"),
    _CpuName(TYPE_ARM, SUBTYPE_ARM_V8M, "armv8m"),
    _CpuName(TYPE_ARM64, SUBTYPE_ARM64_ALL, "arm64"),
    _CpuName(TYPE_ARM64, SUBTYPE_ARM64E, "arm64e"),
    _CpuName(TYPE_ARM64, SUBTYPE_ARM64_V8, "arm64v8"),
    _CpuName(TYPE_ARM64_32, SUBTYPE_ARM64_32_V8, "arm64_32"),
)

_BY_NAME = {entry.name: entry for entry in _CPU_NAMES}
_BY_ID = {(entry.cpu, entry.subcpu & _SUBCPU_VALUE_MASK): entry for entry in _CPU_NAMES}


def is_supported_cpu(name: str) -> bool:
    """Whether the architecture name is known."""
    return name in _BY_NAME


def to_cpu(name: str) -> Optional[tuple[int, int]]:
    """Return (cputype, cpusubtype) for an architecture name, or None."""
    entry = _BY_NAME.get(name)
    if entry is None:
        return None
    return entry.cpu, entry.subcpu


def to_cpu_string(cpu: int, subcpu: int) -> str:
    """Return the architecture name, ignoring the subtype capability bits."""
    masked = subcpu & _SUBCPU_VALUE_MASK
    entry = _BY_ID.get((cpu, masked))
    if entry is not None:
        return entry.name
    return f"unknown({cpu},{masked})"


def cpu_names() -> list[str]:
    """All supported architecture names in their canonical order."""
    return [entry.name for entry in _CPU_NAMES]


_ARM_SUBTYPES = {
    SUBTYPE_ARM_V4T: "CPU_SUBTYPE_ARM_V4T",
    SUBTYPE_ARM_V6: "CPU_SUBTYPE_ARM_V6",
    SUBTYPE_ARM_V6M: "CPU_SUBTYPE_ARM_V6M",
    SUBTYPE_ARM_V7: "CPU_SUBTYPE_ARM_V7",
    SUBTYPE_ARM_V7F: "CPU_SUBTYPE_ARM_V7F",
    SUBTYPE_ARM_V7S: "CPU_SUBTYPE_ARM_V7S",
    SUBTYPE_ARM_V7K: "CPU_SUBTYPE_ARM_V7K",
    SUBTYPE_ARM_V7M: "CPU_SUBTYPE_ARM_V7M",
    SUBTYPE_ARM_V7EM: "CPU_SUBTYPE_ARM_V7EM",
    SUBTYPE_ARM_V8M: "CPU_SUBTYPE_ARM_V8M",
    SUBTYPE_ARM_ALL: "CPU_SUBTYPE_ARM_ALL",
}

_X86_64_SUBTYPES = {
    SUBTYPE_X86_ALL: "CPU_SUBTYPE_X86_64_ALL",
    SUBTYPE_X86_64_H: "CPU_SUBTYPE_X86_64_H",
}

_ARM64_SUBTYPES = {
    SUBTYPE_ARM64_ALL: "CPU_SUBTYPE_ARM64_ALL",
    SUBTYPE_ARM64_V8: "CPU_SUBTYPE_ARM64_V8",
    SUBTYPE_ARM64E: "CPU_SUBTYPE_ARM64E",
}

_ARM64_32_SUBTYPES = {
    SUBTYPE_ARM64_32_V8: "CPU_SUBTYPE_ARM64_32_V8",
}


def to_cpu_values(cpu: int, subcpu: int) -> tuple[str, str]:
    """Return the symbolic cputype and cpusubtype names."""
    masked = subcpu & _SUBCPU_VALUE_MASK
    if cpu == TYPE_I386:
        return "CPU_TYPE_I386", "CPU_SUBTYPE_I386_ALL"

    if cpu == TYPE_X86_64:
        cpu_name, found = "CPU_TYPE_X86_64", _X86_64_SUBTYPES.get(masked)
    elif cpu == TYPE_ARM:
        # ARM subtypes are matched on the raw value, capability bits included.
        cpu_name, found = "CPU_TYPE_ARM", _ARM_SUBTYPES.get(subcpu)
    elif cpu == TYPE_ARM64:
        cpu_name, found = "CPU_TYPE_ARM64", _ARM64_SUBTYPES.get(masked)
    elif cpu == TYPE_ARM64_32:
        cpu_name, found = "CPU_TYPE_ARM64_32", _ARM64_32_SUBTYPES.get(masked)
    else:
        cpu_name, found = str(cpu), None

    if found is not None:
        return cpu_name, found
    return cpu_name, str(masked)