# fatbin

`fatbin` is a Python library for Mach-O universal binaries (also known as fat
binaries). It reads thin Mach-O files, fat files with 32-bit and 64-bit fat
headers (including hidden arm64 slices) and `ar` static archives. It writes
new fat files and selects, removes or replaces architectures. It needs
nothing beyond the Python standard library.

## Installation

```
pip install .
```

## Modules

| Module | What it holds |
| --- | --- |
| `fatbin.cpu` | architecture names such as `arm64e` and their CPU type values |
| `fatbin.macho` | Mach-O header parsing, `open_arch`, alignment helpers, `FormatError`, `ThinFileError` |
| `fatbin.fat` | reading fat files: `FatReader`, `read_fat_file`, `FatArch`, `FatHeader` |
| `fatbin.writer` | `create_fat`, which writes a fat file |
| `fatbin.ar` | reading `ar` archives: `ArchiveReader`, `read_archive`, `Member`, `Header` |
| `fatbin.objects` | opening inputs by path, selecting architectures, segment alignment, `inspect` |
| `fatbin.flags`, `fatbin.groups` | a parser for single-dash flags and groups of valid flag combinations |
| `fatbin.util` | `first_duplicate` |

## Architecture names

```python
from fatbin.cpu import cpu_names, is_supported_cpu, to_cpu, to_cpu_string, to_cpu_values

to_cpu("arm64e")                   # (16777228, 2)
to_cpu_string(16777228, 2)         # 'arm64e'
to_cpu_string(99, 1)               # 'unknown(99,1)'
to_cpu_values(16777228, 2)         # ('CPU_TYPE_ARM64', 'CPU_SUBTYPE_ARM64E')
is_supported_cpu("x86_64h")        # True
cpu_names()                        # ['i386', 'x86_64', 'x86_64h', 'arm', ...]
```

## Reading a fat file

```python
from fatbin.fat import read_fat_file

with open("build/app", "rb") as f:
    fat = read_fat_file(f)
    print(hex(fat.magic), fat.narch)
    for arch in fat.arches:
        print(arch.cpu_string(), arch.offset, arch.size, 2 ** arch.align, arch.hidden)
```

`read_fat_file` raises `fatbin.macho.ThinFileError` when the file is a thin
Mach-O file and `fatbin.macho.FormatError` when it is neither.

## Writing a fat file

`create_fat` takes objects with `cpu`, `subcpu`, `size`, `align` and
`filetype` attributes and a `read()` method, such as those returned by
`fatbin.macho.open_arch`. Slices are ordered as Apple's tools order them
(arm64 last) and each is placed at its alignment.

```python
from fatbin.macho import open_arch
from fatbin.writer import create_fat

with open("build/app.x86_64", "rb") as a, open("build/app.arm64", "rb") as b:
    with open("build/app", "wb") as out:
        create_fat(out, [open_arch(a), open_arch(b)], fat64=False, hide_arm64=False)
```

It raises `ValueError` for an empty list, duplicate architectures, an
alignment above 2^15, object files together with `hide_arm64`, or a 32-bit
fat file that would pass 4 GiB.

## Working with files by path

`fatbin.objects` opens inputs by path and raises `LipoError` with messages
such as `can't figure out the architecture type of: <path>`.

```python
from fatbin.objects import (
    ArchInput, SegAlignInput, inspect, open_arches, open_fat_file,
    extract, remove, update_align_bit,
)
from fatbin.writer import create_fat

print(inspect("build/app"))                       # InspectType.FAT

with open_fat_file("build/app") as fat:
    kept = remove(fat.arches, "x86_64")
    update_align_bit(kept, [SegAlignInput(arch="arm64", align_hex="0x4000")])
    with open("build/app.arm64-only", "wb") as out:
        create_fat(out, kept)

    arm64 = extract(fat.arches, "arm64")[0]
    with open("build/app.arm64", "wb") as out:
        out.write(arm64.read())

thins = open_arches([ArchInput(bin="build/app.x86_64"), ArchInput(arch="arm64", bin="build/app.arm64")])
try:
    with open("build/app2", "wb") as out:
        create_fat(out, thins)
finally:
    for arch in thins:
        arch.close()
```

`extract_family`, `replace`, `contains` and `cpu_strings` work on the same
lists. `open_archive_arches` opens a static archive whose members must all be
Mach-O objects of one architecture.

## Reading static archives

```python
from fatbin.ar import PREFIX_SYMDEF, read_archive

with open("libfoo.a", "rb") as f:
    for member in read_archive(f):
        if member.name.startswith(PREFIX_SYMDEF):
            continue
        print(member.name, member.size, member.header.uid, oct(member.header.perm))
        data = member.read()
```

BSD long names (`#1/<len>`) are resolved. Malformed archives raise
`InvalidFormatError`.

## Flag parsing

`fatbin.flags.FlagSet` parses single-dash flags (`-name`, with optional
short names) that take no value, one value, repeated values, one-or-more
values or pairs of values; `fatbin.groups` checks that the flags given form
exactly one valid combination.

```python
from fatbin.flags import FlagSet
from fatbin.groups import lookup_group

fs = FlagSet("tool")
create = fs.boolean("create", "-create", short_name="c")
output = fs.string("output", "-output <file>", short_name="o")
group = fs.new_group("create").add_required(create).add_required(output)

fs.parse(["in1", "-create", "-o", "out"])
assert lookup_group(group) is group
print(output.get(), fs.args)                      # out ['in1']
```

Errors are raised as `FlagError`.

## What it does not do

The package has no command-line program. It offers no single call that
creates, thins or edits a file in place, and no ready-made `-info` or
`-detailed_info` report; those are built from the pieces above. Output files
are written wherever the caller opens them, without a temporary file or
copied permissions.

## Running the tests

```
pip install '.[test]'
pytest
```