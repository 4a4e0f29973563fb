"""Groups of flags that form valid command-line combinations."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from .flags import Flag, FlagError, FlagRef, FlagSet

_NOT_SPECIFIED_SUFFIX = "is not specified"


class FlagType(enum.IntEnum):
    """How a flag takes part in a group."""

    REQUIRED = 1
    OPTIONAL = 2
    NOT_DEFINED = 3

    def __str__(self) -> str:
        return {
            FlagType.REQUIRED: "required",
            FlagType.OPTIONAL: "optional",
            FlagType.NOT_DEFINED: "not-defined",
        }[self]


class Group:
    """A named set of required and optional flags of one flag set."""

    def __init__(self, name: str, flag_set: FlagSet):
        self.name = name
        self.flag_set = flag_set
        self.description = ""
        self._types: dict[str, FlagType] = {}

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Group({self.name!r})"

    def add_required(self, ref: FlagRef) -> "Group":
        self._types[ref.flag.name] = FlagType.REQUIRED
        return self

    def add_optional(self, ref: FlagRef) -> "Group":
        self._types[ref.flag.name] = FlagType.OPTIONAL
        return self

    def add_description(self, text: str) -> "Group":
        self.description = text
        return self

    def _lookup(self, name: str) -> Optional[Flag]:
        if name in self._types:
            return self.flag_set.lookup(name)
        return None

    def _seen(self, name: str) -> bool:
        return name in self.flag_set.seen and name in self._types

    def _flags_of_type(self, flag_type: FlagType) -> list[Flag]:
        # The flag named like the group comes first, the others in reverse order.
        others = sorted((n for n in self._types if n != self.name), reverse=True)
        names = ([self.name] if self.name in self._types else []) + others
        return [self._lookup(n) for n in names if self._types[n] == flag_type]

    def validate(self) -> None:
        """Raise FlagError unless the parsed flags fit this group."""
        if self._lookup(self.name) is not None and not self._seen(self.name):
            raise FlagError(f"{self.name}: -{self.name} {_NOT_SPECIFIED_SUFFIX}")

        for flag in self._flags_of_type(FlagType.REQUIRED):
            if not self._seen(flag.name):
                raise FlagError(f"{self.name}: -{flag.name} is required")

        foreign = [n for n in self.flag_set.seen if n not in self._types]
        if foreign:
            raise FlagError(f"{self.name}: [{' '.join(foreign)}] are undefined")

    def usage(self) -> str:
        parts = [f"{self.name}:", self.description.replace("\n", "\n  "), "\n"]
        names = sorted(self._types, key=lambda n: (self._types[n], n))
        for name in names:
            flag = self._lookup(name)
            parts.append(flag.format_usage(required=self._types[name] == FlagType.REQUIRED))
        return "".join(parts)


def lookup_group(*groups: Group) -> Group:
    """Return the single group that the parsed flags fit.

    Raises FlagError when none or several fit; in the latter case the
    error's ``group`` is the first of the given groups.
    """
    found: list[Group] = []
    errors: list[str] = []
    for group in groups:
        if not group.flag_set.parsed:
            raise FlagError("must call FlagSet.Parse() before LookupGroup()")
        try:
            group.validate()
        except FlagError as exc:
            errors.append(str(exc))
        else:
            found.append(group)

    if not found:
        selected = [e for e in errors if not e.endswith(_NOT_SPECIFIED_SUFFIX)]
        if selected:
            raise FlagError("\n".join(selected))
        raise FlagError(
            "\n".join(
                ["please check the usage of the command. found no flag group", *errors]
            )
        )
    if len(found) > 1:
        names = " ".join(g.name for g in found)
        raise FlagError(f"found multiple flag groups: [{names}]", group=groups[0])
    return found[0]


def usage_func(*groups: Group) -> Callable[[], str]:
    """A function returning the usage of all groups, one after another."""

    def usage() -> str:
        return "".join("\n" + group.usage() for group in groups)

    return usage