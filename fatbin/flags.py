"""Single-dash command-line flags that may take one, two or many values."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, TypeVar

if TYPE_CHECKING:
    from .groups import Group

T = TypeVar("T")

CAP_NO_LIMIT = -1

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class FlagError(Exception):
    """Invalid flag definitions, arguments or flag combinations.

    When a lookup finds several matching groups, ``group`` holds the first
    of the groups that were searched.
    """

    def __init__(self, message: str, group: Optional["Group"] = None):
        super().__init__(message)
        self.group = group


def _parse_bool(raw: str) -> bool:
    if raw in _TRUE_WORDS:
        return True
    if raw in _FALSE_WORDS:
        return False
    raise FlagError(f'parsing "{raw}": invalid syntax')


class Value(Generic[T]):
    """Storage for a flag value.

    ``converter`` turns one raw argument into the new stored value and
    ``capper`` tells how many more arguments the flag takes next; it returns
    ``CAP_NO_LIMIT`` to take every argument up to the next flag. A switch
    takes no argument at all.
    """

    def __init__(
        self,
        initial: T,
        converter: Callable[[str], T],
        capper: Optional[Callable[[], int]] = None,
        switch: bool = False,
    ):
        self._value = initial
        self._converter = converter
        self._capper = capper if capper is not None else (lambda: 1)
        self.switch = switch

    def set(self, raw: str) -> None:
        """Convert a raw argument and store the result."""
        self._value = self._converter(raw)

    def capacity(self) -> int:
        """Number of arguments the flag takes next."""
        return self._capper()

    def get(self) -> T:
        return self._value


@dataclass(eq=False)
class Flag:
    """A registered flag."""

    name: str
    usage: str
    value: Value = field(repr=False)
    short_name: str = ""
    deny_duplicate: bool = False

    def format_usage(self, required: bool = False) -> str:
        """The usage lines of this flag."""
        head = f"  -{self.name}  *required*" if required else f"  -{self.name}"
        return head + "\n    \t" + self.usage.replace("\n", "\n    \t") + "\n"


@dataclass(frozen=True, eq=False)
class FlagRef(Generic[T]):
    """Access to a registered flag and its typed value."""

    flag: Flag
    value: Value

    def get(self) -> T:
        return self.value.get()


class _PairCollector:
    """Collects `-flag a b -flag c d` into [(a, b), (c, d)]."""

    width = 2

    def __init__(self) -> None:
        self._pairs: list[list[str]] = []
        self._index = 0
        self._cursor = 0

    def convert(self, raw: str) -> list[tuple[str, ...]]:
        if self._cursor >= self.width:
            raise FlagError(
                f"cursor exceeded maximum length: cursor {self._cursor}, max_len {self.width}"
            )
        if len(self._pairs) <= self._index:
            self._pairs.append([""] * self.width)
        self._pairs[self._index][self._cursor] = raw
        self._cursor += 1
        return [tuple(pair) for pair in self._pairs]

    def capacity(self) -> int:
        remaining = self.width - self._cursor
        if remaining == 0:
            self._cursor = 0
            self._index += 1
        return remaining


def _string_list_value(require_one: bool) -> Value:
    items: list[str] = []

    def convert(raw: str) -> list[str]:
        items.append(raw)
        return list(items)

    capper = None
    if require_one:
        def capper() -> int:
            return 1 if not items else CAP_NO_LIMIT

    return Value([], convert, capper)


class FlagSet:
    """A set of flags and the positional arguments left after parsing."""

    def __init__(self, name: str):
        self.name = name
        self._flags: dict[str, Flag] = {}
        self._short_to_long: dict[str, str] = {}
        self._seen: dict[str, None] = {}
        self._args: list[str] = []
        self._pending: deque[str] = deque()
        self._parsed = False

    @property
    def args(self) -> list[str]:
        """Positional arguments, in order, once parsing is done."""
        return list(self._args)

    @property
    def parsed(self) -> bool:
        return self._parsed

    @property
    def seen(self) -> tuple[str, ...]:
        """Names of the flags given, in the order first met."""
        return tuple(self._seen)

    def register(
        self,
        value: Value,
        name: str,
        usage: str,
        short_name: Optional[str] = None,
        deny_duplicate: bool = False,
    ) -> FlagRef:
        """Register value under name and return a reference to it."""
        if not name:
            raise ValueError("the flag name is empty string")
        if name in self._flags:
            raise ValueError("the flag name is duplicate in the registration process")
        if short_name and short_name in self._short_to_long:
            raise ValueError("the short flag name is duplicate in the registration process")

        flag = Flag(
            name=name,
            usage=usage,
            value=value,
            short_name=short_name or "",
            deny_duplicate=deny_duplicate,
        )
        self._flags[name] = flag
        if short_name:
            self._short_to_long[short_name] = name
        return FlagRef(flag=flag, value=value)

    def boolean(self, name: str, usage: str, short_name: Optional[str] = None) -> FlagRef:
        """A switch: `-flag`, taking no value."""
        value = Value(False, _parse_bool, switch=True)
        return self.register(value, name, usage, short_name, deny_duplicate=True)

    def string(self, name: str, usage: str, short_name: Optional[str] = None) -> FlagRef:
        """`-flag <value>`, given at most once."""
        value = Value("", str)
        return self.register(value, name, usage, short_name, deny_duplicate=True)

    def string_flags(self, name: str, usage: str, short_name: Optional[str] = None) -> FlagRef:
        """`-flag <v1> -flag <v2> ...`, collected into a list."""
        return self.register(_string_list_value(require_one=False), name, usage, short_name)

    def strings(self, name: str, usage: str, short_name: Optional[str] = None) -> FlagRef:
        """`-flag <v1> <v2> ...`: one value at least, up to the next flag."""
        value = _string_list_value(require_one=True)
        return self.register(value, name, usage, short_name, deny_duplicate=True)

    def fixed_string_flags(self, name: str, usage: str, short_name: Optional[str] = None) -> FlagRef:
        """`-flag <a> <b> -flag <c> <d> ...`, collected into a list of pairs."""
        collector = _PairCollector()
        value = Value([], collector.convert, collector.capacity)
        return self.register(value, name, usage, short_name)

    def new_group(self, name: str) -> "Group":
        """A group of flags of this set; name is usually one of the flag names."""
        from .groups import Group

        return Group(name, self)

    def lookup(self, name: str) -> Optional[Flag]:
        """The flag registered under a long or short name, or None."""
        return self._flag_for("-" + name)

    def usage(self) -> str:
        lines = [f"usage: {self.name}:\n"]
        for name in sorted(self._flags):
            lines.append(self._flags[name].format_usage())
        return "".join(lines)

    def parse(self, args) -> None:
        """Parse args, storing flag values and keeping the positional ones."""
        if self._parsed:
            raise FlagError("Parse() has already been called")
        self._pending = deque(args)
        positional: list[str] = []
        while True:
            if self._parse_one():
                continue
            if not self._pending:
                break
            positional.append(self._pending.popleft())
        self._args = positional
        self._parsed = True

    def _parse_one(self) -> bool:
        """Consume one flag and its values; False when the next item is not a flag."""
        pending = self._pending
        if not pending:
            return False
        flag = self._flag_for(pending[0])
        if flag is None:
            return False

        try:
            if flag.name in self._seen and flag.deny_duplicate:
                raise FlagError(f"duplication: more than one -{flag.name} flag specified")
            pending.popleft()

            value = flag.value
            if value.switch:
                value.set("true")
                return True

            capacity = value.capacity()
            for _ in range(capacity):
                if not pending or self._flag_for(pending[0]) is not None:
                    raise FlagError(self._missing_values(flag.name, capacity))
                value.set(pending.popleft())

            # A limited capacity may turn into an unlimited one once filled.
            if value.capacity() == CAP_NO_LIMIT:
                while pending:
                    if self._flag_for(pending[0]) is not None:
                        return True
                    value.set(pending.popleft())
                return False
            return True
        finally:
            self._seen[flag.name] = None

    @staticmethod
    def _missing_values(name: str, capacity: int) -> str:
        if capacity == 1:
            return f"the -{name} flag requires one value at least"
        return f"the -{name} flag requires {capacity} values at least"

    def _flag_for(self, arg: str) -> Optional[Flag]:
        if not arg.startswith("-"):
            return None
        name = arg[1:]
        if not name:
            return None
        flag = self._flags.get(name)
        if flag is not None:
            return flag
        long_name = self._short_to_long.get(name)
        if long_name is None:
            return None
        return self._flags.get(long_name)