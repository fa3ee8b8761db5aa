"""XML-RPC value model: a closed set of immutable value kinds.

Each kind is a frozen dataclass. Containers copy their children on construction,
so a Value tree is never aliased by the caller and can never contain a cycle.
"""

import base64
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


class Value:
    """Base class for all XML-RPC values."""

    __slots__ = ()


@dataclass(frozen=True, slots=True)
class Nil(Value):
    """The ``<nil/>`` extension value."""


@dataclass(frozen=True, slots=True)
class Boolean(Value):
    value: bool


@dataclass(frozen=True, slots=True)
class Integer(Value):
    """32-bit signed integer."""

    value: int

    def __post_init__(self) -> None:
        if not INT32_MIN <= self.value <= INT32_MAX:
            msg = f"Integer {self.value} does not fit in 32 bits."
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Double(Value):
    value: float


@dataclass(frozen=True, slots=True)
class String(Value):
    value: str


@dataclass(frozen=True, slots=True)
class Base64(Value):
    """Raw binary payload, base64-encoded on the wire."""

    value: bytes


@dataclass(frozen=True, slots=True)
class DateTime(Value):
    """Timestamp with second precision. Timezone is optional."""

    value: datetime

    def __post_init__(self) -> None:
        # The wire format carries whole seconds only.
        if self.value.microsecond:
            object.__setattr__(self, "value", self.value.replace(microsecond=0))


@dataclass(frozen=True, slots=True)
class Array(Value):
    """Ordered sequence of values."""

    items: tuple[Value, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", tuple(self.items))


class DuplicateMemberError(ValueError):
    """Raised when a struct is built from pairs that repeat a member name."""

    def __init__(self, name: str) -> None:
        """Initialize with the repeated member name."""
        super().__init__(f"Duplicate struct member: {name!r}")
        self.name = name


@dataclass(frozen=True, slots=True)
class Struct(Value):
    """Mapping of unique member names to values.

    Member order is preserved for rendering and encoding but ignored by equality.
    """

    members: Mapping[str, Value] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", MappingProxyType(dict(self.members)))

    @staticmethod
    def from_pairs(pairs: Iterable[tuple[str, Value]]) -> "Struct":
        """Build a struct from name/value pairs.

        Raises:
            DuplicateMemberError: A member name occurs more than once.

        """
        members: dict[str, Value] = {}
        for name, value in pairs:
            if name in members:
                raise DuplicateMemberError(name)
            members[name] = value
        return Struct(members)

    def __getitem__(self, name: str) -> Value:
        return self.members[name]

    def __contains__(self, name: object) -> bool:
        return name in self.members


# --- Debug rendering ---


def pformat(value: Value, indent: int = 0) -> str:
    """Render a value tree as deterministic, human-readable text.

    For diagnostics only; this is not the wire format.
    """
    pad = "  " * indent
    match value:
        case Nil():
            return "nil"
        case Boolean(v):
            return f"boolean {'true' if v else 'false'}"
        case Integer(v):
            return f"int {v}"
        case Double(v):
            return f"double {v!r}"
        case String(v):
            return f"string {v!r}"
        case Base64(v):
            return f"base64 {base64.b64encode(v).decode()} ({len(v)} bytes)"
        case DateTime(v):
            return f"dateTime {v.isoformat()}"
        case Array(items):
            if not items:
                return "array []"
            lines = [f"{pad}  {pformat(item, indent + 1)}" for item in items]
            return "array [\n" + "\n".join(lines) + f"\n{pad}]"
        case Struct(members):
            if not members:
                return "struct {}"
            lines = [f"{pad}  {name}: {pformat(member, indent + 1)}" for name, member in members.items()]
            return "struct {\n" + "\n".join(lines) + f"\n{pad}}}"
    msg = f"Not an XML-RPC value: {value!r}"
    raise TypeError(msg)


# --- Native Python conversion ---


def from_python(obj: object) -> Value:
    """Convert a native Python object tree into a Value tree.

    Raises:
        TypeError: Unsupported object type or a non-string mapping key.
        ValueError: An int outside the 32-bit range.

    """
    match obj:
        case Value():
            return obj
        case None:
            return Nil()
        case bool():
            return Boolean(obj)
        case int():
            return Integer(obj)
        case float():
            return Double(obj)
        case str():
            return String(obj)
        case bytes() | bytearray() | memoryview():
            return Base64(bytes(obj))
        case datetime():
            return DateTime(obj)
        case list() | tuple():
            return Array(tuple(from_python(item) for item in obj))
        case Mapping():
            members: dict[str, Value] = {}
            for key, item in obj.items():
                if not isinstance(key, str):
                    msg = f"Struct member names must be strings, got {type(key).__name__}."
                    raise TypeError(msg)
                members[key] = from_python(item)
            return Struct(members)
    msg = f"Cannot convert {type(obj).__name__} to an XML-RPC value."
    raise TypeError(msg)


def to_python(value: Value) -> object:
    """Convert a Value tree into native Python objects (inverse of from_python)."""
    match value:
        case Nil():
            return None
        case Boolean(v) | Integer(v) | Double(v) | String(v) | Base64(v) | DateTime(v):
            return v
        case Array(items):
            return [to_python(item) for item in items]
        case Struct(members):
            return {name: to_python(member) for name, member in members.items()}
    msg = f"Not an XML-RPC value: {value!r}"
    raise TypeError(msg)
