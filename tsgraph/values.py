"""tsgraph/values.py – The dynamically-typed value universe of rule code.

Every value manipulated by stanza actions, functions and graph attributes is
one of a closed set of variants:

    Null | Boolean | Integer | String | List | Set
         | SyntaxNodeRef | GraphNodeRef | Unbound

Design invariants
-----------------
* Every variant is a frozen dataclass, so equality and hashing are
  structural and total.  ``SyntaxNodeRef`` and ``GraphNodeRef`` compare by
  handle identity only.
* ``List`` and ``Set`` hold immutable tuples / frozensets.  Building a
  collection always produces a new value, so binding a value to a second
  name can never alias mutable state.
* ``Unbound`` is distinct from ``Null``: it is what an optional capture
  resolves to when it matched nothing.
* Consumers check kinds with the ``as_*`` helpers, which raise
  :class:`~tsgraph.errors.TypeMismatchError` naming the expected and
  actual kinds.  Nothing here coerces silently.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    ClassVar,
    FrozenSet,
    Iterable,
    Optional,
    Tuple,
)

from tsgraph.errors import TypeMismatchError

# ════════════════════════════════════════════════════════════════════════
# §1  Kinds
# ════════════════════════════════════════════════════════════════════════


class ValueKind(Enum):
    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    STRING = "string"
    LIST = "list"
    SET = "set"
    SYNTAX_NODE = "syntax node"
    GRAPH_NODE = "graph node"
    UNBOUND = "unbound"


#: Ordering of kinds inside canonical sort keys.
_KIND_ORDER = {kind: index for index, kind in enumerate(ValueKind)}

INT_BITS = 64
_INT_MODULUS = 1 << INT_BITS
_INT_HALF = 1 << (INT_BITS - 1)


def wrap_int(n: int) -> int:
    """Reduce *n* to a signed 64-bit two's-complement integer."""
    return ((n + _INT_HALF) % _INT_MODULUS) - _INT_HALF


# ════════════════════════════════════════════════════════════════════════
# §2  Variants
# ════════════════════════════════════════════════════════════════════════


class Value:
    """Base class of all rule-language values."""

    __slots__ = ()

    kind: ClassVar[ValueKind]

    def display(self) -> str:
        """Render the value the way diagnostics and ``print`` show it."""
        raise NotImplementedError

    def sort_key(self) -> Tuple[Any, ...]:
        """A key that totally orders values of any kind."""
        raise NotImplementedError

    def __str__(self) -> str:
        return self.display()


@dataclass(frozen=True)
class Null(Value):
    kind: ClassVar[ValueKind] = ValueKind.NULL

    def display(self) -> str:
        return "#null"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind],)


@dataclass(frozen=True)
class Unbound(Value):
    kind: ClassVar[ValueKind] = ValueKind.UNBOUND

    def display(self) -> str:
        return "#unbound"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind],)


@dataclass(frozen=True)
class Boolean(Value):
    value: bool
    kind: ClassVar[ValueKind] = ValueKind.BOOLEAN

    def display(self) -> str:
        return "#true" if self.value else "#false"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], self.value)


@dataclass(frozen=True)
class Integer(Value):
    value: int
    kind: ClassVar[ValueKind] = ValueKind.INTEGER

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Integer requires an int, got {type(self.value).__name__}")
        if wrap_int(self.value) != self.value:
            raise OverflowError(f"{self.value} does not fit in {INT_BITS} bits")

    def display(self) -> str:
        return str(self.value)

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], self.value)


@dataclass(frozen=True)
class String(Value):
    value: str
    kind: ClassVar[ValueKind] = ValueKind.STRING

    def display(self) -> str:
        return json.dumps(self.value)

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], self.value)


@dataclass(frozen=True)
class List(Value):
    items: Tuple[Value, ...] = ()
    kind: ClassVar[ValueKind] = ValueKind.LIST

    def display(self) -> str:
        return "[" + ", ".join(item.display() for item in self.items) + "]"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], tuple(item.sort_key() for item in self.items))


@dataclass(frozen=True)
class Set(Value):
    items: FrozenSet[Value] = frozenset()
    kind: ClassVar[ValueKind] = ValueKind.SET

    def ordered(self) -> Tuple[Value, ...]:
        """Elements in canonical order, so iteration is deterministic."""
        return tuple(sorted(self.items, key=lambda item: item.sort_key()))

    def display(self) -> str:
        return "{" + ", ".join(item.display() for item in self.ordered()) + "}"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], tuple(item.sort_key() for item in self.ordered()))


@dataclass(frozen=True)
class SyntaxNodeRef(Value):
    """A handle into the input syntax tree; never owned by the graph.

    Only ``id`` takes part in equality.  ``node`` is the live parser node
    when one is available (it is ``None`` for references decoded from
    JSON).
    """

    id: int
    node_type: str = field(default="", compare=False)
    start: Tuple[int, int] = field(default=(0, 0), compare=False)
    end: Tuple[int, int] = field(default=(0, 0), compare=False)
    node: Any = field(default=None, compare=False, repr=False)
    kind: ClassVar[ValueKind] = ValueKind.SYNTAX_NODE

    @classmethod
    def from_node(cls, node: Any) -> "SyntaxNodeRef":
        return cls(
            id=node.id,
            node_type=node.type,
            start=(node.start_point[0], node.start_point[1]),
            end=(node.end_point[0], node.end_point[1]),
            node=node,
        )

    def display(self) -> str:
        return f"[syntax node {self.node_type} ({self.start[0] + 1}, {self.start[1] + 1})]"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], self.id)


@dataclass(frozen=True)
class GraphNodeRef(Value):
    """A handle into the graph under construction."""

    index: int
    kind: ClassVar[ValueKind] = ValueKind.GRAPH_NODE

    def display(self) -> str:
        return f"[graph node {self.index}]"

    def sort_key(self) -> Tuple[Any, ...]:
        return (_KIND_ORDER[self.kind], self.index)


NULL = Null()
UNBOUND = Unbound()
TRUE = Boolean(True)
FALSE = Boolean(False)
EMPTY_LIST = List(())


def boolean(flag: bool) -> Boolean:
    return TRUE if flag else FALSE


def make_list(items: Iterable[Value]) -> List:
    return List(tuple(items))


def make_set(items: Iterable[Value]) -> Set:
    return Set(frozenset(items))


# ════════════════════════════════════════════════════════════════════════
# §3  Kind contracts
# ════════════════════════════════════════════════════════════════════════


def expect(value: Value, *kinds: ValueKind, context: str = "") -> Value:
    """Return *value* if its kind is one of *kinds*, else raise TypeMismatch."""
    if value.kind not in kinds:
        expected = " or ".join(k.value for k in kinds)
        raise TypeMismatchError(expected, value.kind.value, context)
    return value


def as_bool(value: Value, context: str = "") -> bool:
    expect(value, ValueKind.BOOLEAN, context=context)
    return value.value  # type: ignore[attr-defined]


def as_int(value: Value, context: str = "") -> int:
    expect(value, ValueKind.INTEGER, context=context)
    return value.value  # type: ignore[attr-defined]


def as_string(value: Value, context: str = "") -> str:
    expect(value, ValueKind.STRING, context=context)
    return value.value  # type: ignore[attr-defined]


def as_syntax_node(value: Value, context: str = "") -> SyntaxNodeRef:
    return expect(value, ValueKind.SYNTAX_NODE, context=context)  # type: ignore[return-value]


def as_graph_node(value: Value, context: str = "") -> GraphNodeRef:
    return expect(value, ValueKind.GRAPH_NODE, context=context)  # type: ignore[return-value]


def as_elements(value: Value, context: str = "") -> Tuple[Value, ...]:
    """Elements of a List (in order) or a Set (in canonical order)."""
    expect(value, ValueKind.LIST, ValueKind.SET, context=context)
    if isinstance(value, List):
        return value.items
    return value.ordered()  # type: ignore[union-attr]


def to_text(value: Value, context: str = "") -> str:
    """Text of a String, or the decimal form of an Integer.

    This is the only numeric-to-string coercion in the language; it is
    used by ``format``, ``to-string`` and interpolated strings.
    """
    expect(value, ValueKind.STRING, ValueKind.INTEGER, context=context)
    if isinstance(value, String):
        return value.value
    return str(value.value)  # type: ignore[attr-defined]


def print_text(value: Value) -> str:
    """Rendering used by the ``print`` statement: strings appear raw."""
    if isinstance(value, String):
        return value.value
    return value.display()


# ════════════════════════════════════════════════════════════════════════
# §4  Conversions
# ════════════════════════════════════════════════════════════════════════


def from_python(obj: Any, context: str = "global value") -> Value:
    """Convert a caller-supplied Python object into a :class:`Value`."""
    if isinstance(obj, Value):
        return obj
    if obj is None:
        return NULL
    if isinstance(obj, bool):
        return boolean(obj)
    if isinstance(obj, int):
        return Integer(wrap_int(obj))
    if isinstance(obj, str):
        return String(obj)
    if isinstance(obj, (list, tuple)):
        return make_list(from_python(item, context) for item in obj)
    if isinstance(obj, (set, frozenset)):
        return make_set(from_python(item, context) for item in obj)
    raise TypeMismatchError("a null, boolean, integer, string, list or set", type(obj).__name__, context)


def to_python(value: Value) -> Any:
    """Convert a :class:`Value` into plain Python data.

    Syntax and graph node references are returned unchanged.
    """
    if isinstance(value, (Null, Unbound)):
        return None
    if isinstance(value, (Boolean, Integer, String)):
        return value.value
    if isinstance(value, List):
        return [to_python(item) for item in value.items]
    if isinstance(value, Set):
        return {to_python(item) for item in value.items}
    return value


def to_json(value: Value) -> Any:
    """Encode a value for the canonical JSON graph shape."""
    if isinstance(value, Null):
        return None
    if isinstance(value, (Boolean, Integer, String)):
        return value.value
    if isinstance(value, List):
        return [to_json(item) for item in value.items]
    if isinstance(value, Set):
        return {"type": "set", "values": [to_json(item) for item in value.ordered()]}
    if isinstance(value, SyntaxNodeRef):
        return {
            "type": "syntax_node",
            "id": value.id,
            "node_type": value.node_type,
            "start": list(value.start),
            "end": list(value.end),
        }
    if isinstance(value, GraphNodeRef):
        return {"type": "graph_node", "id": value.index}
    if isinstance(value, Unbound):
        return {"type": "unbound"}
    raise TypeError(f"Unknown value kind: {type(value).__name__}")


def from_json(data: Any) -> Value:
    """Decode the output of :func:`to_json`."""
    if data is None:
        return NULL
    if isinstance(data, bool):
        return boolean(data)
    if isinstance(data, int):
        return Integer(data)
    if isinstance(data, str):
        return String(data)
    if isinstance(data, list):
        return make_list(from_json(item) for item in data)
    if isinstance(data, dict):
        tag: Optional[str] = data.get("type")
        if tag == "set":
            return make_set(from_json(item) for item in data["values"])
        if tag == "syntax_node":
            return SyntaxNodeRef(
                id=data["id"],
                node_type=data.get("node_type", ""),
                start=tuple(data.get("start", (0, 0))),  # type: ignore[arg-type]
                end=tuple(data.get("end", (0, 0))),  # type: ignore[arg-type]
            )
        if tag == "graph_node":
            return GraphNodeRef(data["id"])
        if tag == "unbound":
            return UNBOUND
    raise ValueError(f"Cannot decode value from {data!r}")


__all__ = [
    "ValueKind",
    "Value",
    "Null",
    "Unbound",
    "Boolean",
    "Integer",
    "String",
    "List",
    "Set",
    "SyntaxNodeRef",
    "GraphNodeRef",
    "NULL",
    "UNBOUND",
    "TRUE",
    "FALSE",
    "EMPTY_LIST",
    "INT_BITS",
    "wrap_int",
    "boolean",
    "make_list",
    "make_set",
    "expect",
    "as_bool",
    "as_int",
    "as_string",
    "as_syntax_node",
    "as_graph_node",
    "as_elements",
    "to_text",
    "print_text",
    "from_python",
    "to_python",
    "to_json",
    "from_json",
]
