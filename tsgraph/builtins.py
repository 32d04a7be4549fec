#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tsgraph/builtins.py
===================

Built-in functions available to every rule file.

Built-ins share the function namespace with user ``def`` functions, which
may not shadow them.  Each entry records its arity bounds so that both the
static checker and the interpreter can reject bad calls, and each
implementation validates the kinds of its arguments through the contract
helpers of :mod:`tsgraph.values`.

Built-in Functions
------------------
- **Logic**: not, and, or, eq, assert
- **Integers** (64-bit wrap-around): plus, minus, times, lt, le, gt, ge
- **Strings**: format, to-string, replace, matches?, starts-with?,
  ends-with?, split, join
- **Collections**: list, set, length, is-empty, concat, nth, contains?,
  union, to-list, to-set
- **Type predicates**: is-null, is-unbound, is-bool, is-int, is-string,
  is-list, is-set, is-syntax-node, is-graph-node, type-of
- **Syntax nodes**: source-text, node-type, start-row, start-column,
  end-row, end-column, child-index, named-child-index, named-child-count,
  child-by-field-name, parent
- **Graph queries**: node-exists?, edge-exists?

Every implementation has the signature ``fn(ctx, args) -> Value`` where
``ctx`` is the running interpreter (see :class:`BuiltinContext`).
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from tsgraph.errors import (
    ArgumentError,
    AssertionFailedError,
    ExecutionError,
    RegexError,
)
from tsgraph.graph import Graph
from tsgraph.values import (
    NULL,
    Integer,
    String,
    SyntaxNodeRef,
    Value,
    ValueKind,
    as_bool,
    as_elements,
    as_graph_node,
    as_int,
    as_string,
    as_syntax_node,
    boolean,
    expect,
    make_list,
    make_set,
    to_text,
    wrap_int,
)


class BuiltinContext(Protocol):
    """What a built-in may see of the running interpreter."""

    graph: Graph
    source: bytes


BuiltinFn = Callable[[BuiltinContext, Sequence[Value]], Value]


@dataclass(frozen=True)
class Builtin:
    name: str
    fn: BuiltinFn
    min_args: int
    max_args: Optional[int]  # None = variadic
    description: str = ""

    def accepts(self, count: int) -> bool:
        return count >= self.min_args and (self.max_args is None or count <= self.max_args)

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.max_args == self.min_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"

    def __call__(self, ctx: BuiltinContext, args: Sequence[Value]) -> Value:
        if not self.accepts(len(args)):
            raise ArgumentError(
                f"({self.name}) expects {self.arity_text()} argument(s), got {len(args)}"
            )
        return self.fn(ctx, args)


# Populated by the ``@_builtin`` decorator below.
BUILTIN_FUNCTIONS: Dict[str, Builtin] = {}


def _builtin(name: str, min_args: int, max_args: Optional[int], description: str = ""):
    """Register *fn* as built-in *name*."""

    def deco(fn: BuiltinFn) -> BuiltinFn:
        if name in BUILTIN_FUNCTIONS:
            raise ValueError(f"Duplicate built-in {name!r}")
        BUILTIN_FUNCTIONS[name] = Builtin(name, fn, min_args, max_args, description)
        return fn

    return deco


@functools.lru_cache(maxsize=256)
def compile_regex(pattern: str) -> "re.Pattern[str]":
    """Compile *pattern*, mapping compile failures to :class:`RegexError`."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise RegexError(f"Invalid regular expression {pattern!r}: {exc}") from None


# ═══════════════════════════════════════════════════════════════════════════
# LOGIC
# ═══════════════════════════════════════════════════════════════════════════

@_builtin("not", 1, 1, "Boolean negation")
def _not(ctx, args):
    return boolean(not as_bool(args[0], "(not)"))


@_builtin("and", 0, None, "Boolean conjunction")
def _and(ctx, args):
    return boolean(all([as_bool(arg, "(and)") for arg in args]))


@_builtin("or", 0, None, "Boolean disjunction")
def _or(ctx, args):
    return boolean(any([as_bool(arg, "(or)") for arg in args]))


@_builtin("eq", 2, None, "Structural equality of all arguments")
def _eq(ctx, args):
    first = args[0]
    return boolean(all(arg == first for arg in args[1:]))


@_builtin("assert", 1, 2, "Fail the run unless the condition holds")
def _assert(ctx, args):
    if not as_bool(args[0], "(assert)"):
        message = as_string(args[1], "(assert)") if len(args) > 1 else "Assertion failed"
        raise AssertionFailedError(message)
    return NULL


# ═══════════════════════════════════════════════════════════════════════════
# INTEGERS
# ═══════════════════════════════════════════════════════════════════════════

@_builtin("plus", 0, None, "Sum")
def _plus(ctx, args):
    return Integer(wrap_int(sum(as_int(arg, "(plus)") for arg in args)))


@_builtin("minus", 1, 2, "Difference, or negation with one argument")
def _minus(ctx, args):
    if len(args) == 1:
        return Integer(wrap_int(-as_int(args[0], "(minus)")))
    return Integer(wrap_int(as_int(args[0], "(minus)") - as_int(args[1], "(minus)")))


@_builtin("times", 0, None, "Product")
def _times(ctx, args):
    product = 1
    for arg in args:
        product = wrap_int(product * as_int(arg, "(times)"))
    return Integer(product)


def _comparison(name: str, op: Callable[[int, int], bool]) -> None:
    def compare(ctx, args):
        context = f"({name})"
        return boolean(op(as_int(args[0], context), as_int(args[1], context)))

    _builtin(name, 2, 2, "Integer comparison")(compare)


_comparison("lt", lambda a, b: a < b)
_comparison("le", lambda a, b: a <= b)
_comparison("gt", lambda a, b: a > b)
_comparison("ge", lambda a, b: a >= b)


# ═══════════════════════════════════════════════════════════════════════════
# STRINGS
# ═══════════════════════════════════════════════════════════════════════════

_FORMAT_TOKEN = re.compile(r"\{\{|\}\}|\{\}|[{}]")


@_builtin("format", 1, None, "Substitute {} placeholders")
def _format(ctx, args):
    template = as_string(args[0], "(format)")
    values = [to_text(arg, "(format)") for arg in args[1:]]
    pieces: List[str] = []
    position = 0
    used = 0
    for match in _FORMAT_TOKEN.finditer(template):
        pieces.append(template[position:match.start()])
        token = match.group()
        if token == "{{":
            pieces.append("{")
        elif token == "}}":
            pieces.append("}")
        elif token == "{}":
            if used >= len(values):
                raise ArgumentError(f"(format) has more placeholders than arguments in {template!r}")
            pieces.append(values[used])
            used += 1
        else:
            raise ArgumentError(f"(format) has an unmatched {token!r} in {template!r}")
        position = match.end()
    pieces.append(template[position:])
    if used != len(values):
        raise ArgumentError(f"(format) has more arguments than placeholders in {template!r}")
    return String("".join(pieces))


@_builtin("to-string", 1, 1, "Text of a String, or decimal text of an Integer")
def _to_string(ctx, args):
    return String(to_text(args[0], "(to-string)"))


@_builtin("replace", 3, 3, "Replace every regex match with literal text")
def _replace(ctx, args):
    text = as_string(args[0], "(replace)")
    regex = compile_regex(as_string(args[1], "(replace)"))
    replacement = as_string(args[2], "(replace)")
    return String(regex.sub(lambda _: replacement, text))


@_builtin("matches?", 2, 2, "Whether the regex matches anywhere in the string")
def _matches(ctx, args):
    text = as_string(args[0], "(matches?)")
    regex = compile_regex(as_string(args[1], "(matches?)"))
    return boolean(regex.search(text) is not None)


@_builtin("starts-with?", 2, 2)
def _starts_with(ctx, args):
    return boolean(as_string(args[0], "(starts-with?)").startswith(as_string(args[1], "(starts-with?)")))


@_builtin("ends-with?", 2, 2)
def _ends_with(ctx, args):
    return boolean(as_string(args[0], "(ends-with?)").endswith(as_string(args[1], "(ends-with?)")))


@_builtin("split", 2, 2, "Split a string on a literal separator")
def _split(ctx, args):
    text = as_string(args[0], "(split)")
    separator = as_string(args[1], "(split)")
    if not separator:
        raise ArgumentError("(split) separator must not be empty")
    return make_list(String(part) for part in text.split(separator))


@_builtin("join", 1, 2, "Join the texts of a list's elements")
def _join(ctx, args):
    items = as_elements(args[0], "(join)")
    separator = as_string(args[1], "(join)") if len(args) > 1 else ""
    return String(separator.join(to_text(item, "(join)") for item in items))


# ═══════════════════════════════════════════════════════════════════════════
# COLLECTIONS
# ═══════════════════════════════════════════════════════════════════════════

@_builtin("list", 0, None, "List of the arguments")
def _list(ctx, args):
    return make_list(args)


@_builtin("set", 0, None, "Set of the arguments")
def _set(ctx, args):
    return make_set(args)


def _size(value: Value, context: str) -> int:
    expect(value, ValueKind.LIST, ValueKind.SET, ValueKind.STRING, context=context)
    if isinstance(value, String):
        return len(value.value)
    return len(value.items)  # type: ignore[attr-defined]


@_builtin("length", 1, 1)
def _length(ctx, args):
    return Integer(_size(args[0], "(length)"))


@_builtin("is-empty", 1, 1)
def _is_empty(ctx, args):
    return boolean(_size(args[0], "(is-empty)") == 0)


@_builtin("concat", 0, None, "Concatenate lists")
def _concat(ctx, args):
    items: List[Value] = []
    for arg in args:
        expect(arg, ValueKind.LIST, context="(concat)")
        items.extend(arg.items)  # type: ignore[attr-defined]
    return make_list(items)


@_builtin("nth", 2, 2, "Element of a list by zero-based index")
def _nth(ctx, args):
    expect(args[0], ValueKind.LIST, context="(nth)")
    items = args[0].items  # type: ignore[attr-defined]
    index = as_int(args[1], "(nth)")
    if not 0 <= index < len(items):
        raise ArgumentError(f"(nth) index {index} out of range for a list of {len(items)}")
    return items[index]


@_builtin("contains?", 2, 2, "Membership in a list or set")
def _contains(ctx, args):
    expect(args[0], ValueKind.LIST, ValueKind.SET, context="(contains?)")
    return boolean(args[1] in args[0].items)  # type: ignore[attr-defined]


@_builtin("union", 0, None, "Set of all elements of the given lists or sets")
def _union(ctx, args):
    items: List[Value] = []
    for arg in args:
        items.extend(as_elements(arg, "(union)"))
    return make_set(items)


@_builtin("to-list", 1, 1)
def _to_list(ctx, args):
    return make_list(as_elements(args[0], "(to-list)"))


@_builtin("to-set", 1, 1)
def _to_set(ctx, args):
    return make_set(as_elements(args[0], "(to-set)"))


# ═══════════════════════════════════════════════════════════════════════════
# TYPE PREDICATES
# ═══════════════════════════════════════════════════════════════════════════

def _kind_predicate(name: str, kind: ValueKind) -> None:
    def predicate(ctx, args):
        return boolean(args[0].kind is kind)

    _builtin(name, 1, 1, f"Whether the value is a {kind.value}")(predicate)


_kind_predicate("is-null", ValueKind.NULL)
_kind_predicate("is-unbound", ValueKind.UNBOUND)
_kind_predicate("is-bool", ValueKind.BOOLEAN)
_kind_predicate("is-int", ValueKind.INTEGER)
_kind_predicate("is-string", ValueKind.STRING)
_kind_predicate("is-list", ValueKind.LIST)
_kind_predicate("is-set", ValueKind.SET)
_kind_predicate("is-syntax-node", ValueKind.SYNTAX_NODE)
_kind_predicate("is-graph-node", ValueKind.GRAPH_NODE)


@_builtin("type-of", 1, 1, "Name of the value's kind")
def _type_of(ctx, args):
    return String(args[0].kind.value)


# ═══════════════════════════════════════════════════════════════════════════
# SYNTAX NODES
# ═══════════════════════════════════════════════════════════════════════════

def _live(value: Value, context: str) -> Any:
    ref = as_syntax_node(value, context)
    if ref.node is None:
        raise ExecutionError(f"{ref.display()} is detached from its syntax tree in {context}")
    return ref.node


def _ref_or_null(node: Any) -> Value:
    return NULL if node is None else SyntaxNodeRef.from_node(node)


@_builtin("source-text", 1, 1, "Source text spanned by a syntax node")
def _source_text(ctx, args):
    node = _live(args[0], "(source-text)")
    return String(ctx.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace"))


@_builtin("node-type", 1, 1)
def _node_type(ctx, args):
    return String(as_syntax_node(args[0], "(node-type)").node_type)


@_builtin("start-row", 1, 1)
def _start_row(ctx, args):
    return Integer(as_syntax_node(args[0], "(start-row)").start[0])


@_builtin("start-column", 1, 1)
def _start_column(ctx, args):
    return Integer(as_syntax_node(args[0], "(start-column)").start[1])


@_builtin("end-row", 1, 1)
def _end_row(ctx, args):
    return Integer(as_syntax_node(args[0], "(end-row)").end[0])


@_builtin("end-column", 1, 1)
def _end_column(ctx, args):
    return Integer(as_syntax_node(args[0], "(end-column)").end[1])


def _index_in(siblings: Sequence[Any], node: Any, context: str) -> Value:
    for index, sibling in enumerate(siblings):
        if sibling.id == node.id:
            return Integer(index)
    raise ArgumentError(f"Syntax node is not among its parent's children in {context}")


@_builtin("child-index", 1, 1, "Position among the parent's children")
def _child_index(ctx, args):
    node = _live(args[0], "(child-index)")
    if node.parent is None:
        raise ArgumentError("(child-index) of the root node")
    return _index_in(node.parent.children, node, "(child-index)")


@_builtin("named-child-index", 1, 1, "Position among the parent's named children")
def _named_child_index(ctx, args):
    node = _live(args[0], "(named-child-index)")
    if node.parent is None:
        raise ArgumentError("(named-child-index) of the root node")
    if not node.is_named:
        raise ArgumentError("(named-child-index) of an anonymous node")
    return _index_in(node.parent.named_children, node, "(named-child-index)")


@_builtin("named-child-count", 1, 1)
def _named_child_count(ctx, args):
    return Integer(_live(args[0], "(named-child-count)").named_child_count)


@_builtin("child-by-field-name", 2, 2, "Child under a field, or #null")
def _child_by_field_name(ctx, args):
    node = _live(args[0], "(child-by-field-name)")
    return _ref_or_null(node.child_by_field_name(as_string(args[1], "(child-by-field-name)")))


@_builtin("parent", 1, 1, "Parent node, or #null for the root")
def _parent(ctx, args):
    return _ref_or_null(_live(args[0], "(parent)").parent)


# ═══════════════════════════════════════════════════════════════════════════
# GRAPH QUERIES
# ═══════════════════════════════════════════════════════════════════════════

@_builtin("node-exists?", 1, 1)
def _node_exists(ctx, args):
    return boolean(ctx.graph.node_exists(as_graph_node(args[0], "(node-exists?)").index))


@_builtin("edge-exists?", 2, 2)
def _edge_exists(ctx, args):
    source = as_graph_node(args[0], "(edge-exists?)")
    sink = as_graph_node(args[1], "(edge-exists?)")
    return boolean(ctx.graph.edge_exists(source.index, sink.index))


__all__ = [
    "BuiltinContext",
    "Builtin",
    "BUILTIN_FUNCTIONS",
    "compile_regex",
]
