"""
tsgraph/patterns.py
===================

Capture analysis for stanza patterns.

A stanza pattern is written in the query engine's own syntax.  Before any
tree is matched we need to know, for every capture the pattern declares,
how many nodes a single raw match may bind to it: exactly one, zero or one,
or any number.  This module parses just enough of the query syntax to
compute that, using the same quantifier algebra the query engine applies:

* a quantifier suffix (``?``, ``*``, ``+``) *multiplies* the quantifiers of
  every capture inside the quantified item;
* captures of sibling items in a sequence are *added*;
* the arms of an alternation are *joined* (a capture missing from an arm
  counts as zero there).

Quantifiers are modelled as ``(min, max)`` pairs where ``max`` saturates at
``2`` ("more than one").  Predicates such as ``(#eq? @a "x")`` only refer to
captures and do not declare them.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from tsgraph.ast import CaptureDecl, CaptureQuantifier
from tsgraph.errors import RuleSyntaxError, TsgErrorCodes

logger = logging.getLogger(__name__)

Quantity = Tuple[int, int]

ZERO: Quantity = (0, 0)
ONE: Quantity = (1, 1)
OPTIONAL: Quantity = (0, 1)
ZERO_OR_MORE: Quantity = (0, 2)
ONE_OR_MORE: Quantity = (1, 2)

_SUFFIX_QUANTITIES: Dict[str, Quantity] = {
    "?": OPTIONAL,
    "*": ZERO_OR_MORE,
    "+": ONE_OR_MORE,
}

CaptureMap = Dict[str, Quantity]


def multiply(a: Quantity, b: Quantity) -> Quantity:
    return (a[0] * b[0], min(2, a[1] * b[1]))


def add(a: Quantity, b: Quantity) -> Quantity:
    return (min(1, a[0] + b[0]), min(2, a[1] + b[1]))


def join(a: Quantity, b: Quantity) -> Quantity:
    return (min(a[0], b[0]), max(a[1], b[1]))


def to_quantifier(quantity: Quantity) -> CaptureQuantifier:
    low, high = quantity
    if high >= 2:
        return CaptureQuantifier.MANY
    if low == 1:
        return CaptureQuantifier.ONE
    return CaptureQuantifier.OPTIONAL


# ═══════════════════════════════════════════════════════════════════
#  QUERY GRAMMAR
# ═══════════════════════════════════════════════════════════════════

QUERY_GRAMMAR = r'''
    query          = _ sequence
    sequence       = (element _)*
    element        = field_prefix? term suffix*
    field_prefix   = field _ ":" _
    suffix         = _ (quantifier / capture)
    term           = predicate / node / alternation / string / negated_field / anchor / word
    predicate      = "(" _ ~r"#[^\s()]+" _ predicate_args ")"
    predicate_args = (predicate_arg _)*
    predicate_arg  = string / ~r'[^\s()"]+'
    node           = "(" _ sequence ")"
    alternation    = "[" _ sequence "]"
    negated_field  = "!" field
    anchor         = "."
    quantifier     = ~r"[?*+]"
    capture        = "@" ~r"[^\s()\[\]\":?*+]+"
    string         = ~r'"(?:[^"\\]|\\.)*"'
    field          = ~r"[A-Za-z_][A-Za-z0-9_]*"
    word           = ~r'[^\s()\[\]"@:!?*+;.#]+'
    _              = ~r"(?:\s|;[^\n]*)*"
'''

_QUERY = Grammar(QUERY_GRAMMAR)


def _sum_maps(maps: List[CaptureMap]) -> CaptureMap:
    result: CaptureMap = {}
    for captures in maps:
        for name, quantity in captures.items():
            result[name] = add(result[name], quantity) if name in result else quantity
    return result


def _join_maps(maps: List[CaptureMap]) -> CaptureMap:
    if not maps:
        return {}
    names: List[str] = []
    for captures in maps:
        for name in captures:
            if name not in names:
                names.append(name)
    result: CaptureMap = {}
    for name in names:
        quantity = maps[0].get(name, ZERO)
        for captures in maps[1:]:
            quantity = join(quantity, captures.get(name, ZERO))
        result[name] = quantity
    return result


class _CaptureCollector(NodeVisitor):
    """Folds a parsed query into a capture-name → quantity map."""

    grammar = _QUERY
    unwrapped_exceptions = (RuleSyntaxError,)

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit_query(self, node, visited_children):
        _, elements = visited_children
        return _sum_maps(elements)

    def visit_sequence(self, node, visited_children):
        return [element for element, _ in visited_children]

    def visit_element(self, node, visited_children):
        _, term, suffixes = visited_children
        quantity = ONE
        names: List[str] = []
        for suffix in suffixes if isinstance(suffixes, list) else []:
            if isinstance(suffix, str):
                names.append(suffix)
            else:
                quantity = multiply(quantity, suffix)
        captures = {name: multiply(inner, quantity) for name, inner in term.items()}
        for name in names:
            captures[name] = add(captures[name], quantity) if name in captures else quantity
        return captures

    def visit_suffix(self, node, visited_children):
        _, (value,) = visited_children
        return value

    def visit_term(self, node, visited_children):
        return visited_children[0]

    def visit_predicate(self, node, visited_children):
        return {}

    def visit_node(self, node, visited_children):
        _, _, elements, _ = visited_children
        return _sum_maps(elements)

    def visit_alternation(self, node, visited_children):
        _, _, elements, _ = visited_children
        return _join_maps(elements)

    def visit_quantifier(self, node, visited_children):
        return _SUFFIX_QUANTITIES[node.text]

    def visit_capture(self, node, visited_children):
        name = node.text[1:]
        if "." in name:
            raise RuleSyntaxError(
                f"Capture name @{name} may not contain '.'",
                code=TsgErrorCodes.INVALID_PATTERN,
            )
        return name

    def visit_string(self, node, visited_children):
        return {}

    def visit_negated_field(self, node, visited_children):
        return {}

    def visit_anchor(self, node, visited_children):
        return {}

    def visit_word(self, node, visited_children):
        return {}


def analyze(text: str) -> Tuple[CaptureDecl, ...]:
    """Return the captures declared by the query *text*, in order of first
    appearance, each with its resolved quantifier.

    Raises :class:`RuleSyntaxError` if the text is not a well-formed query.
    """
    try:
        tree = _QUERY.parse(text)
    except ParseError as exc:
        raise RuleSyntaxError(
            f"Malformed pattern near {text[exc.pos:exc.pos + 20]!r}",
            code=TsgErrorCodes.INVALID_PATTERN,
        ) from None
    captures = _CaptureCollector().visit(tree)
    logger.debug("Pattern declares %d capture(s)", len(captures))
    return tuple(
        CaptureDecl(name, to_quantifier(quantity)) for name, quantity in captures.items()
    )


__all__ = [
    "Quantity",
    "ZERO",
    "ONE",
    "OPTIONAL",
    "ZERO_OR_MORE",
    "ONE_OR_MORE",
    "multiply",
    "add",
    "join",
    "to_quantifier",
    "QUERY_GRAMMAR",
    "analyze",
]
