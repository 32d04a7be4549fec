"""
tsgraph/matcher.py
==================

Pattern matching: from raw query-engine matches to capture bindings.

The query engine (tree-sitter) is a collaborator behind the small
:class:`QueryEngine` protocol: it yields :class:`RawMatch` records, each
naming the pattern that matched and the nodes bound to every capture.  The
:class:`PatternMatcher` reduces each raw match according to the quantifier
each capture was declared with:

* ``one``      – exactly one node, else :class:`CaptureArityError`
* ``optional`` – ``Unbound`` for zero nodes, the node for one, else an error
* ``many``     – always a ``List`` (possibly empty), in engine order

Matches are produced lazily in the engine's natural order; the matcher
never re-sorts.  An optional guard callback is consulted per match, right
before the match is handed on, so a guard can observe graph state built by
earlier actions.  A match whose guard returns ``False`` is dropped silently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from tree_sitter import Language, Node, Query, QueryCursor, QueryError

from tsgraph.ast import CaptureQuantifier, Pattern
from tsgraph.errors import CaptureArityError, StaticError, TsgErrorCodes
from tsgraph.values import UNBOUND, SyntaxNodeRef, Value, make_list

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawMatch:
    """One match as reported by the query engine."""

    pattern_index: int
    captures: Mapping[str, Sequence[Any]] = field(default_factory=dict)


class QueryEngine(Protocol):
    """Enumerates raw matches of a set of patterns over a tree."""

    @property
    def pattern_count(self) -> int: ...

    def matches(self, root: Any) -> Iterable[RawMatch]: ...


class TreeSitterQueryEngine:
    """
    :class:`QueryEngine` over a single combined tree-sitter query.

    All stanza patterns are concatenated into one query so that matches of
    different stanzas arrive interleaved in document order; the pattern
    index of each match identifies its stanza.
    """

    def __init__(self, language: Language, sources: Sequence[str]) -> None:
        self.language = language
        self.query = compile_query(language, "\n".join(sources))
        if self.query.pattern_count != len(sources):
            raise StaticError(
                f"Combined query has {self.query.pattern_count} patterns "
                f"for {len(sources)} stanzas",
                code=TsgErrorCodes.INVALID_QUERY,
            )

    @property
    def pattern_count(self) -> int:
        return self.query.pattern_count

    def matches(self, root: Node) -> Iterator[RawMatch]:
        cursor = QueryCursor(self.query)
        for pattern_index, captures in cursor.matches(root):
            yield RawMatch(pattern_index, captures)


class ListQueryEngine:
    """:class:`QueryEngine` replaying a fixed sequence of raw matches."""

    def __init__(self, matches: Sequence[RawMatch] = (), pattern_count: int = 0) -> None:
        self._matches = tuple(matches)
        self._pattern_count = pattern_count

    @property
    def pattern_count(self) -> int:
        return self._pattern_count

    def matches(self, root: Any) -> Iterator[RawMatch]:
        return iter(self._matches)


def compile_query(language: Language, source: str) -> Query:
    """Compile a tree-sitter query, mapping rejections to StaticError."""
    try:
        return Query(language, source)
    except QueryError as exc:
        raise StaticError(f"Invalid query: {exc}", code=TsgErrorCodes.INVALID_QUERY) from None


@dataclass(frozen=True)
class Match:
    """A raw match with every declared capture resolved to a Value."""

    stanza_index: int
    captures: Dict[str, Value]


def resolve_capture(
    name: str,
    quantifier: CaptureQuantifier,
    nodes: Sequence[Any],
) -> Value:
    if quantifier is CaptureQuantifier.MANY:
        return make_list(SyntaxNodeRef.from_node(node) for node in nodes)
    if quantifier is CaptureQuantifier.OPTIONAL:
        if not nodes:
            return UNBOUND
        if len(nodes) == 1:
            return SyntaxNodeRef.from_node(nodes[0])
    elif len(nodes) == 1:
        return SyntaxNodeRef.from_node(nodes[0])
    raise CaptureArityError(name, quantifier.value, len(nodes))


class PatternMatcher:
    """
    Resolves raw matches of *patterns* (in stanza order) produced by
    *engine*.

    Usage::

        matcher = PatternMatcher(patterns, engine)
        for match in matcher.matches(tree.root_node):
            ...
    """

    def __init__(self, patterns: Sequence[Pattern], engine: QueryEngine) -> None:
        self.patterns = tuple(patterns)
        self.engine = engine

    def resolve(self, raw: RawMatch) -> Match:
        try:
            pattern = self.patterns[raw.pattern_index]
        except IndexError:
            raise IndexError(f"Query engine reported unknown pattern {raw.pattern_index}") from None
        captures: Dict[str, Value] = {}
        for decl in pattern.captures:
            nodes = raw.captures.get(decl.name, ())
            try:
                captures[decl.name] = resolve_capture(decl.name, decl.quantifier, nodes)
            except CaptureArityError as exc:
                raise exc.locate(pattern.loc)
        return Match(raw.pattern_index, captures)

    def matches(
        self,
        root: Any,
        guard: Optional[Callable[[Match], bool]] = None,
    ) -> Iterator[Match]:
        produced = dropped = 0
        for raw in self.engine.matches(root):
            match = self.resolve(raw)
            if guard is not None and not guard(match):
                dropped += 1
                logger.debug("Guard rejected match of stanza %d", match.stanza_index)
                continue
            produced += 1
            yield match
        logger.debug("Matcher produced %d match(es), %d rejected by guards", produced, dropped)


__all__ = [
    "RawMatch",
    "QueryEngine",
    "TreeSitterQueryEngine",
    "ListQueryEngine",
    "compile_query",
    "Match",
    "resolve_capture",
    "PatternMatcher",
]
