# tests/conftest.py
"""
Shared fixtures for the tsgraph test-suite.

Two ways of running rules are provided:

* ``run`` parses real Python source with tree-sitter (skipped when the
  ``tree-sitter-python`` grammar is not installed);
* ``run_fake`` replays hand-written raw matches over :class:`FakeNode`
  trees, for matcher and interpreter edge cases that no real query produces
  on demand.
"""

import itertools
import textwrap
from typing import Any, Dict, Optional, Sequence

import pytest

from tsgraph.matcher import ListQueryEngine, RawMatch
from tsgraph.rules import compile_rules
from tsgraph.runtime import ExecutionConfig, execute


# ═══════════════════════════════════════════════════════════════════
#  FAKE SYNTAX NODES
# ═══════════════════════════════════════════════════════════════════

_ids = itertools.count(1)


class FakeNode:
    """Just enough of ``tree_sitter.Node`` for the interpreter and built-ins."""

    def __init__(
        self,
        type: str,
        start_byte: int = 0,
        end_byte: int = 0,
        start: tuple = (0, 0),
        end: tuple = (0, 0),
        children: Sequence["FakeNode"] = (),
        is_named: bool = True,
        fields: Optional[Dict[str, "FakeNode"]] = None,
    ):
        self.id = next(_ids)
        self.type = type
        self.start_byte = start_byte
        self.end_byte = end_byte
        self.start_point = start
        self.end_point = end
        self.children = list(children)
        self.is_named = is_named
        self.parent = None
        self._fields = dict(fields or {})
        for child in self.children:
            child.parent = self

    @property
    def named_children(self):
        return [child for child in self.children if child.is_named]

    @property
    def named_child_count(self):
        return len(self.named_children)

    def child_by_field_name(self, name):
        return self._fields.get(name)

    def __repr__(self):
        return f"FakeNode({self.type!r}, id={self.id})"


def word_tree(source: str):
    """A ``module`` FakeNode with one ``identifier`` child per word of *source*."""
    children = []
    offset = 0
    for word in source.split():
        start = source.index(word, offset)
        offset = start + len(word)
        children.append(FakeNode("identifier", start, offset, (0, start), (0, offset)))
    return FakeNode("module", 0, len(source), (0, 0), (0, len(source)), children)


def run_fake(
    rules_src: str,
    matches: Sequence[RawMatch] = (),
    source: str = "",
    root: Any = None,
    **config: Any,
):
    """Compile *rules_src* and execute it over replayed raw *matches*."""
    rules = compile_rules(textwrap.dedent(rules_src))
    engine = ListQueryEngine(matches, pattern_count=len(rules.stanzas))
    if root is None:
        root = FakeNode("module", 0, len(source))
    return execute(rules, root, source, ExecutionConfig(**config), engine=engine)


# ═══════════════════════════════════════════════════════════════════
#  REAL TREE-SITTER PARSING
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def py_language():
    """The tree-sitter Python grammar."""
    pytest.importorskip("tree_sitter_python")
    from tsgraph.languages import load_language

    return load_language("python")


@pytest.fixture
def py_parser(py_language):
    from tree_sitter import Parser

    return Parser(py_language)


def run_rules(rules_src: str, source: str, language, **config: Any):
    """Compile *rules_src* for *language*, parse *source* and run."""
    from tree_sitter import Parser

    rules = compile_rules(textwrap.dedent(rules_src), language)
    tree = Parser(language).parse(source.encode("utf-8"))
    return rules.execute(tree, source, ExecutionConfig(**config))


@pytest.fixture
def run(py_language):
    def _run(rules_src: str, source: str, **config: Any):
        return run_rules(rules_src, source, py_language, **config)

    return _run


@pytest.fixture
def printed():
    """A list collecting ``print`` output; pass ``print_sink=printed.append``."""
    return []
