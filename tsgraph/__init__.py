"""tsgraph: graphs from tree-sitter syntax trees.

A rule file is a list of *stanzas*, each pairing a tree-sitter query
pattern with a block of actions.  Every match of a pattern runs its
actions, which create graph nodes and edges, attach attributes to them and
share state through variables scoped to syntax nodes.

Submodules
----------
errors
    Structured error codes (``TSG-XXXX``), ``SourceSpan`` and the
    compile-time / execution-time exception hierarchy.
values, graph
    The value model of the rule language and the output graph.
grammar, parser, patterns, checker
    Rule-file front end: parsimonious grammar, AST builder, capture
    analysis of query patterns and static validation.
matcher, environment, builtins, runtime
    Execution: match enumeration, variable scopes, built-in functions and
    the interpreter.
rules
    ``compile_rules`` and the immutable, shareable ``RuleFile``.
languages, main
    Grammar loading and the ``tsgraph`` command line.

Usage
-----
Command-line::

    tsgraph parse rules.tsg module.py --language python --format json

Programmatic::

    from tsgraph import ExecutionConfig, compile_rules
    from tsgraph.languages import load_language, make_parser

    language = load_language("python")
    rules = compile_rules(open("rules.tsg").read(), language)
    tree = make_parser("python").parse(source)
    graph = rules.execute(tree, source, ExecutionConfig(globals={"FILE": "a.py"}))
"""

from __future__ import annotations

__version__: str = "0.1.0"

from tsgraph.errors import CompileError, ExecutionError, TsgError  # noqa: E402
from tsgraph.graph import DuplicatePolicy, Graph  # noqa: E402
from tsgraph.rules import RuleFile, compile_rules  # noqa: E402
from tsgraph.runtime import ExecutionConfig, execute  # noqa: E402

__all__: list[str] = [
    "__version__",
    "TsgError",
    "CompileError",
    "ExecutionError",
    "DuplicatePolicy",
    "Graph",
    "RuleFile",
    "compile_rules",
    "ExecutionConfig",
    "execute",
]
