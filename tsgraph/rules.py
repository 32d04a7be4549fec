"""
tsgraph/rules.py
================

The compiled form of a rule file.

``compile_rules`` parses, validates and (when a tree-sitter language is
given) compiles every stanza pattern into the single combined query used at
match time.  The resulting :class:`RuleFile` is immutable and may be shared
by any number of concurrent runs; each call to :meth:`RuleFile.execute`
builds an independent :class:`~tsgraph.graph.Graph`.

Usage::

    rules = compile_rules(Path("python.tsg").read_text(), language=PY_LANGUAGE)
    graph = rules.execute(tree, source_bytes, ExecutionConfig(globals={"FILE": "a.py"}))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from tree_sitter import Language

from tsgraph import ast as A
from tsgraph.checker import check
from tsgraph.errors import StaticError
from tsgraph.matcher import ListQueryEngine, QueryEngine, TreeSitterQueryEngine, compile_query
from tsgraph.parser import parse
from tsgraph.runtime import ExecutionConfig, execute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleFile:
    """A parsed and validated rule file."""

    module: A.RuleModule
    language: Optional[Language] = field(default=None, compare=False)
    engine: Optional[QueryEngine] = field(default=None, compare=False, repr=False)
    functions: Mapping[str, A.FunctionDef] = field(default_factory=dict, compare=False, repr=False)
    shorthands: Mapping[str, A.AttributeShorthand] = field(default_factory=dict, compare=False, repr=False)

    @property
    def filename(self) -> str:
        return self.module.filename

    @property
    def stanzas(self) -> Tuple[A.Stanza, ...]:
        return self.module.stanzas

    @property
    def globals(self) -> Tuple[A.GlobalDecl, ...]:
        return self.module.globals

    @property
    def finish_blocks(self) -> Tuple[A.FinishBlock, ...]:
        return self.module.finish_blocks

    def query_engine(self, language: Optional[Language] = None) -> QueryEngine:
        """The combined query engine, compiled for *language* if needed."""
        if not self.stanzas:
            return ListQueryEngine()
        if self.engine is not None and (language is None or language == self.language):
            return self.engine
        if language is None:
            raise ValueError(
                f"{self.filename} was compiled without a language; "
                "pass language= or an engine"
            )
        return TreeSitterQueryEngine(language, [stanza.pattern.source for stanza in self.stanzas])

    def execute(
        self,
        tree: Any,
        source: Union[bytes, str],
        config: Optional[ExecutionConfig] = None,
        engine: Optional[QueryEngine] = None,
        language: Optional[Language] = None,
    ):
        """Run the rules over *tree* and return the finished graph.

        *tree* is a tree-sitter ``Tree`` or a root node, *source* the text it
        was parsed from.  See :func:`tsgraph.runtime.execute`.
        """
        return execute(self, tree, source, config=config, engine=engine, language=language)


def _validate_patterns(module: A.RuleModule, language: Language) -> None:
    for stanza in module.stanzas:
        try:
            compile_query(language, stanza.pattern.source)
        except StaticError as exc:
            raise exc.locate(stanza.pattern.loc)


def compile_rules(
    source: str,
    language: Optional[Language] = None,
    filename: str = "<rules>",
) -> RuleFile:
    """
    Parse and validate rule-file *source*.

    With a *language*, every stanza pattern is also checked by the query
    engine and the combined query is compiled once here.

    Raises :class:`~tsgraph.errors.RuleSyntaxError` or
    :class:`~tsgraph.errors.StaticError`.
    """
    module = parse(source, filename=filename)
    check(module)
    engine: Optional[QueryEngine] = None
    if language is not None and module.stanzas:
        _validate_patterns(module, language)
        engine = TreeSitterQueryEngine(language, [stanza.pattern.source for stanza in module.stanzas])
    functions: Dict[str, A.FunctionDef] = {function.name: function for function in module.functions}
    shorthands: Dict[str, A.AttributeShorthand] = {
        shorthand.name: shorthand for shorthand in module.shorthands
    }
    logger.debug(
        "Compiled %s: %d stanza(s), %d function(s), query %s",
        filename, len(module.stanzas), len(functions), "compiled" if engine is not None else "deferred",
    )
    return RuleFile(module, language, engine, functions, shorthands)


__all__ = ["RuleFile", "compile_rules"]
