"""
tsgraph/parser.py
=================

Rule-file parser.

Turns rule-file text into the frozen AST of :mod:`tsgraph.ast` by running
the PEG grammar of :mod:`tsgraph.grammar` and folding the parse tree with a
``parsimonious`` :class:`~parsimonious.nodes.NodeVisitor`.

Every AST node receives a :class:`~tsgraph.errors.SourceSpan` computed from
the parse-tree offset.  Malformed text raises
:class:`~tsgraph.errors.RuleSyntaxError` with the line and column of the
failure.

Usage::

    from tsgraph.parser import parse

    module = parse(text, filename="rules.tsg")
"""

from __future__ import annotations

import bisect
import logging
import re
from typing import Any, List, Tuple

from parsimonious.exceptions import ParseError
from parsimonious.nodes import Node, NodeVisitor

from tsgraph import ast as A
from tsgraph import patterns
from tsgraph.errors import RuleSyntaxError, SourceSpan, TsgErrorCodes
from tsgraph.grammar import GRAMMAR
from tsgraph.values import wrap_int

logger = logging.getLogger(__name__)

_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "t": "\t", "r": "\r", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


# ═══════════════════════════════════════════════════════════════════
#  LOCATIONS
# ═══════════════════════════════════════════════════════════════════

class _LineIndex:
    """Maps character offsets to 1-based (line, column) pairs."""

    def __init__(self, text: str, filename: str) -> None:
        self.filename = filename
        self._starts = [0] + [m.end() for m in re.finditer(r"\n", text)]

    def span(self, offset: int) -> SourceSpan:
        line = bisect.bisect_right(self._starts, offset) - 1
        return SourceSpan(self.filename, line + 1, offset - self._starts[line] + 1)


def _opt(value: Any) -> Any:
    """Result of an optional (``?``) sub-expression, or ``None`` if absent."""
    return value[0] if isinstance(value, list) else None


def _many(value: Any) -> List[Any]:
    """Results of a repeated (``*``) sub-expression."""
    return value if isinstance(value, list) else []


# ═══════════════════════════════════════════════════════════════════
#  PARSE TREE → AST
# ═══════════════════════════════════════════════════════════════════

class RuleBuilder(NodeVisitor):
    """Transforms the parsimonious parse tree into a :class:`RuleModule`."""

    grammar = GRAMMAR
    unwrapped_exceptions = (RuleSyntaxError,)

    def __init__(self, text: str, filename: str = "<rules>") -> None:
        self._filename = filename
        self._lines = _LineIndex(text, filename)

    def _span(self, node: Node) -> SourceSpan:
        return self._lines.span(node.start)

    def generic_visit(self, node, visited_children):
        return visited_children or node

    def visit__(self, node, visited_children):
        return None

    def visit_hspace(self, node, visited_children):
        return None

    # ─────────────────────────────────────────────────────────────
    # Top level
    # ─────────────────────────────────────────────────────────────

    def visit_file(self, node, visited_children):
        _, items = visited_children
        stanzas: List[A.Stanza] = []
        finish_blocks: List[A.FinishBlock] = []
        functions: List[A.FunctionDef] = []
        global_decls: List[A.GlobalDecl] = []
        shorthands: List[A.AttributeShorthand] = []
        for item in _many(items):
            if isinstance(item, A.Stanza):
                stanzas.append(item)
            elif isinstance(item, A.FinishBlock):
                finish_blocks.append(item)
            elif isinstance(item, A.FunctionDef):
                functions.append(item)
            elif isinstance(item, A.GlobalDecl):
                global_decls.append(item)
            else:
                shorthands.append(item)
        return A.RuleModule(
            stanzas=tuple(stanzas),
            finish_blocks=tuple(finish_blocks),
            functions=tuple(functions),
            globals=tuple(global_decls),
            shorthands=tuple(shorthands),
            filename=self._filename,
        )

    def visit_item(self, node, visited_children):
        (item,), _ = visited_children
        return item

    def visit_global_decl(self, node, visited_children):
        _, _, name, suffix = visited_children
        suffix = _opt(suffix)
        if isinstance(suffix, A.CaptureQuantifier):
            return A.GlobalDecl(name, quantifier=suffix, loc=self._span(node))
        return A.GlobalDecl(name, default=suffix, loc=self._span(node))

    def visit_global_suffix(self, node, visited_children):
        return visited_children[0]

    def visit_global_quantifier(self, node, visited_children):
        if node.text == "?":
            return A.CaptureQuantifier.OPTIONAL
        return A.CaptureQuantifier.MANY

    def visit_global_default(self, node, visited_children):
        return visited_children[3]

    def visit_global_name(self, node, visited_children):
        return node.text

    def visit_attribute_decl(self, node, visited_children):
        name, param, attributes = visited_children[2], visited_children[6], visited_children[10]
        return A.AttributeShorthand(name, param, attributes, loc=self._span(node))

    def visit_function_def(self, node, visited_children):
        name, params, body = visited_children[2], _opt(visited_children[6]), visited_children[10]
        return A.FunctionDef(name, tuple(params or ()), body, loc=self._span(node))

    def visit_parameters(self, node, visited_children):
        first, rest = visited_children
        return [first] + [name for _, _, _, name in _many(rest)]

    def visit_finish_block(self, node, visited_children):
        _, _, body = visited_children
        return A.FinishBlock(body, loc=self._span(node))

    def visit_stanza(self, node, visited_children):
        pattern, _, guard, body = visited_children
        return A.Stanza(pattern, body, guard=_opt(guard), loc=self._span(node))

    def visit_guard(self, node, visited_children):
        return visited_children[2]

    def visit_query_pattern(self, node, visited_children):
        span = self._span(node)
        try:
            captures = patterns.analyze(node.text)
        except RuleSyntaxError as exc:
            raise exc.locate(span)
        return A.Pattern(node.text, captures, loc=span)

    # ─────────────────────────────────────────────────────────────
    # Statements
    # ─────────────────────────────────────────────────────────────

    def visit_block(self, node, visited_children):
        return tuple(_many(visited_children[2]))

    def visit_statement(self, node, visited_children):
        (stmt,), _ = visited_children
        if isinstance(stmt, A.Call):
            return A.CallStmt(stmt, loc=stmt.loc)
        return stmt

    def _target(self, expr: A.Expr) -> A.Variable:
        if isinstance(expr, (A.UnscopedVariable, A.ScopedVariable)):
            return expr
        raise RuleSyntaxError(
            "Expected a variable",
            span=getattr(expr, "loc", None),
            code=TsgErrorCodes.INVALID_TARGET,
        )

    def visit_declare_stmt(self, node, visited_children):
        target, value = visited_children[2], visited_children[6]
        return A.DeclareStmt(
            self._target(target),
            value,
            mutable=node.text.startswith("var"),
            loc=self._span(node),
        )

    def visit_assign_stmt(self, node, visited_children):
        target, value = visited_children[2], visited_children[6]
        return A.AssignStmt(self._target(target), value, loc=self._span(node))

    def visit_node_stmt(self, node, visited_children):
        return A.NodeStmt(self._target(visited_children[2]), loc=self._span(node))

    def visit_edge_stmt(self, node, visited_children):
        source, sink = visited_children[2], visited_children[6]
        return A.EdgeStmt(source, sink, loc=self._span(node))

    def visit_edge_attr_stmt(self, node, visited_children):
        source, sink, attributes = visited_children[4], visited_children[8], visited_children[12]
        return A.EdgeAttrStmt(source, sink, attributes, loc=self._span(node))

    def visit_attr_stmt(self, node, visited_children):
        target, attributes = visited_children[4], visited_children[8]
        return A.AttrStmt(target, attributes, loc=self._span(node))

    def visit_attributes(self, node, visited_children):
        first, rest = visited_children
        return (first,) + tuple(attribute for _, _, _, attribute in _many(rest))

    def visit_attribute(self, node, visited_children):
        name, value = visited_children
        value = _opt(value)
        span = self._span(node)
        if value is None:
            return A.Attribute(name, A.BoolLiteral(True, loc=span), loc=span)
        return A.Attribute(name, value[3], loc=span)

    def visit_if_stmt(self, node, visited_children):
        _, _, conditions, _, body, elifs, else_body = visited_children
        arms = [A.IfArm(conditions, body, loc=self._span(node))] + _many(elifs)
        return A.IfStmt(tuple(arms), else_body=_opt(else_body), loc=self._span(node))

    def visit_elif_clause(self, node, visited_children):
        conditions, body = visited_children[3], visited_children[5]
        return A.IfArm(conditions, body, loc=self._span(node.children[1]))

    def visit_else_clause(self, node, visited_children):
        return visited_children[3]

    def visit_conditions(self, node, visited_children):
        first, rest = visited_children
        return (first,) + tuple(condition for _, _, _, condition in _many(rest))

    def visit_condition(self, node, visited_children):
        (value,) = visited_children
        if isinstance(value, A.Condition):
            return value
        return A.Condition(A.ConditionKind.TEST, value, loc=self._span(node))

    def visit_some_condition(self, node, visited_children):
        return A.Condition(A.ConditionKind.SOME, visited_children[2], loc=self._span(node))

    def visit_none_condition(self, node, visited_children):
        return A.Condition(A.ConditionKind.NONE, visited_children[2], loc=self._span(node))

    def visit_for_stmt(self, node, visited_children):
        variable, iterable, body = visited_children[2], visited_children[6], visited_children[8]
        return A.ForStmt(variable, iterable, body, loc=self._span(node))

    def visit_scan_stmt(self, node, visited_children):
        value, arms = visited_children[2], _many(visited_children[6])
        return A.ScanStmt(value, tuple(arms), loc=self._span(node))

    def visit_scan_arm(self, node, visited_children):
        regex, _, body, _ = visited_children
        return A.ScanArm(regex.value, body, loc=regex.loc)

    def visit_print_stmt(self, node, visited_children):
        _, _, first, rest = visited_children
        values = (first,) + tuple(value for _, _, _, value in _many(rest))
        return A.PrintStmt(values, loc=self._span(node))

    def visit_exit_stmt(self, node, visited_children):
        return A.ExitStmt(loc=self._span(node))

    def visit_return_stmt(self, node, visited_children):
        _, value = visited_children
        return A.ReturnStmt(_opt(value), loc=self._span(node))

    def visit_return_value(self, node, visited_children):
        return visited_children[1]

    # ─────────────────────────────────────────────────────────────
    # Expressions
    # ─────────────────────────────────────────────────────────────

    def visit_expr(self, node, visited_children):
        expr, fields = visited_children
        for name, span in _many(fields):
            expr = A.ScopedVariable(expr, name, loc=span)
        return expr

    def visit_field_access(self, node, visited_children):
        return visited_children[1], self._span(node)

    def visit_primary(self, node, visited_children):
        return visited_children[0]

    def visit_null_lit(self, node, visited_children):
        return A.NullLiteral(loc=self._span(node))

    def visit_true_lit(self, node, visited_children):
        return A.BoolLiteral(True, loc=self._span(node))

    def visit_false_lit(self, node, visited_children):
        return A.BoolLiteral(False, loc=self._span(node))

    def visit_integer(self, node, visited_children):
        value = int(node.text)
        if wrap_int(value) != value:
            raise RuleSyntaxError(
                f"Integer literal {node.text} is out of range",
                span=self._span(node),
                code=TsgErrorCodes.INVALID_LITERAL,
            )
        return A.IntLiteral(value, loc=self._span(node))

    def visit_string(self, node, visited_children):
        return A.StringLiteral(self._unescape(node.text[1:-1], node.start + 1), loc=self._span(node))

    def _unescape(self, text: str, offset: int) -> str:
        def replace(match: "re.Match[str]") -> str:
            try:
                return _ESCAPES[match.group(1)]
            except KeyError:
                raise RuleSyntaxError(
                    f"Invalid escape sequence \\{match.group(1)}",
                    span=self._lines.span(offset + match.start()),
                    code=TsgErrorCodes.INVALID_LITERAL,
                ) from None

        return _ESCAPE_RE.sub(replace, text)

    def visit_fstring(self, node, visited_children):
        parts: List[Any] = []
        for part in _many(visited_children[1]):
            if isinstance(part, str) and parts and isinstance(parts[-1], str):
                parts[-1] += part
            else:
                parts.append(part)
        return A.InterpolatedString(tuple(parts), loc=self._span(node))

    def visit_fstring_part(self, node, visited_children):
        return visited_children[0]

    def visit_fstring_escape(self, node, visited_children):
        return node.text[0]

    def visit_fstring_text(self, node, visited_children):
        return self._unescape(node.text, node.start)

    def visit_fstring_hole(self, node, visited_children):
        return visited_children[2]

    def visit_list_lit(self, node, visited_children):
        return A.ListLiteral(tuple(_opt(visited_children[2]) or ()), loc=self._span(node))

    def visit_set_lit(self, node, visited_children):
        return A.SetLiteral(tuple(_opt(visited_children[2]) or ()), loc=self._span(node))

    def visit_elements(self, node, visited_children):
        first, rest, _ = visited_children
        return [first] + [value for _, _, _, value in _many(rest)]

    def visit_list_comprehension(self, node, visited_children):
        return self._comprehension(A.ComprehensionKind.LIST, visited_children[2], node)

    def visit_set_comprehension(self, node, visited_children):
        return self._comprehension(A.ComprehensionKind.SET, visited_children[2], node)

    def _comprehension(self, kind: A.ComprehensionKind, body: Tuple[Any, ...], node: Node) -> A.Comprehension:
        element, variable, iterable, condition = body
        return A.Comprehension(kind, element, variable, iterable, condition, loc=self._span(node))

    def visit_comprehension_body(self, node, visited_children):
        element, variable, iterable = visited_children[0], visited_children[4], visited_children[8]
        return element, variable, iterable, _opt(visited_children[9])

    def visit_comprehension_filter(self, node, visited_children):
        return visited_children[3]

    def visit_capture(self, node, visited_children):
        return A.CaptureRef(visited_children[1], loc=self._span(node))

    def visit_regex_capture(self, node, visited_children):
        group = node.text[1:]
        return A.RegexCaptureRef(int(group) if group.isdigit() else group, loc=self._span(node))

    def visit_conditional(self, node, visited_children):
        condition, then_expr, else_expr = visited_children[4], visited_children[6], visited_children[8]
        return A.Conditional(condition, then_expr, else_expr, loc=self._span(node))

    def visit_call(self, node, visited_children):
        name, args = visited_children[2], _many(visited_children[3])
        return A.Call(name, tuple(arg for _, arg in args), loc=self._span(node))

    def visit_variable_ref(self, node, visited_children):
        return A.UnscopedVariable(node.text, loc=self._span(node))

    # ─────────────────────────────────────────────────────────────
    # Names
    # ─────────────────────────────────────────────────────────────

    def visit_name(self, node, visited_children):
        return node.text

    def visit_function_name(self, node, visited_children):
        return node.text

    def visit_field_name(self, node, visited_children):
        return node.text

    def visit_capture_name(self, node, visited_children):
        return node.text


# ═══════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ═══════════════════════════════════════════════════════════════════

def _describe(text: str, pos: int) -> str:
    if pos >= len(text):
        return "Unexpected end of input"
    snippet = text[pos:].split("\n", 1)[0][:30]
    return f"Unexpected text {snippet!r}"


def _failure_offset(text: str, pos: int) -> int:
    """Narrow a failure at top-level item *pos* to where the item stops parsing.

    ``Grammar.parse`` reports the end of the last complete item.  Matching the
    failing item on its own keeps the furthest offset any named rule reached,
    which lies inside the innermost construct that could not be completed.
    """
    try:
        GRAMMAR["item"].match(text, pos)
    except ParseError as exc:
        return max(exc.pos, pos)
    return pos


def parse(text: str, filename: str = "<rules>") -> A.RuleModule:
    """Parse rule-file *text* into a :class:`~tsgraph.ast.RuleModule`.

    Raises :class:`RuleSyntaxError` on malformed text, located at the point
    inside the failing item where parsing stopped.  No validation beyond the
    grammar happens here; see :mod:`tsgraph.checker`.
    """
    try:
        tree = GRAMMAR.parse(text)
    except ParseError as exc:
        pos = _failure_offset(text, exc.pos)
        raise RuleSyntaxError(
            _describe(text, pos), span=_LineIndex(text, filename).span(pos)
        ) from None
    module = RuleBuilder(text, filename).visit(tree)
    logger.debug(
        "Parsed %s: %d stanza(s), %d function(s), %d global(s)",
        filename, len(module.stanzas), len(module.functions), len(module.globals),
    )
    return module


__all__ = ["RuleBuilder", "parse"]
