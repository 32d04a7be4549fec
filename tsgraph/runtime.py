"""
tsgraph/runtime.py
==================

Execution engine: interprets stanza actions against pattern matches to build
a graph.

Architecture
------------
::

    ExecutionConfig  (caller-supplied globals, duplicate policy, call depth,
                      print sink)
          │
          ▼
    execute(rules, tree, source, config)
          │   binds globals, then for every match in query-engine order:
          ▼
    Interpreter ──► Environment (frames of lexical scopes, tsgraph.environment)
          │     ──► ScopedStore (variables attached to syntax nodes)
          │     ──► Graph       (append-only output, tsgraph.graph)
          ▼
    finish blocks, then Graph.freeze()

Statements are dispatched through a table keyed by AST node type, populated
with the ``@_register`` decorator.  Every statement handler returns a
:class:`Completion`: ``exit`` and ``return`` are explicit completion signals
threaded back through the block interpreter, never host exceptions.  Errors
are :class:`~tsgraph.errors.ExecutionError` subclasses; an error raised
without a location acquires the location of the statement being executed.

Each run owns all of its mutable state, so a :class:`~tsgraph.rules.RuleFile`
can be executed concurrently over many trees.
"""

from __future__ import annotations

import enum
import logging
import sys
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from tsgraph import ast as A
from tsgraph.builtins import BUILTIN_FUNCTIONS, compile_regex
from tsgraph.environment import Environment, ScopedStore
from tsgraph.errors import (
    ArgumentError,
    RegexError,
    StackOverflowError,
    TsgError,
    TypeMismatchError,
    UndefinedAttributeError,
    UndefinedFunctionError,
    UndefinedVariableError,
)
from tsgraph.graph import DuplicatePolicy, Graph
from tsgraph.matcher import Match, PatternMatcher, QueryEngine
from tsgraph.values import (
    EMPTY_LIST,
    NULL,
    UNBOUND,
    GraphNodeRef,
    Integer,
    Null,
    String,
    SyntaxNodeRef,
    Unbound,
    Value,
    ValueKind,
    as_bool,
    as_elements,
    as_graph_node,
    as_string,
    as_syntax_node,
    boolean,
    expect,
    from_python,
    make_list,
    make_set,
    print_text,
    to_text,
)

logger = logging.getLogger(__name__)

ROOT_NODE = "ROOT_NODE"


# ===================================================================== #
#  Configuration                                                         #
# ===================================================================== #

def _stderr_sink(text: str) -> None:
    print(text, file=sys.stderr)


@dataclass
class ExecutionConfig:
    """Caller-supplied settings of one run."""

    globals: Mapping[str, Any] = field(default_factory=dict)
    duplicates: DuplicatePolicy = DuplicatePolicy.STRICT
    max_call_depth: int = 64
    print_sink: Optional[Callable[[str], None]] = None

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.max_call_depth <= 0:
            warnings.append("max_call_depth is not positive; every function call will overflow")
        if not isinstance(self.duplicates, DuplicatePolicy):
            warnings.append(f"duplicates should be a DuplicatePolicy, got {self.duplicates!r}")
        for name in self.globals:
            if not name or any(ch.isspace() for ch in name):
                warnings.append(f"global name {name!r} can never be referenced")
        return warnings


# ===================================================================== #
#  Completion signals                                                    #
# ===================================================================== #

class Signal(enum.Enum):
    NORMAL = "normal"
    EXIT = "exit"
    RETURN = "return"


@dataclass(frozen=True)
class Completion:
    """How a statement or block finished."""

    signal: Signal = Signal.NORMAL
    value: Value = NULL

    @property
    def normal(self) -> bool:
        return self.signal is Signal.NORMAL


NORMAL = Completion()
EXIT = Completion(Signal.EXIT)


# ===================================================================== #
#  Dispatch tables                                                       #
# ===================================================================== #

_STATEMENTS: Dict[type, Callable[["Interpreter", Any], Completion]] = {}
_EXPRESSIONS: Dict[type, Callable[["Interpreter", Any], Value]] = {}


def _register(table: dict, node_type: type):
    """Decorator: register the handler of *node_type* in *table*."""

    def deco(fn):
        if node_type in table:
            raise ValueError(f"Duplicate handler for {node_type.__name__}")
        table[node_type] = fn
        return fn

    return deco


def _capture_variable(name: str) -> str:
    return "@" + name


def _regex_variable(group: Union[int, str]) -> str:
    return f"${group}"


# ===================================================================== #
#  Interpreter                                                           #
# ===================================================================== #

class Interpreter:
    """
    Interprets the statements of one rule file for one syntax tree.

    Usage::

        interp = Interpreter(rules, source_bytes, ExecutionConfig())
        interp.bind_globals(tree.root_node)
        interp.run_stanza(match)
        interp.run_finish_blocks()
    """

    def __init__(self, rules: Any, source: bytes, config: ExecutionConfig) -> None:
        self.rules = rules
        self.source = source
        self.config = config
        self.graph = Graph(config.duplicates)
        self.env = Environment(config.max_call_depth)
        self.scoped = ScopedStore()
        self._print = config.print_sink or _stderr_sink

    # -- Globals -------------------------------------------------------------
    def bind_globals(self, root: Any) -> None:
        supplied: Dict[str, Any] = {}
        if root is not None:
            supplied[ROOT_NODE] = SyntaxNodeRef.from_node(root)
        supplied.update(self.config.globals)

        declared = set()
        for decl in self.rules.globals:
            declared.add(decl.name)
            try:
                value = self._global_value(decl, supplied)
            except TsgError as exc:
                raise exc.locate(decl.loc)
            self.env.globals.declare(decl.name, value, loc=decl.loc)
        for name, raw in supplied.items():
            if name not in declared:
                self.env.globals.declare(name, from_python(raw, f"global {name}"))

    def _global_value(self, decl: A.GlobalDecl, supplied: Mapping[str, Any]) -> Value:
        if decl.name in supplied:
            value = from_python(supplied[decl.name], f"global {decl.name}")
            if decl.quantifier is A.CaptureQuantifier.MANY:
                expect(value, ValueKind.LIST, ValueKind.SET, context=f"global {decl.name}")
            return value
        if decl.default is not None:
            with self.env.frame(f"global {decl.name}"):
                return self.evaluate(decl.default)
        if decl.quantifier is A.CaptureQuantifier.OPTIONAL:
            return UNBOUND
        if decl.quantifier is A.CaptureQuantifier.MANY:
            return EMPTY_LIST
        raise UndefinedVariableError(f"Missing value for required global {decl.name}")

    # -- Stanzas and blocks ----------------------------------------------------
    def _bind_captures(self, scope, match: Match) -> None:
        for name, value in match.captures.items():
            scope.declare(_capture_variable(name), value)

    def guard_accepts(self, match: Match) -> bool:
        stanza = self.rules.stanzas[match.stanza_index]
        if stanza.guard is None:
            return True
        with self.env.frame("stanza guard") as scope:
            self._bind_captures(scope, match)
            try:
                return as_bool(self.evaluate(stanza.guard), "stanza guard")
            except TsgError as exc:
                raise exc.locate(stanza.guard.loc)

    def run_stanza(self, match: Match) -> Completion:
        stanza = self.rules.stanzas[match.stanza_index]
        logger.debug("Executing stanza %d (%s)", match.stanza_index, stanza.loc)
        with self.env.frame("stanza") as scope:
            self._bind_captures(scope, match)
            completion = self.run_block(stanza.statements)
        if completion.signal is Signal.EXIT:
            logger.debug("Stanza %d exited early", match.stanza_index)
        return completion

    def run_finish_blocks(self) -> None:
        for block in self.rules.finish_blocks:
            with self.env.frame("finish block"):
                self.run_block(block.statements)

    def run_block(self, statements: Sequence[A.Stmt]) -> Completion:
        for stmt in statements:
            completion = self.execute(stmt)
            if not completion.normal:
                return completion
        return NORMAL

    def execute(self, stmt: A.Stmt) -> Completion:
        handler = _STATEMENTS[type(stmt)]
        try:
            return handler(self, stmt)
        except TsgError as exc:
            raise exc.locate(stmt.loc)

    def evaluate(self, expr: A.Expr) -> Value:
        return _EXPRESSIONS[type(expr)](self, expr)

    # -- Variables -------------------------------------------------------------
    def _declare(self, target: A.Variable, value: Value, mutable: bool, loc) -> None:
        if isinstance(target, A.UnscopedVariable):
            self.env.declare(target.name, value, mutable, loc)
        else:
            node = as_syntax_node(self.evaluate(target.scope), f"scoped variable {target.name}")
            self.scoped.declare(node, target.name, value, mutable, loc)

    @_register(_STATEMENTS, A.DeclareStmt)
    def _exec_declare(self, stmt: A.DeclareStmt) -> Completion:
        self._declare(stmt.target, self.evaluate(stmt.value), stmt.mutable, stmt.loc)
        return NORMAL

    @_register(_STATEMENTS, A.AssignStmt)
    def _exec_assign(self, stmt: A.AssignStmt) -> Completion:
        value = self.evaluate(stmt.value)
        target = stmt.target
        if isinstance(target, A.UnscopedVariable):
            self.env.assign(target.name, value, stmt.loc)
        else:
            node = as_syntax_node(self.evaluate(target.scope), f"scoped variable {target.name}")
            self.scoped.assign(node, target.name, value, stmt.loc)
        return NORMAL

    # -- Graph statements --------------------------------------------------------
    @_register(_STATEMENTS, A.NodeStmt)
    def _exec_node(self, stmt: A.NodeStmt) -> Completion:
        self._declare(stmt.target, self.graph.add_node(), False, stmt.loc)
        return NORMAL

    @_register(_STATEMENTS, A.EdgeStmt)
    def _exec_edge(self, stmt: A.EdgeStmt) -> Completion:
        source = as_graph_node(self.evaluate(stmt.source), "edge source")
        sink = as_graph_node(self.evaluate(stmt.sink), "edge sink")
        self.graph.add_edge(source.index, sink.index, origin=str(stmt.loc))
        return NORMAL

    @_register(_STATEMENTS, A.AttrStmt)
    def _exec_attr(self, stmt: A.AttrStmt) -> Completion:
        node = as_graph_node(self.evaluate(stmt.node), "attr")

        def setter(name: str, value: Value) -> None:
            self.graph.set_node_attribute(node.index, name, value)

        for attribute in stmt.attributes:
            self._apply_attribute(attribute, setter)
        return NORMAL

    @_register(_STATEMENTS, A.EdgeAttrStmt)
    def _exec_edge_attr(self, stmt: A.EdgeAttrStmt) -> Completion:
        source = as_graph_node(self.evaluate(stmt.source), "edge source")
        sink = as_graph_node(self.evaluate(stmt.sink), "edge sink")
        self.graph.edge(source.index, sink.index)

        def setter(name: str, value: Value) -> None:
            self.graph.set_edge_attribute(source.index, sink.index, name, value)

        for attribute in stmt.attributes:
            self._apply_attribute(attribute, setter)
        return NORMAL

    def _apply_attribute(self, attribute: A.Attribute, setter: Callable[[str, Value], None]) -> None:
        value = self.evaluate(attribute.value)
        shorthand = self.rules.shorthands.get(attribute.name)
        if shorthand is None:
            setter(attribute.name, value)
            return
        with self.env.frame(f"attribute {shorthand.name}", is_call=True) as scope:
            scope.declare(shorthand.param, value)
            for expanded in shorthand.attributes:
                self._apply_attribute(expanded, setter)

    # -- Control flow ------------------------------------------------------------
    def _condition(self, condition: A.Condition) -> bool:
        value = self.evaluate(condition.value)
        if condition.kind is A.ConditionKind.SOME:
            return not isinstance(value, (Unbound, Null))
        if condition.kind is A.ConditionKind.NONE:
            return isinstance(value, (Unbound, Null))
        return as_bool(value, "condition")

    @_register(_STATEMENTS, A.IfStmt)
    def _exec_if(self, stmt: A.IfStmt) -> Completion:
        for arm in stmt.arms:
            if all(self._condition(condition) for condition in arm.conditions):
                with self.env.scope("if arm"):
                    return self.run_block(arm.body)
        if stmt.else_body is not None:
            with self.env.scope("else arm"):
                return self.run_block(stmt.else_body)
        return NORMAL

    @_register(_STATEMENTS, A.ForStmt)
    def _exec_for(self, stmt: A.ForStmt) -> Completion:
        for item in as_elements(self.evaluate(stmt.iterable), "for"):
            with self.env.scope("loop body") as scope:
                scope.declare(stmt.variable, item, loc=stmt.loc)
                completion = self.run_block(stmt.body)
            if not completion.normal:
                return completion
        return NORMAL

    @_register(_STATEMENTS, A.ScanStmt)
    def _exec_scan(self, stmt: A.ScanStmt) -> Completion:
        text = as_string(self.evaluate(stmt.value), "scan")
        regexes = [compile_regex(arm.regex) for arm in stmt.arms]
        position = 0
        while position <= len(text):
            best = None
            for index, regex in enumerate(regexes):
                found = regex.search(text, position)
                if found is not None and (best is None or found.start() < best[1].start()):
                    best = (index, found)
            if best is None:
                break
            index, found = best
            if found.end() == found.start():
                raise RegexError(
                    f"Scan regex {stmt.arms[index].regex!r} matched the empty string at offset {found.start()}",
                    span=stmt.arms[index].loc,
                )
            with self.env.scope("scan arm") as scope:
                for group in range(found.re.groups + 1):
                    matched = found.group(group)
                    scope.declare(_regex_variable(group), NULL if matched is None else String(matched))
                scope.declare(_regex_variable("start"), Integer(found.start()))
                scope.declare(_regex_variable("end"), Integer(found.end()))
                completion = self.run_block(stmt.arms[index].body)
            if not completion.normal:
                return completion
            position = found.end()
        return NORMAL

    @_register(_STATEMENTS, A.PrintStmt)
    def _exec_print(self, stmt: A.PrintStmt) -> Completion:
        self._print("".join(print_text(self.evaluate(value)) for value in stmt.values))
        return NORMAL

    @_register(_STATEMENTS, A.CallStmt)
    def _exec_call(self, stmt: A.CallStmt) -> Completion:
        self.evaluate(stmt.call)
        return NORMAL

    @_register(_STATEMENTS, A.ExitStmt)
    def _exec_exit(self, stmt: A.ExitStmt) -> Completion:
        return EXIT

    @_register(_STATEMENTS, A.ReturnStmt)
    def _exec_return(self, stmt: A.ReturnStmt) -> Completion:
        value = NULL if stmt.value is None else self.evaluate(stmt.value)
        return Completion(Signal.RETURN, value)

    # -- Expressions -------------------------------------------------------------
    @_register(_EXPRESSIONS, A.NullLiteral)
    def _eval_null(self, expr: A.NullLiteral) -> Value:
        return NULL

    @_register(_EXPRESSIONS, A.BoolLiteral)
    def _eval_bool(self, expr: A.BoolLiteral) -> Value:
        return boolean(expr.value)

    @_register(_EXPRESSIONS, A.IntLiteral)
    def _eval_int(self, expr: A.IntLiteral) -> Value:
        return Integer(expr.value)

    @_register(_EXPRESSIONS, A.StringLiteral)
    def _eval_string(self, expr: A.StringLiteral) -> Value:
        return String(expr.value)

    @_register(_EXPRESSIONS, A.InterpolatedString)
    def _eval_interpolated(self, expr: A.InterpolatedString) -> Value:
        pieces = [
            part if isinstance(part, str) else to_text(self.evaluate(part), "interpolated string")
            for part in expr.parts
        ]
        return String("".join(pieces))

    @_register(_EXPRESSIONS, A.ListLiteral)
    def _eval_list(self, expr: A.ListLiteral) -> Value:
        return make_list(self.evaluate(element) for element in expr.elements)

    @_register(_EXPRESSIONS, A.SetLiteral)
    def _eval_set(self, expr: A.SetLiteral) -> Value:
        return make_set(self.evaluate(element) for element in expr.elements)

    @_register(_EXPRESSIONS, A.Comprehension)
    def _eval_comprehension(self, expr: A.Comprehension) -> Value:
        results: List[Value] = []
        for item in as_elements(self.evaluate(expr.iterable), "comprehension"):
            with self.env.scope("comprehension") as scope:
                scope.declare(expr.variable, item)
                if expr.condition is not None and not as_bool(
                    self.evaluate(expr.condition), "comprehension filter"
                ):
                    continue
                results.append(self.evaluate(expr.element))
        if expr.kind is A.ComprehensionKind.SET:
            return make_set(results)
        return make_list(results)

    @_register(_EXPRESSIONS, A.CaptureRef)
    def _eval_capture(self, expr: A.CaptureRef) -> Value:
        return self.env.lookup(_capture_variable(expr.name), expr.loc)

    @_register(_EXPRESSIONS, A.RegexCaptureRef)
    def _eval_regex_capture(self, expr: A.RegexCaptureRef) -> Value:
        binding = self.env.find(_regex_variable(expr.group))
        if binding is None:
            raise UndefinedVariableError(f"Scan match has no group ${expr.group}", span=expr.loc)
        return binding.value

    @_register(_EXPRESSIONS, A.UnscopedVariable)
    def _eval_variable(self, expr: A.UnscopedVariable) -> Value:
        return self.env.lookup(expr.name, expr.loc)

    @_register(_EXPRESSIONS, A.ScopedVariable)
    def _eval_scoped(self, expr: A.ScopedVariable) -> Value:
        base = self.evaluate(expr.scope)
        if isinstance(base, SyntaxNodeRef):
            return self.scoped.lookup(base, expr.name, expr.loc)
        if isinstance(base, GraphNodeRef):
            attributes = self.graph.node(base.index).attributes
            if expr.name not in attributes:
                raise UndefinedAttributeError(
                    f"{base.display()} has no attribute {expr.name}", span=expr.loc
                )
            return attributes[expr.name]
        raise TypeMismatchError(
            "syntax node or graph node", base.kind.value, f"access of .{expr.name}", span=expr.loc
        )

    @_register(_EXPRESSIONS, A.Conditional)
    def _eval_conditional(self, expr: A.Conditional) -> Value:
        if as_bool(self.evaluate(expr.condition), "conditional"):
            return self.evaluate(expr.then_expr)
        return self.evaluate(expr.else_expr)

    @_register(_EXPRESSIONS, A.Call)
    def _eval_call(self, expr: A.Call) -> Value:
        args = [self.evaluate(arg) for arg in expr.args]
        builtin = BUILTIN_FUNCTIONS.get(expr.function)
        if builtin is not None:
            return builtin(self, args)
        function = self.rules.functions.get(expr.function)
        if function is None:
            raise UndefinedFunctionError(f"Undefined function {expr.function}", span=expr.loc)
        if len(args) != len(function.params):
            raise ArgumentError(
                f"Function {function.name} expects {len(function.params)} argument(s), got {len(args)}"
            )
        try:
            with self.env.frame(function.name, is_call=True) as scope:
                for param, arg in zip(function.params, args):
                    scope.declare(param, arg)
                completion = self.run_block(function.statements)
        except RecursionError:
            raise StackOverflowError(
                f"Host recursion limit reached calling {function.name}"
            ) from None
        if completion.signal is Signal.RETURN:
            return completion.value
        return NULL


# ===================================================================== #
#  Entry point                                                           #
# ===================================================================== #

def execute(
    rules: Any,
    tree: Any,
    source: Union[bytes, str],
    config: Optional[ExecutionConfig] = None,
    engine: Optional[QueryEngine] = None,
    language: Optional[Any] = None,
) -> Graph:
    """
    Run compiled *rules* over *tree* and return the finished, frozen graph.

    *tree* is a tree-sitter ``Tree`` or a root node; *source* is the text it
    was parsed from (``str`` is encoded as UTF-8).  *engine* overrides the
    query engine; by default the rules' combined query is used, compiled
    for *language* (or the tree's own language) when the rules were compiled
    without one.

    Raises an :class:`~tsgraph.errors.ExecutionError` subclass at the first
    unrecoverable error; no partial graph is returned.
    """
    config = config or ExecutionConfig()
    for warning in config.validate():
        logger.warning("ExecutionConfig: %s", warning)
    if isinstance(source, str):
        source = source.encode("utf-8")
    root = getattr(tree, "root_node", tree)
    if engine is None:
        if language is None:
            language = getattr(tree, "language", None)
        engine = rules.query_engine(language)

    interpreter = Interpreter(rules, source, config)
    interpreter.bind_globals(root)

    matcher = PatternMatcher([stanza.pattern for stanza in rules.stanzas], engine)
    executed = exited = 0
    for match in matcher.matches(root, guard=interpreter.guard_accepts):
        completion = interpreter.run_stanza(match)
        executed += 1
        if completion.signal is Signal.EXIT:
            exited += 1
    interpreter.run_finish_blocks()

    graph = interpreter.graph
    graph.freeze()
    logger.info(
        "Executed %d match(es) (%d exited early) of %s: %d node(s), %d edge(s)",
        executed, exited, rules.filename, len(graph.nodes), len(graph.edges),
    )
    return graph


__all__ = [
    "ROOT_NODE",
    "ExecutionConfig",
    "Signal",
    "Completion",
    "Interpreter",
    "execute",
]
