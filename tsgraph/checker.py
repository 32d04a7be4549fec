"""
tsgraph/checker.py – Post-parse validation of a rule module.

Runs after parsing and before any tree is matched; every problem found here
is a :class:`~tsgraph.errors.StaticError` and makes the rule file unusable.

Two phases:

1. **Resolve** – collect the function table, global declarations and
   attribute shorthands, rejecting redefinitions and functions that shadow
   built-ins.
2. **Validate** – walk every stanza, function body, finish block, shorthand
   and global default with a :class:`_Context` describing what is in scope
   there: which captures exist (and with what quantifier), which local
   variables are declared in each enclosing block, whether we are inside a
   function and whether regex captures (``$n``) are available.

Checked rules:

* calls name a known function and pass an acceptable number of arguments;
* capture references name a capture of the enclosing stanza's pattern
  (functions, finish blocks, shorthands and global defaults have none);
* ``for`` over a capture needs a ``many`` capture; ``some``/``none`` on a
  capture needs an ``optional`` capture.  A local bound to a capture carries
  the capture's quantifier, so the same holds for ``let xs = @c`` followed by
  ``for x in xs``;
* a local is declared at most once per block, and ``set`` only targets a
  local declared with ``var``;
* ``return`` only inside functions, ``exit`` never inside functions;
* ``$0``/``$start``/... only inside scan arms.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from tsgraph import ast as A
from tsgraph.builtins import BUILTIN_FUNCTIONS
from tsgraph.errors import SourceSpan, StaticError, TsgErrorCodes

logger = logging.getLogger(__name__)


@dataclass
class _Local:
    mutable: bool
    quantifier: Optional[A.CaptureQuantifier]  # None = not known to hold a capture
    loc: SourceSpan


@dataclass(frozen=True)
class _Context:
    where: str
    captures: Optional[Dict[str, A.CaptureQuantifier]] = None
    in_function: bool = False
    in_scan: bool = False
    scopes: Tuple[Dict[str, _Local], ...] = field(default=())

    def nested(self, **changes) -> "_Context":
        """The context of a block nested in this one."""
        return replace(self, scopes=self.scopes + ({},), **changes)

    def local(self, name: str) -> Optional[_Local]:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def declare(self, name: str, local: _Local) -> None:
        scope = self.scopes[-1]
        previous = scope.get(name)
        if previous is not None:
            error = StaticError(
                f"Variable {name} is already defined in this block",
                span=local.loc,
                code=TsgErrorCodes.VARIABLE_MISUSE,
            )
            if previous.loc.is_known:
                error.add_note(f"{name} was defined here", previous.loc)
            raise error
        scope[name] = local


def _redefined(kind: str, name: str, loc: SourceSpan, first: SourceSpan) -> StaticError:
    error = StaticError(f"{kind} {name} is already defined", span=loc, code=TsgErrorCodes.REDEFINED_SYMBOL)
    if first.is_known:
        error.add_note(f"{name} was first defined here", first)
    return error


class RuleChecker:
    """Validates a :class:`~tsgraph.ast.RuleModule`; see the module docstring."""

    def __init__(self, module: A.RuleModule) -> None:
        self.module = module
        self.functions: Dict[str, A.FunctionDef] = {}
        self.globals: Dict[str, A.GlobalDecl] = {}
        self.shorthands: Dict[str, A.AttributeShorthand] = {}

    def check(self) -> None:
        self._resolve()
        self._validate()
        logger.debug(
            "Checked %d stanza(s), %d function(s), %d finish block(s)",
            len(self.module.stanzas), len(self.functions), len(self.module.finish_blocks),
        )

    # ─────────────────────────────────────────────────────────────
    # Phase 1: resolve
    # ─────────────────────────────────────────────────────────────

    def _resolve(self) -> None:
        for function in self.module.functions:
            if function.name in BUILTIN_FUNCTIONS:
                raise StaticError(
                    f"Function {function.name} shadows a built-in function",
                    span=function.loc,
                    code=TsgErrorCodes.REDEFINED_SYMBOL,
                )
            if function.name in self.functions:
                raise _redefined("Function", function.name, function.loc, self.functions[function.name].loc)
            seen: Dict[str, None] = {}
            for param in function.params:
                if param in seen:
                    raise StaticError(
                        f"Parameter {param} of {function.name} is repeated",
                        span=function.loc,
                        code=TsgErrorCodes.REDEFINED_SYMBOL,
                    )
                seen[param] = None
            self.functions[function.name] = function

        for decl in self.module.globals:
            if decl.name in self.globals:
                raise _redefined("Global", decl.name, decl.loc, self.globals[decl.name].loc)
            self.globals[decl.name] = decl

        for shorthand in self.module.shorthands:
            if shorthand.name in self.shorthands:
                raise _redefined(
                    "Attribute shorthand", shorthand.name, shorthand.loc, self.shorthands[shorthand.name].loc
                )
            self.shorthands[shorthand.name] = shorthand

    # ─────────────────────────────────────────────────────────────
    # Phase 2: validate
    # ─────────────────────────────────────────────────────────────

    def _validate(self) -> None:
        for decl in self.module.globals:
            if decl.default is not None:
                self._expr(decl.default, _Context(f"default of global {decl.name}").nested())
        for shorthand in self.module.shorthands:
            ctx = _Context(f"attribute shorthand {shorthand.name}").nested()
            ctx.declare(shorthand.param, _Local(False, None, shorthand.loc))
            for attribute in shorthand.attributes:
                self._expr(attribute.value, ctx)
        for function in self.module.functions:
            ctx = _Context(f"function {function.name}", in_function=True).nested()
            for param in function.params:
                ctx.declare(param, _Local(False, None, function.loc))
            self._block(function.statements, ctx)
        for stanza in self.module.stanzas:
            ctx = _Context(
                "stanza",
                captures={decl.name: decl.quantifier for decl in stanza.pattern.captures},
            ).nested()
            if stanza.guard is not None:
                self._expr(stanza.guard, ctx)
            self._block(stanza.statements, ctx)
        for block in self.module.finish_blocks:
            self._block(block.statements, _Context("finish block").nested())

    def _block(self, statements, ctx: _Context) -> None:
        for stmt in statements:
            self._stmt(stmt, ctx)

    def _stmt(self, stmt: A.Stmt, ctx: _Context) -> None:
        if isinstance(stmt, A.DeclareStmt):
            self._expr(stmt.value, ctx)
            self._declare(stmt.target, stmt.mutable, self._quantifier(stmt.value, ctx), stmt.loc, ctx)
        elif isinstance(stmt, A.AssignStmt):
            self._expr(stmt.value, ctx)
            self._assign(stmt.target, self._quantifier(stmt.value, ctx), stmt.loc, ctx)
        elif isinstance(stmt, A.NodeStmt):
            self._declare(stmt.target, False, None, stmt.loc, ctx)
        elif isinstance(stmt, A.EdgeStmt):
            self._expr(stmt.source, ctx)
            self._expr(stmt.sink, ctx)
        elif isinstance(stmt, A.AttrStmt):
            self._expr(stmt.node, ctx)
            self._attributes(stmt.attributes, ctx)
        elif isinstance(stmt, A.EdgeAttrStmt):
            self._expr(stmt.source, ctx)
            self._expr(stmt.sink, ctx)
            self._attributes(stmt.attributes, ctx)
        elif isinstance(stmt, A.IfStmt):
            for arm in stmt.arms:
                for condition in arm.conditions:
                    self._condition(condition, ctx)
                self._block(arm.body, ctx.nested())
            if stmt.else_body is not None:
                self._block(stmt.else_body, ctx.nested())
        elif isinstance(stmt, A.ForStmt):
            self._expect_capture(stmt.iterable, A.CaptureQuantifier.MANY, "for", ctx)
            self._expr(stmt.iterable, ctx)
            body = ctx.nested()
            body.declare(stmt.variable, _Local(False, None, stmt.loc))
            self._block(stmt.body, body)
        elif isinstance(stmt, A.ScanStmt):
            self._expr(stmt.value, ctx)
            for arm in stmt.arms:
                self._block(arm.body, ctx.nested(in_scan=True))
        elif isinstance(stmt, A.PrintStmt):
            for value in stmt.values:
                self._expr(value, ctx)
        elif isinstance(stmt, A.CallStmt):
            self._expr(stmt.call, ctx)
        elif isinstance(stmt, A.ExitStmt):
            if ctx.in_function:
                raise StaticError(
                    f"exit is not allowed in {ctx.where}",
                    span=stmt.loc,
                    code=TsgErrorCodes.MISPLACED_STATEMENT,
                )
        elif isinstance(stmt, A.ReturnStmt):
            if not ctx.in_function:
                raise StaticError(
                    f"return is not allowed in {ctx.where}",
                    span=stmt.loc,
                    code=TsgErrorCodes.MISPLACED_STATEMENT,
                )
            if stmt.value is not None:
                self._expr(stmt.value, ctx)
        else:
            raise TypeError(f"Unknown statement {type(stmt).__name__}")

    def _attributes(self, attributes, ctx: _Context) -> None:
        for attribute in attributes:
            self._expr(attribute.value, ctx)

    def _condition(self, condition: A.Condition, ctx: _Context) -> None:
        if condition.kind is not A.ConditionKind.TEST:
            self._expect_capture(condition.value, A.CaptureQuantifier.OPTIONAL, condition.kind.value, ctx)
        self._expr(condition.value, ctx)

    # -- Locals --------------------------------------------------------------

    def _quantifier(self, expr: A.Expr, ctx: _Context) -> Optional[A.CaptureQuantifier]:
        """Quantifier of the capture *expr* evaluates to, if that is known."""
        if isinstance(expr, A.CaptureRef):
            return (ctx.captures or {}).get(expr.name)
        if isinstance(expr, A.UnscopedVariable):
            local = ctx.local(expr.name)
            return local.quantifier if local is not None else None
        return None

    def _expect_capture(
        self, expr: A.Expr, quantifier: A.CaptureQuantifier, construct: str, ctx: _Context
    ) -> None:
        declared = self._quantifier(expr, ctx)
        if declared is None or declared is quantifier:
            return
        if isinstance(expr, A.CaptureRef):
            actual = f"@{expr.name} is {declared.value}"
        else:
            actual = f"{expr.name} holds a {declared.value} capture"
        raise StaticError(
            f"{construct} expects a {quantifier.value} capture, but {actual}",
            span=expr.loc,
            code=TsgErrorCodes.MISPLACED_EXPRESSION,
        )

    def _declare(
        self,
        target: A.Variable,
        mutable: bool,
        quantifier: Optional[A.CaptureQuantifier],
        loc: SourceSpan,
        ctx: _Context,
    ) -> None:
        if isinstance(target, A.ScopedVariable):
            self._expr(target.scope, ctx)
            return
        ctx.declare(target.name, _Local(mutable, quantifier, loc))

    def _assign(
        self,
        target: A.Variable,
        quantifier: Optional[A.CaptureQuantifier],
        loc: SourceSpan,
        ctx: _Context,
    ) -> None:
        if isinstance(target, A.ScopedVariable):
            self._expr(target.scope, ctx)
            return
        local = ctx.local(target.name)
        if local is None:
            raise StaticError(
                f"Cannot assign to {target.name}: it is not a local variable of {ctx.where}",
                span=loc,
                code=TsgErrorCodes.VARIABLE_MISUSE,
            )
        if not local.mutable:
            error = StaticError(
                f"Cannot assign to immutable variable {target.name}",
                span=loc,
                code=TsgErrorCodes.VARIABLE_MISUSE,
            )
            if local.loc.is_known:
                error.add_note(f"{target.name} was defined here (use var to make it mutable)", local.loc)
            raise error
        if local.quantifier is not quantifier:
            local.quantifier = None

    # -- Expressions -----------------------------------------------------------

    def _expr(self, expr: A.Expr, ctx: _Context) -> None:
        if isinstance(expr, (A.NullLiteral, A.BoolLiteral, A.IntLiteral, A.StringLiteral, A.UnscopedVariable)):
            return
        if isinstance(expr, A.InterpolatedString):
            for part in expr.parts:
                if not isinstance(part, str):
                    self._expr(part, ctx)
        elif isinstance(expr, (A.ListLiteral, A.SetLiteral)):
            for element in expr.elements:
                self._expr(element, ctx)
        elif isinstance(expr, A.Comprehension):
            self._expect_capture(expr.iterable, A.CaptureQuantifier.MANY, "comprehension", ctx)
            self._expr(expr.iterable, ctx)
            inner = ctx.nested()
            inner.declare(expr.variable, _Local(False, None, expr.loc))
            self._expr(expr.element, inner)
            if expr.condition is not None:
                self._expr(expr.condition, inner)
        elif isinstance(expr, A.CaptureRef):
            if ctx.captures is None:
                raise StaticError(
                    f"Capture @{expr.name} cannot be used in {ctx.where}",
                    span=expr.loc,
                    code=TsgErrorCodes.UNDEFINED_CAPTURE,
                )
            if expr.name not in ctx.captures:
                raise StaticError(
                    f"Undefined capture @{expr.name}",
                    span=expr.loc,
                    code=TsgErrorCodes.UNDEFINED_CAPTURE,
                )
        elif isinstance(expr, A.RegexCaptureRef):
            if not ctx.in_scan:
                raise StaticError(
                    f"${expr.group} can only be used inside a scan arm",
                    span=expr.loc,
                    code=TsgErrorCodes.MISPLACED_EXPRESSION,
                )
        elif isinstance(expr, A.ScopedVariable):
            self._expr(expr.scope, ctx)
        elif isinstance(expr, A.Call):
            self._call(expr)
            for arg in expr.args:
                self._expr(arg, ctx)
        elif isinstance(expr, A.Conditional):
            self._expr(expr.condition, ctx)
            self._expr(expr.then_expr, ctx)
            self._expr(expr.else_expr, ctx)
        else:
            raise TypeError(f"Unknown expression {type(expr).__name__}")

    def _call(self, call: A.Call) -> None:
        builtin = BUILTIN_FUNCTIONS.get(call.function)
        if builtin is not None:
            if not builtin.accepts(len(call.args)):
                raise StaticError(
                    f"({call.function}) expects {builtin.arity_text()} argument(s), got {len(call.args)}",
                    span=call.loc,
                    code=TsgErrorCodes.ARITY_MISMATCH,
                )
            return
        function = self.functions.get(call.function)
        if function is None:
            raise StaticError(
                f"Undefined function {call.function}",
                span=call.loc,
                code=TsgErrorCodes.UNDEFINED_FUNCTION,
            )
        if len(function.params) != len(call.args):
            raise StaticError(
                f"Function {call.function} expects {len(function.params)} argument(s), got {len(call.args)}",
                span=call.loc,
                code=TsgErrorCodes.ARITY_MISMATCH,
            ).add_note(f"{call.function} is defined here", function.loc)


def check(module: A.RuleModule) -> None:
    """Validate *module*, raising :class:`StaticError` on the first problem."""
    RuleChecker(module).check()


__all__ = ["RuleChecker", "check"]
