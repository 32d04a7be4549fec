# tsgraph/ast.py
"""
Rule-file Abstract Syntax Tree node definitions.

Every node is a frozen dataclass that records the location where it was
written, so that later phases (validation, execution) can report precise
diagnostics.  Children are stored in tuples; a compiled rule file is never
mutated and can be shared between concurrent runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from tsgraph.errors import NO_SPAN, SourceSpan


# ── Enums ────────────────────────────────────────────────────────

class CaptureQuantifier(Enum):
    """Resolved multiplicity of a pattern capture."""

    ONE = "one"
    OPTIONAL = "optional"
    MANY = "many"


class ComprehensionKind(Enum):
    LIST = "list"
    SET = "set"


class ConditionKind(Enum):
    SOME = "some"
    NONE = "none"
    TEST = "test"


# ── Expressions ──────────────────────────────────────────────────

@dataclass(frozen=True)
class NullLiteral:
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class BoolLiteral:
    value: bool
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class IntLiteral:
    value: int
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class StringLiteral:
    value: str
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class InterpolatedString:
    """``f"..."``: literal text parts interleaved with expressions."""

    parts: Tuple[Union[str, Expr], ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ListLiteral:
    elements: Tuple[Expr, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class SetLiteral:
    elements: Tuple[Expr, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class Comprehension:
    kind: ComprehensionKind
    element: Expr
    variable: str
    iterable: Expr
    condition: Optional[Expr] = None
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class CaptureRef:
    name: str
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class RegexCaptureRef:
    """``$0`` .. ``$n``, ``$start`` or ``$end`` inside a scan arm."""

    group: Union[int, str]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class UnscopedVariable:
    name: str
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ScopedVariable:
    """``base.name``: a variable attached to a syntax node, or a graph-node
    attribute when read through a graph node."""

    scope: Expr
    name: str
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class Call:
    function: str
    args: Tuple[Expr, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class Conditional:
    condition: Expr
    then_expr: Expr
    else_expr: Expr
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


Variable = Union[UnscopedVariable, ScopedVariable]

Expr = Union[
    NullLiteral,
    BoolLiteral,
    IntLiteral,
    StringLiteral,
    InterpolatedString,
    ListLiteral,
    SetLiteral,
    Comprehension,
    CaptureRef,
    RegexCaptureRef,
    UnscopedVariable,
    ScopedVariable,
    Call,
    Conditional,
]


# ── Statements ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Attribute:
    name: str
    value: Expr
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class DeclareStmt:
    """``let v = e`` (immutable) or ``var v = e`` (mutable)."""

    target: Variable
    value: Expr
    mutable: bool = False
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class AssignStmt:
    target: Variable
    value: Expr
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class NodeStmt:
    target: Variable
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class EdgeStmt:
    source: Expr
    sink: Expr
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class AttrStmt:
    node: Expr
    attributes: Tuple[Attribute, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class EdgeAttrStmt:
    source: Expr
    sink: Expr
    attributes: Tuple[Attribute, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    value: Expr
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class IfArm:
    conditions: Tuple[Condition, ...]
    body: Tuple[Stmt, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class IfStmt:
    arms: Tuple[IfArm, ...]
    else_body: Optional[Tuple[Stmt, ...]] = None
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ForStmt:
    variable: str
    iterable: Expr
    body: Tuple[Stmt, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ScanArm:
    regex: str
    body: Tuple[Stmt, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ScanStmt:
    value: Expr
    arms: Tuple[ScanArm, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class PrintStmt:
    values: Tuple[Expr, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class CallStmt:
    call: Call
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ExitStmt:
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class ReturnStmt:
    value: Optional[Expr] = None
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


Stmt = Union[
    DeclareStmt,
    AssignStmt,
    NodeStmt,
    EdgeStmt,
    AttrStmt,
    EdgeAttrStmt,
    IfStmt,
    ForStmt,
    ScanStmt,
    PrintStmt,
    CallStmt,
    ExitStmt,
    ReturnStmt,
]


# ── Top-level items ──────────────────────────────────────────────

@dataclass(frozen=True)
class CaptureDecl:
    name: str
    quantifier: CaptureQuantifier


@dataclass(frozen=True)
class Pattern:
    """A structural query in the query engine's own syntax, plus the
    captures it declares."""

    source: str
    captures: Tuple[CaptureDecl, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)

    def capture(self, name: str) -> Optional[CaptureDecl]:
        for decl in self.captures:
            if decl.name == name:
                return decl
        return None

    @property
    def capture_names(self) -> Tuple[str, ...]:
        return tuple(decl.name for decl in self.captures)


@dataclass(frozen=True)
class Stanza:
    pattern: Pattern
    statements: Tuple[Stmt, ...]
    guard: Optional[Expr] = None
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class FinishBlock:
    statements: Tuple[Stmt, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class FunctionDef:
    name: str
    params: Tuple[str, ...]
    statements: Tuple[Stmt, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class GlobalDecl:
    name: str
    quantifier: CaptureQuantifier = CaptureQuantifier.ONE
    default: Optional[Expr] = None
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class AttributeShorthand:
    """``attribute name = param => attrs``."""

    name: str
    param: str
    attributes: Tuple[Attribute, ...]
    loc: SourceSpan = field(default=NO_SPAN, compare=False)


@dataclass(frozen=True)
class RuleModule:
    """A parsed (not yet validated) rule file."""

    stanzas: Tuple[Stanza, ...] = ()
    finish_blocks: Tuple[FinishBlock, ...] = ()
    functions: Tuple[FunctionDef, ...] = ()
    globals: Tuple[GlobalDecl, ...] = ()
    shorthands: Tuple[AttributeShorthand, ...] = ()
    filename: str = "<rules>"


__all__ = [
    "CaptureQuantifier",
    "ComprehensionKind",
    "ConditionKind",
    "NullLiteral",
    "BoolLiteral",
    "IntLiteral",
    "StringLiteral",
    "InterpolatedString",
    "ListLiteral",
    "SetLiteral",
    "Comprehension",
    "CaptureRef",
    "RegexCaptureRef",
    "UnscopedVariable",
    "ScopedVariable",
    "Call",
    "Conditional",
    "Variable",
    "Expr",
    "Attribute",
    "DeclareStmt",
    "AssignStmt",
    "NodeStmt",
    "EdgeStmt",
    "AttrStmt",
    "EdgeAttrStmt",
    "Condition",
    "IfArm",
    "IfStmt",
    "ForStmt",
    "ScanArm",
    "ScanStmt",
    "PrintStmt",
    "CallStmt",
    "ExitStmt",
    "ReturnStmt",
    "Stmt",
    "CaptureDecl",
    "Pattern",
    "Stanza",
    "FinishBlock",
    "FunctionDef",
    "GlobalDecl",
    "AttributeShorthand",
    "RuleModule",
]
