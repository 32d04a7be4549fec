# tsgraph/errors.py
"""
tsgraph Error Types and Reporting Module

This module provides the error handling infrastructure for the tsgraph
pipeline: compiling a rule file, matching its stanza patterns against a
syntax tree, and executing stanza actions to build a graph.

Architecture Overview:
─────────────────────
┌─────────────────────────────────────────────────────────────────────────────┐
│                          Error Hierarchy                                     │
├─────────────────────────────────────────────────────────────────────────────┤
│  TsgError (base)                                                            │
│  ├── CompileError          - fatal to the rule file                         │
│  │   ├── RuleSyntaxError   - malformed rule text                            │
│  │   └── StaticError       - post-parse validation failures                 │
│  └── ExecutionError        - fatal to the current run only                  │
│      ├── TypeMismatchError                                                  │
│      ├── CaptureArityError                                                  │
│      ├── DuplicateAttributeError / DuplicateEdgeError                       │
│      ├── UndefinedVariableError / UndefinedAttributeError                   │
│      ├── UndefinedEdgeError / UndefinedFunctionError                        │
│      ├── VariableError / ArgumentError / ReservedAttributeError             │
│      ├── StackOverflowError                                                 │
│      ├── RegexError                                                         │
│      └── AssertionFailedError                                               │
└─────────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Each error has a unique code following the pattern TSG-XXXX where XXXX is a
4-digit number in ranges:
  - 1000-1999: Syntax errors
  - 2000-2999: Static (validation) errors
  - 3000-3999: Runtime type and binding errors
  - 4000-4999: Runtime graph consistency errors
  - 5000-5999: Other runtime errors

Example Usage:
──────────────
    from tsgraph.errors import ExecutionError, SourceSpan

    try:
        graph = rules.execute(tree, source)
    except ExecutionError as exc:
        print(exc.to_gcc_format())
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorPhase(Enum):
    """
    Pipeline phase where the error occurred.

    Compile-phase errors are fatal to the rule file; runtime errors abort
    only the run for the current syntax tree.
    """

    SYNTAX = "syntax"        # Parsing the rule file
    STATIC = "static"        # Post-parse validation
    RUNTIME = "runtime"      # Matching and execution


class ErrorCode:
    """
    Structured error code for tsgraph errors.

    Error codes follow the pattern ``TSG-NNNN``; see the module docstring for
    the number ranges.
    """

    __slots__ = ("prefix", "number", "name", "phase")

    def __init__(self, number: int, name: str, phase: ErrorPhase, prefix: str = "TSG") -> None:
        self.prefix = prefix
        self.number = number
        self.name = name
        self.phase = phase

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class TsgErrorCodes:
    """Predefined error codes."""

    # ═══════════════════════════════════════════════════════════════════════════
    # SYNTAX ERRORS (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNEXPECTED_TEXT = ErrorCode(1000, "UNEXPECTED_TEXT", ErrorPhase.SYNTAX)
    INVALID_PATTERN = ErrorCode(1001, "INVALID_PATTERN", ErrorPhase.SYNTAX)
    INVALID_LITERAL = ErrorCode(1002, "INVALID_LITERAL", ErrorPhase.SYNTAX)
    INVALID_TARGET = ErrorCode(1003, "INVALID_TARGET", ErrorPhase.SYNTAX)

    # ═══════════════════════════════════════════════════════════════════════════
    # STATIC ERRORS (2000-2999)
    # ═══════════════════════════════════════════════════════════════════════════

    UNDEFINED_FUNCTION = ErrorCode(2000, "UNDEFINED_FUNCTION", ErrorPhase.STATIC)
    UNDEFINED_CAPTURE = ErrorCode(2001, "UNDEFINED_CAPTURE", ErrorPhase.STATIC)
    REDEFINED_SYMBOL = ErrorCode(2002, "REDEFINED_SYMBOL", ErrorPhase.STATIC)
    ARITY_MISMATCH = ErrorCode(2003, "ARITY_MISMATCH", ErrorPhase.STATIC)
    MISPLACED_STATEMENT = ErrorCode(2004, "MISPLACED_STATEMENT", ErrorPhase.STATIC)
    MISPLACED_EXPRESSION = ErrorCode(2005, "MISPLACED_EXPRESSION", ErrorPhase.STATIC)
    INVALID_QUERY = ErrorCode(2006, "INVALID_QUERY", ErrorPhase.STATIC)
    VARIABLE_MISUSE = ErrorCode(2007, "VARIABLE_MISUSE", ErrorPhase.STATIC)

    # ═══════════════════════════════════════════════════════════════════════════
    # RUNTIME TYPE AND BINDING ERRORS (3000-3999)
    # ═══════════════════════════════════════════════════════════════════════════

    TYPE_MISMATCH = ErrorCode(3000, "TYPE_MISMATCH", ErrorPhase.RUNTIME)
    CAPTURE_ARITY = ErrorCode(3001, "CAPTURE_ARITY", ErrorPhase.RUNTIME)
    UNDEFINED_VARIABLE = ErrorCode(3002, "UNDEFINED_VARIABLE", ErrorPhase.RUNTIME)
    UNDEFINED_RUNTIME_FUNCTION = ErrorCode(3003, "UNDEFINED_FUNCTION", ErrorPhase.RUNTIME)
    VARIABLE_ERROR = ErrorCode(3004, "VARIABLE_ERROR", ErrorPhase.RUNTIME)
    ARGUMENT_ERROR = ErrorCode(3005, "ARGUMENT_ERROR", ErrorPhase.RUNTIME)

    # ═══════════════════════════════════════════════════════════════════════════
    # RUNTIME GRAPH ERRORS (4000-4999)
    # ═══════════════════════════════════════════════════════════════════════════

    DUPLICATE_ATTRIBUTE = ErrorCode(4000, "DUPLICATE_ATTRIBUTE", ErrorPhase.RUNTIME)
    DUPLICATE_EDGE = ErrorCode(4001, "DUPLICATE_EDGE", ErrorPhase.RUNTIME)
    UNDEFINED_ATTRIBUTE = ErrorCode(4002, "UNDEFINED_ATTRIBUTE", ErrorPhase.RUNTIME)
    UNDEFINED_EDGE = ErrorCode(4003, "UNDEFINED_EDGE", ErrorPhase.RUNTIME)
    RESERVED_ATTRIBUTE = ErrorCode(4004, "RESERVED_ATTRIBUTE", ErrorPhase.RUNTIME)

    # ═══════════════════════════════════════════════════════════════════════════
    # OTHER RUNTIME ERRORS (5000-5999)
    # ═══════════════════════════════════════════════════════════════════════════

    STACK_OVERFLOW = ErrorCode(5000, "STACK_OVERFLOW", ErrorPhase.RUNTIME)
    REGEX_ERROR = ErrorCode(5001, "REGEX_ERROR", ErrorPhase.RUNTIME)
    ASSERTION_FAILED = ErrorCode(5002, "ASSERTION_FAILED", ErrorPhase.RUNTIME)
    EXECUTION_ERROR = ErrorCode(5999, "EXECUTION_ERROR", ErrorPhase.RUNTIME)


# ═══════════════════════════════════════════════════════════════════════════════
# SOURCE LOCATIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceSpan:
    """
    A position in a rule file.

    Lines and columns are 1-based; ``line == 0`` means the location is
    unknown.
    """

    file: str = ""
    line: int = 0
    column: int = 0

    @property
    def is_known(self) -> bool:
        return self.line > 0

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"

        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))

        return ":".join(parts)


#: Sentinel for errors raised outside any rule-file statement.
NO_SPAN = SourceSpan()


@dataclass
class ErrorNote:
    """
    Additional note attached to an error, such as where a symbol was first
    defined.
    """

    message: str
    span: Optional[SourceSpan] = None
    label: str = "note"

    def __str__(self) -> str:
        prefix = f"{self.label}: " if self.label else ""
        if self.span:
            return f"{self.span}: {prefix}{self.message}"
        return f"{prefix}{self.message}"


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class TsgError(Exception):
    """
    Base exception for all tsgraph errors.

    Carries a structured error code, the rule-file location, and optional
    notes, and can be rendered GCC-style or as JSON.
    """

    default_code: ErrorCode = TsgErrorCodes.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        span: Optional[SourceSpan] = None,
        code: Optional[ErrorCode] = None,
        notes: Optional[List[ErrorNote]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.span = span or NO_SPAN
        self.code = code or self.default_code
        self.notes: List[ErrorNote] = list(notes or [])

    @property
    def phase(self) -> ErrorPhase:
        return self.code.phase

    def add_note(self, message: str, span: Optional[SourceSpan] = None, label: str = "note") -> "TsgError":
        """Add a note to this error."""
        self.notes.append(ErrorNote(message=message, span=span, label=label))
        return self

    def locate(self, span: SourceSpan) -> "TsgError":
        """Attach *span* if the error does not carry a location yet."""
        if not self.span.is_known:
            self.span = span
        return self

    def to_gcc_format(self) -> str:
        """Format as a GCC-style error message."""
        lines = [f"{self.span}: error: {self.message} [{self.code}]"]
        for note in self.notes:
            lines.append(str(note))
        return "\n".join(lines)

    def to_json(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code.code,
            "name": self.code.name,
            "phase": self.code.phase.value,
            "message": self.message,
            "location": {
                "file": self.span.file,
                "line": self.span.line,
                "column": self.span.column,
            },
            "notes": [
                {
                    "message": note.message,
                    "label": note.label,
                    "location": str(note.span) if note.span else None,
                }
                for note in self.notes
            ],
        }

    def __str__(self) -> str:
        if self.span.is_known:
            return f"{self.span}: {self.message}"
        return self.message


# ─────────────────────────────────────────────────────────────────────────────
# Compile-time errors
# ─────────────────────────────────────────────────────────────────────────────

class CompileError(TsgError):
    """Errors detected before any graph construction starts."""

    default_code = TsgErrorCodes.UNEXPECTED_TEXT


class RuleSyntaxError(CompileError):
    """Malformed rule-file text."""

    default_code = TsgErrorCodes.UNEXPECTED_TEXT


class StaticError(CompileError):
    """A rule file that parses but fails validation."""

    default_code = TsgErrorCodes.UNDEFINED_FUNCTION


# ─────────────────────────────────────────────────────────────────────────────
# Runtime errors
# ─────────────────────────────────────────────────────────────────────────────

class ExecutionError(TsgError):
    """Errors that abort the run for the current syntax tree."""

    default_code = TsgErrorCodes.EXECUTION_ERROR


class TypeMismatchError(ExecutionError):
    """A value of the wrong kind was passed where another was required."""

    default_code = TsgErrorCodes.TYPE_MISMATCH

    def __init__(self, expected: str, actual: str, context: str = "", span: Optional[SourceSpan] = None) -> None:
        where = f" in {context}" if context else ""
        super().__init__(f"Expected {expected}, got {actual}{where}", span=span)
        self.expected = expected
        self.actual = actual


class CaptureArityError(ExecutionError):
    """A raw match produced a number of nodes its capture quantifier forbids."""

    default_code = TsgErrorCodes.CAPTURE_ARITY

    def __init__(self, capture: str, quantifier: str, count: int, span: Optional[SourceSpan] = None) -> None:
        super().__init__(
            f"Capture @{capture} is declared {quantifier} but matched {count} nodes",
            span=span,
        )
        self.capture = capture
        self.quantifier = quantifier
        self.count = count


class DuplicateAttributeError(ExecutionError):
    """An attribute was set twice on the same element with unequal values."""

    default_code = TsgErrorCodes.DUPLICATE_ATTRIBUTE

    def __init__(self, element: str, name: str, old: str, new: str, span: Optional[SourceSpan] = None) -> None:
        super().__init__(
            f"Duplicate attribute {name} on {element}: already {old}, cannot set to {new}",
            span=span,
        )
        self.element = element
        self.name = name


class DuplicateEdgeError(ExecutionError):
    """An edge with the same identity already exists."""

    default_code = TsgErrorCodes.DUPLICATE_EDGE

    def __init__(self, source: int, sink: int, span: Optional[SourceSpan] = None) -> None:
        super().__init__(f"Duplicate edge [graph node {source}] -> [graph node {sink}]", span=span)
        self.source = source
        self.sink = sink


class UndefinedVariableError(ExecutionError):
    default_code = TsgErrorCodes.UNDEFINED_VARIABLE


class UndefinedAttributeError(ExecutionError):
    default_code = TsgErrorCodes.UNDEFINED_ATTRIBUTE


class UndefinedEdgeError(ExecutionError):
    default_code = TsgErrorCodes.UNDEFINED_EDGE


class UndefinedFunctionError(ExecutionError):
    default_code = TsgErrorCodes.UNDEFINED_RUNTIME_FUNCTION


class VariableError(ExecutionError):
    """Redeclaration in the same scope, or assignment to an immutable variable."""

    default_code = TsgErrorCodes.VARIABLE_ERROR


class ArgumentError(ExecutionError):
    """A function was called with the wrong number of arguments."""

    default_code = TsgErrorCodes.ARGUMENT_ERROR


class ReservedAttributeError(ExecutionError):
    default_code = TsgErrorCodes.RESERVED_ATTRIBUTE


class StackOverflowError(ExecutionError):
    """The configured maximum call depth was exceeded."""

    default_code = TsgErrorCodes.STACK_OVERFLOW


class RegexError(ExecutionError):
    """A regex failed to compile, or a scan regex matched the empty string."""

    default_code = TsgErrorCodes.REGEX_ERROR


class AssertionFailedError(ExecutionError):
    default_code = TsgErrorCodes.ASSERTION_FAILED


__all__ = [
    "ErrorPhase",
    "ErrorCode",
    "TsgErrorCodes",
    "SourceSpan",
    "NO_SPAN",
    "ErrorNote",
    "TsgError",
    "CompileError",
    "RuleSyntaxError",
    "StaticError",
    "ExecutionError",
    "TypeMismatchError",
    "CaptureArityError",
    "DuplicateAttributeError",
    "DuplicateEdgeError",
    "UndefinedVariableError",
    "UndefinedAttributeError",
    "UndefinedEdgeError",
    "UndefinedFunctionError",
    "VariableError",
    "ArgumentError",
    "ReservedAttributeError",
    "StackOverflowError",
    "RegexError",
    "AssertionFailedError",
]
