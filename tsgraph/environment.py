"""
tsgraph/environment.py
======================

Binding environment of the interpreter.

* ``Scope``        – one lexical block: a mapping name → :class:`Binding`
* ``Frame``        – the scopes of one stanza action, finish block or
                     function call, innermost last
* ``Environment``  – the global scope plus an explicit stack of frames
* ``ScopedStore``  – variables attached to syntax nodes (``@n.name``),
                     visible to every later action of the same run

Lookup walks the current frame from the innermost scope outward, then the
global scope; it never sees the frames of callers, so functions are
lexically closed over globals only.  A name may be declared once per scope;
inner scopes may shadow outer ones.

The frame stack is an explicit list rather than the host call stack, so the
configured maximum call depth is enforced deterministically.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from tsgraph.errors import (
    NO_SPAN,
    SourceSpan,
    StackOverflowError,
    UndefinedVariableError,
    VariableError,
)
from tsgraph.values import SyntaxNodeRef, Value

logger = logging.getLogger(__name__)


@dataclass
class Binding:
    value: Value
    mutable: bool = False
    loc: SourceSpan = NO_SPAN


@dataclass
class Scope:
    label: str = "block"
    bindings: Dict[str, Binding] = field(default_factory=dict)

    def declare(self, name: str, value: Value, mutable: bool = False, loc: SourceSpan = NO_SPAN) -> None:
        previous = self.bindings.get(name)
        if previous is not None:
            error = VariableError(f"Variable {name} is already defined in this {self.label}", span=loc)
            if previous.loc.is_known:
                error.add_note(f"{name} was defined here", previous.loc)
            raise error
        self.bindings[name] = Binding(value, mutable, loc)


def _assign(binding: Binding, name: str, value: Value, loc: SourceSpan) -> None:
    if not binding.mutable:
        error = VariableError(f"Cannot assign to immutable variable {name}", span=loc)
        if binding.loc.is_known:
            error.add_note(f"{name} was defined here", binding.loc)
        raise error
    binding.value = value


@dataclass
class Frame:
    label: str
    scopes: List[Scope] = field(default_factory=list)


class Environment:
    """Global scope plus a stack of frames of lexical scopes."""

    def __init__(self, max_call_depth: int = 64) -> None:
        self.globals = Scope("global scope")
        self.max_call_depth = max_call_depth
        self._frames: List[Frame] = []

    # -- Structure ---------------------------------------------------------
    @property
    def call_depth(self) -> int:
        """Number of active function frames."""
        return max(0, len(self._frames) - 1)

    @property
    def current(self) -> Scope:
        if not self._frames or not self._frames[-1].scopes:
            return self.globals
        return self._frames[-1].scopes[-1]

    @contextlib.contextmanager
    def frame(self, label: str, is_call: bool = False) -> Iterator[Scope]:
        """Enter a new frame with one fresh scope; popped on exit or error."""
        if is_call and len(self._frames) > self.max_call_depth:
            raise StackOverflowError(
                f"Maximum call depth {self.max_call_depth} exceeded calling {label}"
            )
        frame = Frame(label, [Scope(label)])
        self._frames.append(frame)
        try:
            yield frame.scopes[0]
        finally:
            self._frames.pop()

    @contextlib.contextmanager
    def scope(self, label: str = "block") -> Iterator[Scope]:
        """Enter a nested scope of the current frame."""
        if not self._frames:
            raise RuntimeError("No active frame")
        scopes = self._frames[-1].scopes
        scope = Scope(label)
        scopes.append(scope)
        try:
            yield scope
        finally:
            scopes.pop()

    # -- Variables ---------------------------------------------------------
    def _visible(self) -> Iterator[Scope]:
        if self._frames:
            yield from reversed(self._frames[-1].scopes)
        yield self.globals

    def find(self, name: str) -> Optional[Binding]:
        for scope in self._visible():
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
        return None

    def lookup(self, name: str, loc: SourceSpan = NO_SPAN) -> Value:
        binding = self.find(name)
        if binding is None:
            raise UndefinedVariableError(f"Undefined variable {name}", span=loc)
        return binding.value

    def declare(self, name: str, value: Value, mutable: bool = False, loc: SourceSpan = NO_SPAN) -> None:
        self.current.declare(name, value, mutable, loc)

    def assign(self, name: str, value: Value, loc: SourceSpan = NO_SPAN) -> None:
        binding = self.find(name)
        if binding is None:
            raise UndefinedVariableError(f"Cannot assign to undefined variable {name}", span=loc)
        _assign(binding, name, value, loc)


class ScopedStore:
    """Variables attached to syntax nodes, keyed by ``(node id, name)``."""

    def __init__(self) -> None:
        self._bindings: Dict[Tuple[int, str], Binding] = {}

    def __len__(self) -> int:
        return len(self._bindings)

    def lookup(self, node: SyntaxNodeRef, name: str, loc: SourceSpan = NO_SPAN) -> Value:
        binding = self._bindings.get((node.id, name))
        if binding is None:
            raise UndefinedVariableError(f"Undefined scoped variable {name} on {node.display()}", span=loc)
        return binding.value

    def declare(
        self,
        node: SyntaxNodeRef,
        name: str,
        value: Value,
        mutable: bool = False,
        loc: SourceSpan = NO_SPAN,
    ) -> None:
        key = (node.id, name)
        previous = self._bindings.get(key)
        if previous is not None:
            error = VariableError(f"Scoped variable {name} is already defined on {node.display()}", span=loc)
            if previous.loc.is_known:
                error.add_note(f"{name} was defined here", previous.loc)
            raise error
        self._bindings[key] = Binding(value, mutable, loc)

    def assign(self, node: SyntaxNodeRef, name: str, value: Value, loc: SourceSpan = NO_SPAN) -> None:
        binding = self._bindings.get((node.id, name))
        if binding is None:
            raise UndefinedVariableError(
                f"Cannot assign to undefined scoped variable {name} on {node.display()}", span=loc
            )
        _assign(binding, name, value, loc)


__all__ = ["Binding", "Scope", "Frame", "Environment", "ScopedStore"]
