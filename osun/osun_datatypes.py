"""
Defines the core data types for the Osun language runtime.

This module provides the error hierarchy, the statement/expression nodes
produced by the parser, the execution Context that owns variable bindings,
the Namespace container used by the symbol table and the OsunHost base class.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Literal, Mapping, Optional
import collections.abc
import re

_NUMBER_RE = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_SPECIAL_FLOATS = {
    'inf': float('inf'), '+inf': float('inf'), '-inf': float('-inf'),
    'infinity': float('inf'), '+infinity': float('inf'), '-infinity': float('-inf'),
    'nan': float('nan'),
}


def parse_number(text: str) -> Optional[float]:
    """Parse a floating-point literal, or return None when `text` is not one."""
    if _NUMBER_RE.fullmatch(text):
        return float(text)
    return _SPECIAL_FLOATS.get(text.lower())


def to_number(value: Any) -> Optional[float]:
    """Numeric view of a Value: numbers and numeric strings convert, nothing else does."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_number(value)
    return None


class OsunError(Exception):
    """Base class for all errors raised by the Osun engine."""


class EvalError(OsunError):
    """An expression could not be evaluated to a Value."""


class PathNotFound(OsunError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key


class OsunSyntaxError(OsunError):
    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.line = line


# =================================================================
# Tokens
# =================================================================

@dataclass(frozen=True)
class Token:
    kind: str       # STRING | WORD | OP | NEWLINE | EOF
    text: str
    line: int
    col: int
    pos: int        # offset of the first character in the source

    @property
    def end(self) -> int:
        return self.pos + len(self.text)

    def is_op(self, *ops: str) -> bool:
        return self.kind == 'OP' and self.text in ops

    def is_word(self, *words: str) -> bool:
        return self.kind == 'WORD' and self.text in words


# =================================================================
# Statement and expression nodes
# =================================================================

@dataclass
class Expr:
    """An unevaluated expression: its tokens plus the exact source slice."""
    tokens: List[Token]
    text: str
    line: Optional[int] = None

    def __repr__(self):
        return f"Expr({self.text!r})"


class Stmt:
    line: Optional[int] = None


@dataclass
class Block(Stmt):
    statements: List[Stmt] = field(default_factory=list)
    line: Optional[int] = None

    def __len__(self):
        return len(self.statements)

    def __iter__(self):
        return iter(self.statements)


@dataclass
class LetStmt(Stmt):
    name: str
    expr: Expr
    line: Optional[int] = None


@dataclass
class PrintStmt(Stmt):
    expr: Expr
    line: Optional[int] = None


@dataclass
class IfStmt(Stmt):
    cond: Expr
    then_body: Block
    else_body: Optional[Block] = None
    line: Optional[int] = None


@dataclass
class CallStmt(Stmt):
    path: str
    args: List[Expr]
    line: Optional[int] = None


@dataclass
class UnknownStmt(Stmt):
    """A line that matches no statement shape; reported when executed."""
    text: str
    line: Optional[int] = None
    reason: str = "unknown command"


@dataclass
class Program:
    body: Block
    diagnostics: List[OsunSyntaxError] = field(default_factory=list)


# =================================================================
# Runtime containers
# =================================================================

class Namespace(collections.abc.Mapping):
    """A named, read-only group of callables (e.g. `db.insert`)."""

    def __init__(self, name: str, members: Optional[Mapping[str, Any]] = None):
        self.name = name
        self._members: Dict[str, Any] = dict(members or {})

    def __getitem__(self, key: str) -> Any:
        return self._members[key]

    def __iter__(self):
        return iter(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self):
        return f"<namespace {self.name}>"


class OsunHost:
    """Base class for Python objects handed to scripts (e.g. a server handle).

    Only methods marked with @osun_api_method are reachable from a script,
    under their camelCase names: `server.handle(...)` for `def handle`,
    `server.listenOn(...)` for `def listen_on`.
    """

    def __repr__(self):
        return f"<host {type(self).__name__}>"


class Context:
    """The variable store of one logical execution.

    Reads consult this context's own bindings first and then the read-only
    parent mapping. Writes always land in this context, so a forked context
    never mutates the state it was layered over.
    """

    def __init__(self, parent: Optional[Mapping[str, Any]] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent: Mapping[str, Any] = parent if parent is not None else MappingProxyType({})

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Context key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __getitem__(self, key: str) -> Any:
        if key in self.bindings:
            return self.bindings[key]
        if key in self.parent:
            return self.parent[key]
        raise KeyError(f"'{key}'")

    def __contains__(self, key: Any) -> bool:
        return key in self.bindings or key in self.parent

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def snapshot(self) -> Mapping[str, Any]:
        """A frozen, flattened view of everything visible from this context."""
        merged = dict(self.parent)
        merged.update(self.bindings)
        return MappingProxyType(merged)

    def fork(self) -> 'Context':
        return Context(parent=self.snapshot())

    def __repr__(self):
        return f"Context({self.bindings!r}, parent={len(self.parent)} names)"


@dataclass
class CallOutcome:
    """The result of one dispatch through the symbol table."""
    status: Literal['ok', 'arity-warning', 'type-error', 'not-found', 'error']
    value: Any = None
    message: Optional[str] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ('ok', 'arity-warning')
