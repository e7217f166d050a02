"""
The Osun execution engine: expression and condition evaluation plus the
block/statement walker.

Every statement runs to completion before the next one starts, and a failing
statement is reported as a diagnostic side effect without stopping the run.
"""

import os
import sys
import threading
from typing import Any, List, Optional

from osun.osun_datatypes import (
    Block, CallStmt, Context, EvalError, Expr, IfStmt, LetStmt, OsunError,
    PrintStmt, Program, Stmt, Token, UnknownStmt, parse_number, to_number,
)
from osun.osun_printer import Printer
from osun.osun_symbols import Dispatcher, SymbolTable

# Longer operators first so `>=` is never read as `>` followed by `=`.
COMPARISON_OPS = ('>=', '<=', '==', '!=', '>', '<')

_active = threading.local()


def current_evaluator() -> Optional['Evaluator']:
    """The evaluator running a program on this thread, if any."""
    return getattr(_active, 'evaluator', None)


class Evaluator:
    """The Osun execution engine."""

    def __init__(self, symbols: Optional[SymbolTable] = None, *, stream=None, strict_names: bool = False):
        self.symbols = symbols if symbols is not None else SymbolTable()
        self.dispatcher = Dispatcher(self.symbols, debug=self._dbg)
        self.printer = Printer()
        self.side_effects: List[dict] = []
        # When set, every side effect is also written to this stream as it happens.
        self.stream = stream
        # When True, a bare name that is neither bound nor numeric is an error
        # instead of evaluating to its own text.
        self.strict_names = strict_names
        self.current_node = None
        self._emit_lock = threading.Lock()

    def _dbg(self, *parts):
        if os.environ.get("OSUN_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    # ------------------------------------------------------------------
    # Side effects

    def emit(self, topics, message: str) -> None:
        topics = topics if isinstance(topics, list) else [topics]
        event = {"topics": topics, "message": message}
        with self._emit_lock:
            self.side_effects.append(event)
            if self.stream is not None:
                print(message, file=self.stream, flush=True)

    def report(self, message: str, line: Optional[int] = None) -> None:
        """Emit an engine diagnostic, prefixed with its source line when known."""
        prefix = f"line {line}: " if line is not None else ""
        self.emit(['diagnostic'], f"{prefix}{message}")

    # ------------------------------------------------------------------
    # Expressions

    def eval_expr(self, expr: Expr, context: Context) -> Any:
        base = expr.tokens[0].pos if expr.tokens else 0
        return self._eval_tokens(expr.tokens, expr.text, base, context)

    def _eval_tokens(self, tokens: List[Token], text: str, base: int, context: Context) -> Any:
        if not tokens:
            return None

        # 1. A single quoted literal
        if len(tokens) == 1 and tokens[0].kind == 'STRING':
            return tokens[0].text[1:-1]

        # 2. A bound variable (checked before number parsing)
        if text in context:
            return context[text]

        # 3. Concatenation over top-level `+`
        if any(t.is_op('+') for t in tokens):
            pieces = []
            for part in self._split_on_plus(tokens):
                sub_text = text[part[0].pos - base:part[-1].end - base] if part else ""
                sub_base = part[0].pos if part else base
                pieces.append(self.printer.pformat(self._eval_tokens(part, sub_text, sub_base, context)))
            return "".join(pieces)

        # 4. Numeric literal
        num = parse_number(text)
        if num is not None:
            return num

        # 5. Anything else is its own text
        if self.strict_names:
            raise EvalError(f"unresolved name: {text}")
        return text

    @staticmethod
    def _split_on_plus(tokens: List[Token]) -> List[List[Token]]:
        parts: List[List[Token]] = [[]]
        for tok in tokens:
            if tok.is_op('+'):
                parts.append([])
            else:
                parts[-1].append(tok)
        # `"a" +` has no right-hand operand; drop the empty tail.
        if len(parts) > 1 and not parts[-1]:
            parts.pop()
        return parts

    # ------------------------------------------------------------------
    # Conditions

    def eval_condition(self, expr: Expr, context: Context) -> bool:
        tokens = expr.tokens
        base = tokens[0].pos if tokens else 0
        for op in COMPARISON_OPS:
            idx = next((i for i, t in enumerate(tokens) if t.is_op(op)), None)
            if idx is None:
                continue
            left, right = tokens[:idx], tokens[idx + 1:]
            lv = self._eval_tokens(left, self._text_of(left, expr.text, base), base, context)
            rv = self._eval_tokens(right, self._text_of(right, expr.text, base), right[0].pos if right else base, context)
            result = self.compare(lv, rv, op)
            self._dbg("compare", repr(lv), op, repr(rv), "->", result)
            return result
        return self.truthy(self.eval_expr(expr, context))

    @staticmethod
    def _text_of(tokens: List[Token], text: str, base: int) -> str:
        if not tokens:
            return ""
        return text[tokens[0].pos - base:tokens[-1].end - base]

    def compare(self, a: Any, b: Any, op: str) -> bool:
        an, bn = to_number(a), to_number(b)
        if an is not None and bn is not None:
            if op == '>':
                return an > bn
            if op == '<':
                return an < bn
            if op == '>=':
                return an >= bn
            if op == '<=':
                return an <= bn
            if op == '==':
                return an == bn
            if op == '!=':
                return an != bn
        # Non-numeric operands only support (in)equality of their renderings.
        if op == '==':
            return self.printer.pformat(a) == self.printer.pformat(b)
        if op == '!=':
            return self.printer.pformat(a) != self.printer.pformat(b)
        return False

    @staticmethod
    def truthy(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value != ""
        return False

    # ------------------------------------------------------------------
    # Statements

    def run(self, program: Program, context: Context) -> Any:
        """Report parse diagnostics, then execute the program body."""
        previous = current_evaluator()
        _active.evaluator = self
        try:
            for err in program.diagnostics:
                self.report(f"syntax: {err}", err.line)
            return self.exec_block(program.body, context)
        finally:
            _active.evaluator = previous

    def exec_block(self, block: Block, context: Context) -> Any:
        result = None
        for stmt in block.statements:
            result = self.exec_stmt(stmt, context)
        return result

    def exec_stmt(self, stmt: Stmt, context: Context) -> Any:
        self.current_node = stmt
        try:
            return self._exec_stmt(stmt, context)
        except OsunError as e:
            self.report(str(e), self._failing_line(stmt))
        except Exception as e:
            self.report(f"InternalError: {type(e).__name__}: {e}", self._failing_line(stmt))
        return None

    def _failing_line(self, stmt: Stmt) -> Optional[int]:
        """Line of the node that was executing when `stmt` failed (an `else if` link, say)."""
        node = self.current_node
        return node.line if node is not None and node.line is not None else stmt.line

    def _exec_stmt(self, stmt: Stmt, context: Context) -> Any:
        if isinstance(stmt, LetStmt):
            value = self.eval_expr(stmt.expr, context)
            context[stmt.name] = value
            self._dbg("let", stmt.name, "=", repr(value))
            return value

        if isinstance(stmt, PrintStmt):
            value = self.eval_expr(stmt.expr, context)
            self.emit(['stdout'], self.printer.pformat(value))
            return None

        if isinstance(stmt, IfStmt):
            return self._exec_if(stmt, context)

        if isinstance(stmt, Block):
            return self.exec_block(stmt, context)

        if isinstance(stmt, CallStmt):
            return self._exec_call(stmt, context)

        if isinstance(stmt, UnknownStmt):
            self.report(f"{stmt.reason}: {stmt.text}", stmt.line)
            return None

        raise OsunError(f"unknown statement type: {type(stmt).__name__}")

    def _exec_if(self, stmt: IfStmt, context: Context) -> Any:
        # Follow `else if` links iteratively; only the chosen body recurses.
        while True:
            self.current_node = stmt
            cond = self.eval_condition(stmt.cond, context)
            self._dbg("if", stmt.cond.text, "->", cond)
            if cond:
                return self.exec_block(stmt.then_body, context)
            body = stmt.else_body
            if body is None:
                return None
            if len(body.statements) == 1 and isinstance(body.statements[0], IfStmt):
                stmt = body.statements[0]
                continue
            return self.exec_block(body, context)

    def _exec_call(self, stmt: CallStmt, context: Context) -> Any:
        values = [self.eval_expr(arg, context) for arg in stmt.args]
        outcome = self.dispatcher.dispatch(stmt.path, values, context)
        if outcome.warning:
            self.report(f"warning: {outcome.warning}", stmt.line)
        if outcome.status == 'not-found':
            self.report(f"unknown command: {stmt.path} ({outcome.message})", stmt.line)
        elif not outcome.ok:
            self.report(outcome.message, stmt.line)
        return outcome.value
