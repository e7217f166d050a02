"""
Recursive-descent parser producing Osun statement trees.

The parser never fails on malformed input. Unrecognised lines become
UnknownStmt nodes that the interpreter reports when it reaches them, and
structural problems (a missing or unclosed brace) are collected in
Program.diagnostics while the affected block simply extends to the end of
its enclosing block.
"""

from typing import List, Optional

from osun.osun_datatypes import (
    Block, CallStmt, Expr, IfStmt, LetStmt, OsunSyntaxError, PrintStmt,
    Program, Stmt, Token, UnknownStmt,
)
from osun.osun_lexer import tokenize

# How _parse_statements treats a closing brace.
_TOP = 'top'        # stray `}` is skipped
_CLOSED = 'closed'  # `}` ends the block and is consumed
_OPEN = 'open'      # `}` ends the block but belongs to the enclosing one

# Deeper blocks are skipped with a diagnostic; parsing and running them both
# recurse once per level.
MAX_NESTING = 100


class Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0
        self.depth = 0
        self.diagnostics: List[OsunSyntaxError] = []

    def parse(self) -> Program:
        body = Block(self._parse_statements(_TOP), line=1)
        return Program(body, self.diagnostics)

    # ------------------------------------------------------------------
    # Token helpers

    def _peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.kind != 'EOF':
            self.pos += 1
        return tok

    def _skip_newlines(self):
        while self._peek().kind == 'NEWLINE':
            self._advance()

    def _at_statement_end(self, tok: Token) -> bool:
        return tok.kind in ('NEWLINE', 'EOF') or tok.is_op('{', '}')

    def _collect_run(self) -> List[Token]:
        """Consume tokens up to (not including) the end of the statement."""
        run = []
        while not self._at_statement_end(self._peek()):
            run.append(self._advance())
        return run

    def _slice(self, tokens: List[Token]) -> str:
        if not tokens:
            return ""
        return self.source[tokens[0].pos:tokens[-1].end]

    def _expr(self, tokens: List[Token], line: Optional[int]) -> Expr:
        return Expr(list(tokens), self._slice(tokens), tokens[0].line if tokens else line)

    def _error(self, message: str, line: Optional[int]):
        self.diagnostics.append(OsunSyntaxError(message, line))

    # ------------------------------------------------------------------
    # Blocks and statements

    def _parse_statements(self, mode: str, opened_at: Optional[int] = None) -> List[Stmt]:
        stmts: List[Stmt] = []
        while True:
            tok = self._peek()
            if tok.kind == 'NEWLINE':
                self._advance()
                continue
            if tok.kind == 'EOF':
                if mode == _CLOSED:
                    self._error(f"unclosed block opened on line {opened_at}", opened_at)
                return stmts
            if tok.is_op('}'):
                if mode == _TOP:
                    self._advance()
                    continue
                if mode == _CLOSED:
                    self._advance()
                return stmts
            stmt = self._parse_statement()
            if stmt is not None:
                stmts.append(stmt)

    def _parse_braced_block(self) -> Block:
        open_tok = self._advance()
        if self.depth >= MAX_NESTING:
            self._error(f"block nested deeper than {MAX_NESTING} levels skipped", open_tok.line)
            if not self._skip_nested(consume_close=True):
                self._error(f"unclosed block opened on line {open_tok.line}", open_tok.line)
            return Block([], line=open_tok.line)
        self.depth += 1
        try:
            return Block(self._parse_statements(_CLOSED, open_tok.line), line=open_tok.line)
        finally:
            self.depth -= 1

    def _parse_open_body(self, line: int) -> Block:
        """A brace-less body: runs to the end of the enclosing block."""
        if self.depth >= MAX_NESTING:
            self._error(f"block nested deeper than {MAX_NESTING} levels skipped", line)
            self._skip_nested(consume_close=False)
            return Block([], line=line)
        self.depth += 1
        try:
            return Block(self._parse_statements(_OPEN), line=line)
        finally:
            self.depth -= 1

    def _skip_nested(self, consume_close: bool) -> bool:
        """Discard tokens up to the `}` closing the current block; False at EOF."""
        depth = 0
        while True:
            tok = self._peek()
            if tok.kind == 'EOF':
                return False
            if tok.is_op('{'):
                depth += 1
            elif tok.is_op('}'):
                if depth == 0:
                    if consume_close:
                        self._advance()
                    return True
                depth -= 1
            self._advance()

    def _parse_statement(self) -> Optional[Stmt]:
        tok = self._peek()
        if tok.is_op('{'):
            return self._parse_braced_block()
        if tok.is_word('let'):
            return self._parse_let()
        if tok.is_word('print') and self._peek(1).is_op('('):
            return self._parse_print()
        if tok.is_word('if'):
            return self._parse_if()
        return self._parse_call()

    def _parse_let(self) -> Stmt:
        run = self._collect_run()
        line = run[0].line
        eq = next((i for i, t in enumerate(run) if i > 0 and t.is_op('=')), None)
        if eq is None or eq == 1:
            return UnknownStmt(self._slice(run), line, reason="syntax error in let")
        name = self._slice(run[1:eq])
        return LetStmt(name, self._expr(run[eq + 1:], line), line)

    def _parse_print(self) -> Stmt:
        run = self._collect_run()
        line = run[0].line
        if len(run) < 3 or not run[-1].is_op(')'):
            return UnknownStmt(self._slice(run), line)
        return PrintStmt(self._expr(run[2:-1], line), line)

    def _parse_condition(self, line: int) -> Expr:
        cond_tokens = self._collect_run()
        # Tolerate `if (a > b) {`
        if len(cond_tokens) >= 2 and cond_tokens[0].is_op('(') and cond_tokens[-1].is_op(')'):
            cond_tokens = cond_tokens[1:-1]
        return self._expr(cond_tokens, line)

    def _parse_if(self) -> Stmt:
        # An `else if` chain is built link by link, so its length costs no stack.
        head = prev = None
        else_line = None
        while True:
            if_tok = self._advance()
            stmt = IfStmt(self._parse_condition(if_tok.line), Block(), None, if_tok.line)
            if prev is None:
                head = stmt
            else:
                prev.else_body = Block([stmt], line=else_line)
            prev = stmt

            stmt.then_body, closed = self._parse_branch_body(if_tok.line, "if condition")
            if not (closed and self._else_follows()):
                return head
            self._skip_newlines()
            else_tok = self._advance()
            if not self._peek().is_word('if'):
                stmt.else_body, _ = self._parse_branch_body(else_tok.line, "else")
                return head
            else_line = else_tok.line

    def _parse_branch_body(self, line: int, what: str):
        """Parse `{ ... }`, allowing the brace on the following line."""
        if self._peek().kind == 'NEWLINE':
            self._skip_newlines()
        if self._peek().is_op('{'):
            return self._parse_braced_block(), True
        self._error(f"missing '{{' after {what}", line)
        return self._parse_open_body(line), False

    def _else_follows(self) -> bool:
        offset = 0
        while self._peek(offset).kind == 'NEWLINE':
            offset += 1
        return self._peek(offset).is_word('else')

    def _parse_call(self) -> Stmt:
        run = self._collect_run()
        line = run[0].line
        if (len(run) < 3 or run[0].kind != 'WORD'
                or not run[1].is_op('(') or not run[-1].is_op(')')):
            return UnknownStmt(self._slice(run), line)
        return CallStmt(run[0].text, self._split_args(run[2:-1], line), line)

    def _split_args(self, tokens: List[Token], line: int) -> List[Expr]:
        """Split on commas outside parentheses; quoted commas live inside STRING tokens."""
        if not tokens:
            return []
        groups: List[List[Token]] = [[]]
        depth = 0
        for tok in tokens:
            if tok.is_op('('):
                depth += 1
            elif tok.is_op(')'):
                depth = max(0, depth - 1)
            elif tok.is_op(',') and depth == 0:
                groups.append([])
                continue
            groups[-1].append(tok)
        if not groups[-1]:
            groups.pop()
        return [self._expr(g, line) for g in groups]


def parse(source: str) -> Program:
    return Parser(source).parse()
