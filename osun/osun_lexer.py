"""
Turns Osun source text into a flat token stream.

Token kinds:
  STRING   a double-quoted literal; `text` keeps the quotes, no escapes
  WORD     any other run of non-space characters (names, numbers, paths)
  OP       one of == != >= <= > < + = ( ) { } ,
  NEWLINE  a line break (statement separator)
  EOF      end of input
"""

from typing import List

from osun.osun_datatypes import Token

TWO_CHAR_OPS = ('==', '!=', '>=', '<=')
ONE_CHAR_OPS = '><+=(){},'
# Characters that always end a WORD token.
_WORD_BREAK = set(' \t\r\n"') | set(ONE_CHAR_OPS)


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    line = 1
    line_start = 0
    n = len(source)

    def add(kind, text, pos):
        tokens.append(Token(kind, text, line, pos - line_start + 1, pos))

    while i < n:
        ch = source[i]

        if ch == '\n':
            add('NEWLINE', '\n', i)
            i += 1
            line += 1
            line_start = i
            continue

        if ch in ' \t\r':
            i += 1
            continue

        # `//` opens a comment only at a token boundary, so `http://x` stays a word.
        if source.startswith('//', i) and (i == line_start or source[i - 1] in ' \t\r'):
            while i < n and source[i] != '\n':
                i += 1
            continue

        if ch == '"':
            close = source.find('"', i + 1)
            eol = source.find('\n', i + 1)
            if eol == -1:
                eol = n
            if close == -1 or close > eol:
                # Unterminated literal: keep the raw remainder of the line as a word.
                add('WORD', source[i:eol].rstrip(), i)
                i = eol
                continue
            add('STRING', source[i:close + 1], i)
            i = close + 1
            continue

        two = source[i:i + 2]
        if two in TWO_CHAR_OPS:
            add('OP', two, i)
            i += 2
            continue
        if ch in ONE_CHAR_OPS:
            add('OP', ch, i)
            i += 1
            continue

        start = i
        while i < n:
            c = source[i]
            if c in _WORD_BREAK:
                break
            if c == '!' and source.startswith('!=', i):
                break
            i += 1
        add('WORD', source[start:i], start)

    tokens.append(Token('EOF', '', line, n - line_start + 1, n))
    return tokens
