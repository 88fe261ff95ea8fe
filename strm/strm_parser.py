"""
Tokenizer and recursive-descent parser for strm expressions.

`parse(text)` returns the raw (unprepared) AST. Binary operators are sugar for
named filters, e.g. `a+b` parses to `plus(a,b)` and `x:f` to `foreach` with
`x` as its source.
"""
import enum
from dataclasses import dataclass
from typing import Any, List, Optional

from strm.strm_errors import ParseError


class TokenClass(enum.Enum):
    IDENT = 'identifier'
    NUMBER = 'number'
    STRING = 'string'
    SPACE = 'whitespace'
    OPEN = 'open'
    CLOSE = 'close'
    OPER = 'operator'
    COMMA = 'comma'
    END = 'end'


@dataclass(frozen=True)
class Token:
    text: str
    cls: TokenClass
    pos: int
    value: Any = None

    def is_oper(self, *texts) -> bool:
        return self.cls is TokenClass.OPER and self.text in texts


OPEN_CHARS = '([{'
CLOSE_CHARS = ')]}'
OPER_CHARS = set('.:+-*/^~%@=<>&|#$!')
TWO_CHAR_OPERS = ('<>', '<=', '>=', '##')
SPACE_CHARS = ' \t\r\n'

# (filter, precedence); higher binds tighter
BINARY_OPS = {
    '=': ('equal', 1), '<>': ('ineq', 1),
    '<': ('lt', 1), '>': ('gt', 1), '<=': ('le', 1), '>=': ('ge', 1),
    '|': ('or', 2),
    '&': ('and', 3),
    '~': ('join', 4),
    '%': ('zip', 5),
    '+': ('plus', 6), '-': ('minus', 6),
    '*': ('times', 7), '/': ('div', 7),
    '^': ('pow', 8),
    '@': ('over', 9),
}
# runs of the same operator collapse into one multi-argument node
FLATTENED = {'=', '<', '>', '<=', '>=', '|', '&', '~', '%', '+', '-', '*', '/'}


def _is_ident_start(c: str) -> bool:
    return c.isalpha() or c == '_'


def _is_ident_char(c: str) -> bool:
    return c.isalnum() or c == '_'


def tokenize(text: str) -> List[Token]:
    """Split `text` into tokens, whitespace and comments included."""
    tokens = []
    pos = 0
    end = len(text)
    while pos < end:
        c = text[pos]
        start = pos
        if c in SPACE_CHARS or c == ';':
            while pos < end and (text[pos] in SPACE_CHARS or text[pos] == ';'):
                if text[pos] == ';':
                    while pos < end and text[pos] != '\n':
                        pos += 1
                else:
                    pos += 1
            tokens.append(Token(text[start:pos], TokenClass.SPACE, start))
        elif '0' <= c <= '9':
            while pos < end and '0' <= text[pos] <= '9':
                pos += 1
            tokens.append(Token(text[start:pos], TokenClass.NUMBER, start, int(text[start:pos])))
        elif _is_ident_start(c):
            while pos < end and _is_ident_char(text[pos]):
                pos += 1
            tokens.append(Token(text[start:pos], TokenClass.IDENT, start))
        elif c == '"':
            pos += 1
            chars = []
            while True:
                if pos >= end:
                    raise ParseError('unterminated string', start, end - start)
                ch = text[pos]
                if ch == '"':
                    pos += 1
                    break
                if ch == '\\':
                    pos += 1
                    if pos >= end:
                        raise ParseError('unterminated string', start, end - start)
                    ch = text[pos]
                chars.append(ch)
                pos += 1
            tokens.append(Token(text[start:pos], TokenClass.STRING, start, ''.join(chars)))
        elif c in OPEN_CHARS:
            tokens.append(Token(c, TokenClass.OPEN, start))
            pos += 1
        elif c in CLOSE_CHARS:
            tokens.append(Token(c, TokenClass.CLOSE, start))
            pos += 1
        elif c == ',':
            tokens.append(Token(c, TokenClass.COMMA, start))
            pos += 1
        elif c in OPER_CHARS:
            pair = text[pos:pos + 2]
            if pair in TWO_CHAR_OPERS:
                pos += 2
            else:
                pos += 1
            tokens.append(Token(text[start:pos], TokenClass.OPER, start))
        else:
            raise ParseError(f'unexpected character "{c}"', start)
    return tokens


class Parser:
    """Precedence-climbing parser over the non-whitespace tokens of one line."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = [t for t in tokenize(text) if t.cls is not TokenClass.SPACE]
        self.tokens.append(Token('', TokenClass.END, len(text)))
        self.index = 0

    def peek(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        tok = self.tokens[self.index]
        if tok.cls is not TokenClass.END:
            self.index += 1
        return tok

    def error(self, msg: str, tok: Token, length: Optional[int] = None):
        return ParseError(msg, tok.pos, len(tok.text) if length is None else length)

    def unexpected(self, tok: Token):
        if tok.cls is TokenClass.END:
            return self.error('unexpected end of input', tok)
        return self.error(f'unexpected "{tok.text}"', tok)

    def parse(self):
        if self.peek().cls is TokenClass.END:
            raise ParseError('empty input', 0)
        node = self.parse_expression()
        tok = self.peek()
        if tok.cls is TokenClass.CLOSE:
            raise self.error(f'unmatched "{tok.text}"', tok)
        if tok.cls is not TokenClass.END:
            raise self.unexpected(tok)
        return node

    # -- expressions -------------------------------------------------------

    def parse_expression(self):
        from strm.strm_datatypes import Atom
        tok = self.peek()
        if tok.is_oper('-'):
            # unary minus: `-x` reads as `0-x`
            return self.parse_binary(1, Atom(0))
        return self.parse_binary(1)

    def parse_binary(self, min_prec: int, lhs=None):
        from strm.strm_datatypes import Node
        if lhs is None:
            lhs = self.parse_postfix()
        while True:
            tok = self.peek()
            if tok.cls is not TokenClass.OPER or tok.text not in BINARY_OPS:
                return lhs
            ident, prec = BINARY_OPS[tok.text]
            if prec < min_prec:
                return lhs
            self.advance()
            if tok.text == '@':
                lhs = Node(ident, tok, lhs, self.parse_over_args())
            elif tok.text == '^':
                lhs = Node(ident, tok, None, [lhs, self.parse_binary(prec)])
            else:
                operands = [lhs, self.parse_binary(prec + 1)]
                if tok.text in FLATTENED:
                    while self.peek().is_oper(tok.text):
                        self.advance()
                        operands.append(self.parse_binary(prec + 1))
                lhs = Node(ident, tok, None, operands)

    def parse_over_args(self) -> list:
        tok = self.peek()
        if tok.cls is TokenClass.OPEN and tok.text == '(':
            self.advance()
            items = self.parse_list(')', tok)
            if not items:
                raise self.error('empty group', tok, self.tokens[self.index - 1].pos + 1 - tok.pos)
            if len(items) > 1:
                return items
            return [self.parse_postfix_tail(items[0])]
        return [self.parse_postfix()]

    def parse_postfix(self):
        return self.parse_postfix_tail(self.parse_primary())

    def parse_postfix_tail(self, node):
        from strm.strm_datatypes import Atom, Node
        while True:
            tok = self.peek()
            if tok.is_oper('.'):
                self.advance()
                target_tok = self.peek()
                target = self.parse_primary()
                if isinstance(target, Atom):
                    raise self.error('cannot chain to a literal', target_tok)
                if target.source is not None:
                    raise self.error('cannot chain to an expression with a source', target_tok)
                node = target.modify(source=node, allow_add_source=True)
            elif tok.is_oper(':'):
                self.advance()
                node = Node('foreach', tok, node, [self.parse_primary()])
            elif tok.cls is TokenClass.OPEN and tok.text == '[':
                self.advance()
                indices = self.parse_list(']', tok)
                if not indices:
                    raise self.error('empty index', tok, self.tokens[self.index - 1].pos + 1 - tok.pos)
                node = Node('part', tok, None, [node] + indices)
            else:
                return node

    def parse_list(self, close: str, open_tok: Token) -> list:
        """Comma-separated expressions up to and including `close`."""
        items = []
        tok = self.peek()
        if tok.cls is TokenClass.CLOSE:
            self.advance()
            if tok.text != close:
                raise self.error(f'mismatched "{tok.text}"', tok)
            return items
        while True:
            items.append(self.parse_expression())
            tok = self.advance()
            if tok.cls is TokenClass.COMMA:
                continue
            if tok.cls is TokenClass.CLOSE:
                if tok.text != close:
                    raise self.error(f'mismatched "{tok.text}"', tok)
                return items
            if tok.cls is TokenClass.END:
                raise self.error(f'unclosed "{open_tok.text}"', open_tok)
            raise self.unexpected(tok)

    def parse_primary(self):
        from strm.strm_datatypes import Atom, Block, Node
        tok = self.advance()
        if tok.cls is TokenClass.NUMBER:
            return Atom(tok.value, tok)
        if tok.cls is TokenClass.STRING:
            return Atom(tok.value, tok)
        if tok.cls is TokenClass.IDENT:
            nxt = self.peek()
            has_args = nxt.cls is TokenClass.OPEN and nxt.text == '('
            if tok.text in ('true', 'false') and not has_args:
                return Atom(tok.text == 'true', tok)
            if has_args:
                self.advance()
                return Node(tok.text, tok, None, self.parse_list(')', nxt))
            return Node(tok.text, tok)
        if tok.cls is TokenClass.OPEN:
            if tok.text == '(':
                items = self.parse_list(')', tok)
                if not items:
                    raise self.error('empty group', tok, 2)
                if len(items) > 1:
                    raise self.error('unexpected ","', tok)
                return items[0]
            if tok.text == '[':
                return Node('array', tok, None, self.parse_list(']', tok))
            body = self.parse_expression()
            close = self.advance()
            if close.cls is TokenClass.END:
                raise self.error('unclosed "{"', tok)
            if close.cls is not TokenClass.CLOSE:
                raise self.unexpected(close)
            if close.text != '}':
                raise self.error(f'mismatched "{close.text}"', close)
            nxt = self.peek()
            args = []
            if nxt.cls is TokenClass.OPEN and nxt.text == '(':
                self.advance()
                args = self.parse_list(')', nxt)
            return Block(body, tok, None, args)
        if tok.cls is TokenClass.OPER:
            if tok.text == '#':
                index = self._adjacent_number(tok)
                if index is not None:
                    return Node('#in', Token(tok.text + index.text, tok.cls, tok.pos), None,
                                [Atom(index.value, index)])
                return Node('#id', tok)
            if tok.text == '##':
                return Node('#in', tok)
            if tok.text == '$':
                index = self._adjacent_number(tok)
                if index is not None:
                    return Node('#history', Token(tok.text + index.text, tok.cls, tok.pos), None,
                                [Atom(index.value, index)])
                return Node('#history', tok)
        raise self.unexpected(tok)

    def _adjacent_number(self, tok: Token) -> Optional[Token]:
        nxt = self.peek()
        if nxt.cls is TokenClass.NUMBER and nxt.pos == tok.pos + len(tok.text):
            return self.advance()
        return None


def parse(text: str):
    """Parse one line of input into a raw AST."""
    return Parser(text).parse()
