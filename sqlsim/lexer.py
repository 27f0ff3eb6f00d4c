"""
SQL Tokenizer - lexical analysis (SQL text -> tokens)

Used for whole statements and for the WHERE/HAVING/SET expression fragments
inside them. Comments are removed before tokenizing (see parser.strip_comments).
"""

from typing import List, Any
from dataclasses import dataclass
from enum import Enum, auto

from sqlsim.errors import ParseError


class TokenType(Enum):
    """Token types for SQL lexical analysis"""
    KEYWORD = auto()
    IDENTIFIER = auto()

    # Literals
    NUMBER = auto()
    STRING = auto()

    # Comparison operators
    EQ = auto()          # =
    NEQ = auto()         # != or <>
    LT = auto()          # <
    GT = auto()          # >
    LTE = auto()         # <=
    GTE = auto()         # >=

    # Arithmetic
    PLUS = auto()        # +
    MINUS = auto()       # -
    STAR = auto()        # *
    SLASH = auto()       # /

    # Punctuation
    LPAREN = auto()      # (
    RPAREN = auto()      # )
    COMMA = auto()       # ,
    SEMICOLON = auto()   # ;

    EOF = auto()


COMPARISON_TYPES = (
    TokenType.EQ, TokenType.NEQ, TokenType.LT,
    TokenType.GT, TokenType.LTE, TokenType.GTE,
)

ARITHMETIC_TYPES = (TokenType.PLUS, TokenType.MINUS, TokenType.STAR, TokenType.SLASH)

# Reserved words. Everything else made of letters (type names, KEY,
# REFERENCES, CASCADE, ...) stays an identifier so it can double as a column
# name; parsers match those case-insensitively by value.
KEYWORDS = {
    'SELECT', 'DISTINCT', 'FROM', 'WHERE', 'GROUP', 'BY', 'HAVING', 'ORDER',
    'ASC', 'DESC', 'LIMIT', 'OFFSET', 'AS', 'JOIN',
    'AND', 'OR', 'NOT', 'IN', 'BETWEEN', 'IS', 'LIKE', 'NULL', 'TRUE', 'FALSE',
    'INSERT', 'INTO', 'VALUES', 'UPDATE', 'SET', 'DELETE',
    'CREATE', 'TABLE', 'VIEW', 'DROP',
}


@dataclass
class Token:
    """Represents a single token in SQL input"""
    type: TokenType
    value: Any
    position: int  # Character position in input

    def is_keyword(self, *words: str) -> bool:
        return self.type == TokenType.KEYWORD and self.value in words

    def is_word(self, *words: str) -> bool:
        """Keyword or identifier spelled as one of words (case-insensitive)"""
        if self.type not in (TokenType.KEYWORD, TokenType.IDENTIFIER):
            return False
        return str(self.value).upper() in words

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


_SINGLE_CHAR = {
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    ',': TokenType.COMMA,
    ';': TokenType.SEMICOLON,
    '*': TokenType.STAR,
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '/': TokenType.SLASH,
    '=': TokenType.EQ,
    '<': TokenType.LT,
    '>': TokenType.GT,
}

_DOUBLE_CHAR = {
    '!=': TokenType.NEQ,
    '<>': TokenType.NEQ,
    '<=': TokenType.LTE,
    '>=': TokenType.GTE,
}


class Tokenizer:
    """Lexical analyzer - converts SQL text to tokens"""

    def __init__(self, sql: str):
        self.sql = sql
        self.position = 0
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """Convert SQL string to list of tokens"""
        while self.position < len(self.sql):
            char = self._current_char()

            if char.isspace():
                self.position += 1
                continue

            if char in ("'", '"'):
                self._read_string(char)
                continue

            if char.isdigit() or (char == '.' and self._peek().isdigit()):
                self._read_number()
                continue

            if char.isalpha() or char == '_':
                self._read_word()
                continue

            if self._try_operator():
                continue

            raise ParseError(
                f"Unexpected character '{char}' at position {self.position}: "
                f"{self._fragment()}"
            )

        self.tokens.append(Token(TokenType.EOF, None, self.position))
        return self.tokens

    def _current_char(self) -> str:
        if self.position >= len(self.sql):
            return '\0'
        return self.sql[self.position]

    def _peek(self, offset: int = 1) -> str:
        pos = self.position + offset
        if pos >= len(self.sql):
            return '\0'
        return self.sql[pos]

    def _fragment(self, start: int = None) -> str:
        start = self.position if start is None else start
        return self.sql[start:start + 20]

    def _read_string(self, quote: str):
        """Read a quoted literal; a doubled quote inside is an escaped quote"""
        start = self.position
        self.position += 1
        chars = []
        while True:
            if self.position >= len(self.sql):
                raise ParseError(
                    f"Unterminated string literal at position {start}: {self._fragment(start)}"
                )
            char = self.sql[self.position]
            if char == quote:
                if self._peek() == quote:
                    chars.append(quote)
                    self.position += 2
                    continue
                self.position += 1
                break
            chars.append(char)
            self.position += 1

        self.tokens.append(Token(TokenType.STRING, ''.join(chars), start))

    def _read_number(self):
        """Read integer or float literal"""
        start = self.position
        has_dot = False
        while self._current_char().isdigit() or self._current_char() == '.':
            if self._current_char() == '.':
                if has_dot:
                    raise ParseError(f"Invalid number format at position {start}: {self._fragment(start)}")
                has_dot = True
            self.position += 1

        # exponent part
        if self._current_char() in ('e', 'E') and (
                self._peek().isdigit() or (self._peek() in '+-' and self._peek(2).isdigit())):
            has_dot = True
            self.position += 2
            while self._current_char().isdigit():
                self.position += 1

        text = self.sql[start:self.position]
        if self._current_char().isalpha() or self._current_char() == '_':
            raise ParseError(f"Invalid number format at position {start}: {self._fragment(start)}")
        value = float(text) if has_dot else int(text)
        self.tokens.append(Token(TokenType.NUMBER, value, start))

    def _read_word(self):
        """Read keyword or (possibly dotted) identifier"""
        start = self.position
        while True:
            char = self._current_char()
            if char.isalnum() or char == '_':
                self.position += 1
            elif char == '.' and (self._peek().isalpha() or self._peek() in '_*'):
                # t.col stays one identifier; t.* is split by the parser
                if self._peek() == '*':
                    break
                self.position += 1
            else:
                break

        value = self.sql[start:self.position]
        if value.upper() in KEYWORDS:
            self.tokens.append(Token(TokenType.KEYWORD, value.upper(), start))
        else:
            self.tokens.append(Token(TokenType.IDENTIFIER, value, start))

    def _try_operator(self) -> bool:
        start = self.position
        pair = self.sql[start:start + 2]
        if pair in _DOUBLE_CHAR:
            self.tokens.append(Token(_DOUBLE_CHAR[pair], pair, start))
            self.position += 2
            return True

        char = self._current_char()
        if char in _SINGLE_CHAR:
            self.tokens.append(Token(_SINGLE_CHAR[char], char, start))
            self.position += 1
            return True

        # alias.* -> IDENTIFIER alias followed by '.' '*'
        if char == '.' and self._peek() == '*':
            self.tokens.append(Token(TokenType.STAR, '.*', start))
            self.position += 2
            return True

        return False


def tokenize(sql: str) -> List[Token]:
    return Tokenizer(sql).tokenize()


class TokenStream:
    """Cursor over a token list shared by the statement and expression parsers"""

    def __init__(self, tokens: List[Token], source: str = ''):
        self.tokens = tokens
        self.source = source
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def peek(self, offset: int = 1) -> Token:
        pos = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[pos]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.type != TokenType.EOF:
            self.index += 1
        return token

    def at_end(self) -> bool:
        return self.current.type == TokenType.EOF

    def fragment(self, token: Token = None) -> str:
        """Source text from token (default: current) for error messages"""
        token = token or self.current
        if token.type == TokenType.EOF:
            return '<end of input>'
        return self.source[token.position:token.position + 30].strip() or repr(token.value)

    def error(self, message: str, token: Token = None) -> ParseError:
        return ParseError(f"{message} near '{self.fragment(token)}'")

    def match(self, token_type: TokenType) -> bool:
        if self.current.type == token_type:
            self.advance()
            return True
        return False

    def match_keyword(self, *words: str) -> bool:
        if self.current.is_keyword(*words):
            self.advance()
            return True
        return False

    def match_word(self, *words: str) -> bool:
        if self.current.is_word(*words):
            self.advance()
            return True
        return False

    def expect(self, token_type: TokenType, what: str) -> Token:
        if self.current.type != token_type:
            raise self.error(f"Expected {what}")
        return self.advance()

    def expect_keyword(self, word: str) -> Token:
        if not self.current.is_keyword(word):
            raise self.error(f"Expected {word}")
        return self.advance()

    def expect_word(self, *words: str) -> Token:
        if not self.current.is_word(*words):
            raise self.error(f"Expected {' '.join(words)}")
        return self.advance()

    def expect_identifier(self, what: str = 'identifier') -> str:
        if self.current.type != TokenType.IDENTIFIER:
            raise self.error(f"Expected {what}")
        return self.advance().value
