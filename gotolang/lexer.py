from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional


class GLError(Exception):
    """Base class for interpreter errors."""


class GLParseError(GLError):
    """Raised when scanning or parsing fails."""


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int
    literal: Optional[Any] = None


KEYWORDS = {
    "BEGIN",
    "END",
    "VECTOR",
    "OF",
    "GOTO",
    "READ",
    "WRITE",
    "SKIP",
    "SPACE",
    "TAB",
    "IF",
    "THEN",
    "ELSE",
    "LOOP",
    "INTEGER",
    "REAL",
    "MOD",
}

SYMBOLS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    ";": "SEMI",
    "(": "LPAREN",
    ")": "RPAREN",
    "[": "LBRACKET",
    "]": "RBRACKET",
    ",": "COMMA",
    "=": "EQ",
}

DIGITS = "0123456789"
OCTAL_DIGITS = "01234567"
HEX_DIGITS = "0123456789abcdefABCDEF"


class Lexer:
    def __init__(self, text: str, filename: str = "<string>") -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch in " \t\r\n":
                _advance()
                continue
            if ch == "{":
                self._consume_comment()
                continue
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch == ":":
                line, col = self.line, self.column
                _advance()
                if not self._eof and self._peek() == "=":
                    _advance()
                    tokens_append(Token("ASSIGN", ":=", line, col))
                else:
                    tokens_append(Token("COLON", ":", line, col))
                continue
            if ch == "<":
                tokens_append(self._consume_relation("<", {"=": "LE", ">": "NE"}, "LT"))
                continue
            if ch == ">":
                tokens_append(self._consume_relation(">", {"=": "GE"}, "GT"))
                continue
            if ch in DIGITS:
                tokens_append(self._consume_number())
                continue
            if ch == ".":
                # A '.' that does not start a real literal terminates the program text.
                if self._peek_at(1).isdigit():
                    tokens_append(self._consume_number())
                else:
                    _advance()
                continue
            if self._is_identifier_start(ch):
                tokens_append(self._consume_identifier())
                continue
            raise GLParseError(
                f"Unexpected character '{ch}' at {self.filename}:{self.line}:{self.column}"
            )
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _consume_comment(self) -> None:
        line, col = self.line, self.column
        text = self.text
        n = len(text)
        _advance = self._advance
        _advance()  # consume '{'
        while self.index < n and text[self.index] != "}":
            _advance()
        if self.index >= n:
            raise GLParseError(f"Unterminated comment at {self.filename}:{line}:{col}")
        _advance()  # consume '}'

    def _consume_relation(self, first: str, followers: dict, single: str) -> Token:
        line, col = self.line, self.column
        self._advance()
        if not self._eof and self._peek() in followers:
            second = self._peek()
            self._advance()
            return Token(followers[second], first + second, line, col)
        return Token(single, first, line, col)

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        start = self.index
        if self._peek() == "0" and self._peek_at(1) in ("b", "B", "x", "X"):
            return self._consume_radix_number(line, col)

        self._consume_digits(DIGITS)
        is_real = False
        if not self._eof and self._peek() == "." and self._peek_at(1).isdigit():
            is_real = True
            self._advance()  # consume '.'
            self._consume_digits(DIGITS)
        if not self._eof and self._peek() in ("e", "E"):
            is_real = True
            self._consume_exponent(line, col)

        raw = self.text[start:self.index]
        if is_real:
            return Token("REAL", raw, line, col, literal=float(raw))
        if len(raw) > 1 and raw[0] == "0" and all(d in OCTAL_DIGITS for d in raw[1:]):
            return Token("NUMBER", raw, line, col, literal=int(raw, 8))
        return Token("NUMBER", raw, line, col, literal=int(raw, 10))

    def _consume_radix_number(self, line: int, col: int) -> Token:
        start = self.index
        self._advance()  # consume '0'
        marker = self._peek().lower()
        self._advance()
        if marker == "b":
            digits = self._consume_digits("01")
            base, kind = 2, "binary"
        else:
            digits = self._consume_digits(HEX_DIGITS)
            base, kind = 16, "hexadecimal"
        if digits == "":
            raise GLParseError(f"Invalid {kind} number at {self.filename}:{line}:{col}")
        return Token("NUMBER", self.text[start:self.index], line, col, literal=int(digits, base))

    def _consume_exponent(self, line: int, col: int) -> None:
        self._advance()  # consume 'e'
        if not self._eof and self._peek() in "+-":
            self._advance()
        if self._consume_digits(DIGITS) == "":
            raise GLParseError(f"Invalid exponent at {self.filename}:{line}:{col}")

    def _consume_digits(self, allowed: str) -> str:
        digits: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] in allowed:
            digits.append(text[self.index])
            _advance()
        return "".join(digits)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and self._is_identifier_part(text[self.index]):
            chars.append(text[self.index])
            _advance()
        value = "".join(chars)
        upper = value.upper()
        if upper in KEYWORDS:
            return Token(upper, value, line, col)
        # name immediately followed by ':' (but not ':=') is a label
        if not self._eof and self._peek() == ":" and self._peek_at(1) != "=":
            _advance()
            return Token("LABEL", value, line, col)
        return Token("IDENT", value, line, col)

    def _is_identifier_start(self, ch: str) -> bool:
        return ch.isascii() and (ch.isalpha() or ch == "_")

    def _is_identifier_part(self, ch: str) -> bool:
        return ch.isascii() and (ch.isalnum() or ch == "_")

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _peek_at(self, offset: int) -> str:
        pos = self.index + offset
        if pos >= len(self.text):
            return ""
        return self.text[pos]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
