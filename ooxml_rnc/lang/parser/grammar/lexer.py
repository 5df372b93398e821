"""Lexical analyzer (tokenizer) for RELAX NG Compact Syntax.

Converts source text into a stream of tokens for parsing.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Union

from ooxml_rnc.ast.source_location import SourceSpan
from ooxml_rnc.errors import LexError


class TokenKind(Enum):
    """Coarse token categories."""

    IDENTIFIER = auto()
    PREFIXED_NAME = auto()
    KEYWORD = auto()
    OPERATOR = auto()
    LITERAL = auto()
    PUNCTUATION = auto()
    EOF = auto()


class TokenType(Enum):
    """Token types for RELAX NG Compact."""

    # Names and literals
    IDENTIFIER = auto()
    PREFIXED_NAME = auto()  # ns:local
    NS_NAME = auto()  # ns:*
    LITERAL = auto()

    # Keywords
    ATTRIBUTE = auto()
    DATATYPES = auto()
    DEFAULT = auto()
    DIV = auto()
    ELEMENT = auto()
    EMPTY = auto()
    EXTERNAL = auto()
    GRAMMAR = auto()
    INCLUDE = auto()
    INHERIT = auto()
    LIST = auto()
    MIXED = auto()
    NAMESPACE = auto()
    NOT_ALLOWED = auto()
    PARENT = auto()
    START = auto()
    STRING = auto()
    TEXT = auto()
    TOKEN = auto()

    # Operators
    ASSIGN = auto()
    CHOICE_ASSIGN = auto()
    INTERLEAVE_ASSIGN = auto()
    PIPE = auto()
    AMPERSAND = auto()
    COMMA = auto()
    QUESTION = auto()
    STAR = auto()
    PLUS = auto()
    MINUS = auto()
    TILDE = auto()

    # Punctuation
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()

    EOF = auto()

    @property
    def kind(self) -> TokenKind:
        return _TOKEN_KINDS[self]

    def describe(self) -> str:
        """Human-readable name used in parser diagnostics."""
        if self in _KEYWORD_SPELLING:
            return f"'{_KEYWORD_SPELLING[self]}'"
        if self in _SYMBOL_SPELLING:
            return f"'{_SYMBOL_SPELLING[self]}'"
        return self.name.lower().replace("_", " ")


@dataclass(frozen=True)
class Token:
    """A single token with position information."""

    type: TokenType
    value: str
    span: SourceSpan

    @property
    def kind(self) -> TokenKind:
        return self.type.kind

    @property
    def line(self) -> int:
        return self.span.line

    @property
    def column(self) -> int:
        return self.span.column

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


# Keyword mapping
KEYWORDS: Dict[str, TokenType] = {
    "attribute": TokenType.ATTRIBUTE,
    "datatypes": TokenType.DATATYPES,
    "default": TokenType.DEFAULT,
    "div": TokenType.DIV,
    "element": TokenType.ELEMENT,
    "empty": TokenType.EMPTY,
    "external": TokenType.EXTERNAL,
    "grammar": TokenType.GRAMMAR,
    "include": TokenType.INCLUDE,
    "inherit": TokenType.INHERIT,
    "list": TokenType.LIST,
    "mixed": TokenType.MIXED,
    "namespace": TokenType.NAMESPACE,
    "notAllowed": TokenType.NOT_ALLOWED,
    "parent": TokenType.PARENT,
    "start": TokenType.START,
    "string": TokenType.STRING,
    "text": TokenType.TEXT,
    "token": TokenType.TOKEN,
}

_KEYWORD_SPELLING: Dict[TokenType, str] = {value: key for key, value in KEYWORDS.items()}

_TWO_CHAR_TOKENS: Dict[str, TokenType] = {
    "|=": TokenType.CHOICE_ASSIGN,
    "&=": TokenType.INTERLEAVE_ASSIGN,
}

_CHAR_TOKENS: Dict[str, TokenType] = {
    "=": TokenType.ASSIGN,
    "|": TokenType.PIPE,
    "&": TokenType.AMPERSAND,
    ",": TokenType.COMMA,
    "?": TokenType.QUESTION,
    "*": TokenType.STAR,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "~": TokenType.TILDE,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
}

_SYMBOL_SPELLING: Dict[TokenType, str] = {
    **{value: key for key, value in _CHAR_TOKENS.items()},
    **{value: key for key, value in _TWO_CHAR_TOKENS.items()},
}

_PUNCTUATION = {
    TokenType.LBRACE,
    TokenType.RBRACE,
    TokenType.LPAREN,
    TokenType.RPAREN,
    TokenType.LBRACKET,
    TokenType.RBRACKET,
}


def _classify(token_type: TokenType) -> TokenKind:
    if token_type in _KEYWORD_SPELLING:
        return TokenKind.KEYWORD
    if token_type in _PUNCTUATION:
        return TokenKind.PUNCTUATION
    if token_type in _SYMBOL_SPELLING:
        return TokenKind.OPERATOR
    if token_type in (TokenType.PREFIXED_NAME, TokenType.NS_NAME):
        return TokenKind.PREFIXED_NAME
    if token_type is TokenType.LITERAL:
        return TokenKind.LITERAL
    if token_type is TokenType.EOF:
        return TokenKind.EOF
    return TokenKind.IDENTIFIER


_TOKEN_KINDS: Dict[TokenType, TokenKind] = {member: _classify(member) for member in TokenType}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def decode_source(data: bytes, path: str = "") -> str:
    """Decode UTF-8 grammar bytes, reporting invalid bytes as a :class:`LexError`."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        prefix = data[: exc.start].decode("utf-8", errors="replace")
        line = prefix.count("\n") + 1
        column = len(prefix) - (prefix.rfind("\n") + 1) + 1
        raise LexError(
            f"Invalid UTF-8 byte 0x{data[exc.start]:02x}",
            span=SourceSpan(path, line, column, exc.start, 1),
        ) from exc


def _is_name_start(char: Optional[str]) -> bool:
    return char is not None and (char.isalpha() or char == "_")


def _is_name_char(char: Optional[str]) -> bool:
    return char is not None and (char.isalnum() or char in "_-.")


class Lexer:
    """Tokenizer for RELAX NG Compact source.

    Iterating a lexer re-tokenizes the source from the beginning, so a
    ``Lexer`` can be walked any number of times.
    """

    def __init__(self, source: Union[str, bytes], path: str = ""):
        """Initialize lexer with source code."""
        if isinstance(source, bytes):
            source = decode_source(source, path)
        if source.startswith("\ufeff"):
            source = source[1:]
        self.source = source
        self.path = path
        self._reset()

    def _reset(self) -> None:
        self.pos = 0
        self.line = 1
        self.column = 1
        self.offset = 0
        self.tokens: List[Token] = []
        # Documentation comments (``##``) keyed by the line they occupy.
        self.doc_comments: Dict[int, str] = {}

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokenize())

    def span_here(self, length: int = 0) -> SourceSpan:
        return SourceSpan(self.path, self.line, self.column, self.offset, length)

    def error(self, message: str, *, char: Optional[str] = None, span: Optional[SourceSpan] = None) -> LexError:
        """Create a lexer error."""
        return LexError(message, char=char, span=span or self.span_here(len(char.encode("utf-8")) if char else 0))

    def peek(self, offset: int = 0) -> Optional[str]:
        """Peek at character without consuming."""
        pos = self.pos + offset
        if pos < len(self.source):
            return self.source[pos]
        return None

    def advance(self) -> Optional[str]:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return None

        char = self.source[self.pos]
        self.pos += 1
        self.offset += len(char.encode("utf-8"))

        if char == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1

        return char

    def skip_whitespace(self) -> None:
        while self.peek() in (" ", "\t", "\r", "\n"):
            self.advance()

    def skip_comment(self) -> None:
        """Skip a ``#`` comment, recording ``##`` documentation lines."""
        line = self.line
        starts_line = not self.tokens or self.tokens[-1].line != line
        chars = []
        while self.peek() is not None and self.peek() != "\n":
            chars.append(self.advance())
        text = "".join(chars)
        if text.startswith("##") and starts_line:
            body = text.lstrip("#")
            if body.startswith(" "):
                body = body[1:]
            self.doc_comments[line] = body.rstrip()

    def read_escape(self, literal_span: SourceSpan) -> str:
        """Read a backslash escape inside a literal."""
        self.advance()  # backslash
        char = self.peek()
        if char is None:
            raise self.error("Unterminated string literal", span=literal_span)
        if char == "x" and self.peek(1) == "{":
            self.advance()
            self.advance()
            digits = []
            while self.peek() is not None and self.peek() != "}":
                digits.append(self.advance())
            if self.peek() is None:
                raise self.error("Unterminated string literal", span=literal_span)
            self.advance()
            try:
                return chr(int("".join(digits), 16))
            except ValueError:
                raise self.error(f"Invalid character escape \\x{{{''.join(digits)}}}", span=literal_span) from None
        self.advance()
        return _ESCAPES.get(char, char)

    def read_literal(self) -> str:
        """Read a single- or triple-quoted literal."""
        start = self.span_here(1)
        quote = self.advance()
        chars = []

        triple = self.peek() == quote and self.peek(1) == quote
        if triple:
            self.advance()
            self.advance()

        while True:
            char = self.peek()
            if char is None:
                raise self.error("Unterminated string literal", char=quote, span=start)
            if char == quote:
                if not triple:
                    self.advance()
                    break
                if self.peek(1) == quote and self.peek(2) == quote:
                    self.advance()
                    self.advance()
                    self.advance()
                    break
            if char == "\n" and not triple:
                raise self.error("Unterminated string literal", char=quote, span=start)
            if char == "\\":
                chars.append(self.read_escape(start))
                continue
            chars.append(self.advance())

        return "".join(chars)

    def read_name(self) -> str:
        chars = []
        while _is_name_char(self.peek()):
            chars.append(self.advance())
        return "".join(chars)

    def add_token(self, token_type: TokenType, value: str, start: SourceSpan) -> None:
        """Add a token spanning from ``start`` to the current position."""
        self.tokens.append(Token(
            type=token_type,
            value=value,
            span=SourceSpan(self.path, start.line, start.column, start.offset, self.offset - start.offset),
        ))

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source."""
        self._reset()
        while True:
            self.skip_whitespace()
            char = self.peek()
            if char is None:
                break

            if char == "#":
                self.skip_comment()
                continue

            start = self.span_here()

            # Literals
            if char in ('"', "'"):
                value = self.read_literal()
                self.add_token(TokenType.LITERAL, value, start)
                continue

            # Escaped identifier: \element
            if char == "\\":
                if not _is_name_start(self.peek(1)):
                    raise self.error(f"Unexpected character: {char!r}", char=char)
                self.advance()
                self.add_token(TokenType.IDENTIFIER, self.read_name(), start)
                continue

            # Identifiers, keywords and prefixed names
            if _is_name_start(char):
                name = self.read_name()
                if self.peek() == ":" and self.peek(1) == "*":
                    self.advance()
                    self.advance()
                    self.add_token(TokenType.NS_NAME, name, start)
                elif self.peek() == ":" and _is_name_start(self.peek(1)):
                    self.advance()
                    local = self.read_name()
                    self.add_token(TokenType.PREFIXED_NAME, f"{name}:{local}", start)
                else:
                    self.add_token(KEYWORDS.get(name, TokenType.IDENTIFIER), name, start)
                continue

            two_char = char + (self.peek(1) or "")
            if two_char in _TWO_CHAR_TOKENS:
                self.advance()
                self.advance()
                self.add_token(_TWO_CHAR_TOKENS[two_char], two_char, start)
                continue

            if char in _CHAR_TOKENS:
                self.advance()
                self.add_token(_CHAR_TOKENS[char], char, start)
                continue

            # Unknown character
            raise self.error(f"Unexpected character: {char!r}", char=char)

        self.add_token(TokenType.EOF, "", self.span_here())
        return self.tokens


def tokenize(source: Union[str, bytes], path: str = "") -> List[Token]:
    """Tokenize RELAX NG Compact source."""
    lexer = Lexer(source, path)
    return lexer.tokenize()


__all__ = ["Token", "TokenKind", "TokenType", "KEYWORDS", "Lexer", "decode_source", "tokenize"]
