"""RELAX NG Compact parser package.

Public API:
    parse_grammar(source, path) -> GrammarFile
    tokenize(source, path) -> list of tokens
    RncParser - The parser class

Errors:
    LexError, ParseError
"""

from typing import Union

from ooxml_rnc.ast import GrammarFile
from ooxml_rnc.errors import LexError, ParseError

from .grammar.lexer import Lexer, Token, TokenKind, TokenType, tokenize
from .parse import RncParser


def parse_grammar(source: Union[str, bytes], path: str = "") -> GrammarFile:
    """
    Parse RELAX NG Compact source into a raw :class:`GrammarFile`.

    Args:
        source: grammar text, or UTF-8 bytes
        path: file path used in spans and error messages

    Raises:
        LexError: invalid characters, invalid UTF-8, unterminated literals
        ParseError: the first malformed construct

    Example:
        ```python
        grammar = parse_grammar('start = element Foo { text }')
        grammar.components[0].name  # "#start"
        ```
    """
    parser = RncParser(source, path=path)
    return parser.parse()


__all__ = [
    "parse_grammar",
    "tokenize",
    "RncParser",
    "Lexer",
    "Token",
    "TokenKind",
    "TokenType",
    "LexError",
    "ParseError",
]
