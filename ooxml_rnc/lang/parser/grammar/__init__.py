"""Tokenizer for RELAX NG Compact source."""

from .lexer import KEYWORDS, Lexer, Token, TokenKind, TokenType, decode_source, tokenize

__all__ = ["KEYWORDS", "Lexer", "Token", "TokenKind", "TokenType", "decode_source", "tokenize"]
