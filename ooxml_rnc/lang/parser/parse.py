"""Recursive descent parser for RELAX NG Compact Syntax.

The parser walks a token list produced by the lexer and builds the raw
syntax tree in :mod:`ooxml_rnc.ast`. It stops at the first malformed
construct; there is no error recovery.

State machine::

    Start -> HeaderDirectives* -> Body -> Done

The body is either grammar content (definitions, ``div``, ``include``) or a
single pattern, which is treated as ``start = pattern``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from ooxml_rnc.ast import START, Combine, Define, GrammarFile
from ooxml_rnc.errors import ParseError

from .declarations import DeclarationParsingMixin
from .grammar.lexer import Lexer, Token, TokenKind, TokenType
from .patterns import DEFINE_OPERATORS, PatternParsingMixin


HEADER_TOKENS = (TokenType.NAMESPACE, TokenType.DEFAULT, TokenType.DATATYPES)

# Bracket, grammar and except nesting allowed before parsing gives up.
MAX_NESTING_DEPTH = 64


def describe_token(token: Optional[Token]) -> str:
    """Render a token the way diagnostics quote it."""
    if token is None or token.type is TokenType.EOF:
        return "end of file"
    if token.type is TokenType.LITERAL:
        return f'literal "{token.value}"'
    if token.type is TokenType.IDENTIFIER:
        return f"identifier '{token.value}'"
    if token.type is TokenType.PREFIXED_NAME:
        return f"name '{token.value}'"
    if token.type is TokenType.NS_NAME:
        return f"'{token.value}:*'"
    return f"'{token.value}'"


class RncParser(DeclarationParsingMixin, PatternParsingMixin):
    """
    Recursive descent parser for one RELAX NG Compact file.

    Pattern precedence, lowest first: choice ``|``, interleave ``&``,
    sequencing (``,`` or juxtaposition), postfix ``?`` ``*`` ``+``.
    """

    def __init__(self, source: Union[str, bytes], *, path: str = ""):
        """Initialize parser with source text."""
        self.path = path

        lexer = Lexer(source, path)
        self.source = lexer.source
        self.tokens: List[Token] = lexer.tokenize()
        self.doc_comments: Dict[int, str] = lexer.doc_comments
        self.pos = 0
        self.depth = 0

    # ====================================================================
    # Token Management
    # ====================================================================

    def peek(self, offset: int = 0) -> Optional[Token]:
        """Peek at token without consuming."""
        pos = self.pos + offset
        if pos < len(self.tokens):
            return self.tokens[pos]
        return None

    def current(self) -> Optional[Token]:
        """Get current token."""
        return self.peek(0)

    def advance(self) -> Token:
        """Consume and return current token."""
        token = self.current()
        if token is None or token.type is TokenType.EOF:
            raise self.error("Unexpected end of file")
        self.pos += 1
        return token

    def match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        token = self.current()
        return token is not None and token.type in types

    def consume_if(self, *types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self.match(*types):
            return self.advance()
        return None

    def expect(self, *types: TokenType, message: Optional[str] = None) -> Token:
        """Expect one of the given token types and consume it."""
        token = self.current()
        if token is None or token.type not in types:
            expected = [t.describe() for t in types]
            if message is None:
                message = f"Expected {' or '.join(expected)}"
            raise self.error(message, expected=expected)
        self.pos += 1
        return token

    def expect_name(self, what: str = "name") -> Token:
        """Consume an identifier or a keyword used as a name."""
        token = self.current()
        if token is not None and (token.type is TokenType.IDENTIFIER or token.kind is TokenKind.KEYWORD):
            return self.advance()
        raise self.error(f"Expected {what}", expected=[what])

    def error(
        self,
        message: str,
        *,
        expected: Optional[List[str]] = None,
        token: Optional[Token] = None,
        hint: Optional[str] = None,
    ) -> ParseError:
        """Create a parse error at the given token (default: current token)."""
        token = token or self.current()
        return ParseError(
            message,
            expected=expected,
            found=describe_token(token),
            span=token.span if token is not None else None,
            hint=hint,
        )

    @contextmanager
    def nesting(self) -> Iterator[None]:
        """Track one level of pattern or name-class nesting."""
        if self.depth >= MAX_NESTING_DEPTH:
            raise self.error(
                f"Pattern nested too deeply (more than {MAX_NESTING_DEPTH} levels)",
                hint="Move inner patterns into named definitions",
            )
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1

    # ====================================================================
    # Annotations and documentation
    # ====================================================================

    def annotation_end(self, pos: int) -> Optional[int]:
        """Index just past the bracketed annotation starting at ``pos``."""
        depth = 0
        index = pos
        while index < len(self.tokens):
            token_type = self.tokens[index].type
            if token_type is TokenType.LBRACKET:
                depth += 1
            elif token_type is TokenType.RBRACKET:
                depth -= 1
                if depth == 0:
                    return index + 1
            elif token_type is TokenType.EOF:
                return None
            index += 1
        return None

    def skip_annotations(self) -> None:
        """Skip ``[ ... ]`` annotations; their content is not modelled."""
        while self.match(TokenType.LBRACKET):
            end = self.annotation_end(self.pos)
            if end is None:
                raise self.error("Unterminated annotation", expected=["']'"])
            self.pos = end

    def documentation_for(self, token: Token) -> Optional[str]:
        """Join the ``##`` lines directly above ``token``."""
        lines = []
        line = token.line - 1
        while line in self.doc_comments:
            lines.append(self.doc_comments[line])
            line -= 1
        if not lines:
            return None
        lines.reverse()
        return "\n".join(lines)

    # ====================================================================
    # Top level
    # ====================================================================

    def at_grammar_content(self) -> bool:
        """True when the body holds definitions rather than a bare pattern."""
        token = self.current()
        if token is None:
            return True
        if token.type in (TokenType.EOF, TokenType.START, TokenType.DIV, TokenType.INCLUDE):
            return True
        following = self.peek(1)
        if token.type is TokenType.IDENTIFIER:
            return following is not None and following.type in DEFINE_OPERATORS
        if token.type is TokenType.PREFIXED_NAME:
            return following is not None and following.type is TokenType.LBRACKET
        return token.type in HEADER_TOKENS

    def parse(self) -> GrammarFile:
        """
        Parse the whole file.

        Grammar:
            TopLevel = { Decl } , ( { Component } | Pattern ) ;
        """
        declarations = self.parse_header()
        self.skip_annotations()

        if self.at_grammar_content():
            components = self.parse_components(TokenType.EOF)
            self.expect(TokenType.EOF, message="Expected definition")
            return GrammarFile(self.path, tuple(declarations), components)

        pattern = self.parse_pattern()
        if self.match(*HEADER_TOKENS):
            raise self.header_out_of_order()
        self.expect(TokenType.EOF, message="Expected end of file")
        start = Define(START, Combine.NONE, pattern, span=pattern.span)
        return GrammarFile(self.path, tuple(declarations), (start,), is_pattern=True)

    def header_out_of_order(self) -> ParseError:
        token = self.current()
        return self.error(
            f"'{token.value}' declarations must come before definitions and patterns",
            expected=["definition"],
            hint="Move header declarations above the first definition",
        )


__all__ = ["RncParser", "describe_token", "HEADER_TOKENS"]
