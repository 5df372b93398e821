from __future__ import annotations

import pytest

from ooxml_rnc.errors import LexError
from ooxml_rnc.lang.parser.grammar.lexer import Lexer, TokenKind, TokenType, tokenize


def _types(source: str):
    return [token.type for token in tokenize(source)]


def test_start_definition_tokens() -> None:
    assert _types("start = element Foo { text }") == [
        TokenType.START,
        TokenType.ASSIGN,
        TokenType.ELEMENT,
        TokenType.IDENTIFIER,
        TokenType.LBRACE,
        TokenType.TEXT,
        TokenType.RBRACE,
        TokenType.EOF,
    ]


def test_combine_operators_are_single_tokens() -> None:
    assert _types("a |= b & c &= d | e") == [
        TokenType.IDENTIFIER,
        TokenType.CHOICE_ASSIGN,
        TokenType.IDENTIFIER,
        TokenType.AMPERSAND,
        TokenType.IDENTIFIER,
        TokenType.INTERLEAVE_ASSIGN,
        TokenType.IDENTIFIER,
        TokenType.PIPE,
        TokenType.IDENTIFIER,
        TokenType.EOF,
    ]


def test_prefixed_names_and_namespace_wildcards() -> None:
    tokens = tokenize("w:p xsd:int s:*")
    assert [(t.type, t.value) for t in tokens[:-1]] == [
        (TokenType.PREFIXED_NAME, "w:p"),
        (TokenType.PREFIXED_NAME, "xsd:int"),
        (TokenType.NS_NAME, "s"),
    ]


def test_identifiers_allow_ncname_characters() -> None:
    tokens = tokenize("w_CT_P a-b.c _x1")
    assert [t.value for t in tokens[:-1]] == ["w_CT_P", "a-b.c", "_x1"]
    assert all(t.type is TokenType.IDENTIFIER for t in tokens[:-1])


def test_backslash_escapes_keyword() -> None:
    tokens = tokenize("\\element = empty")
    assert tokens[0].type is TokenType.IDENTIFIER
    assert tokens[0].value == "element"


def test_token_kinds() -> None:
    assert TokenType.ELEMENT.kind is TokenKind.KEYWORD
    assert TokenType.NOT_ALLOWED.kind is TokenKind.KEYWORD
    assert TokenType.PIPE.kind is TokenKind.OPERATOR
    assert TokenType.CHOICE_ASSIGN.kind is TokenKind.OPERATOR
    assert TokenType.LBRACE.kind is TokenKind.PUNCTUATION
    assert TokenType.PREFIXED_NAME.kind is TokenKind.PREFIXED_NAME
    assert TokenType.LITERAL.kind is TokenKind.LITERAL
    assert TokenType.IDENTIFIER.kind is TokenKind.IDENTIFIER
    assert TokenType.EOF.kind is TokenKind.EOF


def test_spans_track_line_column_and_byte_offset() -> None:
    tokens = tokenize('foo = "x"\n  bar', path="spans.rnc")
    literal = tokens[2]
    assert literal.type is TokenType.LITERAL
    assert (literal.line, literal.column) == (1, 7)
    assert literal.span.offset == 6
    assert literal.span.length == 3
    assert literal.span.path == "spans.rnc"

    bar = tokens[3]
    assert (bar.line, bar.column) == (2, 3)
    assert bar.span.offset == 12


def test_byte_offsets_count_utf8_bytes() -> None:
    tokens = tokenize("\u00e9 = x")
    assert tokens[0].span.length == 2
    assert tokens[1].column == 3
    assert tokens[1].span.offset == 3


class TestLiterals:
    def test_single_and_double_quotes(self) -> None:
        tokens = tokenize("\"on\" 'off'")
        assert [t.value for t in tokens[:-1]] == ["on", "off"]

    def test_empty_literal(self) -> None:
        tokens = tokenize('"" "x"')
        assert [t.value for t in tokens[:-1]] == ["", "x"]

    def test_triple_quoted_literal_spans_lines(self) -> None:
        tokens = tokenize('"""line one\nline "two" end"""')
        assert tokens[0].value == 'line one\nline "two" end'
        assert tokens[1].type is TokenType.EOF

    def test_escapes(self) -> None:
        tokens = tokenize(r'"a\x{41}b\n\"q\""')
        assert tokens[0].value == 'aAb\n"q"'

    def test_unterminated_literal_reports_opening_quote(self) -> None:
        with pytest.raises(LexError) as exc_info:
            tokenize('start = "abc', path="bad.rnc")
        err = exc_info.value
        assert "Unterminated" in err.message
        assert (err.line, err.column) == (1, 9)
        assert err.path == "bad.rnc"

    def test_single_quoted_literal_cannot_span_lines(self) -> None:
        with pytest.raises(LexError):
            tokenize('"ab\ncd"')


class TestComments:
    def test_comments_are_skipped(self) -> None:
        assert _types("# header\nstart = empty # trailing\n") == [
            TokenType.START,
            TokenType.ASSIGN,
            TokenType.EMPTY,
            TokenType.EOF,
        ]

    def test_documentation_comments_recorded_per_line(self) -> None:
        lexer = Lexer("## First line.\n## Second line.\np = empty ## not documentation\n")
        lexer.tokenize()
        assert lexer.doc_comments == {1: "First line.", 2: "Second line."}


def test_invalid_character_raises_lex_error() -> None:
    with pytest.raises(LexError) as exc_info:
        tokenize("foo = @")
    assert exc_info.value.char == "@"
    assert exc_info.value.column == 7


def test_invalid_utf8_bytes_raise_lex_error() -> None:
    with pytest.raises(LexError) as exc_info:
        tokenize(b"start = \xff", path="bytes.rnc")
    err = exc_info.value
    assert (err.line, err.column) == (1, 9)
    assert err.span.offset == 8


def test_utf8_bytes_and_bom_are_accepted() -> None:
    tokens = tokenize("\ufeffstart = empty".encode("utf-8"))
    assert tokens[0].type is TokenType.START
    assert tokens[0].column == 1


def test_lexer_is_restartable() -> None:
    lexer = Lexer("start = a | b")
    first = list(lexer)
    second = list(lexer)
    assert first == second
    assert len(first) == 6
