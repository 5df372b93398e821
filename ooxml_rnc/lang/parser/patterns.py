"""Pattern and name-class parsing methods for RncParser.

Handles the pattern precedence ladder, primaries, name classes, datatypes
and literals.
"""

from typing import Dict, List, Tuple, Type

from ooxml_rnc.ast import (
    AnyNameNode,
    AttributePattern,
    ChoicePattern,
    DataPattern,
    DatatypeName,
    ElementPattern,
    EmptyPattern,
    ExternalPattern,
    GrammarPattern,
    GroupPattern,
    InterleavePattern,
    ListPattern,
    MixedPattern,
    NameChoiceNode,
    NameClassNode,
    NotAllowedPattern,
    NsNameNode,
    OneOrMorePattern,
    OptionalPattern,
    Param,
    ParentRefPattern,
    PatternNode,
    QNameNode,
    RefPattern,
    TextPattern,
    UnaryPattern,
    ValuePattern,
    ZeroOrMorePattern,
)

from .grammar.lexer import TokenKind, TokenType


DEFINE_OPERATORS = (TokenType.ASSIGN, TokenType.CHOICE_ASSIGN, TokenType.INTERLEAVE_ASSIGN)

# Tokens that can begin a particle in a juxtaposed sequence.
PARTICLE_START = frozenset({
    TokenType.ELEMENT,
    TokenType.ATTRIBUTE,
    TokenType.LIST,
    TokenType.MIXED,
    TokenType.EMPTY,
    TokenType.TEXT,
    TokenType.NOT_ALLOWED,
    TokenType.PARENT,
    TokenType.EXTERNAL,
    TokenType.GRAMMAR,
    TokenType.STRING,
    TokenType.TOKEN,
    TokenType.PREFIXED_NAME,
    TokenType.LITERAL,
    TokenType.LPAREN,
})

POSTFIX_OPERATORS: Dict[TokenType, Type[UnaryPattern]] = {
    TokenType.QUESTION: OptionalPattern,
    TokenType.STAR: ZeroOrMorePattern,
    TokenType.PLUS: OneOrMorePattern,
}

_LEAVES: Dict[TokenType, Type[PatternNode]] = {
    TokenType.EMPTY: EmptyPattern,
    TokenType.TEXT: TextPattern,
    TokenType.NOT_ALLOWED: NotAllowedPattern,
}


class PatternParsingMixin:
    """Mixin with pattern parsing methods."""

    # ====================================================================
    # Precedence ladder
    # ====================================================================

    def parse_pattern(self) -> PatternNode:
        """
        Parse a pattern expression.

        Grammar:
            Pattern     = Interleave , { "|" , Interleave } ;
            Interleave  = Sequence , { "&" , Sequence } ;
            Sequence    = Postfix , { [ "," ] , Postfix } ;
            Postfix     = Primary , { "?" | "*" | "+" } ;
        """
        left = self.parse_interleave()
        while self.consume_if(TokenType.PIPE):
            right = self.parse_interleave()
            left = ChoicePattern(left, right, span=left.span)
        return left

    def parse_interleave(self) -> PatternNode:
        left = self.parse_sequence()
        while self.consume_if(TokenType.AMPERSAND):
            right = self.parse_sequence()
            left = InterleavePattern(left, right, span=left.span)
        return left

    def parse_sequence(self) -> PatternNode:
        left = self.parse_postfix()
        while True:
            if self.consume_if(TokenType.COMMA):
                right = self.parse_postfix()
            elif self.starts_particle():
                right = self.parse_postfix()
            else:
                return left
            left = GroupPattern(left, right, span=left.span)

    def parse_postfix(self) -> PatternNode:
        pattern = self.parse_primary()
        while self.match(*POSTFIX_OPERATORS):
            operator = self.advance()
            pattern = POSTFIX_OPERATORS[operator.type](pattern, span=pattern.span)
        return pattern

    def starts_particle(self, offset: int = 0) -> bool:
        """Whether the token at ``offset`` can continue a juxtaposed sequence."""
        token = self.peek(offset)
        if token is None:
            return False
        if token.type is TokenType.LBRACKET:
            end = self.annotation_end(self.pos + offset)
            return end is not None and self.starts_particle(end - self.pos)
        if token.type is TokenType.IDENTIFIER:
            # ``name =`` starts the next definition.
            following = self.peek(offset + 1)
            return following is None or following.type not in DEFINE_OPERATORS
        if token.type is TokenType.PREFIXED_NAME:
            # ``a:documentation [ ... ]`` is an annotation element.
            following = self.peek(offset + 1)
            return following is None or following.type is not TokenType.LBRACKET
        return token.type in PARTICLE_START

    # ====================================================================
    # Primaries
    # ====================================================================

    def parse_primary(self) -> PatternNode:
        self.skip_annotations()
        token = self.current()
        token_type = token.type if token is not None else TokenType.EOF

        if token_type in (TokenType.ELEMENT, TokenType.ATTRIBUTE):
            self.advance()
            name = self.parse_name_class()
            content = self.parse_braced_pattern()
            node = ElementPattern if token_type is TokenType.ELEMENT else AttributePattern
            return node(name, content, span=token.span)

        if token_type in (TokenType.LIST, TokenType.MIXED):
            self.advance()
            content = self.parse_braced_pattern()
            node = ListPattern if token_type is TokenType.LIST else MixedPattern
            return node(content, span=token.span)

        if token_type in _LEAVES:
            self.advance()
            return _LEAVES[token_type](span=token.span)

        if token_type is TokenType.IDENTIFIER:
            self.advance()
            return RefPattern(token.value, span=token.span)

        if token_type is TokenType.PARENT:
            self.advance()
            name = self.expect(TokenType.IDENTIFIER, message="Expected definition name after 'parent'")
            return ParentRefPattern(name.value, span=token.span)

        if token_type is TokenType.LPAREN:
            self.advance()
            with self.nesting():
                pattern = self.parse_pattern()
            self.expect(TokenType.RPAREN)
            return pattern

        if token_type is TokenType.EXTERNAL:
            self.advance()
            if not self.match(TokenType.LITERAL):
                raise self.error("Expected external href", expected=["literal"])
            href = self.parse_literal()
            return ExternalPattern(href, self.parse_inherit(), span=token.span)

        if token_type is TokenType.GRAMMAR:
            self.advance()
            self.expect(TokenType.LBRACE)
            with self.nesting():
                components = self.parse_components(TokenType.RBRACE)
            self.expect(TokenType.RBRACE)
            return GrammarPattern(components, span=token.span)

        if token_type in (TokenType.STRING, TokenType.TOKEN, TokenType.PREFIXED_NAME):
            return self.parse_datatype()

        if token_type is TokenType.LITERAL:
            return ValuePattern(self.parse_literal(), DatatypeName("token"), span=token.span)

        raise self.error("Expected pattern", expected=["pattern"])

    def parse_braced_pattern(self) -> PatternNode:
        self.expect(TokenType.LBRACE)
        with self.nesting():
            pattern = self.parse_pattern()
        self.expect(TokenType.RBRACE)
        return pattern

    # ====================================================================
    # Datatypes and literals
    # ====================================================================

    def parse_datatype(self) -> PatternNode:
        """
        Parse a datatype reference, value or constrained datatype.

        Grammar:
            Datatype = DatatypeName , ( Literal | [ Params ] , [ "-" , Primary ] ) ;
        """
        token = self.advance()
        if token.type is TokenType.PREFIXED_NAME:
            prefix, local = token.value.split(":", 1)
            datatype = DatatypeName(local, prefix)
        else:
            datatype = DatatypeName(token.value)

        if self.match(TokenType.LITERAL):
            return ValuePattern(self.parse_literal(), datatype, span=token.span)

        params: Tuple[Param, ...] = ()
        if self.match(TokenType.LBRACE):
            params = self.parse_params()

        except_ = None
        if self.consume_if(TokenType.MINUS):
            with self.nesting():
                except_ = self.parse_primary()

        return DataPattern(datatype, params, except_, span=token.span)

    def parse_params(self) -> Tuple[Param, ...]:
        self.expect(TokenType.LBRACE)
        params: List[Param] = []
        while not self.match(TokenType.RBRACE):
            self.skip_annotations()
            name = self.expect_name("parameter name")
            self.expect(TokenType.ASSIGN)
            if not self.match(TokenType.LITERAL):
                raise self.error("Expected parameter value", expected=["literal"])
            params.append(Param(name.value, self.parse_literal()))
        self.expect(TokenType.RBRACE)
        return tuple(params)

    def parse_literal(self) -> str:
        """A literal, joining ``~``-concatenated segments."""
        parts = [self.expect(TokenType.LITERAL).value]
        while self.consume_if(TokenType.TILDE):
            parts.append(self.expect(TokenType.LITERAL, message="Expected literal after '~'").value)
        return "".join(parts)

    # ====================================================================
    # Name classes
    # ====================================================================

    def parse_name_class(self) -> NameClassNode:
        """
        Parse an element or attribute name class.

        Grammar:
            NameClass = BasicNameClass , { "|" , BasicNameClass } ;
            BasicNameClass = Name | Prefix ":" Name | "*" [ Except ]
                           | Prefix ":*" [ Except ] | "(" NameClass ")" ;
        """
        left = self.parse_basic_name_class()
        while self.consume_if(TokenType.PIPE):
            right = self.parse_basic_name_class()
            left = NameChoiceNode(left, right, span=getattr(left, "span", None))
        return left

    def parse_basic_name_class(self) -> NameClassNode:
        self.skip_annotations()
        token = self.current()

        if token is not None and (token.type is TokenType.IDENTIFIER or token.kind is TokenKind.KEYWORD):
            self.advance()
            return QNameNode(token.value, span=token.span)

        if self.match(TokenType.PREFIXED_NAME):
            self.advance()
            prefix, local = token.value.split(":", 1)
            return QNameNode(local, prefix, span=token.span)

        if self.match(TokenType.STAR):
            self.advance()
            return AnyNameNode(self.parse_name_class_except(), span=token.span)

        if self.match(TokenType.NS_NAME):
            self.advance()
            return NsNameNode(token.value, self.parse_name_class_except(), span=token.span)

        if self.match(TokenType.LPAREN):
            self.advance()
            with self.nesting():
                name_class = self.parse_name_class()
            self.expect(TokenType.RPAREN)
            return name_class

        raise self.error("Expected name", expected=["name"])

    def parse_name_class_except(self):
        if self.consume_if(TokenType.MINUS):
            with self.nesting():
                return self.parse_basic_name_class()
        return None


__all__ = ["PatternParsingMixin", "DEFINE_OPERATORS", "PARTICLE_START"]
