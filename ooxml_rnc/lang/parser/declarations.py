"""Declaration parsing methods for RncParser.

Contains the header directives (``namespace``, ``default namespace``,
``datatypes``) and the grammar components (definitions, ``start``, ``div``
and ``include``).
"""

from typing import Dict, List, Optional, Tuple

from ooxml_rnc.ast import (
    START,
    Combine,
    Component,
    DatatypesDecl,
    Declaration,
    Define,
    Div,
    Include,
    NamespaceDecl,
)

from .grammar.lexer import TokenType


COMBINE_OPERATORS: Dict[TokenType, Combine] = {
    TokenType.ASSIGN: Combine.NONE,
    TokenType.CHOICE_ASSIGN: Combine.CHOICE,
    TokenType.INTERLEAVE_ASSIGN: Combine.INTERLEAVE,
}


class DeclarationParsingMixin:
    """Mixin with header and component parsing methods."""

    # This will be mixed into RncParser, so we have access to all parser methods

    # ====================================================================
    # Header
    # ====================================================================

    def parse_header(self) -> List[Declaration]:
        """
        Parse the header directives.

        Grammar:
            Decl = "namespace" , Prefix , "=" , NamespaceUri
                 | "default" , "namespace" , [ Prefix ] , "=" , NamespaceUri
                 | "datatypes" , Prefix , "=" , Literal ;
        """
        declarations: List[Declaration] = []
        while True:
            self.skip_annotations()
            if self.match(TokenType.NAMESPACE):
                declarations.append(self.parse_namespace_declaration())
            elif self.match(TokenType.DEFAULT):
                declarations.append(self.parse_default_namespace_declaration())
            elif self.match(TokenType.DATATYPES):
                declarations.append(self.parse_datatypes_declaration())
            else:
                return declarations

    def parse_namespace_declaration(self) -> NamespaceDecl:
        keyword = self.expect(TokenType.NAMESPACE)
        prefix = self.expect_name("namespace prefix").value
        self.expect(TokenType.ASSIGN)
        return NamespaceDecl(prefix, self.parse_namespace_uri(), span=keyword.span)

    def parse_default_namespace_declaration(self) -> NamespaceDecl:
        keyword = self.expect(TokenType.DEFAULT)
        self.expect(TokenType.NAMESPACE)
        prefix = None
        if not self.match(TokenType.ASSIGN):
            prefix = self.expect_name("namespace prefix").value
        self.expect(TokenType.ASSIGN)
        return NamespaceDecl(prefix, self.parse_namespace_uri(), is_default=True, span=keyword.span)

    def parse_namespace_uri(self) -> Optional[str]:
        """A literal, or ``inherit`` (returned as ``None``)."""
        if self.consume_if(TokenType.INHERIT):
            return None
        if not self.match(TokenType.LITERAL):
            raise self.error("Expected namespace URI", expected=["literal", "'inherit'"])
        return self.parse_literal()

    def parse_datatypes_declaration(self) -> DatatypesDecl:
        keyword = self.expect(TokenType.DATATYPES)
        prefix = self.expect_name("datatypes prefix").value
        self.expect(TokenType.ASSIGN)
        if not self.match(TokenType.LITERAL):
            raise self.error("Expected datatype library URI", expected=["literal"])
        return DatatypesDecl(prefix, self.parse_literal(), span=keyword.span)

    # ====================================================================
    # Components
    # ====================================================================

    def parse_components(self, terminator: TokenType, *, allow_include: bool = True) -> Tuple[Component, ...]:
        """
        Parse components until ``terminator`` (not consumed).

        Grammar:
            Component = Define | Start | Div | Include ;
        """
        components: List[Component] = []
        while True:
            self.skip_annotations()
            self.skip_annotation_elements()
            if self.match(terminator):
                return tuple(components)
            components.append(self.parse_component(allow_include=allow_include))

    def skip_annotation_elements(self) -> None:
        """Skip grammar-level annotation elements such as ``a:documentation [ ... ]``."""
        while self.match(TokenType.PREFIXED_NAME):
            following = self.peek(1)
            if following is None or following.type is not TokenType.LBRACKET:
                return
            self.advance()
            self.skip_annotations()

    def parse_component(self, *, allow_include: bool = True) -> Component:
        token = self.current()
        if self.match(TokenType.START, TokenType.IDENTIFIER):
            return self.parse_define()
        if self.match(TokenType.DIV):
            return self.parse_div(allow_include=allow_include)
        if self.match(TokenType.INCLUDE):
            if not allow_include:
                raise self.error(
                    "'include' is not allowed inside an include override block",
                    hint="Include the file at grammar level or inside a div instead",
                )
            return self.parse_include()
        if token is not None and token.type in (TokenType.NAMESPACE, TokenType.DEFAULT, TokenType.DATATYPES):
            raise self.header_out_of_order()
        raise self.error(
            "Expected definition",
            expected=["identifier", "'start'", "'div'", "'include'"],
        )

    def parse_define(self) -> Define:
        """
        Parse a definition or start clause.

        Grammar:
            Define = ( Identifier | "start" ) , ( "=" | "|=" | "&=" ) , Pattern ;
        """
        name_token = self.advance()
        name = START if name_token.type is TokenType.START else name_token.value
        operator = self.expect(
            TokenType.ASSIGN,
            TokenType.CHOICE_ASSIGN,
            TokenType.INTERLEAVE_ASSIGN,
            message=f"Expected assignment after '{name_token.value}'",
        )
        pattern = self.parse_pattern()
        return Define(
            name,
            COMBINE_OPERATORS[operator.type],
            pattern,
            documentation=self.documentation_for(name_token),
            span=name_token.span,
        )

    def parse_div(self, *, allow_include: bool = True) -> Div:
        keyword = self.expect(TokenType.DIV)
        self.expect(TokenType.LBRACE)
        with self.nesting():
            components = self.parse_components(TokenType.RBRACE, allow_include=allow_include)
        self.expect(TokenType.RBRACE)
        return Div(components, span=keyword.span)

    def parse_include(self) -> Include:
        """
        Parse an include directive.

        Grammar:
            Include = "include" , Literal , [ Inherit ] , [ "{" , { IncludeComponent } , "}" ] ;
        """
        keyword = self.expect(TokenType.INCLUDE)
        if not self.match(TokenType.LITERAL):
            raise self.error("Expected include href", expected=["literal"])
        href = self.parse_literal()
        inherit = self.parse_inherit()
        overrides: Tuple[Component, ...] = ()
        if self.consume_if(TokenType.LBRACE):
            overrides = self.parse_components(TokenType.RBRACE, allow_include=False)
            self.expect(TokenType.RBRACE)
        return Include(href, inherit, overrides, span=keyword.span)

    def parse_inherit(self) -> Optional[str]:
        """Optional ``inherit = prefix`` after an include or external href."""
        if not self.consume_if(TokenType.INHERIT):
            return None
        self.expect(TokenType.ASSIGN)
        return self.expect_name("namespace prefix").value


__all__ = ["DeclarationParsingMixin", "COMBINE_OPERATORS"]
