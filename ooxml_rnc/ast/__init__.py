"""Syntax tree produced by the RELAX NG Compact parser."""

from .source_location import SourceSpan
from .grammar import (
    START,
    Combine,
    Component,
    DatatypesDecl,
    Declaration,
    Define,
    Div,
    GrammarFile,
    Include,
    NamespaceDecl,
    display_name,
)
from .patterns import (
    AnyNameNode,
    AttributePattern,
    BinaryPattern,
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
    binary_operands,
    iter_patterns,
)

__all__ = [
    "SourceSpan",
    "START",
    "Combine",
    "Component",
    "DatatypesDecl",
    "Declaration",
    "Define",
    "Div",
    "GrammarFile",
    "Include",
    "NamespaceDecl",
    "display_name",
    "AnyNameNode",
    "AttributePattern",
    "BinaryPattern",
    "ChoicePattern",
    "DataPattern",
    "DatatypeName",
    "ElementPattern",
    "EmptyPattern",
    "ExternalPattern",
    "GrammarPattern",
    "GroupPattern",
    "InterleavePattern",
    "ListPattern",
    "MixedPattern",
    "NameChoiceNode",
    "NameClassNode",
    "NotAllowedPattern",
    "NsNameNode",
    "OneOrMorePattern",
    "OptionalPattern",
    "Param",
    "ParentRefPattern",
    "PatternNode",
    "QNameNode",
    "RefPattern",
    "TextPattern",
    "UnaryPattern",
    "ValuePattern",
    "ZeroOrMorePattern",
    "binary_operands",
    "iter_patterns",
]
