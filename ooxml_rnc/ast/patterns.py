"""Raw pattern nodes produced by the parser.

Nodes are frozen: the parser writes each one once and later stages build
new nodes rather than editing these. Spans never take part in equality so
tests can compare trees structurally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .source_location import SourceSpan


# ---------------------------------------------------------------------------
# Name classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NameClassNode:
    """Base class for unresolved name classes."""


@dataclass(frozen=True)
class QNameNode(NameClassNode):
    local: str
    prefix: Optional[str] = None
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class AnyNameNode(NameClassNode):
    except_: Optional[NameClassNode] = None
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class NsNameNode(NameClassNode):
    prefix: str
    except_: Optional[NameClassNode] = None
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class NameChoiceNode(NameClassNode):
    left: NameClassNode
    right: NameClassNode
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternNode:
    """Base class for all pattern nodes."""

    def children(self) -> Tuple["PatternNode", ...]:
        return ()


@dataclass(frozen=True)
class ElementPattern(PatternNode):
    # Raw trees hold a NameClassNode; assembled trees hold a resolved
    # name class from ooxml_rnc.model.
    name: Any
    content: PatternNode
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    def children(self) -> Tuple[PatternNode, ...]:
        return (self.content,)


@dataclass(frozen=True)
class AttributePattern(PatternNode):
    name: Any
    content: PatternNode
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    def children(self) -> Tuple[PatternNode, ...]:
        return (self.content,)


@dataclass(frozen=True)
class BinaryPattern(PatternNode):
    left: PatternNode
    right: PatternNode
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    def children(self) -> Tuple[PatternNode, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class ChoicePattern(BinaryPattern):
    """``a | b``"""


@dataclass(frozen=True)
class GroupPattern(BinaryPattern):
    """``a , b`` or ``a b``"""


@dataclass(frozen=True)
class InterleavePattern(BinaryPattern):
    """``a & b``"""


@dataclass(frozen=True)
class UnaryPattern(PatternNode):
    content: PatternNode
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    def children(self) -> Tuple[PatternNode, ...]:
        return (self.content,)


@dataclass(frozen=True)
class OptionalPattern(UnaryPattern):
    pass


@dataclass(frozen=True)
class ZeroOrMorePattern(UnaryPattern):
    pass


@dataclass(frozen=True)
class OneOrMorePattern(UnaryPattern):
    pass


@dataclass(frozen=True)
class MixedPattern(UnaryPattern):
    pass


@dataclass(frozen=True)
class ListPattern(UnaryPattern):
    pass


@dataclass(frozen=True)
class RefPattern(PatternNode):
    name: str
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ParentRefPattern(PatternNode):
    name: str
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TextPattern(PatternNode):
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class EmptyPattern(PatternNode):
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class NotAllowedPattern(PatternNode):
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class DatatypeName:
    """``xsd:int``, ``string`` or ``token``.

    ``library`` stays ``None`` until the assembler resolves ``prefix``.
    Built-in types have no prefix and resolve to the empty library URI.
    """

    local: str
    prefix: Optional[str] = None
    library: Optional[str] = None


@dataclass(frozen=True)
class Param:
    name: str
    value: str


@dataclass(frozen=True)
class DataPattern(PatternNode):
    datatype: DatatypeName
    params: Tuple[Param, ...] = ()
    except_: Optional[PatternNode] = None
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    def children(self) -> Tuple[PatternNode, ...]:
        return (self.except_,) if self.except_ is not None else ()


@dataclass(frozen=True)
class ValuePattern(PatternNode):
    literal: str
    datatype: DatatypeName = DatatypeName("token")
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ExternalPattern(PatternNode):
    href: str
    inherit: Optional[str] = None
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class GrammarPattern(PatternNode):
    """Nested ``grammar { ... }``.

    The assembler fills ``scope`` with the nested grammar's scope; the parser
    leaves it empty.
    """

    components: Tuple[Any, ...] = ()
    scope: Any = field(default=None, compare=False, repr=False)
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


def binary_operands(node: BinaryPattern) -> List[PatternNode]:
    """Flatten a left-deep chain of one binary operator into its operands.

    Long enumerations (``"a" | "b" | ...``) produce deep left spines; walking
    them iteratively keeps later stages clear of the recursion limit.
    """
    kind = type(node)
    spine: List[PatternNode] = []
    current: PatternNode = node
    while type(current) is kind:
        spine.append(current.right)  # type: ignore[attr-defined]
        current = current.left  # type: ignore[attr-defined]
    spine.append(current)
    spine.reverse()
    return spine


def iter_patterns(root: PatternNode) -> Iterator[PatternNode]:
    """Yield ``root`` and every pattern below it, depth first."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


__all__ = [
    "NameClassNode",
    "QNameNode",
    "AnyNameNode",
    "NsNameNode",
    "NameChoiceNode",
    "PatternNode",
    "ElementPattern",
    "AttributePattern",
    "BinaryPattern",
    "ChoicePattern",
    "GroupPattern",
    "InterleavePattern",
    "UnaryPattern",
    "OptionalPattern",
    "ZeroOrMorePattern",
    "OneOrMorePattern",
    "MixedPattern",
    "ListPattern",
    "RefPattern",
    "ParentRefPattern",
    "TextPattern",
    "EmptyPattern",
    "NotAllowedPattern",
    "DatatypeName",
    "Param",
    "DataPattern",
    "ValuePattern",
    "ExternalPattern",
    "GrammarPattern",
    "binary_operands",
    "iter_patterns",
]
