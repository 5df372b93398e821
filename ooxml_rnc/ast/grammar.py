"""Grammar-level syntax nodes: declarations, definitions, divs and includes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Tuple, Union, TYPE_CHECKING

from .patterns import ExternalPattern, GrammarPattern, PatternNode, iter_patterns

if TYPE_CHECKING:
    from .source_location import SourceSpan


# Key used for ``start`` in definition tables. ``#`` cannot occur in an
# identifier, so the key never collides with a define name.
START = "#start"


def display_name(name: str) -> str:
    """Return the name as written in source (``start`` for the start key)."""
    return "start" if name == START else name


class Combine(Enum):
    """Assignment operator used at a definition site."""

    NONE = "="
    CHOICE = "|="
    INTERLEAVE = "&="

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class NamespaceDecl:
    """``namespace p = "uri"``, ``default namespace [p] = "uri"`` or ``= inherit``."""

    prefix: Optional[str]
    uri: Optional[str]
    is_default: bool = False
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    @property
    def inherits(self) -> bool:
        return self.uri is None


@dataclass(frozen=True)
class DatatypesDecl:
    prefix: str
    uri: str
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Define:
    name: str
    combine: Combine
    pattern: PatternNode
    documentation: Optional[str] = field(default=None, compare=False)
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    @property
    def is_start(self) -> bool:
        return self.name == START


@dataclass(frozen=True)
class Div:
    components: Tuple["Component", ...] = ()
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Include:
    href: str
    inherit: Optional[str] = None
    overrides: Tuple["Component", ...] = ()
    span: Optional["SourceSpan"] = field(default=None, compare=False, repr=False)

    @property
    def has_overrides(self) -> bool:
        return bool(self.overrides)


Component = Union[Define, Div, Include]
Declaration = Union[NamespaceDecl, DatatypesDecl]


@dataclass(frozen=True)
class GrammarFile:
    """Parsed representation of one ``.rnc`` file."""

    path: str
    declarations: Tuple[Declaration, ...] = ()
    components: Tuple[Component, ...] = ()
    is_pattern: bool = False

    def iter_defines(self) -> Iterator[Define]:
        """Yield the file's own definitions, descending into divs and override blocks."""
        stack = list(reversed(self.components))
        while stack:
            component = stack.pop()
            if isinstance(component, Define):
                yield component
            elif isinstance(component, Div):
                stack.extend(reversed(component.components))
            elif isinstance(component, Include):
                stack.extend(reversed(component.overrides))

    def iter_hrefs(self) -> Iterator[str]:
        """Yield every ``include`` and ``external`` href in the file, in source order."""
        stack = list(reversed(self.components))
        while stack:
            component = stack.pop()
            if isinstance(component, Include):
                yield component.href
                stack.extend(reversed(component.overrides))
            elif isinstance(component, Div):
                stack.extend(reversed(component.components))
            elif isinstance(component, Define):
                for node in iter_patterns(component.pattern):
                    if isinstance(node, ExternalPattern):
                        yield node.href
                    elif isinstance(node, GrammarPattern):
                        yield from GrammarFile(self.path, components=node.components).iter_hrefs()


__all__ = [
    "START",
    "display_name",
    "Combine",
    "NamespaceDecl",
    "DatatypesDecl",
    "Define",
    "Div",
    "Include",
    "Component",
    "Declaration",
    "GrammarFile",
]
