"""The resolved, immutable Schema Model.

Patterns live in an arena (a tuple) and refer to each other by integer
handle. ``Ref`` nodes keep the referenced name and point at the handle of
the definition body, so recursive content models are finite graphs rather
than infinite trees.

The model is read-only after construction and can be shared between threads
without locking.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple

PatternId = int


# ---------------------------------------------------------------------------
# Name classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NameClass:
    """Base class for resolved name classes."""


@dataclass(frozen=True)
class QName(NameClass):
    namespace: str
    local: str

    def __str__(self) -> str:
        if not self.namespace:
            return self.local
        return f"{{{self.namespace}}}{self.local}"


@dataclass(frozen=True)
class AnyName(NameClass):
    except_: typing.Optional[NameClass] = None

    def __str__(self) -> str:
        if self.except_ is None:
            return "*"
        return f"* - ({self.except_})"


@dataclass(frozen=True)
class NsName(NameClass):
    namespace: str
    except_: typing.Optional[NameClass] = None

    def __str__(self) -> str:
        base = f"{{{self.namespace}}}*"
        if self.except_ is None:
            return base
        return f"{base} - ({self.except_})"


@dataclass(frozen=True)
class NameChoice(NameClass):
    left: NameClass
    right: NameClass

    def __str__(self) -> str:
        return f"{self.left} | {self.right}"


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pattern:
    """Base class for arena patterns."""

    def children(self) -> Tuple[PatternId, ...]:
        return ()

    def render(self, parts: Tuple[str, ...]) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Named(Pattern):
    """Shared shape of ``Element`` and ``Attribute``: a name class and content."""

    name: NameClass
    content: PatternId

    def children(self) -> Tuple[PatternId, ...]:
        return (self.content,)

    def render(self, parts: Tuple[str, ...]) -> str:
        return f"{type(self).__name__}({self.name}, {parts[0]})"


@dataclass(frozen=True)
class Element(Named):
    pass


@dataclass(frozen=True)
class Attribute(Named):
    pass


@dataclass(frozen=True)
class Binary(Pattern):
    left: PatternId
    right: PatternId

    def children(self) -> Tuple[PatternId, ...]:
        return (self.left, self.right)

    def render(self, parts: Tuple[str, ...]) -> str:
        return f"{type(self).__name__}({parts[0]}, {parts[1]})"


@dataclass(frozen=True)
class Choice(Binary):
    pass


@dataclass(frozen=True)
class Group(Binary):
    pass


@dataclass(frozen=True)
class Interleave(Binary):
    pass


@dataclass(frozen=True)
class Unary(Pattern):
    content: PatternId

    def children(self) -> Tuple[PatternId, ...]:
        return (self.content,)

    def render(self, parts: Tuple[str, ...]) -> str:
        return f"{type(self).__name__}({parts[0]})"


@dataclass(frozen=True)
class Optional(Unary):
    pass


@dataclass(frozen=True)
class ZeroOrMore(Unary):
    pass


@dataclass(frozen=True)
class OneOrMore(Unary):
    pass


@dataclass(frozen=True)
class Mixed(Unary):
    pass


@dataclass(frozen=True)
class List(Unary):
    pass


@dataclass(frozen=True)
class Ref(Pattern):
    """Reference to a definition; ``target`` is the definition body's handle."""

    name: str
    target: PatternId

    def children(self) -> Tuple[PatternId, ...]:
        return (self.target,)

    def render(self, parts: Tuple[str, ...]) -> str:
        return f"{type(self).__name__}({self.name})"


@dataclass(frozen=True)
class ParentRef(Ref):
    pass


@dataclass(frozen=True)
class Text(Pattern):
    pass


@dataclass(frozen=True)
class Empty(Pattern):
    pass


@dataclass(frozen=True)
class NotAllowed(Pattern):
    pass


@dataclass(frozen=True)
class DataType(Pattern):
    library: str
    name: str
    params: Tuple[Tuple[str, str], ...] = ()
    except_: typing.Optional[PatternId] = None

    def children(self) -> Tuple[PatternId, ...]:
        return (self.except_,) if self.except_ is not None else ()

    def render(self, parts: Tuple[str, ...]) -> str:
        text = self.name
        if self.params:
            text += " { " + " ".join(f'{key} = "{value}"' for key, value in self.params) + " }"
        if parts:
            text += f" - {parts[0]}"
        return f"DataType({text})"


@dataclass(frozen=True)
class Value(Pattern):
    literal: str
    library: str = ""
    type: str = "token"

    def render(self, parts: Tuple[str, ...]) -> str:
        return f'Value("{self.literal}")'


# ---------------------------------------------------------------------------
# Schema model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class SchemaModel:
    """Frozen result of resolving a grammar."""

    start: PatternId
    patterns: Tuple[Pattern, ...]
    defines: Mapping[str, PatternId] = field(default_factory=dict)
    namespaces: Mapping[str, str] = field(default_factory=dict)
    default_namespace: str = ""
    datatype_libraries: Mapping[str, str] = field(default_factory=dict)
    documentation: Mapping[str, str] = field(default_factory=dict)
    source: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "patterns", tuple(self.patterns))
        for name in ("defines", "namespaces", "datatype_libraries", "documentation"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def __getitem__(self, handle: PatternId) -> Pattern:
        return self.patterns[handle]

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return (
            f"SchemaModel(source={self.source!r}, defines={len(self.defines)}, "
            f"patterns={len(self.patterns)})"
        )

    def children(self, handle: PatternId) -> Tuple[PatternId, ...]:
        return self.patterns[handle].children()

    def deref(self, handle: PatternId) -> PatternId:
        """Follow ``Ref`` chains until a non-reference pattern."""
        seen = set()
        while isinstance(self.patterns[handle], Ref) and handle not in seen:
            seen.add(handle)
            handle = self.patterns[handle].target  # type: ignore[attr-defined]
        return handle

    def walk(self, handle: typing.Optional[PatternId] = None) -> Iterator[PatternId]:
        """Yield every handle reachable from ``handle`` (default: start) once, depth first."""
        root = self.start if handle is None else handle
        seen = {root}
        stack = [root]
        while stack:
            current = stack.pop()
            yield current
            for child in reversed(self.patterns[current].children()):
                if child not in seen:
                    seen.add(child)
                    stack.append(child)

    def define(self, name: str) -> PatternId:
        """Handle of the body of definition ``name``."""
        return self.defines[name]

    def iter_defines(self) -> Iterator[Tuple[str, PatternId]]:
        return iter(self.defines.items())

    def references(self) -> Iterator[PatternId]:
        return self._handles_of(Ref)

    def elements(self) -> Iterator[PatternId]:
        return self._handles_of(Element)

    def attributes(self) -> Iterator[PatternId]:
        return self._handles_of(Attribute)

    def _handles_of(self, kind) -> Iterator[PatternId]:
        for handle, pattern in enumerate(self.patterns):
            if isinstance(pattern, kind):
                yield handle

    def describe(self, handle: typing.Optional[PatternId] = None) -> str:
        """Render a pattern compactly; references print by name."""
        root = self.start if handle is None else handle
        rendered: Dict[PatternId, str] = {}
        stack = [(root, False)]
        while stack:
            current, expanded = stack.pop()
            if current in rendered:
                continue
            pattern = self.patterns[current]
            inline = () if isinstance(pattern, Ref) else pattern.children()
            if inline and not expanded:
                stack.append((current, True))
                stack.extend((child, False) for child in inline if child not in rendered)
                continue
            rendered[current] = pattern.render(tuple(rendered[child] for child in inline))
        return rendered[root]


__all__ = [
    "PatternId",
    "NameClass",
    "QName",
    "AnyName",
    "NsName",
    "NameChoice",
    "Pattern",
    "Named",
    "Element",
    "Attribute",
    "Binary",
    "Choice",
    "Group",
    "Interleave",
    "Unary",
    "Optional",
    "ZeroOrMore",
    "OneOrMore",
    "Mixed",
    "List",
    "Ref",
    "ParentRef",
    "Text",
    "Empty",
    "NotAllowed",
    "DataType",
    "Value",
    "SchemaModel",
]
