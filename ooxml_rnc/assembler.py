"""Grammar assembly: include expansion, overrides, define combination.

The assembler walks a root :class:`~ooxml_rnc.ast.GrammarFile`, expands
every ``include`` through a :class:`~ooxml_rnc.fragments.FragmentCache`,
resolves namespace and datatype prefixes, and records every definition site
in an explicit chain of scopes. References stay unresolved; the pattern
resolver binds them afterwards.

Scopes
------
Each grammar has a :class:`GrammarScope`. ``div`` blocks, include override
blocks and included fragments open child scopes below it. A definition is
recorded in the scope where it appears and in its grammar scope. Definitions
are grammar-wide, so a lookup that walks the chain from any scope ends at
the same combined definition. The only shadowing is through override
blocks: a name defined in ``include "x" { ... }`` suppresses the fragment's
own definitions of that name while the fragment is expanded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

from ooxml_rnc.ast import (
    START,
    AttributePattern,
    BinaryPattern,
    Combine,
    Component,
    DataPattern,
    DatatypeName,
    DatatypesDecl,
    Declaration,
    Define,
    Div,
    ElementPattern,
    ExternalPattern,
    GrammarFile,
    GrammarPattern,
    Include,
    PatternNode,
    SourceSpan,
    UnaryPattern,
    ValuePattern,
    AnyNameNode,
    NameChoiceNode,
    NsNameNode,
    QNameNode,
    binary_operands,
    display_name,
)
from ooxml_rnc.errors import DefineConflict, IncludeError, UndeclaredPrefix
from ooxml_rnc.fragments import FileSystemResolver, FragmentCache
from ooxml_rnc.model import AnyName, NameChoice, NameClass, NsName, QName
from ooxml_rnc.observability.logging import get_logger

logger = get_logger(__name__)

XML_NAMESPACE = "http://www.w3.org/XML/1998/namespace"
XSD_DATATYPES = "http://www.w3.org/2001/XMLSchema-datatypes"


# ---------------------------------------------------------------------------
# Namespace environment
# ---------------------------------------------------------------------------


@dataclass
class Environment:
    """Prefix bindings in effect for one file."""

    namespaces: Dict[str, str] = field(default_factory=lambda: {"xml": XML_NAMESPACE})
    default_namespace: str = ""
    datatypes: Dict[str, str] = field(default_factory=lambda: {"xsd": XSD_DATATYPES})

    @classmethod
    def from_declarations(cls, declarations: Tuple[Declaration, ...], inherited: str = "") -> "Environment":
        """Bindings for a file whose includer passes down ``inherited``."""
        env = cls(default_namespace=inherited)
        for decl in declarations:
            if isinstance(decl, DatatypesDecl):
                env.datatypes[decl.prefix] = decl.uri
                continue
            uri = inherited if decl.inherits else decl.uri
            if decl.is_default:
                env.default_namespace = uri
            if decl.prefix is not None:
                env.namespaces[decl.prefix] = uri
        return env

    def namespace_for(self, prefix: str, span: Optional[SourceSpan] = None) -> str:
        try:
            return self.namespaces[prefix]
        except KeyError:
            raise UndeclaredPrefix(
                f"Undeclared namespace prefix '{prefix}'",
                prefix=prefix,
                span=span,
                hint=f'Declare it with: namespace {prefix} = "..."',
            ) from None

    def datatype_library(self, datatype: DatatypeName, span: Optional[SourceSpan] = None) -> str:
        if datatype.prefix is None:
            return ""
        try:
            return self.datatypes[datatype.prefix]
        except KeyError:
            raise UndeclaredPrefix(
                f"Undeclared datatypes prefix '{datatype.prefix}'",
                prefix=datatype.prefix,
                span=span,
                hint=f'Declare it with: datatypes {datatype.prefix} = "..."',
            ) from None


# ---------------------------------------------------------------------------
# Scopes and definitions
# ---------------------------------------------------------------------------


class ScopeKind(Enum):
    GRAMMAR = "grammar"
    DIV = "div"
    INCLUDE = "include"
    FRAGMENT = "fragment"


@dataclass(eq=False)
class DefineSite:
    """One occurrence of a definition, with its names already resolved."""

    define: Define
    scope: "Scope"
    pattern: PatternNode
    path: str

    @property
    def combine(self) -> Combine:
        return self.define.combine

    @property
    def span(self) -> Optional[SourceSpan]:
        return self.define.span


class MergedDefine:
    """All sites of one name within a grammar, combined by one operator."""

    def __init__(self, name: str, first: DefineSite):
        self.name = name
        self.sites: List[DefineSite] = [first]

    def __repr__(self) -> str:
        return f"MergedDefine({display_name(self.name)!r}, {self.combine}, sites={len(self.sites)})"

    @property
    def combine(self) -> Combine:
        return self.sites[0].combine

    @property
    def first_span(self) -> Optional[SourceSpan]:
        return self.sites[0].span

    @property
    def documentation(self) -> Optional[str]:
        docs = [site.define.documentation for site in self.sites if site.define.documentation]
        return "\n".join(docs) if docs else None

    def add(self, site: DefineSite) -> None:
        """Add a site, enforcing that every site uses the same combine operator."""
        name = display_name(self.name)
        if self.combine is Combine.NONE and site.combine is Combine.NONE:
            raise DefineConflict(
                f"Duplicate definition of '{name}'",
                name=name,
                span=site.span,
                first_span=self.first_span,
                hint="Use '|=' or '&=' at every site to combine definitions",
            )
        if self.combine is Combine.NONE or site.combine is Combine.NONE:
            raise DefineConflict(
                f"Definition of '{name}' mixes '=' with '{self.combine if site.combine is Combine.NONE else site.combine}'",
                name=name,
                span=site.span,
                first_span=self.first_span,
            )
        if self.combine is not site.combine:
            raise DefineConflict(
                f"Inconsistent combine operators for '{name}': '{self.combine}' and '{site.combine}'",
                name=name,
                span=site.span,
                first_span=self.first_span,
            )
        self.sites.append(site)


class Scope:
    """A node in the explicit scope chain."""

    def __init__(self, kind: ScopeKind, parent: Optional["Scope"], label: str = ""):
        self.kind = kind
        self.parent = parent
        self.label = label
        self.defines: Dict[str, MergedDefine] = {}
        self.grammar: GrammarScope = parent.grammar if parent is not None else self  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Scope({self.kind.value}, {self.label!r}, defines={len(self.defines)})"

    def chain(self) -> Iterator["Scope"]:
        """This scope and its ancestors, innermost first, ending at the grammar."""
        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def lookup(self, name: str) -> Optional[MergedDefine]:
        for scope in self.chain():
            merged = scope.defines.get(name)
            if merged is not None:
                return merged
        return None


class GrammarScope(Scope):
    """Root scope of a grammar; ``parent_grammar`` serves ``parent`` references."""

    def __init__(self, label: str = "", parent_grammar: Optional["GrammarScope"] = None):
        super().__init__(ScopeKind.GRAMMAR, None, label)
        self.parent_grammar = parent_grammar

    @property
    def start(self) -> Optional[MergedDefine]:
        return self.defines.get(START)

    def iter_defines(self) -> Iterator[MergedDefine]:
        return iter(list(self.defines.values()))


@dataclass
class AssembledGrammar:
    """Output of assembly: a root grammar scope with unresolved references."""

    root: GrammarScope
    path: str
    environment: Environment
    fragments: Dict[str, GrammarFile] = field(default_factory=dict)

    @property
    def namespaces(self) -> Dict[str, str]:
        return dict(self.environment.namespaces)

    @property
    def default_namespace(self) -> str:
        return self.environment.default_namespace

    @property
    def datatype_libraries(self) -> Dict[str, str]:
        return dict(self.environment.datatypes)

    @property
    def documentation(self) -> Dict[str, str]:
        docs = {}
        for merged in self.root.iter_defines():
            if merged.documentation:
                docs[display_name(merged.name)] = merged.documentation
        return docs


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------


@dataclass
class _OverrideFrame:
    href: str
    names: Set[str]
    spans: Dict[str, Optional[SourceSpan]]
    hits: Set[str] = field(default_factory=set)


class GrammarAssembler:
    """Expands includes and combines definitions for one root grammar."""

    def __init__(self, cache: Optional[FragmentCache] = None, *, strict_overrides: bool = True):
        self.cache = cache if cache is not None else FragmentCache(FileSystemResolver())
        self.strict_overrides = strict_overrides
        self._include_stack: List[str] = []
        self._overrides: List[_OverrideFrame] = []
        self._registered: Set[Tuple[int, int]] = set()
        self._fragments: Dict[str, GrammarFile] = {}
        self._environments: Dict[Tuple[int, str], Tuple[Environment, Optional[SourceSpan]]] = {}

    def assemble(self, root: GrammarFile, key: Optional[str] = None) -> AssembledGrammar:
        """Assemble ``root``; ``key`` is its canonical include key (default: its path)."""
        key = key or root.path
        path = root.path or key
        env = Environment.from_declarations(root.declarations)
        grammar = GrammarScope(label=path)
        self._include_stack = [key]
        self.expand_components(root.components, grammar, env, key)
        self._include_stack = []
        logger.debug(
            "Assembled %s: %d definitions from %d fragments",
            path,
            len(grammar.defines),
            len(self._fragments),
        )
        return AssembledGrammar(grammar, path, env, dict(self._fragments))

    # ====================================================================
    # Components
    # ====================================================================

    def expand_components(
        self,
        components: Tuple[Component, ...],
        scope: Scope,
        env: Environment,
        path: str,
    ) -> None:
        for component in components:
            if isinstance(component, Define):
                self.register(component, scope, env, path)
            elif isinstance(component, Div):
                div_scope = Scope(ScopeKind.DIV, scope, label="div")
                self.expand_components(component.components, div_scope, env, path)
            elif isinstance(component, Include):
                self.expand_include(component, scope, env, path)

    def register(self, define: Define, scope: Scope, env: Environment, path: str) -> None:
        """Record a definition site in ``scope`` and in its grammar scope."""
        suppressed = False
        for frame in self._overrides:
            if define.name in frame.names:
                frame.hits.add(define.name)
                suppressed = True
        if suppressed:
            logger.debug("Definition of '%s' in %s replaced by override", display_name(define.name), path)
            return

        key = (id(scope.grammar), id(define))
        if key in self._registered:
            return
        self._registered.add(key)

        site = DefineSite(define, scope, self.lower(define.pattern, scope, env, path), path)
        merged = scope.grammar.defines.get(define.name)
        if merged is None:
            merged = MergedDefine(define.name, site)
        else:
            merged.add(site)
        scope.defines[define.name] = merged
        scope.grammar.defines[define.name] = merged

    def expand_include(self, include: Include, scope: Scope, env: Environment, path: str) -> None:
        key = self.cache.canonicalize(include.href, path)
        fragment = self.fetch(key, include.href, include.span)
        if fragment.is_pattern:
            raise IncludeError(
                f"Included file '{include.href}' is a pattern, not a grammar",
                href=include.href,
                span=include.span,
            )

        include_scope = Scope(ScopeKind.INCLUDE, scope, label=include.href)
        frame = None
        if include.has_overrides:
            self.expand_components(include.overrides, include_scope, env, path)
            overrides = list(GrammarFile(path, components=include.overrides).iter_defines())
            frame = _OverrideFrame(
                include.href,
                {define.name for define in overrides},
                {define.name: define.span for define in overrides},
            )
            self._overrides.append(frame)

        logger.debug("Including %s from %s", key, path)
        fragment_env = Environment.from_declarations(
            fragment.declarations,
            self.inherited_namespace(include.inherit, env, include.span),
        )
        self.check_environment(key, include, scope.grammar, fragment_env)
        fragment_scope = Scope(ScopeKind.FRAGMENT, include_scope, label=key)
        self._include_stack.append(key)
        try:
            self.expand_components(fragment.components, fragment_scope, fragment_env, key)
        finally:
            self._include_stack.pop()
            if frame is not None:
                self._overrides.pop()

        if frame is not None and self.strict_overrides:
            for name in frame.names:
                if name not in frame.hits:
                    raise DefineConflict(
                        f"Override of '{display_name(name)}' matches no definition in '{include.href}'",
                        name=display_name(name),
                        span=frame.spans[name],
                    )

    def check_environment(self, key: str, include: Include, grammar: GrammarScope, env: Environment) -> None:
        """Reject a fragment included twice into one grammar under different namespaces."""
        seen = self._environments.setdefault((id(grammar), key), (env, include.span))
        first_env, first_span = seen
        if first_env != env:
            raise DefineConflict(
                f"'{include.href}' is included with default namespace "
                f"'{first_env.default_namespace}' and '{env.default_namespace}'",
                span=include.span,
                first_span=first_span,
                hint="Use the same inherit = prefix at every include of a shared fragment",
            )

    def fetch(self, key: str, href: str, span: Optional[SourceSpan]) -> GrammarFile:
        """Fragment for ``key``, rejecting keys already on the include stack."""
        if key in self._include_stack:
            cycle = self._include_stack[self._include_stack.index(key):] + [key]
            raise IncludeError(
                f"Include cycle: {' -> '.join(cycle)}",
                href=href,
                stack=cycle,
                span=span,
            )
        try:
            fragment = self.cache.get(key)
        except IncludeError as exc:
            raise IncludeError(
                exc.message,
                href=href,
                stack=self._include_stack + [key],
                span=span,
            ) from exc
        self._fragments[key] = fragment
        return fragment

    def inherited_namespace(self, inherit: Optional[str], env: Environment, span: Optional[SourceSpan]) -> str:
        if inherit is None:
            return env.default_namespace
        return env.namespace_for(inherit, span)

    # ====================================================================
    # Nested grammars
    # ====================================================================

    def nested_grammar(
        self,
        components: Tuple[Component, ...],
        env: Environment,
        path: str,
        label: str,
        parent_grammar: Optional[GrammarScope],
    ) -> GrammarScope:
        grammar = GrammarScope(label=label, parent_grammar=parent_grammar)
        saved, self._overrides = self._overrides, []
        try:
            self.expand_components(components, grammar, env, path)
        finally:
            self._overrides = saved
        return grammar

    def external(self, node: ExternalPattern, env: Environment, path: str) -> GrammarScope:
        key = self.cache.canonicalize(node.href, path)
        fragment = self.fetch(key, node.href, node.span)
        fragment_env = Environment.from_declarations(
            fragment.declarations,
            self.inherited_namespace(node.inherit, env, node.span),
        )
        self._include_stack.append(key)
        try:
            return self.nested_grammar(fragment.components, fragment_env, key, key, None)
        finally:
            self._include_stack.pop()

    # ====================================================================
    # Name and datatype resolution
    # ====================================================================

    def lower(self, node: PatternNode, scope: Scope, env: Environment, path: str) -> PatternNode:
        """Copy ``node`` with names, datatypes and nested grammars resolved."""
        if isinstance(node, BinaryPattern):
            operands = [self.lower(operand, scope, env, path) for operand in binary_operands(node)]
            result = operands[0]
            for operand in operands[1:]:
                result = type(node)(result, operand, span=node.span)
            return result
        if isinstance(node, ElementPattern):
            name = self.name_class(node.name, env, attribute=False)
            return ElementPattern(name, self.lower(node.content, scope, env, path), span=node.span)
        if isinstance(node, AttributePattern):
            name = self.name_class(node.name, env, attribute=True)
            return AttributePattern(name, self.lower(node.content, scope, env, path), span=node.span)
        if isinstance(node, UnaryPattern):
            return type(node)(self.lower(node.content, scope, env, path), span=node.span)
        if isinstance(node, DataPattern):
            datatype = self.datatype(node.datatype, env, node.span)
            except_ = self.lower(node.except_, scope, env, path) if node.except_ is not None else None
            return DataPattern(datatype, node.params, except_, span=node.span)
        if isinstance(node, ValuePattern):
            return ValuePattern(node.literal, self.datatype(node.datatype, env, node.span), span=node.span)
        if isinstance(node, GrammarPattern):
            nested = self.nested_grammar(node.components, env, path, "grammar", scope.grammar)
            return GrammarPattern(scope=nested, span=node.span)
        if isinstance(node, ExternalPattern):
            return GrammarPattern(scope=self.external(node, env, path), span=node.span)
        return node

    def datatype(self, datatype: DatatypeName, env: Environment, span: Optional[SourceSpan]) -> DatatypeName:
        return DatatypeName(datatype.local, datatype.prefix, env.datatype_library(datatype, span))

    def name_class(self, node, env: Environment, *, attribute: bool) -> NameClass:
        if isinstance(node, QNameNode):
            if node.prefix is not None:
                return QName(env.namespace_for(node.prefix, node.span), node.local)
            # Unqualified attribute names are in no namespace.
            return QName("" if attribute else env.default_namespace, node.local)
        if isinstance(node, AnyNameNode):
            return AnyName(self._except(node.except_, env, attribute))
        if isinstance(node, NsNameNode):
            return NsName(env.namespace_for(node.prefix, node.span), self._except(node.except_, env, attribute))
        if isinstance(node, NameChoiceNode):
            return NameChoice(
                self.name_class(node.left, env, attribute=attribute),
                self.name_class(node.right, env, attribute=attribute),
            )
        raise TypeError(f"Unexpected name class node: {node!r}")

    def _except(self, node, env: Environment, attribute: bool) -> Optional[NameClass]:
        if node is None:
            return None
        return self.name_class(node, env, attribute=attribute)


def assemble(
    root: GrammarFile,
    cache: Optional[FragmentCache] = None,
    *,
    key: Optional[str] = None,
    strict_overrides: bool = True,
) -> AssembledGrammar:
    """Assemble ``root`` with includes fetched through ``cache``."""
    assembler = GrammarAssembler(cache, strict_overrides=strict_overrides)
    return assembler.assemble(root, key)


__all__ = [
    "XML_NAMESPACE",
    "XSD_DATATYPES",
    "Environment",
    "ScopeKind",
    "Scope",
    "GrammarScope",
    "DefineSite",
    "MergedDefine",
    "AssembledGrammar",
    "GrammarAssembler",
    "assemble",
]
