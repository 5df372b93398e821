"""Reference resolution and freezing into the Schema Model.

Every definition body gets a slot in the pattern arena the first time it is
referenced. Bodies are lowered from a worklist, so references between
definitions never recurse, and every ``Ref`` to a definition points at the
same slot.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional, Tuple, Type, Union

from ooxml_rnc.assembler import AssembledGrammar, GrammarScope, MergedDefine, Scope, assemble
from ooxml_rnc.ast import (
    START,
    AttributePattern,
    BinaryPattern,
    ChoicePattern,
    Combine,
    DataPattern,
    ElementPattern,
    EmptyPattern,
    GrammarFile,
    GrammarPattern,
    GroupPattern,
    InterleavePattern,
    ListPattern,
    MixedPattern,
    NotAllowedPattern,
    OneOrMorePattern,
    OptionalPattern,
    ParentRefPattern,
    PatternNode,
    RefPattern,
    TextPattern,
    ValuePattern,
    ZeroOrMorePattern,
    binary_operands,
    display_name,
)
from ooxml_rnc.errors import CycleError, UndefinedReference
from ooxml_rnc.model import (
    Attribute,
    Binary,
    Choice,
    DataType,
    Element,
    Empty,
    Group,
    Interleave,
    List as ListOf,
    Mixed,
    Named,
    NotAllowed,
    OneOrMore,
    Optional as OptionalOf,
    ParentRef,
    Pattern,
    PatternId,
    Ref,
    SchemaModel,
    Text,
    Unary,
    Value,
    ZeroOrMore,
)
from ooxml_rnc.observability.logging import get_logger

logger = get_logger(__name__)

_BINARY: Dict[type, Type[Binary]] = {
    ChoicePattern: Choice,
    GroupPattern: Group,
    InterleavePattern: Interleave,
}

_UNARY: Dict[type, Type[Unary]] = {
    OptionalPattern: OptionalOf,
    ZeroOrMorePattern: ZeroOrMore,
    OneOrMorePattern: OneOrMore,
    MixedPattern: Mixed,
    ListPattern: ListOf,
}

_LEAVES: Dict[type, Type[Pattern]] = {
    TextPattern: Text,
    EmptyPattern: Empty,
    NotAllowedPattern: NotAllowed,
}

_COMBINE: Dict[Combine, Type[Binary]] = {
    Combine.CHOICE: Choice,
    Combine.INTERLEAVE: Interleave,
}


class PatternResolver:
    """Binds references of an assembled grammar and builds the Schema Model."""

    def __init__(self, grammar: AssembledGrammar):
        self.grammar = grammar
        self.patterns: List[Optional[Pattern]] = []
        self._slots: Dict[MergedDefine, PatternId] = {}
        self._slot_names: Dict[PatternId, str] = {}
        self._slot_defines: Dict[PatternId, MergedDefine] = {}
        self._pending: Deque[Tuple[MergedDefine, PatternId]] = deque()

    def resolve(self) -> SchemaModel:
        root = self.grammar.root
        start = root.start
        if start is None:
            raise UndefinedReference(
                "Grammar has no start pattern",
                name="start",
                path=self.grammar.path or None,
                hint="Add 'start = ...' to the root grammar",
            )
        start_handle = self.slot(start)
        self.enqueue_grammar(root)
        self.drain()
        self.check_cycles()

        defines = {
            merged.name: self._slots[merged]
            for merged in root.iter_defines()
            if merged.name != START
        }
        model = SchemaModel(
            start=start_handle,
            patterns=tuple(self.patterns),  # type: ignore[arg-type]
            defines=defines,
            namespaces=self.grammar.namespaces,
            default_namespace=self.grammar.default_namespace,
            datatype_libraries=self.grammar.datatype_libraries,
            documentation=self.grammar.documentation,
            source=self.grammar.path,
        )
        logger.info(
            "Resolved schema %s: %d definitions, %d patterns",
            self.grammar.path,
            len(model.defines),
            len(model.patterns),
        )
        return model

    # ====================================================================
    # Arena
    # ====================================================================

    def allocate(self) -> PatternId:
        self.patterns.append(None)
        return len(self.patterns) - 1

    def store(self, pattern: Pattern, slot: Optional[PatternId] = None) -> PatternId:
        if slot is None:
            slot = self.allocate()
        self.patterns[slot] = pattern
        return slot

    def slot(self, merged: MergedDefine) -> PatternId:
        """Arena handle of a definition body, reserving it on first use."""
        handle = self._slots.get(merged)
        if handle is None:
            handle = self.allocate()
            self._slots[merged] = handle
            self._slot_names[handle] = display_name(merged.name)
            self._slot_defines[handle] = merged
            self._pending.append((merged, handle))
        return handle

    def enqueue_grammar(self, grammar: GrammarScope) -> None:
        """Reserve every definition of ``grammar`` so unused ones are checked too."""
        for merged in grammar.iter_defines():
            self.slot(merged)

    def drain(self) -> None:
        while self._pending:
            merged, handle = self._pending.popleft()
            self.lower_define(merged, handle)

    def lower_define(self, merged: MergedDefine, slot: PatternId) -> None:
        sites = merged.sites
        if len(sites) == 1:
            self.lower(sites[0].pattern, sites[0].scope, slot)
            return
        node = _COMBINE[merged.combine]
        handles = [self.lower(site.pattern, site.scope) for site in sites]
        result = handles[0]
        for index, handle in enumerate(handles[1:], start=2):
            target = slot if index == len(handles) else None
            result = self.store(node(result, handle), target)

    # ====================================================================
    # Lowering
    # ====================================================================

    def lower(self, node: PatternNode, scope: Scope, slot: Optional[PatternId] = None) -> PatternId:
        """Write ``node`` into the arena and return its handle (``slot`` if given)."""
        if isinstance(node, BinaryPattern):
            kind = _BINARY[type(node)]
            operands = [self.lower(operand, scope) for operand in binary_operands(node)]
            result = operands[0]
            for index, operand in enumerate(operands[1:], start=2):
                target = slot if index == len(operands) else None
                result = self.store(kind(result, operand), target)
            return result
        if isinstance(node, ElementPattern):
            content = self.lower(node.content, scope)
            return self.store(Element(node.name, content), slot)
        if isinstance(node, AttributePattern):
            content = self.lower(node.content, scope)
            return self.store(Attribute(node.name, content), slot)
        if type(node) in _UNARY:
            content = self.lower(node.content, scope)  # type: ignore[attr-defined]
            return self.store(_UNARY[type(node)](content), slot)
        if type(node) in _LEAVES:
            return self.store(_LEAVES[type(node)](), slot)
        if isinstance(node, RefPattern):
            merged = scope.lookup(node.name)
            if merged is None:
                raise UndefinedReference(
                    f"Undefined reference '{node.name}'",
                    name=node.name,
                    span=node.span,
                )
            return self.store(Ref(node.name, self.slot(merged)), slot)
        if isinstance(node, ParentRefPattern):
            return self.store(ParentRef(node.name, self.slot(self.parent_define(node, scope))), slot)
        if isinstance(node, DataPattern):
            except_ = self.lower(node.except_, scope) if node.except_ is not None else None
            params = tuple((param.name, param.value) for param in node.params)
            return self.store(DataType(node.datatype.library or "", node.datatype.local, params, except_), slot)
        if isinstance(node, ValuePattern):
            datatype = node.datatype
            return self.store(Value(node.literal, datatype.library or "", datatype.local), slot)
        if isinstance(node, GrammarPattern):
            nested: GrammarScope = node.scope
            if nested.start is None:
                raise UndefinedReference(
                    "Nested grammar has no start pattern",
                    name="start",
                    span=node.span,
                )
            handle = self.slot(nested.start)
            self.enqueue_grammar(nested)
            return self.store(Ref("start", handle), slot)
        raise TypeError(f"Cannot resolve pattern node {node!r}")

    def parent_define(self, node: ParentRefPattern, scope: Scope) -> MergedDefine:
        parent = scope.grammar.parent_grammar
        if parent is None:
            raise UndefinedReference(
                f"'parent {node.name}' used outside a nested grammar",
                name=node.name,
                span=node.span,
            )
        merged = parent.lookup(node.name)
        if merged is None:
            raise UndefinedReference(
                f"Undefined parent reference '{node.name}'",
                name=node.name,
                span=node.span,
            )
        return merged

    # ====================================================================
    # Cycle detection
    # ====================================================================

    def unguarded_targets(self, body: PatternId) -> List[PatternId]:
        """Definition slots reachable from ``body`` without entering an element or attribute."""
        targets: List[PatternId] = []
        stack = [body]
        seen = set()
        while stack:
            handle = stack.pop()
            if handle in seen:
                continue
            seen.add(handle)
            pattern = self.patterns[handle]
            if isinstance(pattern, Named):
                continue
            if isinstance(pattern, Ref):
                targets.append(pattern.target)
                continue
            stack.extend(pattern.children())  # type: ignore[union-attr]
        return targets

    def check_cycles(self) -> None:
        """Reject reference cycles that never pass through an element or attribute."""
        graph = {slot: self.unguarded_targets(slot) for slot in self._slot_names}
        state: Dict[PatternId, int] = {}  # 1 = on the DFS path, 2 = finished
        for root in graph:
            if root in state:
                continue
            path: List[PatternId] = [root]
            iterators = [iter(graph[root])]
            state[root] = 1
            while iterators:
                successor = next(iterators[-1], None)
                if successor is None:
                    state[path.pop()] = 2
                    iterators.pop()
                    continue
                mark = state.get(successor)
                if mark == 1:
                    self.raise_cycle(path[path.index(successor):] + [successor])
                if mark is None:
                    state[successor] = 1
                    path.append(successor)
                    iterators.append(iter(graph[successor]))

    def raise_cycle(self, cycle: List[PatternId]) -> None:
        names = [self._slot_names[handle] for handle in cycle]
        merged = self._slot_defines[cycle[0]]
        raise CycleError(
            f"Reference cycle without an element or attribute: {' -> '.join(names)}",
            cycle=names,
            span=merged.first_span,
        )


def resolve(source: Union[SchemaModel, AssembledGrammar, GrammarFile]) -> SchemaModel:
    """Resolve an assembled grammar into a :class:`SchemaModel`.

    A model passes through unchanged; a raw ``GrammarFile`` is assembled
    first with includes read from the file system.
    """
    if isinstance(source, SchemaModel):
        return source
    if isinstance(source, GrammarFile):
        source = assemble(source)
    return PatternResolver(source).resolve()


__all__ = ["PatternResolver", "resolve"]
