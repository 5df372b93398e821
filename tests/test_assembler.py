from __future__ import annotations

import pytest

from ooxml_rnc.assembler import XML_NAMESPACE, XSD_DATATYPES, AssembledGrammar, ScopeKind
from ooxml_rnc.config import LoaderConfig
from ooxml_rnc.errors import DefineConflict, IncludeError, UndeclaredPrefix
from ooxml_rnc.fragments import MappingResolver
from ooxml_rnc.loader import load_grammar
from ooxml_rnc.model import DataType, QName


def _assemble(sources, root: str = "main.rnc", **settings) -> AssembledGrammar:
    settings.setdefault("prefetch", False)
    return load_grammar(root, MappingResolver(sources), config=LoaderConfig(**settings))


class TestCombine:
    def test_choice_combine_folds_sites_in_order(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": (
                "start = foo\n"
                "foo |= element a { empty }\n"
                "foo |= element b { empty }\n"
            ),
        })
        assert model.describe(model.define("foo")) == "Choice(Element(a, Empty), Element(b, Empty))"

    def test_interleave_combine(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": "start = element x { attrs }\nattrs &= attribute a { text }\nattrs &= attribute b { text }\n",
        })
        assert model.describe(model.define("attrs")) == "Interleave(Attribute(a, Text), Attribute(b, Text))"

    def test_combine_across_included_fragment(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'include "a.rnc"\nstart = foo\nfoo |= element main { empty }\n',
            "a.rnc": "foo |= element frag { empty }\n",
        })
        assert model.describe(model.define("foo")) == "Choice(Element(frag, Empty), Element(main, Empty))"

    def test_duplicate_plain_definitions_conflict(self, load_sources) -> None:
        with pytest.raises(DefineConflict) as exc_info:
            load_sources({"main.rnc": "start = foo\nfoo = empty\nfoo = text\n"})
        err = exc_info.value
        assert err.name == "foo"
        assert err.first_span.line == 2
        assert err.line == 3
        assert err.path == "main.rnc"

    def test_mixed_combine_operators_conflict(self, load_sources) -> None:
        with pytest.raises(DefineConflict) as exc_info:
            load_sources({"main.rnc": "start = foo\nfoo |= empty\nfoo &= text\n"})
        assert "'|='" in exc_info.value.message
        assert "'&='" in exc_info.value.message

    def test_plain_and_combined_sites_conflict(self, load_sources) -> None:
        with pytest.raises(DefineConflict):
            load_sources({"main.rnc": "start = foo\nfoo = empty\nfoo |= text\n"})

    def test_duplicate_start_conflicts(self, load_sources) -> None:
        with pytest.raises(DefineConflict) as exc_info:
            load_sources({"main.rnc": "start = empty\nstart = text\n"})
        assert exc_info.value.name == "start"

    def test_definition_in_div_conflicts_with_grammar_level(self, load_sources) -> None:
        with pytest.raises(DefineConflict):
            load_sources({"main.rnc": "start = a\na = empty\ndiv { a = text }\n"})


class TestOverrides:
    BASE = (
        "start = doc\n"
        "doc = element doc { item }\n"
        "item = element old { empty }\n"
    )

    def test_override_replaces_fragment_definition(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'include "base.rnc" {\n  item = element new { empty }\n}\n',
            "base.rnc": self.BASE,
        })
        assert model.describe(model.define("item")) == "Element(new, Empty)"
        assert model.describe(model.define("doc")) == "Element(doc, Ref(item))"

    def test_override_replaces_every_combined_site(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'include "base.rnc" { item = element c { empty } }\nstart = item\n',
            "base.rnc": "item |= element a { empty }\nitem |= element b { empty }\n",
        })
        assert model.describe(model.define("item")) == "Element(c, Empty)"

    def test_override_applies_to_nested_includes(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'include "base.rnc" { item = text }\n',
            "base.rnc": 'include "inner.rnc"\nstart = element doc { item }\n',
            "inner.rnc": "item = element inner { empty }\n",
        })
        assert model.describe(model.define("item")) == "Text"

    def test_override_of_start(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'include "base.rnc" { start = element other { empty } }\n',
            "base.rnc": self.BASE,
        })
        assert model.describe() == "Element(other, Empty)"

    def test_unmatched_override_is_rejected(self, load_sources) -> None:
        sources = {
            "main.rnc": 'include "base.rnc" {\n  missing = empty\n}\n',
            "base.rnc": self.BASE,
        }
        with pytest.raises(DefineConflict) as exc_info:
            load_sources(sources)
        assert exc_info.value.name == "missing"
        assert exc_info.value.line == 2

        model = load_sources(sources, strict_overrides=False)
        assert "missing" in model.defines


class TestNamespaces:
    def test_default_namespace_applies_to_elements_not_attributes(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'default namespace = "urn:d"\nstart = element doc { attribute id { text } }\n',
        })
        doc = model[model.start]
        assert doc.name == QName("urn:d", "doc")
        assert model[doc.content].name == QName("", "id")
        assert model.default_namespace == "urn:d"

    def test_prefixed_names(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'namespace w = "urn:w"\nstart = element w:p { attribute w:val { text } }\n',
        })
        p = model[model.start]
        assert p.name == QName("urn:w", "p")
        assert model[p.content].name == QName("urn:w", "val")
        assert model.namespaces["w"] == "urn:w"

    def test_xml_prefix_is_predeclared(self, load_sources) -> None:
        model = load_sources({"main.rnc": "start = attribute xml:lang { text }\n"})
        assert model[model.start].name == QName(XML_NAMESPACE, "lang")

    def test_fragment_inherits_default_namespace(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'default namespace = "urn:main"\ninclude "frag.rnc"\nstart = item\n',
            "frag.rnc": "item = element item { empty }\n",
        })
        assert model[model.define("item")].name == QName("urn:main", "item")

    def test_include_inherit_prefix(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'namespace p = "urn:p"\ninclude "frag.rnc" inherit = p\nstart = item\n',
            "frag.rnc": "item = element item { empty }\n",
        })
        assert model[model.define("item")].name == QName("urn:p", "item")

    def test_fragment_namespace_declared_as_inherit(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'default namespace = "urn:main"\ninclude "frag.rnc"\nstart = item\n',
            "frag.rnc": "namespace here = inherit\nitem = element here:item { empty }\n",
        })
        assert model[model.define("item")].name == QName("urn:main", "item")

    def test_undeclared_prefix(self, load_sources) -> None:
        with pytest.raises(UndeclaredPrefix) as exc_info:
            load_sources({"main.rnc": "start = element q:x { empty }\n"})
        err = exc_info.value
        assert err.prefix == "q"
        assert (err.line, err.column) == (1, 17)
        assert "namespace q" in err.format()

    def test_xsd_datatypes_are_predeclared(self, load_sources) -> None:
        model = load_sources({"main.rnc": "start = element a { xsd:int }\n"})
        data = model[model[model.start].content]
        assert data == DataType(XSD_DATATYPES, "int")

    def test_custom_datatype_library(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": 'datatypes d = "urn:dt"\nstart = element a { d:thing { size = "2" } }\n',
        })
        data = model[model[model.start].content]
        assert data.library == "urn:dt"
        assert data.params == (("size", "2"),)
        assert model.datatype_libraries["d"] == "urn:dt"

    def test_builtin_datatypes_have_empty_library(self, load_sources) -> None:
        model = load_sources({"main.rnc": 'start = element a { string "x" }\n'})
        value = model[model[model.start].content]
        assert (value.literal, value.library, value.type) == ("x", "", "string")

    def test_undeclared_datatypes_prefix(self, load_sources) -> None:
        with pytest.raises(UndeclaredPrefix) as exc_info:
            load_sources({"main.rnc": "start = element a { dt:int }\n"})
        assert exc_info.value.prefix == "dt"


class TestIncludes:
    def test_include_cycle_is_reported_with_stack(self, load_sources) -> None:
        with pytest.raises(IncludeError) as exc_info:
            load_sources(
                {
                    "a.rnc": 'include "b.rnc"\nstart = empty\n',
                    "b.rnc": 'include "a.rnc"\n',
                },
                root="a.rnc",
            )
        err = exc_info.value
        assert err.stack == ("a.rnc", "b.rnc", "a.rnc")
        assert "a.rnc -> b.rnc -> a.rnc" in err.message
        assert err.path == "b.rnc"

    def test_missing_include_points_at_directive(self, load_sources) -> None:
        with pytest.raises(IncludeError) as exc_info:
            load_sources({"main.rnc": 'start = empty\ninclude "missing.rnc"\n'})
        err = exc_info.value
        assert err.href == "missing.rnc"
        assert err.stack == ("main.rnc", "missing.rnc")
        assert (err.path, err.line) == ("main.rnc", 2)

    def test_including_a_pattern_file_is_rejected(self, load_sources) -> None:
        with pytest.raises(IncludeError) as exc_info:
            load_sources({
                "main.rnc": 'include "pattern.rnc"\nstart = empty\n',
                "pattern.rnc": "element x { empty }\n",
            })
        assert "pattern" in exc_info.value.message

    def test_relative_hrefs_resolve_against_including_file(self, load_sources) -> None:
        model = load_sources({
            "schemas/main.rnc": 'include "parts/a.rnc"\nstart = a\n',
            "schemas/parts/a.rnc": 'include "../shared/b.rnc"\na = element a { b }\n',
            "schemas/shared/b.rnc": "b = empty\n",
        }, root="schemas/main.rnc")
        assert set(model.defines) == {"a", "b"}

    def test_shared_fragment_under_different_namespaces_conflicts(self, load_sources) -> None:
        with pytest.raises(DefineConflict) as exc_info:
            load_sources({
                "main.rnc": (
                    'namespace p = "urn:p"\n'
                    'namespace q = "urn:q"\n'
                    'include "a.rnc" inherit = p\n'
                    'include "b.rnc" inherit = q\n'
                    "start = element doc { a, b }\n"
                ),
                "a.rnc": 'include "c.rnc"\na = element a { c }\n',
                "b.rnc": 'include "c.rnc"\nb = element b { c }\n',
                "c.rnc": "c = element c { empty }\n",
            })
        err = exc_info.value
        assert "urn:p" in err.message and "urn:q" in err.message
        assert err.path == "b.rnc"
        assert err.first_span is not None and err.first_span.path == "a.rnc"

    def test_shared_fragment_with_own_default_namespace_is_accepted(self, load_sources) -> None:
        model = load_sources({
            "main.rnc": (
                'namespace p = "urn:p"\n'
                'namespace q = "urn:q"\n'
                'include "a.rnc" inherit = p\n'
                'include "b.rnc" inherit = q\n'
                "start = element doc { a, b }\n"
            ),
            "a.rnc": 'include "c.rnc"\na = element a { c }\n',
            "b.rnc": 'include "c.rnc"\nb = element b { c }\n',
            "c.rnc": 'default namespace = "urn:c"\nc = element c { empty }\n',
        })
        assert model[model.define("c")].name == QName("urn:c", "c")
        assert model[model.define("a")].name == QName("urn:p", "a")
        assert model[model.define("b")].name == QName("urn:q", "b")


def test_scopes_record_where_definitions_appear() -> None:
    grammar = _assemble({
        "main.rnc": 'include "frag.rnc"\nstart = a\ndiv { a = element a { b } }\n',
        "frag.rnc": "b = empty\n",
    })
    a = grammar.root.defines["a"]
    b = grammar.root.defines["b"]
    assert a.sites[0].scope.kind is ScopeKind.DIV
    assert b.sites[0].scope.kind is ScopeKind.FRAGMENT
    assert [scope.kind for scope in b.sites[0].scope.chain()] == [
        ScopeKind.FRAGMENT,
        ScopeKind.INCLUDE,
        ScopeKind.GRAMMAR,
    ]
    assert b.sites[0].path == "frag.rnc"
    assert a.sites[0].scope.lookup("b") is b
    assert set(grammar.fragments) == {"frag.rnc"}


def test_definitions_are_recorded_in_their_own_and_grammar_scopes() -> None:
    grammar = _assemble({
        "main.rnc": "start = x\ndiv { y = empty\ndiv { x = element x { y } } }\n",
    })
    x = grammar.root.defines["x"]
    inner = x.sites[0].scope
    outer = inner.parent
    assert inner.kind is ScopeKind.DIV and outer.kind is ScopeKind.DIV
    assert inner.defines["x"] is x
    assert "x" not in outer.defines
    assert outer.defines["y"] is grammar.root.defines["y"]
    assert inner.lookup("y") is grammar.root.defines["y"]
    assert outer.lookup("x") is x
