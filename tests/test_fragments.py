from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from ooxml_rnc.errors import IncludeError, ParseError
from ooxml_rnc.fragments import FileSystemResolver, FragmentCache, MappingResolver, prefetch_includes
from ooxml_rnc.lang.parser import parse_grammar


class CountingResolver(MappingResolver):
    """Mapping resolver that records reads and answers slowly."""

    def __init__(self, sources, delay: float = 0.05):
        super().__init__(sources)
        self.delay = delay
        self.reads = []
        self._lock = threading.Lock()

    def read(self, key):
        with self._lock:
            self.reads.append(key)
        time.sleep(self.delay)
        return super().read(key)


class TestMappingResolver:
    def test_canonicalize_relative_to_base(self) -> None:
        resolver = MappingResolver({})
        assert resolver.canonicalize("b.rnc", "dir/a.rnc") == "dir/b.rnc"
        assert resolver.canonicalize("../b.rnc", "dir/sub/a.rnc") == "dir/b.rnc"
        assert resolver.canonicalize("/abs/b.rnc", "dir/a.rnc") == "/abs/b.rnc"
        assert resolver.canonicalize("b.rnc", "<string>") == "b.rnc"

    def test_keys_are_normalized(self) -> None:
        resolver = MappingResolver({"./dir/../a.rnc": "start = empty"})
        assert resolver.read("a.rnc") == "start = empty"

    def test_missing_key(self) -> None:
        with pytest.raises(IncludeError) as exc_info:
            MappingResolver({}).read("nope.rnc")
        assert exc_info.value.href == "nope.rnc"


class TestFileSystemResolver:
    def test_relative_to_including_file(self, write_grammar) -> None:
        target = write_grammar("schemas/shared.rnc", "s = empty\n")
        base = write_grammar("schemas/main.rnc", "")
        resolver = FileSystemResolver()
        assert resolver.canonicalize("shared.rnc", str(base)) == str(target.resolve())

    def test_falls_back_to_include_paths(self, write_grammar, tmp_path: Path) -> None:
        target = write_grammar("lib/shared.rnc", "s = empty\n")
        base = write_grammar("schemas/main.rnc", "")
        resolver = FileSystemResolver([tmp_path / "lib"])
        assert resolver.canonicalize("shared.rnc", str(base)) == str(target.resolve())

    def test_unresolvable_href_keeps_first_candidate(self, write_grammar) -> None:
        base = write_grammar("schemas/main.rnc", "")
        resolver = FileSystemResolver()
        key = resolver.canonicalize("missing.rnc", str(base))
        assert key == str((base.parent / "missing.rnc").resolve())
        with pytest.raises(IncludeError):
            resolver.read(key)

    def test_reads_bytes_for_utf8_and_text_otherwise(self, write_grammar) -> None:
        path = write_grammar("a.rnc", "a = empty\n")
        assert FileSystemResolver().read(str(path)) == b"a = empty\n"
        assert FileSystemResolver(encoding="latin-1").read(str(path)) == "a = empty\n"


class TestFragmentCache:
    def test_parses_each_key_once(self) -> None:
        cache = FragmentCache(MappingResolver({"a.rnc": "start = empty"}))
        first = cache.get("a.rnc")
        second = cache.get("a.rnc")
        assert first is second
        assert cache.parse_counts["a.rnc"] == 1
        assert "a.rnc" in cache
        assert cache.keys() == ("a.rnc",)

    @pytest.mark.slow
    def test_concurrent_requests_share_one_parse(self) -> None:
        resolver = CountingResolver({"a.rnc": "start = element a { empty }"})
        cache = FragmentCache(resolver)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: cache.get("a.rnc"), range(16)))

        assert all(result is results[0] for result in results)
        assert resolver.reads == ["a.rnc"]
        assert cache.parse_counts["a.rnc"] == 1

    def test_errors_are_cached(self) -> None:
        resolver = CountingResolver({"bad.rnc": "start = element { }"}, delay=0)
        cache = FragmentCache(resolver)

        with pytest.raises(ParseError) as first:
            cache.get("bad.rnc")
        with pytest.raises(ParseError) as second:
            cache.get("bad.rnc")

        assert first.value is second.value
        assert resolver.reads == ["bad.rnc"]
        assert cache.parse_counts["bad.rnc"] == 0

    def test_interrupts_are_cached_for_later_callers(self) -> None:
        class Interrupted(BaseException):
            pass

        class InterruptedResolver(MappingResolver):
            def read(self, key):
                raise Interrupted(key)

        cache = FragmentCache(InterruptedResolver({}))

        with pytest.raises(Interrupted) as first:
            cache.get("a.rnc")
        with pytest.raises(Interrupted) as second:
            cache.get("a.rnc")

        assert first.value is second.value
        assert cache.parse_counts["a.rnc"] == 0


def test_prefetch_fetches_reachable_fragments() -> None:
    sources = {
        "a.rnc": 'include "b.rnc"\ninclude "c.rnc"\n',
        "b.rnc": 'include "d.rnc"\nb = empty\n',
        "c.rnc": 'include "d.rnc"\nc = empty\n',
        "d.rnc": "d = empty\n",
    }
    resolver = CountingResolver(sources, delay=0)
    cache = FragmentCache(resolver)
    root = parse_grammar('include "a.rnc"\nstart = empty\n', path="main.rnc")

    requested = prefetch_includes(cache, root, max_workers=3)

    assert requested == 4
    assert sorted(resolver.reads) == ["a.rnc", "b.rnc", "c.rnc", "d.rnc"]
    assert set(cache.keys()) == set(sources)


def test_prefetch_leaves_failures_for_the_assembler() -> None:
    cache = FragmentCache(MappingResolver({}))
    root = parse_grammar('include "gone.rnc"\nstart = empty\n', path="main.rnc")

    assert prefetch_includes(cache, root) == 1
    with pytest.raises(IncludeError):
        cache.get("gone.rnc")
