"""Include resolution, fragment memoization and prefetching.

An :class:`IncludeResolver` maps an ``include`` href to a canonical key and
reads the text behind that key. The :class:`FragmentCache` parses each key
exactly once: concurrent requests for the same key wait on the first
request's in-flight entry and observe the same parsed ``GrammarFile`` (or
the same error).
"""

from __future__ import annotations

import posixpath
import threading
from abc import ABC, abstractmethod
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ooxml_rnc.ast import GrammarFile
from ooxml_rnc.errors import IncludeError, RncError
from ooxml_rnc.lang.parser import parse_grammar
from ooxml_rnc.observability.logging import get_logger

logger = get_logger(__name__)

Source = Union[str, bytes]


class IncludeResolver(ABC):
    """Turns include hrefs into canonical keys and reads their source."""

    @abstractmethod
    def canonicalize(self, href: str, base: str) -> str:
        """Canonical key for ``href`` as written in the file ``base``."""

    @abstractmethod
    def read(self, key: str) -> Source:
        """Source text (or UTF-8 bytes) for a canonical key.

        Raises:
            IncludeError: the key cannot be read
        """


class FileSystemResolver(IncludeResolver):
    """Reads includes from disk.

    Relative hrefs resolve against the including file's directory first,
    then against each configured include path.
    """

    def __init__(self, include_paths: Iterable[Union[str, Path]] = (), *, encoding: str = "utf-8"):
        self.include_paths: List[Path] = [Path(path) for path in include_paths]
        self.encoding = encoding

    def canonicalize(self, href: str, base: str) -> str:
        target = Path(href)
        if target.is_absolute():
            return str(target.resolve())
        base_dir = Path(base).parent if base and not base.startswith("<") else Path.cwd()
        candidates = [base_dir / target] + [directory / target for directory in self.include_paths]
        for candidate in candidates:
            if candidate.is_file():
                return str(candidate.resolve())
        return str(candidates[0].resolve())

    def read(self, key: str) -> Source:
        try:
            data = Path(key).read_bytes()
        except OSError as exc:
            raise IncludeError(
                f"Cannot read grammar '{key}': {exc.strerror or exc}",
                href=key,
                path=key,
            ) from exc
        if self.encoding.lower().replace("_", "-") in ("utf-8", "utf8"):
            return data
        try:
            return data.decode(self.encoding)
        except UnicodeDecodeError as exc:
            raise IncludeError(
                f"Cannot decode grammar '{key}' as {self.encoding}",
                href=key,
                path=key,
            ) from exc


class MappingResolver(IncludeResolver):
    """Serves grammars from an in-memory mapping of POSIX-style paths to source."""

    def __init__(self, sources: Mapping[str, Source]):
        self.sources: Dict[str, Source] = {posixpath.normpath(key): value for key, value in sources.items()}

    def canonicalize(self, href: str, base: str) -> str:
        if href.startswith("/"):
            return posixpath.normpath(href)
        base_dir = posixpath.dirname(base) if base and not base.startswith("<") else ""
        return posixpath.normpath(posixpath.join(base_dir, href))

    def read(self, key: str) -> Source:
        try:
            return self.sources[key]
        except KeyError:
            raise IncludeError(f"No grammar source for '{key}'", href=key) from None


class _Entry:
    """In-flight or finished cache entry."""

    __slots__ = ("done", "result", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[GrammarFile] = None
        self.error: Optional[BaseException] = None


class FragmentCache:
    """Path-keyed, single-flight memo of parsed grammar fragments."""

    def __init__(self, resolver: IncludeResolver):
        self.resolver = resolver
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}
        self.parse_counts: Counter = Counter()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._entries)

    def canonicalize(self, href: str, base: str) -> str:
        return self.resolver.canonicalize(href, base)

    def get(self, key: str) -> GrammarFile:
        """Parsed fragment for ``key``, parsing it on first request only."""
        with self._lock:
            entry = self._entries.get(key)
            owner = entry is None
            if owner:
                entry = _Entry()
                self._entries[key] = entry

        if owner:
            try:
                entry.result = self._load(key)
            except BaseException as exc:
                entry.error = exc
                raise
            finally:
                entry.done.set()
            return entry.result

        logger.debug("Fragment cache hit for %s", key)
        entry.done.wait()
        if entry.error is not None:
            raise entry.error
        return entry.result  # type: ignore[return-value]

    def _load(self, key: str) -> GrammarFile:
        source = self.resolver.read(key)
        logger.debug("Parsing grammar fragment %s", key)
        grammar = parse_grammar(source, path=key)
        with self._lock:
            self.parse_counts[key] += 1
        return grammar


def prefetch_includes(
    cache: FragmentCache,
    root: GrammarFile,
    *,
    key: Optional[str] = None,
    max_workers: int = 4,
) -> int:
    """Fetch every fragment reachable from ``root`` on a bounded thread pool.

    Fragments are fetched breadth first, one include level per round.
    Failures stay cached in ``cache`` and surface again when the assembler
    reaches the include that needs them. Returns the number of fragments
    requested.
    """
    root_key = key or root.path
    seen = {root_key}
    requested = 0
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rnc-prefetch") as pool:
        frontier: List[Tuple[str, GrammarFile]] = [(root_key, root)]
        while frontier:
            futures = {}
            for base, grammar in frontier:
                for href in grammar.iter_hrefs():
                    key = cache.canonicalize(href, base)
                    if key in seen:
                        continue
                    seen.add(key)
                    futures[pool.submit(cache.get, key)] = key
            requested += len(futures)
            frontier = []
            for future in as_completed(futures):
                key = futures[future]
                try:
                    frontier.append((key, future.result()))
                except RncError as exc:
                    logger.debug("Prefetch of %s failed: %s", key, exc.message)
    return requested


__all__ = [
    "IncludeResolver",
    "FileSystemResolver",
    "MappingResolver",
    "FragmentCache",
    "prefetch_includes",
]
