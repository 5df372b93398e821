"""Entry points that run the whole pipeline: read, parse, assemble, resolve."""

from __future__ import annotations

from os import PathLike
from pathlib import Path
from typing import Optional, Union

from ooxml_rnc.assembler import AssembledGrammar, GrammarAssembler
from ooxml_rnc.ast import GrammarFile
from ooxml_rnc.config import LoaderConfig, load_config
from ooxml_rnc.fragments import FileSystemResolver, FragmentCache, IncludeResolver, prefetch_includes
from ooxml_rnc.lang.parser import parse_grammar
from ooxml_rnc.model import SchemaModel
from ooxml_rnc.observability.logging import get_logger
from ooxml_rnc.resolver import resolve

logger = get_logger(__name__)

StrPath = Union[str, "PathLike[str]"]


def _default_resolver(config: LoaderConfig) -> IncludeResolver:
    return FileSystemResolver(config.include_paths, encoding=config.encoding)


def _assemble(root: GrammarFile, key: str, cache: FragmentCache, config: LoaderConfig) -> AssembledGrammar:
    if config.prefetch:
        count = prefetch_includes(cache, root, key=key, max_workers=config.max_workers)
        logger.debug("Prefetched %d fragments for %s", count, key)
    assembler = GrammarAssembler(cache, strict_overrides=config.strict_overrides)
    return assembler.assemble(root, key)


def load_grammar(
    path: StrPath,
    resolver: Optional[IncludeResolver] = None,
    *,
    config: Optional[LoaderConfig] = None,
    cache: Optional[FragmentCache] = None,
) -> AssembledGrammar:
    """
    Read and assemble the grammar rooted at ``path`` without resolving references.

    Without ``config`` the settings come from ``rnc.toml`` or ``.rncrc`` next to
    the root file (see :func:`ooxml_rnc.config.load_config`). Without
    ``resolver`` includes are read from disk relative to the including file.
    """
    if config is None:
        config = load_config(Path(path).parent)
    resolver = resolver or _default_resolver(config)
    cache = cache or FragmentCache(resolver)
    key = cache.canonicalize(str(path), "")
    root = cache.get(key)
    return _assemble(root, key, cache, config)


def load_schema(
    path: StrPath,
    resolver: Optional[IncludeResolver] = None,
    *,
    config: Optional[LoaderConfig] = None,
) -> SchemaModel:
    """
    Load the schema rooted at ``path``.

    Args:
        path: root ``.rnc`` file (a key understood by ``resolver``)
        resolver: include-resolution capability; defaults to file system reads
        config: loader settings

    Returns:
        The frozen :class:`SchemaModel`.

    Raises:
        RncError: the first lexing, parsing, include, definition or
            reference error; no partial model is produced.

    Example:
        ```python
        model = load_schema("schemas/wml.rnc")
        for name, handle in model.iter_defines():
            print(name, model.describe(handle))
        ```
    """
    return resolve(load_grammar(path, resolver, config=config))


def parse_schema(
    source: Union[str, bytes],
    *,
    path: str = "<string>",
    resolver: Optional[IncludeResolver] = None,
    config: Optional[LoaderConfig] = None,
) -> SchemaModel:
    """Load a schema whose root grammar is given as text.

    Includes resolve relative to ``path`` (the current directory for the
    default ``<string>``).
    """
    config = config or LoaderConfig()
    resolver = resolver or _default_resolver(config)
    cache = FragmentCache(resolver)
    key = path if path.startswith("<") else cache.canonicalize(path, "")
    root = parse_grammar(source, path=path)
    return resolve(_assemble(root, key, cache, config))


__all__ = ["load_grammar", "load_schema", "parse_schema"]
