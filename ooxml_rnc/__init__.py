"""
RELAX NG Compact Syntax front end for Office Open XML schemas.

The OOXML (ECMA-376) schemas are published in RELAX NG Compact Syntax.
This package reads them into an immutable :class:`SchemaModel` that
validators and binding generators can walk without locking.

The pipeline runs in four stages:

* ``lang.parser`` – lexer and recursive descent parser producing the raw
  syntax tree in ``ast``.
* ``assembler`` – expands ``include`` directives (each fragment parsed once
  through the cache in ``fragments``), applies override blocks, combines
  repeated definitions and resolves namespace and datatype prefixes.
* ``resolver`` – binds every reference to a shared handle in the pattern
  arena, rejects undefined names and unguarded reference cycles, and
  freezes the result.
* ``loader`` – ``load_schema`` and ``parse_schema`` wire the stages
  together.
"""

import re
from pathlib import Path
from importlib import metadata as _metadata

from .errors import (
    CycleError,
    DefineConflict,
    IncludeError,
    LexError,
    ParseError,
    RncError,
    UndeclaredPrefix,
    UndefinedReference,
)
from .fragments import FileSystemResolver, FragmentCache, IncludeResolver, MappingResolver
from .lang.parser import parse_grammar, tokenize
from .loader import load_grammar, load_schema, parse_schema
from .model import SchemaModel
from .resolver import resolve


def _local_version() -> str | None:
    root = Path(__file__).resolve().parents[1]
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        return None
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:  # pragma: no cover - IO errors should not break imports
        return None
    match = re.search(r"^version\s*=\s*\"([^\"]+)\"", text, flags=re.MULTILINE)
    if match:
        return match.group(1)
    return None


try:  # pragma: no cover - metadata fallback for editable installs
    __version__ = _metadata.version("ooxml-rnc")
except _metadata.PackageNotFoundError:  # pragma: no cover - source tree
    __version__ = _local_version() or "0.1.0"

__all__ = [
    "__version__",
    "load_schema",
    "parse_schema",
    "load_grammar",
    "parse_grammar",
    "tokenize",
    "resolve",
    "SchemaModel",
    "IncludeResolver",
    "FileSystemResolver",
    "MappingResolver",
    "FragmentCache",
    "RncError",
    "LexError",
    "ParseError",
    "IncludeError",
    "DefineConflict",
    "UndefinedReference",
    "CycleError",
    "UndeclaredPrefix",
]
