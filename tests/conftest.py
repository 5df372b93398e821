"""Shared pytest fixtures for the schema loader tests."""

from pathlib import Path
from typing import Callable, Dict

import pytest

from ooxml_rnc.config import LoaderConfig
from ooxml_rnc.fragments import MappingResolver
from ooxml_rnc.loader import load_schema
from ooxml_rnc.model import SchemaModel

FIXTURES = Path(__file__).parent / "fixtures"


def pytest_configure(config):
    """Register markers for pytest."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def write_grammar(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a grammar file below ``tmp_path`` and return its path."""

    def _write(relative: str, content: str) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def load_sources() -> Callable[..., SchemaModel]:
    """Load an in-memory set of grammars, rooted at ``main.rnc`` by default."""

    def _load(sources: Dict[str, str], root: str = "main.rnc", **settings) -> SchemaModel:
        settings.setdefault("prefetch", False)
        return load_schema(root, MappingResolver(sources), config=LoaderConfig(**settings))

    return _load
