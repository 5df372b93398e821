"""Loader configuration support."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older interpreters
    tomllib = None  # type: ignore


CONFIG_CANDIDATES = ("rnc.toml", ".rncrc")


@dataclass
class LoaderConfig:
    """Settings applied when loading a schema."""

    encoding: str = "utf-8"
    prefetch: bool = True
    max_workers: int = 4
    include_paths: List[Path] = field(default_factory=list)
    # Overriding a name the included grammar never defines is an error.
    strict_overrides: bool = True
    source: Optional[Path] = None


def _read_json_config(path: Path) -> Dict[str, Any]:
    content = path.read_text(encoding="utf-8")
    return json.loads(content)


def _read_toml_config(path: Path) -> Dict[str, Any]:
    if tomllib is None:
        raise RuntimeError("TOML parsing requires Python 3.11 or later.")
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _parse_loader(data: Dict[str, Any], root: Path) -> LoaderConfig:
    section = data.get("loader") or {}
    defaults = LoaderConfig()

    paths_raw = section.get("include_paths") or []
    if isinstance(paths_raw, str):
        paths_raw = [paths_raw]
    include_paths: List[Path] = []
    for entry in paths_raw:
        path = Path(str(entry))
        if not path.is_absolute():
            path = (root / path).resolve()
        include_paths.append(path)

    max_workers = int(section.get("max_workers", defaults.max_workers))
    if max_workers < 1:
        raise ValueError(f"max_workers must be at least 1, got {max_workers}")

    return LoaderConfig(
        encoding=str(section.get("encoding") or defaults.encoding),
        prefetch=bool(section.get("prefetch", defaults.prefetch)),
        max_workers=max_workers,
        include_paths=include_paths,
        strict_overrides=bool(section.get("strict_overrides", defaults.strict_overrides)),
    )


def locate_config_file(root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    if explicit is not None:
        return explicit if explicit.exists() else None
    for candidate in CONFIG_CANDIDATES:
        path = root / candidate
        if path.exists():
            return path
    return None


def load_config(root: Path, explicit: Optional[Path] = None) -> LoaderConfig:
    """Read ``rnc.toml`` (``[loader]`` table) or ``.rncrc`` (JSON) from ``root``.

    Without a configuration file the defaults are returned.
    """
    root = Path(root).resolve()
    config_path = locate_config_file(root, explicit)
    if config_path is None:
        return LoaderConfig()

    if config_path.suffix == ".toml":
        data = _read_toml_config(config_path)
    else:
        data = _read_json_config(config_path)

    config = _parse_loader(data, root)
    config.source = config_path
    return config


__all__ = ["LoaderConfig", "CONFIG_CANDIDATES", "locate_config_file", "load_config"]
