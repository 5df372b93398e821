"""Centralised logging helpers for the schema loader.

The library only creates loggers; configuring handlers is left to the
application.
"""

from __future__ import annotations

import logging
from typing import Dict

_LOGGER_CACHE: Dict[str, logging.Logger] = {}


def get_logger(name: str = "ooxml_rnc") -> logging.Logger:
    """Return a cached :class:`logging.Logger` instance."""

    if name not in _LOGGER_CACHE:
        _LOGGER_CACHE[name] = logging.getLogger(name)
    return _LOGGER_CACHE[name]
