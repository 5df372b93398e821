"""Observability helpers for the schema loader."""

from .logging import get_logger

__all__ = ["get_logger"]
