"""Source location information for tokens and syntax nodes."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceSpan:
    """
    Represents a region of grammar source text.

    ``line`` and ``column`` are 1-based and count characters; ``offset`` and
    ``length`` count bytes of the UTF-8 encoding so that tools working on the
    raw file can seek directly to the token.
    """
    path: str
    line: int
    column: int
    offset: int = 0
    length: int = 0

    @property
    def end_offset(self) -> int:
        return self.offset + self.length

    def __str__(self) -> str:
        """Return human-readable location string."""
        return f"{self.path or '<string>'}:{self.line}:{self.column}"


__all__ = ["SourceSpan"]
