"""Unified error model for the RELAX NG Compact pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ooxml_rnc.ast.source_location import SourceSpan


@dataclass
class ErrorLocation:
    path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    def describe(self) -> str:
        if self.path and self.line is not None and self.column is not None:
            return f"{self.path}:{self.line}:{self.column}"
        if self.path and self.line is not None:
            return f"{self.path}:{self.line}"
        if self.path:
            return self.path
        return "unknown location"


class RncError(Exception):
    """Base class for every error surfaced while loading a schema."""

    code: Optional[str] = "RNC_ERROR"
    hint: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        span: Optional[SourceSpan] = None,
        path: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if span is not None:
            path = path if path is not None else span.path
            line = line if line is not None else span.line
            column = column if column is not None else span.column
        self.message = message
        self.span = span
        self.location = ErrorLocation(path=path, line=line, column=column)
        self.path = path
        self.line = line
        self.column = column
        if code is not None:
            self.code = code
        if hint is not None:
            self.hint = hint

    def format(self) -> str:
        components = [self.message]
        meta_parts = []
        location_desc = self.location.describe()
        if location_desc != "unknown location":
            meta_parts.append(location_desc)
        if self.code:
            meta_parts.append(self.code)
        if meta_parts:
            components[-1] = f"{components[-1]} ({'; '.join(meta_parts)})"
        if self.hint:
            components.append(f"Hint: {self.hint}")
        return " ".join(part for part in components if part)

    def __str__(self) -> str:
        return self.format()


class LexError(RncError):
    """Raised for invalid characters, invalid bytes and unterminated literals."""

    code = "LEX_ERROR"

    def __init__(self, message: str, *, char: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.char = char


class ParseError(RncError):
    """Raised when the parser meets a token it cannot accept."""

    code = "PARSE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        expected: Optional[Sequence[str]] = None,
        found: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.expected: List[str] = list(expected or [])
        self.found = found

    def format(self) -> str:
        base = super().format()
        details = []
        if self.expected:
            if len(self.expected) == 1:
                details.append(f"Expected: {self.expected[0]}")
            else:
                details.append(f"Expected one of: {', '.join(self.expected)}")
        if self.found:
            details.append(f"Found: {self.found}")
        if details:
            return base + "\n  " + "\n  ".join(details)
        return base


class IncludeError(RncError):
    """Raised for unreadable include targets and include cycles."""

    code = "INCLUDE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        href: Optional[str] = None,
        stack: Sequence[str] = (),
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.href = href
        self.stack: Tuple[str, ...] = tuple(stack)


class DefineConflict(RncError):
    """Raised when definitions of one name cannot be combined."""

    code = "DEFINE_CONFLICT"

    def __init__(
        self,
        message: str,
        *,
        name: Optional[str] = None,
        first_span: Optional[SourceSpan] = None,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.name = name
        self.first_span = first_span

    def format(self) -> str:
        base = super().format()
        if self.first_span is not None:
            return f"{base}\n  First defined at: {self.first_span}"
        return base


class UndefinedReference(RncError):
    """Raised when a reference names no visible definition."""

    code = "UNDEFINED_REFERENCE"

    def __init__(self, message: str, *, name: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.name = name


class CycleError(RncError):
    """Raised for reference cycles that never pass through an element or attribute."""

    code = "CYCLE_ERROR"

    def __init__(self, message: str, *, cycle: Sequence[str] = (), **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.cycle: Tuple[str, ...] = tuple(cycle)


class UndeclaredPrefix(RncError):
    """Raised when a name or datatype uses a prefix with no declaration."""

    code = "UNDECLARED_PREFIX"

    def __init__(self, message: str, *, prefix: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.prefix = prefix


__all__ = [
    "ErrorLocation",
    "RncError",
    "LexError",
    "ParseError",
    "IncludeError",
    "DefineConflict",
    "UndefinedReference",
    "CycleError",
    "UndeclaredPrefix",
]
