"""Exception hierarchy for dwarfsize.

All dwarfsize-specific exceptions inherit from :class:`DwarfSizeError` so
that callers can catch a single base class when they do not care about the
specific failure mode.  Errors raised by pyelftools while reading a binary
are not wrapped and reach the caller unchanged.
"""

from __future__ import annotations

from typing import Optional


class DwarfSizeError(Exception):
    """Base exception for all dwarfsize operations."""


class DebugInfoError(DwarfSizeError):
    """Raised when the debug information cannot be read or navigated."""


class MissingDebugInfoError(DebugInfoError):
    """Raised when a binary carries no DWARF debugging information."""


class MalformedDebugInfoError(DwarfSizeError):
    """Raised when the debug information is inconsistent.

    Any of these aborts the whole analysis.  The keyword attributes hold
    whatever context was known about the offending entry.
    """

    def __init__(
        self,
        message: str,
        *,
        name: Optional[str] = None,
        file: Optional[str] = None,
        directory: Optional[str] = None,
        offset: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.name = name
        self.file = file
        self.directory = directory
        self.offset = offset


class UnmappedEntryError(MalformedDebugInfoError):
    """Raised when a function or inlined subroutine maps no code at all."""


class SizeUnderflowError(MalformedDebugInfoError):
    """Raised when the children of an entry add up to more bytes than the
    entry itself."""


class EmptyTreeError(MalformedDebugInfoError):
    """Raised when a compilation unit has no entry where a tree was expected."""
