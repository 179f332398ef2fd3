"""Resolve where a debug entry's code came from.

Concrete instances of a function (inlined copies, out-of-line bodies of
inline functions) usually carry no name or declaration file of their own.
They point at the declaring entry through an *abstract origin*; C++
out-of-line member definitions point at their in-class declaration through
a *specification*.  Both are followed here.  Nothing in this module
raises: anything that cannot be resolved ends up under the
``<unknown ...>`` sentinels.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Optional

from dwarfsize.types import CompilationUnit, DebugEntry

logger = logging.getLogger(__name__)

UNKNOWN_DIR = "<unknown dir>"
UNKNOWN_FILE = "<unknown file>"
UNKNOWN_FUNCTION = "<unknown function>"


def _reference(entry: DebugEntry) -> Optional[int]:
    if entry.abstract_origin is not None:
        return entry.abstract_origin
    return entry.specification


def origin_chain(
    entry: DebugEntry, unit: CompilationUnit
) -> tuple[list[DebugEntry], bool]:
    """Return *entry* followed by the entries it refers back to.

    Each step follows the entry's abstract origin or, for a definition
    completing an earlier declaration, its specification.  The flag is
    *False* when the chain ends in a dangling reference or a reference
    cycle, in which case the declaration cannot be trusted.
    """
    chain = [entry]
    seen = {entry.offset}
    current = entry
    reference = _reference(current)
    while reference is not None:
        target = unit.entry_at(reference)
        if target is None:
            logger.debug(
                "Reference %#x of entry %#x is not in unit %#x",
                reference,
                current.offset,
                unit.offset,
            )
            return chain, False
        if target.offset in seen:
            logger.debug(
                "Reference cycle through entry %#x in unit %#x",
                target.offset,
                unit.offset,
            )
            return chain, False
        seen.add(target.offset)
        chain.append(target)
        current = target
        reference = _reference(current)
    return chain, True


def unpack_file(entry: DebugEntry, unit: CompilationUnit) -> Optional[tuple[str, str]]:
    """Return the raw ``(directory, file)`` *entry* is declared in, or *None*.

    Entries with an abstract origin never use their own declaration file.
    The first entry of the chain without one decides: a definition that
    completes a declaration keeps its own file when it has one, otherwise
    the declaration's file is used.
    """
    chain, complete = origin_chain(entry, unit)
    if not complete:
        return None
    declaring = [e for e in chain if e.abstract_origin is None]
    source_entry = next((e for e in declaring if e.decl_file is not None), None)
    if source_entry is None or unit.line_program is None:
        return None
    source = unit.line_program.file(source_entry.decl_file)
    if source is None:
        logger.debug(
            "File index %d of entry %#x is not in the line program of unit %#x",
            source_entry.decl_file,
            source_entry.offset,
            unit.offset,
        )
        return None
    return source.directory, source.name


def normalize_directory(directory: str, comp_dir: Optional[str]) -> str:
    """Anchor a relative *directory* at the compilation directory."""
    if directory.startswith("/") or directory.startswith("<") or not comp_dir:
        return directory
    return posixpath.normpath(posixpath.join(comp_dir, directory))


def resolve_location(entry: DebugEntry, unit: CompilationUnit) -> tuple[str, str]:
    """Return the ``(directory, file)`` *entry*'s code originates from.

    Relative directories are made absolute against the unit's compilation
    directory.  Unresolvable locations come back as
    ``(UNKNOWN_DIR, UNKNOWN_FILE)``.
    """
    location = unpack_file(entry, unit)
    if location is None:
        return UNKNOWN_DIR, UNKNOWN_FILE
    directory, file_name = location
    return normalize_directory(directory, unit.comp_dir), file_name


def resolve_name(entry: DebugEntry, unit: CompilationUnit) -> str:
    """Return the name of *entry*, looking through the entries it refers to."""
    chain, _ = origin_chain(entry, unit)
    for candidate in chain:
        if candidate.name is not None:
            return candidate.name
    return UNKNOWN_FUNCTION
