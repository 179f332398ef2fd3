"""Attribute code size to source files and functions.

:func:`analyze` is the entry point.  It walks the debug-entry tree of every
compilation unit and, for each function or inlined subroutine, charges the
bytes the entry maps minus the bytes already charged to its nested
(inlined) children.  The result is a :data:`~dwarfsize.contributors.Contributors`
mapping keyed by source directory, file and function.
"""

from __future__ import annotations

import logging
from typing import Optional

from dwarfsize.contributors import (
    Contributors,
    add_contribution,
    contribution_key,
    merge_into,
    total_size,
    unit_label,
)
from dwarfsize.exceptions import EmptyTreeError, SizeUnderflowError, UnmappedEntryError
from dwarfsize.locations import resolve_location, resolve_name
from dwarfsize.sizes import entry_mapped_size
from dwarfsize.types import CompilationUnit, DebugEntry, DebugInfo, DwarfAnalysisOpts

logger = logging.getLogger(__name__)


def analyze(
    debug_info: DebugInfo, opts: Optional[DwarfAnalysisOpts] = None
) -> Contributors:
    """Attribute the code of every compilation unit in *debug_info*.

    Parameters:
        debug_info: The units to analyze, e.g. from
            :func:`dwarfsize.elf.open_debug_info`.
        opts: Key options.  Defaults to :class:`DwarfAnalysisOpts`.

    Returns:
        The merged byte counts of all units.  Identical input always
        produces an identical mapping, key order included.

    Raises:
        MalformedDebugInfoError: If any function's size cannot be
            determined or is exceeded by its children.  No partial result
            is returned.
    """
    if opts is None:
        opts = DwarfAnalysisOpts()
    contributors: Contributors = {}
    unit_count = 0
    for unit in debug_info.iter_units():
        merge_into(contributors, analyze_unit(unit, opts))
        unit_count += 1
    logger.info(
        "Attributed %d bytes to %d keys across %d compilation units",
        total_size(contributors),
        len(contributors),
        unit_count,
    )
    return contributors


def analyze_unit(
    unit: CompilationUnit, opts: Optional[DwarfAnalysisOpts] = None
) -> Contributors:
    """Attribute the code of a single compilation unit.

    The tree is searched depth first.  Every function or inlined subroutine
    found is handed to :func:`analyze_die`, which accounts for its whole
    subtree; other entries (namespaces, classes, the unit itself) are only
    searched through.
    """
    if opts is None:
        opts = DwarfAnalysisOpts()
    if unit.root is None:
        raise EmptyTreeError(
            f"Compilation unit {unit_label(unit.name)} has an empty entry tree",
            offset=unit.offset,
        )
    logger.debug(
        "Analyzing compilation unit %s at %#x", unit_label(unit.name), unit.offset
    )

    contributors: Contributors = {}
    pending = [unit.root]
    while pending:
        entry = pending.pop()
        data = analyze_die(entry, unit, opts)
        if data is None:
            pending.extend(reversed(entry.children))
        else:
            merge_into(contributors, data)
    return contributors


def analyze_die(
    entry: DebugEntry,
    unit: CompilationUnit,
    opts: Optional[DwarfAnalysisOpts] = None,
) -> Optional[Contributors]:
    """Return what *entry* and its descendants contribute.

    Returns *None* when *entry* is not a function or inlined subroutine, and
    an empty mapping for declarations, which own no code.
    Otherwise the mapping holds one key per distinct function in the
    subtree, and the counts add up to the bytes *entry* maps.
    """
    if opts is None:
        opts = DwarfAnalysisOpts()
    if not entry.tag.is_size_bearing:
        return None
    if entry.abstract:
        return {}

    name = resolve_name(entry, unit)
    directory, file_name = resolve_location(entry, unit)
    size = entry_mapped_size(entry)
    if size is None:
        if opts.skip_unmapped:
            logger.debug(
                "Skipping %s at %#x without mapped code", name, entry.offset
            )
            return {}
        raise UnmappedEntryError(
            f"{entry.tag.value} {name} at {entry.offset:#x} from "
            f"{directory}/{file_name} has no mapping data",
            name=name,
            file=file_name,
            directory=directory,
            offset=entry.offset,
        )

    # Each level iterates its own children, so returning from a nested
    # subtree always resumes at the right sibling.
    contributors: Contributors = {}
    for child in entry.children:
        child_data = analyze_die(child, unit, opts)
        if child_data:
            merge_into(contributors, child_data)

    children_size = total_size(contributors)
    if children_size > size:
        raise SizeUnderflowError(
            f"Children of {name} from {directory}/{file_name} add up to more "
            f"bytes than the item itself ({children_size} > {size})",
            name=name,
            file=file_name,
            directory=directory,
            offset=entry.offset,
        )

    key = contribution_key(directory, file_name, name, opts, unit.name)
    add_contribution(contributors, key, size - children_size)
    return contributors
