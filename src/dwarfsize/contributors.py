"""Keys and accumulation for the size report.

A :data:`Contributors` mapping goes from a contribution key to the number of
bytes attributed to it.  Keys are ``;``-joined paths, the separator used by
folded-stack flame-graph input, for example::

    @source_files;home;proj;src;main.c;@function: main
"""

from __future__ import annotations

from typing import Mapping, Optional

from dwarfsize.types import DwarfAnalysisOpts

Contributors = dict[str, int]

KEY_SEPARATOR = ";"
SOURCE_FILES_SEGMENT = "@source_files"
UNKNOWN_UNIT = "<unknown compilation unit>"


def unit_label(name: Optional[str]) -> str:
    """Return the display name of a compilation unit."""
    if name is None:
        return UNKNOWN_UNIT
    return name.lstrip("/")


def contribution_key(
    directory: str,
    file_name: str,
    function: str,
    opts: Optional[DwarfAnalysisOpts] = None,
    unit_name: Optional[str] = None,
) -> str:
    """Build the key bytes of *function* in *directory*/*file_name* go under.

    Parameters:
        directory: Resolved directory of the source file.
        file_name: Resolved source file name.
        function:  Function name.
        opts:      Key options; the defaults split directories into their
                   components and add no prefix.
        unit_name: Name of the owning compilation unit, used when
                   ``opts.compilation_units`` is set.

    Returns:
        The ``;``-joined key.
    """
    if opts is None:
        opts = DwarfAnalysisOpts()
    segments = []
    if opts.prefix:
        segments.append(opts.prefix)
    if opts.compilation_units:
        segments.append(f"@compilation_unit: {unit_label(unit_name)}")
    segments.append(SOURCE_FILES_SEGMENT)
    if opts.split_paths:
        segments.extend(part for part in directory.split("/") if part)
    else:
        segments.append(directory)
    segments.append(file_name)
    segments.append(f"@function: {function}")
    return KEY_SEPARATOR.join(segments)


def add_contribution(contributors: Contributors, key: str, size: int) -> None:
    """Add *size* bytes to *key*, summing with what is already there."""
    contributors[key] = contributors.get(key, 0) + size


def merge_into(target: Contributors, other: Mapping[str, int]) -> Contributors:
    """Sum every count of *other* into *target* and return *target*."""
    for key, size in other.items():
        add_contribution(target, key, size)
    return target


def merge_contributors(*maps: Mapping[str, int]) -> Contributors:
    """Merge any number of mappings into a new one, summing shared keys.

    Keys keep the order in which they were first seen.
    """
    merged: Contributors = {}
    for contributors in maps:
        merge_into(merged, contributors)
    return merged


def total_size(contributors: Mapping[str, int]) -> int:
    """Return the number of bytes accounted for by *contributors*."""
    return sum(contributors.values())
