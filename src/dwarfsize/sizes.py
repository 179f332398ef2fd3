"""Byte counts claimed directly by a single debug entry.

An entry that references output code does so in one of three ways:

- a ``low_pc`` alone, naming a location rather than a region;
- a ``low_pc`` and a ``high_pc``, naming one region;
- a ``ranges`` list, naming several regions.

The first case maps no bytes.  The other two are summed here.
"""

from __future__ import annotations

from typing import Optional

from dwarfsize.types import DebugEntry, HighPcKind


def entry_mapped_size(entry: DebugEntry) -> Optional[int]:
    """Return the number of code bytes *entry* maps, or *None* if it maps none.

    Ranges are consulted first, as compilation units can carry a ``low_pc``
    *and* a ``ranges`` attribute.
    """
    if entry.ranges is not None:
        return sum(r.size for r in entry.ranges)
    if entry.low_pc is None or entry.high_pc is None:
        return None
    return unpack_size(entry.low_pc, entry.high_pc, entry.high_pc_kind)


def unpack_size(low: int, high: int, kind: HighPcKind) -> Optional[int]:
    if kind is HighPcKind.ADDRESS:
        # A region ending before it starts maps nothing we can count.
        return high - low if high >= low else None
    if kind is HighPcKind.LENGTH:
        return high
    return None
