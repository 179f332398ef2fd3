"""Render a Contributors mapping.

The main output is the folded-stack format read by flame-graph tools
(``inferno``, ``flamegraph.pl``, speedscope): one ``<key> <count>`` line per
key, where the key's ``;``-separated segments are the stack frames.
"""

from __future__ import annotations

from typing import IO, Iterator, Mapping

from dwarfsize.contributors import total_size

__all__ = ["folded_lines", "largest", "total_size", "write_folded"]


def _ordered(contributors: Mapping[str, int], sort: bool) -> list[tuple[str, int]]:
    items = list(contributors.items())
    if sort:
        items.sort(key=lambda item: (-item[1], item[0]))
    return items


def folded_lines(contributors: Mapping[str, int], sort: bool = False) -> Iterator[str]:
    """Yield one folded-stack line per key.

    Keys come in mapping order, or largest first (ties by key) when *sort*
    is set.
    """
    for key, size in _ordered(contributors, sort):
        yield f"{key} {size}"


def write_folded(
    contributors: Mapping[str, int], stream: IO[str], sort: bool = False
) -> int:
    """Write :func:`folded_lines` to *stream* and return the line count."""
    count = 0
    for line in folded_lines(contributors, sort=sort):
        stream.write(line + "\n")
        count += 1
    return count


def largest(contributors: Mapping[str, int], limit: int) -> list[tuple[str, int]]:
    """Return the *limit* largest ``(key, size)`` pairs, largest first."""
    if limit <= 0:
        return []
    return _ordered(contributors, sort=True)[:limit]
