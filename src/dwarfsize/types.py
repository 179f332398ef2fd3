"""Data types for the dwarfsize analysis.

These dataclasses mirror the pieces of DWARF debugging information that
size attribution needs: compilation units, the tree of debug entries they
own, the line-program file table, and address ranges.  Readers (such as
:mod:`dwarfsize.elf`) build them once; the analysis only reads them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, Optional


class Tag(enum.Enum):
    """The kind of program construct a :class:`DebugEntry` describes."""

    SUBPROGRAM = "subprogram"
    INLINED_SUBROUTINE = "inlined_subroutine"
    COMPILATION_UNIT = "compilation_unit"
    OTHER = "other"

    @property
    def is_size_bearing(self) -> bool:
        """Whether entries with this tag own machine code that is attributed."""
        return self in (Tag.SUBPROGRAM, Tag.INLINED_SUBROUTINE)


class HighPcKind(enum.Enum):
    """How the high-address attribute of an entry is encoded."""

    ADDRESS = "address"
    LENGTH = "length"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class AddressRange:
    """A half-open range ``[begin, end)`` of code addresses."""

    begin: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.begin


@dataclass(frozen=True)
class SourceFile:
    """One row of a line-program file table.

    Attributes:
        directory: The directory the file lives in, possibly relative to
                   the compilation directory.
        name:      The file name.
    """

    directory: str
    name: str


@dataclass(frozen=True)
class LineProgram:
    """The file table of a compilation unit's line-number program."""

    files: dict[int, SourceFile] = field(default_factory=dict)

    def file(self, index: int) -> Optional[SourceFile]:
        """Return the file-table row for *index*, or *None* if there is none."""
        return self.files.get(index)


@dataclass
class DebugEntry:
    """A node of a compilation unit's debug-information tree.

    Attributes:
        offset:          Identifier of the entry, unique within its unit.
        tag:             What the entry describes.
        name:            The entry's own name, if it carries one.
        low_pc:          Lowest code address, if any.
        high_pc:         High address or length, see ``high_pc_kind``.
        high_pc_kind:    Encoding of ``high_pc``.
        ranges:          Resolved address ranges, if the entry has any.
        decl_file:       Line-program file index the entry is declared in.
        abstract_origin: Offset of the entry this one is an instance of.
        specification:   Offset of the declaration this entry completes, as
                         for out-of-line definitions of C++ member functions.
        abstract:        The entry only declares a function (a declaration or
                         an abstract instance root) and owns no code.
        children:        Child entries, in order.
    """

    offset: int
    tag: Tag
    name: Optional[str] = None
    low_pc: Optional[int] = None
    high_pc: Optional[int] = None
    high_pc_kind: HighPcKind = HighPcKind.ADDRESS
    ranges: Optional[tuple[AddressRange, ...]] = None
    decl_file: Optional[int] = None
    abstract_origin: Optional[int] = None
    specification: Optional[int] = None
    abstract: bool = False
    children: list["DebugEntry"] = field(default_factory=list)

    @property
    def has_children(self) -> bool:
        return bool(self.children)


@dataclass
class CompilationUnit:
    """One compilation unit and the debug-entry tree it owns.

    Attributes:
        offset:       Offset of the unit in the debug information.
        root:         The unit's top entry (normally tagged
                      :attr:`Tag.COMPILATION_UNIT`).
        name:         The unit's name, usually the primary source path.
        comp_dir:     The working directory of the compilation.
        line_program: The unit's line-program file table, if present.
    """

    offset: int
    root: Optional[DebugEntry]
    name: Optional[str] = None
    comp_dir: Optional[str] = None
    line_program: Optional[LineProgram] = None
    _index: dict[int, DebugEntry] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for entry in self.iter_entries():
            self._index[entry.offset] = entry

    def iter_entries(self) -> Iterator[DebugEntry]:
        """Yield every entry of the unit in depth-first pre-order."""
        if self.root is None:
            return
        stack = [self.root]
        while stack:
            entry = stack.pop()
            yield entry
            stack.extend(reversed(entry.children))

    def entry_at(self, offset: int) -> Optional[DebugEntry]:
        """Return the entry with the given *offset*, or *None*."""
        return self._index.get(offset)


@dataclass
class DebugInfo:
    """All compilation units of one binary, in the order they appear."""

    units: list[CompilationUnit] = field(default_factory=list)

    def iter_units(self) -> Iterator[CompilationUnit]:
        return iter(self.units)


@dataclass(frozen=True)
class DwarfAnalysisOpts:
    """Options that shape the keys produced by :func:`dwarfsize.analyze`.

    Attributes:
        prefix:            Label used as the first segment of every key.
        compilation_units: Partition keys by compilation unit.
        split_paths:       Keep directory components as separate key
                           segments instead of a single one.
        skip_unmapped:     Skip functions that own no code instead of
                           failing the analysis.
    """

    prefix: Optional[str] = None
    compilation_units: bool = False
    split_paths: bool = True
    skip_unmapped: bool = False
