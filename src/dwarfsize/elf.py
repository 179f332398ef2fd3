"""Read DWARF debugging information out of ELF files.

The reading itself is done by pyelftools; this module converts its
compilation units and DIEs into the :mod:`dwarfsize.types` model that
:func:`dwarfsize.analyze` works on.  Errors raised by pyelftools
(``ELFError``, ``DWARFError``) are not caught here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from elftools.elf.elffile import ELFFile

from dwarfsize.exceptions import DebugInfoError, MissingDebugInfoError
from dwarfsize.types import (
    AddressRange,
    CompilationUnit,
    DebugEntry,
    DebugInfo,
    HighPcKind,
    LineProgram,
    SourceFile,
    Tag,
)

logger = logging.getLogger(__name__)

TAGS = {
    "DW_TAG_subprogram": Tag.SUBPROGRAM,
    "DW_TAG_inlined_subroutine": Tag.INLINED_SUBROUTINE,
    "DW_TAG_compile_unit": Tag.COMPILATION_UNIT,
}

ADDRESS_FORMS = frozenset(
    {
        "DW_FORM_addr",
        "DW_FORM_addrx",
        "DW_FORM_addrx1",
        "DW_FORM_addrx2",
        "DW_FORM_addrx3",
        "DW_FORM_addrx4",
    }
)
# DWARF 4 and later encode DW_AT_high_pc as an offset from DW_AT_low_pc
# whenever a constant form is used.
CONSTANT_FORMS = frozenset(
    {
        "DW_FORM_data1",
        "DW_FORM_data2",
        "DW_FORM_data4",
        "DW_FORM_data8",
        "DW_FORM_udata",
        "DW_FORM_sdata",
        "DW_FORM_implicit_const",
    }
)
UNIT_REFERENCE_FORMS = frozenset(
    {
        "DW_FORM_ref1",
        "DW_FORM_ref2",
        "DW_FORM_ref4",
        "DW_FORM_ref8",
        "DW_FORM_ref_udata",
    }
)


def open_debug_info(path: Union[str, Path]) -> DebugInfo:
    """Read the DWARF data of the ELF file at *path*.

    The whole tree is converted before the file is closed.

    Raises:
        MissingDebugInfoError: If the file carries no DWARF data.
        elftools.common.exceptions.ELFError: If the file is not a valid ELF.
    """
    with open(path, "rb") as f:
        elf_file = ELFFile(f)
        if not elf_file.has_dwarf_info():
            raise MissingDebugInfoError(f"{path} has no DWARF info")
        debug_info = debug_info_from_dwarf(elf_file.get_dwarf_info())
    logger.info("Read %d compilation units from %s", len(debug_info.units), path)
    return debug_info


def debug_info_from_dwarf(dwarfinfo: Any) -> DebugInfo:
    """Convert every compilation unit of a pyelftools ``DWARFInfo``."""
    return DebugInfo(
        units=[convert_unit(cu, dwarfinfo) for cu in dwarfinfo.iter_CUs()]
    )


def convert_unit(cu: Any, dwarfinfo: Any) -> CompilationUnit:
    """Convert one pyelftools ``CompileUnit`` and the DIE tree it owns."""
    top_die = cu.get_top_DIE()
    comp_dir = string_attribute(top_die, "DW_AT_comp_dir")
    base_address = _attribute_value(top_die, "DW_AT_low_pc") or 0

    line_program = None
    program = dwarfinfo.line_program_for_CU(cu)
    if program is not None:
        line_program = line_program_from_header(program.header, comp_dir)

    return CompilationUnit(
        offset=cu.cu_offset,
        root=convert_die(top_die, cu, dwarfinfo, base_address),
        name=string_attribute(top_die, "DW_AT_name"),
        comp_dir=comp_dir,
        line_program=line_program,
    )


def convert_die(die: Any, cu: Any, dwarfinfo: Any, base_address: int = 0) -> DebugEntry:
    """Convert *die* and, recursively, its children."""
    attributes = die.attributes
    high_pc = attributes.get("DW_AT_high_pc")
    kind = high_pc_kind(high_pc.form) if high_pc is not None else HighPcKind.ADDRESS
    entry = DebugEntry(
        offset=die.offset,
        tag=TAGS.get(die.tag, Tag.OTHER),
        name=string_attribute(die, "DW_AT_name"),
        low_pc=_attribute_value(die, "DW_AT_low_pc"),
        high_pc=high_pc.value if high_pc is not None else None,
        high_pc_kind=kind,
        ranges=resolve_ranges(die, cu, dwarfinfo, base_address),
        decl_file=_attribute_value(die, "DW_AT_decl_file"),
        abstract_origin=unit_reference(die, cu, "DW_AT_abstract_origin"),
        specification=unit_reference(die, cu, "DW_AT_specification"),
        abstract=is_abstract(die),
    )
    entry.children = [
        convert_die(child, cu, dwarfinfo, base_address) for child in die.iter_children()
    ]
    return entry


def is_abstract(die: Any) -> bool:
    """Whether *die* declares a function without being a concrete copy of it."""
    if _attribute_value(die, "DW_AT_declaration"):
        return True
    # Any DW_AT_inline other than DW_INL_not_inlined (0) marks the abstract
    # instance root of an inline function; its concrete copies point back at
    # it through DW_AT_abstract_origin.
    return bool(_attribute_value(die, "DW_AT_inline"))


def high_pc_kind(form: str) -> HighPcKind:
    if form in ADDRESS_FORMS:
        return HighPcKind.ADDRESS
    if form in CONSTANT_FORMS:
        return HighPcKind.LENGTH
    return HighPcKind.UNSUPPORTED


def resolve_ranges(
    die: Any, cu: Any, dwarfinfo: Any, base_address: int = 0
) -> Optional[tuple[AddressRange, ...]]:
    """Return the address ranges listed by *die*'s ``DW_AT_ranges``.

    Returns *None* when the DIE has no ranges attribute.  Relative entries
    are rebased on the most recent base-address entry, or on the unit's
    ``DW_AT_low_pc`` before the first one.

    The attribute value is an offset into ``.debug_ranges`` or
    ``.debug_rnglists``; pyelftools has already resolved
    ``DW_FORM_rnglistx`` indices through the unit's offset table.  *cu*
    selects the section and resolves indirect addresses in DWARF 5 lists.

    Raises:
        DebugInfoError: If the binary has no range-list section to resolve
            the attribute against.
    """
    attribute = die.attributes.get("DW_AT_ranges")
    if attribute is None:
        return None
    range_lists = dwarfinfo.range_lists()
    if range_lists is None:
        raise DebugInfoError(
            f"DIE at {die.offset:#x} has DW_AT_ranges but the binary has no range lists"
        )
    ranges = []
    base = base_address
    for item in range_lists.get_range_list_at_offset(attribute.value, cu=cu):
        if hasattr(item, "base_address"):
            base = item.base_address
        elif getattr(item, "is_absolute", False):
            ranges.append(AddressRange(item.begin_offset, item.end_offset))
        else:
            ranges.append(AddressRange(base + item.begin_offset, base + item.end_offset))
    return tuple(ranges)


def unit_reference(die: Any, cu: Any, name: str) -> Optional[int]:
    """Return the section offset of the DIE referenced by attribute *name*.

    Unit-relative reference forms are rebased on the unit's offset.
    Forms that do not name a DIE in ``.debug_info`` give *None*.
    """
    attribute = die.attributes.get(name)
    if attribute is None:
        return None
    if attribute.form in UNIT_REFERENCE_FORMS:
        return cu.cu_offset + attribute.value
    if attribute.form == "DW_FORM_ref_addr":
        return attribute.value
    return None


def line_program_from_header(header: Any, comp_dir: Optional[str] = None) -> LineProgram:
    """Build the file table of a line-program header.

    DWARF 5 numbers files and directories from 0, with directory 0 being
    the compilation directory.  Earlier versions number both from 1 and use
    directory index 0 for the compilation directory, which is not listed.
    """
    version = header["version"]
    directories = [decode(d) for d in header["include_directory"]]
    first_index = 0 if version >= 5 else 1

    files = {}
    for index, file_entry in enumerate(header["file_entry"], start=first_index):
        dir_index = file_entry["dir_index"]
        if version >= 5:
            directory = directories[dir_index] if dir_index < len(directories) else None
        elif dir_index == 0:
            directory = comp_dir or ""
        else:
            directory = directories[dir_index - 1] if dir_index <= len(directories) else None
        if directory is None:
            logger.debug("File %d refers to missing directory %d", index, dir_index)
            continue
        files[index] = SourceFile(
            directory=directory, name=decode(file_entry["name"])
        )
    return LineProgram(files=files)


def string_attribute(die: Any, name: str) -> Optional[str]:
    value = _attribute_value(die, name)
    if value is None:
        return None
    return decode(value)


def decode(value: Union[bytes, str]) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _attribute_value(die: Any, name: str) -> Any:
    attribute = die.attributes.get(name)
    return attribute.value if attribute is not None else None
