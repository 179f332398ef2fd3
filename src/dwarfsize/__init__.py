"""Attribute the code size of a binary to source files and functions.

Walks the DWARF debugging information of a binary and reports, per source
file and function, how many bytes of machine code it produced.
"""
from dwarfsize.analysis import analyze, analyze_die, analyze_unit
from dwarfsize.contributors import Contributors, contribution_key, merge_contributors
from dwarfsize.elf import open_debug_info
from dwarfsize.exceptions import (
    DebugInfoError,
    DwarfSizeError,
    EmptyTreeError,
    MalformedDebugInfoError,
    MissingDebugInfoError,
    SizeUnderflowError,
    UnmappedEntryError,
)
from dwarfsize.types import (
    AddressRange,
    CompilationUnit,
    DebugEntry,
    DebugInfo,
    DwarfAnalysisOpts,
    HighPcKind,
    LineProgram,
    SourceFile,
    Tag,
)

__version__ = "0.1.0"
__all__ = [
    "analyze",
    "analyze_die",
    "analyze_unit",
    "open_debug_info",
    "Contributors",
    "contribution_key",
    "merge_contributors",
    "AddressRange",
    "CompilationUnit",
    "DebugEntry",
    "DebugInfo",
    "DwarfAnalysisOpts",
    "HighPcKind",
    "LineProgram",
    "SourceFile",
    "Tag",
    "DwarfSizeError",
    "DebugInfoError",
    "MissingDebugInfoError",
    "MalformedDebugInfoError",
    "UnmappedEntryError",
    "SizeUnderflowError",
    "EmptyTreeError",
]
