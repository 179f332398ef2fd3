from __future__ import annotations

import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = PROJECT_ROOT / "tests" / "data"
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from dwarfsize.analysis import analyze, analyze_unit
from dwarfsize.contributors import total_size
from dwarfsize.elf import (
    convert_die,
    convert_unit,
    debug_info_from_dwarf,
    high_pc_kind,
    is_abstract,
    line_program_from_header,
    open_debug_info,
    resolve_ranges,
    unit_reference,
)
from dwarfsize.exceptions import DebugInfoError, MissingDebugInfoError
from dwarfsize.sizes import entry_mapped_size
from dwarfsize.types import AddressRange, HighPcKind, SourceFile, Tag


class FakeDIE:
    """Just enough of ``elftools.dwarf.die.DIE`` for the converter."""

    def __init__(self, offset, tag, attributes=None, children=()):
        self.offset = offset
        self.tag = tag
        self.attributes = {
            name: SimpleNamespace(name=name, form=form, value=value)
            for name, (form, value) in (attributes or {}).items()
        }
        self._children = list(children)

    def iter_children(self):
        return iter(self._children)


class FakeCU:
    def __init__(self, cu_offset, top_die):
        self.cu_offset = cu_offset
        self._top_die = top_die

    def get_top_DIE(self):
        return self._top_die


class FakeRangeLists:
    """Range lists keyed by their offset in the range-list section."""

    def __init__(self, lists):
        self._lists = lists
        self.requests = []

    def get_range_list_at_offset(self, offset, cu=None):
        self.requests.append((offset, cu))
        return self._lists[offset]


class FakeDWARFInfo:
    def __init__(self, cus, line_programs=None, range_lists=None):
        self._cus = cus
        self._line_programs = line_programs or {}
        self._range_lists = range_lists

    def iter_CUs(self):
        return iter(self._cus)

    def line_program_for_CU(self, cu):
        return self._line_programs.get(cu.cu_offset)

    def range_lists(self):
        return self._range_lists


def _dwarf4_header():
    return {
        "version": 4,
        "include_directory": [b"src"],
        "file_entry": [
            {"name": b"main.c", "dir_index": 1},
            {"name": b"util.h", "dir_index": 0},
        ],
    }


def _sample_dwarf():
    clamp = FakeDIE(
        0x140,
        "DW_TAG_subprogram",
        {
            "DW_AT_name": ("DW_FORM_strp", b"clamp"),
            "DW_AT_decl_file": ("DW_FORM_data1", 2),
            "DW_AT_inline": ("DW_FORM_data1", 3),
        },
    )
    inlined = FakeDIE(
        0x170,
        "DW_TAG_inlined_subroutine",
        {
            "DW_AT_abstract_origin": ("DW_FORM_ref4", 0x40),
            "DW_AT_low_pc": ("DW_FORM_addr", 0x1010),
            "DW_AT_high_pc": ("DW_FORM_addr", 0x1020),
        },
    )
    main = FakeDIE(
        0x150,
        "DW_TAG_subprogram",
        {
            "DW_AT_name": ("DW_FORM_strp", b"main"),
            "DW_AT_decl_file": ("DW_FORM_data1", 1),
            "DW_AT_low_pc": ("DW_FORM_addr", 0x1000),
            "DW_AT_high_pc": ("DW_FORM_data4", 0x40),
        },
        children=[inlined],
    )
    variable = FakeDIE(0x190, "DW_TAG_variable", {"DW_AT_name": ("DW_FORM_strp", b"x")})
    helper = FakeDIE(
        0x1A0,
        "DW_TAG_subprogram",
        {
            "DW_AT_name": ("DW_FORM_strp", b"helper"),
            "DW_AT_decl_file": ("DW_FORM_data1", 1),
            "DW_AT_ranges": ("DW_FORM_sec_offset", 0x30),
        },
    )
    top = FakeDIE(
        0x10B,
        "DW_TAG_compile_unit",
        {
            "DW_AT_name": ("DW_FORM_strp", b"/home/proj/src/main.c"),
            "DW_AT_comp_dir": ("DW_FORM_strp", b"/home/proj"),
            "DW_AT_low_pc": ("DW_FORM_addr", 0x1000),
        },
        children=[clamp, main, variable, helper],
    )
    cu = FakeCU(0x100, top)
    range_lists = FakeRangeLists(
        {
            0x30: [
                SimpleNamespace(begin_offset=0x100, end_offset=0x110, is_absolute=False),
                SimpleNamespace(begin_offset=0x200, end_offset=0x208, is_absolute=False),
            ]
        }
    )
    return FakeDWARFInfo(
        [cu],
        line_programs={0x100: SimpleNamespace(header=_dwarf4_header())},
        range_lists=range_lists,
    )


class ConvertUnitTests(unittest.TestCase):
    def test_unit_attributes(self) -> None:
        dwarf = _sample_dwarf()
        unit = convert_unit(next(dwarf.iter_CUs()), dwarf)
        self.assertEqual(unit.offset, 0x100)
        self.assertEqual(unit.name, "/home/proj/src/main.c")
        self.assertEqual(unit.comp_dir, "/home/proj")
        self.assertEqual(unit.root.tag, Tag.COMPILATION_UNIT)
        self.assertEqual(
            unit.line_program.file(2), SourceFile(directory="/home/proj", name="util.h")
        )

    def test_entries_are_converted(self) -> None:
        dwarf = _sample_dwarf()
        unit = convert_unit(next(dwarf.iter_CUs()), dwarf)
        clamp, main, variable, helper = unit.root.children
        self.assertTrue(clamp.abstract)
        self.assertEqual(main.name, "main")
        self.assertEqual(main.high_pc_kind, HighPcKind.LENGTH)
        self.assertFalse(main.abstract)
        self.assertEqual(variable.tag, Tag.OTHER)
        inlined = unit.entry_at(0x170)
        self.assertEqual(inlined.tag, Tag.INLINED_SUBROUTINE)
        self.assertEqual(inlined.abstract_origin, 0x140)
        self.assertEqual(inlined.high_pc_kind, HighPcKind.ADDRESS)
        self.assertEqual(
            helper.ranges, (AddressRange(0x1100, 0x1110), AddressRange(0x1200, 0x1208))
        )

    def test_ranges_are_looked_up_by_offset_in_their_unit(self) -> None:
        dwarf = _sample_dwarf()
        cu = next(dwarf.iter_CUs())
        convert_unit(cu, dwarf)
        self.assertEqual(dwarf.range_lists().requests, [(0x30, cu)])

    def test_end_to_end_attribution(self) -> None:
        result = analyze(debug_info_from_dwarf(_sample_dwarf()))
        self.assertEqual(
            result,
            {
                "@source_files;home;proj;util.h;@function: clamp": 16,
                "@source_files;home;proj;src;main.c;@function: main": 48,
                "@source_files;home;proj;src;main.c;@function: helper": 24,
            },
        )


class RangeTests(unittest.TestCase):
    def test_relative_entries_are_rebased(self) -> None:
        die = FakeDIE(
            0x20, "DW_TAG_subprogram", {"DW_AT_ranges": ("DW_FORM_sec_offset", 0x60)}
        )
        range_lists = FakeRangeLists(
            {
                0x60: [
                    SimpleNamespace(begin_offset=0x10, end_offset=0x20, is_absolute=False),
                    SimpleNamespace(entry_offset=0, base_address=0x4000),
                    SimpleNamespace(begin_offset=0x0, end_offset=0x8, is_absolute=False),
                    SimpleNamespace(begin_offset=0x9000, end_offset=0x9004, is_absolute=True),
                ]
            }
        )
        cu = FakeCU(0x100, None)
        dwarf = FakeDWARFInfo([], range_lists=range_lists)
        self.assertEqual(
            resolve_ranges(die, cu, dwarf, base_address=0x1000),
            (
                AddressRange(0x1010, 0x1020),
                AddressRange(0x4000, 0x4008),
                AddressRange(0x9000, 0x9004),
            ),
        )
        self.assertEqual(range_lists.requests, [(0x60, cu)])

    def test_rnglistx_value_is_used_as_an_offset(self) -> None:
        # pyelftools resolves the index through the unit's offset table.
        die = FakeDIE(
            0x20, "DW_TAG_inlined_subroutine", {"DW_AT_ranges": ("DW_FORM_rnglistx", 0x1C)}
        )
        range_lists = FakeRangeLists(
            {0x1C: [SimpleNamespace(begin_offset=0x40, end_offset=0x48, is_absolute=True)]}
        )
        dwarf = FakeDWARFInfo([], range_lists=range_lists)
        self.assertEqual(
            resolve_ranges(die, FakeCU(0x0, None), dwarf), (AddressRange(0x40, 0x48),)
        )

    def test_entry_without_ranges(self) -> None:
        die = FakeDIE(0x20, "DW_TAG_subprogram")
        self.assertIsNone(resolve_ranges(die, FakeCU(0x0, None), FakeDWARFInfo([])))

    def test_ranges_without_range_lists_is_an_error(self) -> None:
        die = FakeDIE(0x20, "DW_TAG_subprogram", {"DW_AT_ranges": ("DW_FORM_sec_offset", 0)})
        with self.assertRaises(DebugInfoError):
            resolve_ranges(die, FakeCU(0x0, None), FakeDWARFInfo([], range_lists=None))


class AttributeTests(unittest.TestCase):
    def test_high_pc_forms(self) -> None:
        self.assertEqual(high_pc_kind("DW_FORM_addr"), HighPcKind.ADDRESS)
        self.assertEqual(high_pc_kind("DW_FORM_addrx"), HighPcKind.ADDRESS)
        self.assertEqual(high_pc_kind("DW_FORM_data4"), HighPcKind.LENGTH)
        self.assertEqual(high_pc_kind("DW_FORM_udata"), HighPcKind.LENGTH)
        self.assertEqual(high_pc_kind("DW_FORM_block1"), HighPcKind.UNSUPPORTED)

    def test_unit_references(self) -> None:
        cu = FakeCU(0x100, None)
        relative = FakeDIE(0x1, "x", {"DW_AT_abstract_origin": ("DW_FORM_ref4", 0x40)})
        absolute = FakeDIE(0x1, "x", {"DW_AT_abstract_origin": ("DW_FORM_ref_addr", 0x240)})
        other = FakeDIE(0x1, "x", {"DW_AT_abstract_origin": ("DW_FORM_ref_sig8", 0x1)})
        self.assertEqual(unit_reference(relative, cu, "DW_AT_abstract_origin"), 0x140)
        self.assertEqual(unit_reference(absolute, cu, "DW_AT_abstract_origin"), 0x240)
        self.assertIsNone(unit_reference(other, cu, "DW_AT_abstract_origin"))
        self.assertIsNone(unit_reference(FakeDIE(0x1, "x"), cu, "DW_AT_abstract_origin"))

    def test_specification_is_converted(self) -> None:
        dwarf = _sample_dwarf()
        cu = next(dwarf.iter_CUs())
        definition = FakeDIE(
            0x1C0,
            "DW_TAG_subprogram",
            {
                "DW_AT_specification": ("DW_FORM_ref4", 0x50),
                "DW_AT_low_pc": ("DW_FORM_addr", 0x1300),
                "DW_AT_high_pc": ("DW_FORM_data4", 0x16),
            },
        )
        entry = convert_die(definition, cu, dwarf)
        self.assertEqual(entry.specification, 0x150)
        self.assertIsNone(entry.abstract_origin)

    def test_abstract_entries(self) -> None:
        declaration = FakeDIE(
            0x1, "DW_TAG_subprogram", {"DW_AT_declaration": ("DW_FORM_flag_present", True)}
        )
        not_inlined = FakeDIE(
            0x1, "DW_TAG_subprogram", {"DW_AT_inline": ("DW_FORM_data1", 0)}
        )
        inline_root = FakeDIE(
            0x1, "DW_TAG_subprogram", {"DW_AT_inline": ("DW_FORM_data1", 1)}
        )
        self.assertTrue(is_abstract(declaration))
        self.assertFalse(is_abstract(not_inlined))
        self.assertTrue(is_abstract(inline_root))
        self.assertFalse(is_abstract(FakeDIE(0x1, "DW_TAG_subprogram")))


class LineProgramTests(unittest.TestCase):
    def test_dwarf4_indices_start_at_one(self) -> None:
        program = line_program_from_header(_dwarf4_header(), comp_dir="/home/proj")
        self.assertEqual(
            program.files,
            {
                1: SourceFile(directory="src", name="main.c"),
                2: SourceFile(directory="/home/proj", name="util.h"),
            },
        )

    def test_dwarf5_indices_start_at_zero(self) -> None:
        header = {
            "version": 5,
            "include_directory": [b"/home/proj", b"include"],
            "file_entry": [
                {"name": b"main.c", "dir_index": 0},
                {"name": b"util.h", "dir_index": 1},
            ],
        }
        program = line_program_from_header(header)
        self.assertEqual(program.file(0), SourceFile(directory="/home/proj", name="main.c"))
        self.assertEqual(program.file(1), SourceFile(directory="include", name="util.h"))
        self.assertIsNone(program.file(2))

    def test_files_in_missing_directories_are_dropped(self) -> None:
        header = {
            "version": 4,
            "include_directory": [],
            "file_entry": [{"name": b"lost.c", "dir_index": 3}],
        }
        self.assertEqual(line_program_from_header(header).files, {})


class OpenDebugInfoTests(unittest.TestCase):
    def test_binary_without_dwarf_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "stripped.elf"
            path.write_bytes(b"\x7fELF")
            with mock.patch("dwarfsize.elf.ELFFile") as elf_file:
                elf_file.return_value.has_dwarf_info.return_value = False
                with self.assertRaises(MissingDebugInfoError):
                    open_debug_info(path)

    def test_dwarf_is_converted(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "app.elf"
            path.write_bytes(b"\x7fELF")
            with mock.patch("dwarfsize.elf.ELFFile") as elf_file:
                elf_file.return_value.has_dwarf_info.return_value = True
                elf_file.return_value.get_dwarf_info.return_value = _sample_dwarf()
                debug_info = open_debug_info(path)
        self.assertEqual(len(debug_info.units), 1)
        self.assertEqual(debug_info.units[0].name, "/home/proj/src/main.c")


class CompiledBinaryTests(unittest.TestCase):
    """Read binaries built by the system C compiler from ``tests/data``."""

    @classmethod
    def setUpClass(cls) -> None:
        compiler = shutil.which("gcc")
        if compiler is None:
            raise unittest.SkipTest("gcc is not installed")
        cls._tmp = tempfile.TemporaryDirectory()
        cls.binaries = {}
        for version in (4, 5):
            output = Path(cls._tmp.name) / f"sizes-dwarf{version}"
            subprocess.run(
                [
                    compiler,
                    "-g",
                    f"-gdwarf-{version}",
                    "-O2",
                    "-o",
                    str(output),
                    str(DATA_DIR / "sizes.c"),
                ],
                check=True,
            )
            cls.binaries[version] = output

    @classmethod
    def tearDownClass(cls) -> None:
        cls._tmp.cleanup()

    def _sizes_unit(self, path):
        units = [
            unit
            for unit in open_debug_info(path).units
            if unit.name is not None and unit.name.endswith("sizes.c")
        ]
        self.assertEqual(len(units), 1)
        return units[0]

    def test_optimized_build_uses_range_lists(self) -> None:
        for version, path in self.binaries.items():
            with self.subTest(dwarf=version):
                unit = self._sizes_unit(path)
                ranged = [e for e in unit.iter_entries() if e.ranges is not None]
                self.assertTrue(ranged)
                for entry in ranged:
                    self.assertTrue(entry.ranges)

    def test_functions_are_attributed_to_the_source_file(self) -> None:
        for version, path in self.binaries.items():
            with self.subTest(dwarf=version):
                unit = self._sizes_unit(path)
                result = analyze_unit(unit)
                for function in ("main", "helper"):
                    key = f"sizes.c;@function: {function}"
                    matches = [k for k in result if k.endswith(key)]
                    self.assertEqual(len(matches), 1, result)
                    self.assertGreater(result[matches[0]], 0)
                self.assertTrue(all(size >= 0 for size in result.values()))

    def test_bytes_of_concrete_functions_are_conserved(self) -> None:
        for version, path in self.binaries.items():
            with self.subTest(dwarf=version):
                unit = self._sizes_unit(path)
                expected = sum(
                    entry_mapped_size(entry)
                    for entry in unit.root.children
                    if entry.tag == Tag.SUBPROGRAM and not entry.abstract
                )
                self.assertEqual(total_size(analyze_unit(unit)), expected)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
