"""Tests for the per-section decoders."""

import pytest
from wasm_inspect.errors import BinaryError, InvalidUtf8, Malformed, UnexpectedEof, UnknownOpcode
from wasm_inspect.sections import (
    CodeSectionReader,
    TypeSectionReader,
    decode_code_section,
    decode_custom_section,
    decode_data_count_section,
    decode_data_section,
    decode_element_section,
    decode_export_section,
    decode_function_section,
    decode_global_section,
    decode_import_section,
    decode_memory_section,
    decode_start_section,
    decode_table_section,
    decode_tag_section,
    decode_type_section,
)
from wasm_inspect.types import (
    ByteRange,
    ConstExpr,
    CustomSection,
    Data,
    DataKind,
    Element,
    ElementItems,
    ElementKind,
    Export,
    Function,
    FunctionBody,
    FuncType,
    Global,
    GlobalType,
    HeapType,
    Import,
    MemoryType,
    RefType,
    Table,
    TableInit,
    TableType,
    TagType,
    Type,
    TypeRef,
    EXTERNREF,
    FUNCREF,
)


class TestTypeSection:
    """Test the type section."""

    def test_decode_binary_function_type(self):
        # One type: (i32, i32) -> i32
        payload = bytes([0x01, 0x60, 0x02, 0x7F, 0x7F, 0x01, 0x7F])
        types = decode_type_section(payload)
        assert types == [Type(FuncType(("i32", "i32", "i32"), 2), 1)]
        assert types[0].func.params == ("i32", "i32")
        assert types[0].func.results == ("i32",)

    def test_reference_types(self):
        # ((ref $0)) -> (externref)
        payload = bytes([0x01, 0x60, 0x01, 0x64, 0x00, 0x01, 0x6F])
        (entry,) = decode_type_section(payload)
        assert entry.func.params == (RefType(HeapType("typed_func", 0), nullable=False),)
        assert entry.func.results == (EXTERNREF,)

    def test_bad_form_stops(self):
        payload = bytes([0x02, 0x5F, 0x00, 0x00, 0x60, 0x00, 0x00])
        entries = decode_type_section(payload)
        assert len(entries) == 1
        assert isinstance(entries[0], Malformed)
        assert entries[0].offset == 1

    def test_missing_count(self):
        with pytest.raises(UnexpectedEof):
            TypeSectionReader(b"")

    def test_reader_count_and_offset(self):
        reader = TypeSectionReader(bytes([0xAA, 0x01, 0x60, 0x00, 0x00]), 1)
        assert reader.count == 1
        assert reader.offset == 2
        assert list(reader) == [Type(FuncType((), 0), 2)]


class TestFunctionSection:
    """Test the function section, truncation and trailing data."""

    def test_decode_indices(self):
        payload = bytes([0x02, 0x00, 0x01])
        assert decode_function_section(payload) == [Function(0, 1), Function(1, 2)]

    def test_offsets_are_absolute(self):
        data = bytes([0xAA, 0xBB, 0x02, 0x00, 0x01])
        assert decode_function_section(data, 2) == [Function(0, 3), Function(1, 4)]

    def test_truncated_section(self):
        # Declares three entries, holds two
        payload = bytes([0x03, 0x00, 0x01])
        entries = decode_function_section(payload)
        assert entries[:2] == [Function(0, 1), Function(1, 2)]
        assert isinstance(entries[2], UnexpectedEof)
        assert entries[2].offset == 3
        assert len(entries) == 3

    def test_trailing_data(self):
        payload = bytes([0x01, 0x00, 0x05])
        assert decode_function_section(payload) == [
            Function(0, 1),
            Malformed("unexpected data at the end of the section", 2),
        ]

    def test_end_bounds_section(self):
        # The byte after ``end`` belongs to something else
        data = bytes([0x01, 0x00, 0x05])
        assert decode_function_section(data, 0, 2) == [Function(0, 1)]


class TestImportSection:
    """Test the import section."""

    def test_unknown_kind_is_skipped(self):
        payload = bytes(
            [
                0x03,  # 3 imports
                0x01, 0x61, 0x01, 0x66, 0x00, 0x00,  # "a" "f" func 0
                0x01, 0x61, 0x01, 0x62, 0x05,  # "a" "b" unknown kind
                0x01, 0x61, 0x01, 0x74, 0x01, 0x70, 0x00, 0x01,  # "a" "t" table
            ]
        )
        assert decode_import_section(payload) == [
            Import("a", "f", TypeRef("func", 0), 1),
            Malformed("unknown import kind: 0x05", 11),
            Import("a", "t", TypeRef("table", TableType(FUNCREF, 1, None)), 12),
        ]

    def test_global_and_tag_imports(self):
        payload = bytes(
            [
                0x02,
                0x01, 0x6D, 0x01, 0x67, 0x03, 0x7F, 0x01,  # global (mut i32)
                0x01, 0x6D, 0x01, 0x65, 0x04, 0x00, 0x02,  # tag of type 2
            ]
        )
        assert decode_import_section(payload) == [
            Import("m", "g", TypeRef("global", GlobalType("i32", True)), 1),
            Import("m", "e", TypeRef("tag", TagType("exception", 2)), 8),
        ]

    def test_shared_memory_without_maximum(self):
        payload = bytes(
            [
                0x02,
                0x01, 0x6D, 0x01, 0x6D, 0x02, 0x02, 0x01,  # shared, no max
                0x01, 0x6D, 0x01, 0x6E, 0x02, 0x03, 0x01, 0x02,  # shared, max 2
            ]
        )
        entries = decode_import_section(payload)
        assert entries[0] == Malformed("shared memory must have a maximum size", 6)
        assert entries[1] == Import(
            "m", "n", TypeRef("memory", MemoryType(False, True, 1, 2)), 8
        )

    def test_invalid_utf8_is_skipped(self):
        payload = bytes(
            [
                0x02,
                0x01, 0xFF, 0x01, 0x62, 0x00, 0x00,
                0x01, 0x61, 0x01, 0x62, 0x00, 0x01,
            ]
        )
        entries = decode_import_section(payload)
        assert isinstance(entries[0], InvalidUtf8)
        assert entries[0].offset == 1
        assert entries[1] == Import("a", "b", TypeRef("func", 1), 7)


class TestMemorySection:
    """Test the memory section."""

    def test_shared_without_maximum_is_skipped(self):
        # Entry 0: flags 0x02 (shared) with no maximum; entry 1: plain
        payload = bytes([0x02, 0x02, 0x01, 0x00, 0x01])
        assert decode_memory_section(payload) == [
            Malformed("shared memory must have a maximum size", 1),
            MemoryType(memory64=False, shared=False, initial=1, maximum=None),
        ]

    def test_shared_with_maximum(self):
        payload = bytes([0x01, 0x03, 0x01, 0x02])
        assert decode_memory_section(payload) == [MemoryType(False, True, 1, 2)]

    def test_memory64(self):
        # Initial size of 2^32 pages only fits a 64-bit limit
        payload = bytes([0x01, 0x04, 0x80, 0x80, 0x80, 0x80, 0x10])
        assert decode_memory_section(payload) == [MemoryType(True, False, 2**32, None)]

    def test_invalid_flags_stop(self):
        payload = bytes([0x02, 0x08, 0x01, 0x00, 0x01])
        entries = decode_memory_section(payload)
        assert entries == [Malformed("invalid memory limits flags: 0x08", 1)]


class TestTableSection:
    """Test the table section."""

    def test_plain_table(self):
        payload = bytes([0x01, 0x70, 0x01, 0x01, 0x10])
        assert decode_table_section(payload) == [
            Table(TableType(FUNCREF, 1, 16), TableInit("ref_null"))
        ]

    def test_table_with_initializer(self):
        payload = bytes([0x01, 0x40, 0x00, 0x70, 0x00, 0x01, 0xD0, 0x70, 0x0B])
        (table,) = decode_table_section(payload)
        assert table.ty == TableType(FUNCREF, 1, None)
        assert table.init == TableInit("expr", ConstExpr(bytes([0xD0, 0x70, 0x0B]), 6))
        assert [op.name for op in table.init.expr.operators()] == ["ref.null", "end"]

    def test_invalid_limits_flags(self):
        payload = bytes([0x01, 0x70, 0x02, 0x01])
        assert decode_table_section(payload) == [
            Malformed("invalid table resizable limits flags: 0x02", 2)
        ]


class TestGlobalSection:
    """Test the global section."""

    def test_decode_global(self):
        payload = bytes([0x01, 0x7F, 0x01, 0x41, 0x2A, 0x0B])
        assert decode_global_section(payload) == [
            Global(GlobalType("i32", True), ConstExpr(bytes([0x41, 0x2A, 0x0B]), 3))
        ]

    def test_bad_mutability(self):
        payload = bytes([0x01, 0x7F, 0x02, 0x41, 0x00, 0x0B])
        assert decode_global_section(payload) == [Malformed("malformed mutability: 0x02", 2)]

    def test_initializer_missing_end(self):
        payload = bytes([0x01, 0x7E, 0x00, 0x42, 0x01])
        entries = decode_global_section(payload)
        assert len(entries) == 1
        assert isinstance(entries[0], UnexpectedEof)


class TestExportSection:
    """Test the export section."""

    def test_invalid_kind_is_skipped(self):
        payload = bytes(
            [
                0x03,
                0x03, 0x61, 0x64, 0x64, 0x00, 0x00,  # "add" func 0
                0x01, 0x6D, 0x07, 0x01,  # "m" with kind 0x07
                0x01, 0x78, 0x02, 0x00,  # "x" memory 0
            ]
        )
        assert decode_export_section(payload) == [
            Export("add", "func", 0),
            Malformed("invalid external kind: 0x07", 9),
            Export("x", "memory", 0),
        ]


class TestTagSection:
    """Test the tag section."""

    def test_decode_tag(self):
        assert decode_tag_section(bytes([0x01, 0x00, 0x02])) == [TagType("exception", 2)]

    def test_bad_attribute(self):
        assert decode_tag_section(bytes([0x01, 0x01, 0x00])) == [
            Malformed("invalid tag attribute: 0x01", 1)
        ]


class TestElementSection:
    """Test the element section's segment layouts."""

    def test_active_functions(self):
        payload = bytes([0x01, 0x00, 0x41, 0x00, 0x0B, 0x02, 0x00, 0x01])
        assert decode_element_section(payload) == [
            Element(
                ElementKind("active", 0, ConstExpr(bytes([0x41, 0x00, 0x0B]), 2)),
                ElementItems("functions", (0, 1)),
                FUNCREF,
            )
        ]

    def test_passive_and_declared(self):
        payload = bytes([0x02, 0x01, 0x00, 0x01, 0x03, 0x03, 0x00, 0x01, 0x04])
        passive, declared = decode_element_section(payload)
        assert passive.kind == ElementKind("passive")
        assert passive.items == ElementItems("functions", (3,))
        assert declared.kind == ElementKind("declared")
        assert declared.items == ElementItems("functions", (4,))

    def test_active_explicit_table_with_expressions(self):
        payload = bytes(
            [
                0x01,
                0x06,  # active, explicit table, expressions
                0x01,  # table 1
                0x41, 0x00, 0x0B,  # offset: i32.const 0
                0x6F,  # externref
                0x01,  # 1 item
                0xD0, 0x6F, 0x0B,  # ref.null extern
            ]
        )
        (element,) = decode_element_section(payload)
        assert element.kind == ElementKind("active", 1, ConstExpr(bytes([0x41, 0x00, 0x0B]), 3))
        assert element.ty == EXTERNREF
        assert element.items == ElementItems(
            "expressions", (ConstExpr(bytes([0xD0, 0x6F, 0x0B]), 8),)
        )

    def test_expressions_default_to_funcref(self):
        payload = bytes([0x01, 0x04, 0x41, 0x00, 0x0B, 0x01, 0xD2, 0x00, 0x0B])
        (element,) = decode_element_section(payload)
        assert element.ty == FUNCREF
        assert element.items.kind == "expressions"

    def test_invalid_flags(self):
        assert decode_element_section(bytes([0x01, 0x08])) == [
            Malformed("invalid flags byte in element segment: 0x08", 1)
        ]

    def test_invalid_element_kind(self):
        assert decode_element_section(bytes([0x01, 0x01, 0x01, 0x00])) == [
            Malformed("invalid element kind: 0x01", 2)
        ]


class TestDataSection:
    """Test the data section."""

    def test_segment_layouts(self):
        payload = bytes(
            [
                0x03,
                0x00, 0x41, 0x00, 0x0B, 0x02, 0x68, 0x69,  # active, memory 0, "hi"
                0x01, 0x01, 0x7A,  # passive, "z"
                0x02, 0x01, 0x41, 0x08, 0x0B, 0x00,  # active, memory 1, empty
            ]
        )
        assert decode_data_section(payload) == [
            Data(DataKind("active", 0, ConstExpr(bytes([0x41, 0x00, 0x0B]), 2)), b"hi"),
            Data(DataKind("passive"), b"z"),
            Data(DataKind("active", 1, ConstExpr(bytes([0x41, 0x08, 0x0B]), 13)), b""),
        ]

    def test_invalid_flags(self):
        assert decode_data_section(bytes([0x01, 0x03, 0x00])) == [
            Malformed("invalid flags byte in data segment: 0x03", 1)
        ]

    def test_truncated_bytes(self):
        entries = decode_data_section(bytes([0x01, 0x01, 0x05, 0x61]))
        assert len(entries) == 1
        assert isinstance(entries[0], UnexpectedEof)
        assert entries[0].offset == 3


class TestCodeSection:
    """Test function bodies."""

    def test_bodies_fail_independently(self):
        payload = bytes(
            [
                0x04,  # 4 bodies
                0x06, 0x01, 0x02, 0x7E, 0x20, 0x00, 0x0B,  # 2 x i64; local.get 0
                0x03, 0x00, 0x16, 0x0B,  # unknown opcode 0x16
                0x03, 0x01, 0x01, 0x55,  # invalid local type
                0x02, 0x00, 0x0B,  # empty body
            ]
        )
        first, second, third, fourth = decode_code_section(payload)

        assert first.range == ByteRange(2, 8)
        assert first.locals == ((2, "i64"),)
        assert [op.name for op in first.ops] == ["local.get", "end"]

        assert second.ops == (UnknownOpcode("unknown opcode: 0x16", 10),)

        assert third.range == ByteRange(13, 16)
        assert third.locals == ()
        assert third.ops == (Malformed("invalid value type: 0x55", 15),)

        assert fourth.range == ByteRange(17, 19)
        assert [op.name for op in fourth.ops] == ["end"]

    def test_without_operators(self):
        payload = bytes([0x01, 0x04, 0x00, 0x41, 0x01, 0x0B])
        (body,) = decode_code_section(payload, operators=False)
        assert body.ops == ()
        assert len(body.range) == 4

    def test_reader_operators_flag(self):
        payload = bytes([0x01, 0x02, 0x00, 0x0B])
        reader = CodeSectionReader(payload, operators=False)
        assert [body.ops for body in reader] == [()]

    def test_operators_after_final_end(self):
        payload = bytes([0x01, 0x03, 0x00, 0x0B, 0x01])
        (body,) = decode_code_section(payload)
        assert body.ops[0].name == "end"
        assert body.ops[1] == Malformed("operators remaining after the final `end`", 4)

    def test_missing_end(self):
        payload = bytes([0x01, 0x02, 0x00, 0x01])
        (body,) = decode_code_section(payload)
        assert body.ops[0].name == "nop"
        assert isinstance(body.ops[1], UnexpectedEof)
        assert body.ops[1].offset == 4

    def test_too_many_locals(self):
        payload = bytes(
            [
                0x01,
                0x0A,
                0x02,
                0xB0, 0xEA, 0x01, 0x7F,  # 30000 x i32
                0xB0, 0xEA, 0x01, 0x7F,  # 30000 x i32
                0x0B,
            ]
        )
        assert decode_code_section(payload) == [
            FunctionBody(ByteRange(2, 12), ((30000, "i32"),), (Malformed("too many locals", 7),))
        ]

    def test_body_overruns_section(self):
        payload = bytes([0x02, 0x02, 0x00, 0x0B, 0x09, 0x00])
        entries = decode_code_section(payload)
        assert len(entries) == 2
        assert isinstance(entries[1], UnexpectedEof)


class TestSingleValueSections:
    """Test the start, data count and custom sections."""

    def test_start(self):
        assert decode_start_section(bytes([0x05])) == 5

    def test_start_trailing_data(self):
        with pytest.raises(Malformed, match="start section"):
            decode_start_section(bytes([0x05, 0x00]))

    def test_data_count(self):
        assert decode_data_count_section(bytes([0x00, 0x80, 0x01]), 1) == 128

    def test_custom_section(self):
        payload = bytes([0x04, 0x6E, 0x61, 0x6D, 0x65, 0x01, 0x02])
        assert decode_custom_section(payload) == CustomSection("name", b"\x01\x02")


# One well-formed payload per counted section kind
VALID_PAYLOADS = {
    "type": (decode_type_section, bytes([0x02, 0x60, 0x01, 0x7F, 0x00, 0x60, 0x00, 0x01, 0x7E])),
    "import": (
        decode_import_section,
        bytes(
            [
                0x03,
                0x01, 0x61, 0x01, 0x66, 0x00, 0x00,
                0x01, 0x6D, 0x01, 0x67, 0x03, 0x7F, 0x01,
                0x01, 0x6D, 0x01, 0x65, 0x04, 0x00, 0x02,
            ]
        ),
    ),
    "function": (decode_function_section, bytes([0x03, 0x00, 0x01, 0x80, 0x01])),
    "table": (
        decode_table_section,
        bytes([0x02, 0x70, 0x01, 0x01, 0x10, 0x40, 0x00, 0x70, 0x00, 0x01, 0xD0, 0x70, 0x0B]),
    ),
    "memory": (decode_memory_section, bytes([0x02, 0x03, 0x01, 0x02, 0x00, 0x01])),
    "global": (decode_global_section, bytes([0x01, 0x7F, 0x01, 0x41, 0x2A, 0x0B])),
    "export": (
        decode_export_section,
        bytes([0x02, 0x03, 0x61, 0x64, 0x64, 0x00, 0x00, 0x01, 0x78, 0x02, 0x00]),
    ),
    "tag": (decode_tag_section, bytes([0x02, 0x00, 0x00, 0x00, 0x01])),
    "element": (
        decode_element_section,
        bytes(
            [
                0x02,
                0x00, 0x41, 0x00, 0x0B, 0x02, 0x00, 0x01,
                0x06, 0x01, 0x41, 0x00, 0x0B, 0x6F, 0x01, 0xD0, 0x6F, 0x0B,
            ]
        ),
    ),
    "code": (
        decode_code_section,
        bytes([0x02, 0x06, 0x01, 0x02, 0x7E, 0x20, 0x00, 0x0B, 0x02, 0x00, 0x0B]),
    ),
    "data": (
        decode_data_section,
        bytes([0x02, 0x00, 0x41, 0x00, 0x0B, 0x02, 0x68, 0x69, 0x01, 0x01, 0x7A]),
    ),
}


def successes(entries):
    return [entry for entry in entries if not isinstance(entry, BinaryError)]


class TestSectionProperties:
    """Properties shared by every section reader."""

    @pytest.mark.parametrize("kind", sorted(VALID_PAYLOADS))
    def test_valid_payload_decodes_cleanly(self, kind):
        decode, payload = VALID_PAYLOADS[kind]
        entries = decode(payload)
        assert entries == successes(entries)
        assert len(entries) == payload[0]

    @pytest.mark.parametrize("kind", sorted(VALID_PAYLOADS))
    def test_truncation_never_pads(self, kind):
        decode, payload = VALID_PAYLOADS[kind]
        full = decode(payload)
        for cut in range(len(payload)):
            try:
                entries = decode(payload[:cut])
            except BinaryError:
                # Only the entry count may fail outright
                assert cut == 0
                continue
            assert len(successes(entries)) <= len(full), cut
            assert any(isinstance(entry, BinaryError) for entry in entries), cut

    def test_entry_offsets_strictly_increase(self):
        offsets = {
            "type": [entry.offset for entry in decode_type_section(VALID_PAYLOADS["type"][1])],
            "import": [entry.offset for entry in decode_import_section(VALID_PAYLOADS["import"][1])],
            "function": [
                entry.offset for entry in decode_function_section(VALID_PAYLOADS["function"][1])
            ],
            "code": [entry.range.start for entry in decode_code_section(VALID_PAYLOADS["code"][1])],
        }
        for kind, found in offsets.items():
            assert len(found) > 1, kind
            assert all(a < b for a, b in zip(found, found[1:])), kind

    def test_offsets_increase_across_skipped_entries(self):
        payload = bytes(
            [
                0x03,
                0x01, 0x61, 0x01, 0x66, 0x00, 0x00,
                0x01, 0x61, 0x01, 0x62, 0x05,
                0x01, 0x61, 0x01, 0x74, 0x00, 0x01,
            ]
        )
        imports = successes(decode_import_section(payload))
        assert [entry.offset for entry in imports] == [1, 12]
