"""Tests for the operator catalog and operator stream decoding."""

import pytest
from wasm_inspect import opcodes
from wasm_inspect.decoder import decode_operator, decode_operators
from wasm_inspect.errors import Malformed, UnexpectedEof, UnknownOpcode
from wasm_inspect.reader import BinaryReader
from wasm_inspect.types import ConstExpr, Operator

# Smallest valid encoding of each immediate kind
MINIMAL_IMMEDIATES = {
    opcodes.IMM_U32: bytes([0x00]),
    opcodes.IMM_I32: bytes([0x00]),
    opcodes.IMM_I64: bytes([0x00]),
    opcodes.IMM_F32: bytes(4),
    opcodes.IMM_F64: bytes(8),
    opcodes.IMM_MEMARG: bytes([0x00, 0x00]),
    opcodes.IMM_BLOCKTYPE: bytes([0x40]),
    opcodes.IMM_BR_TABLE: bytes([0x00, 0x00]),
    opcodes.IMM_VALTYPES: bytes([0x00]),
    opcodes.IMM_HEAPTYPE: bytes([0x70]),
    opcodes.IMM_ZERO_BYTE: bytes([0x00]),
    opcodes.IMM_CAST_FLAGS: bytes([0x00]),
    opcodes.IMM_CATCHES: bytes([0x00]),
    opcodes.IMM_V128: bytes(16),
    opcodes.IMM_SHUFFLE: bytes(16),
    opcodes.IMM_LANE: bytes([0x00]),
}


def encode_u32(value):
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_instruction(key, info):
    prefix, code = key
    encoded = bytes([code]) if prefix is None else bytes([prefix]) + encode_u32(code)
    for immediate in info.immediates:
        encoded += MINIMAL_IMMEDIATES[immediate]
    return encoded


class TestOperatorCatalog:
    """Every catalog entry decodes, and nothing else does."""

    def test_every_opcode_decodes_to_its_name(self):
        for key, info in opcodes.OPCODES.items():
            encoded = encode_instruction(key, info)
            reader = BinaryReader(encoded)
            assert decode_operator(reader) == Operator(info.name), key
            assert reader.eof(), key

    def test_every_immediate_kind_has_a_reader(self):
        kinds = {imm for info in opcodes.OPCODES.values() for imm in info.immediates}
        assert kinds <= set(MINIMAL_IMMEDIATES)

    def test_unassigned_single_byte_opcodes(self):
        for byte in range(0x100):
            if (None, byte) in opcodes.OPCODES or byte in opcodes.PREFIXES:
                continue
            with pytest.raises(UnknownOpcode) as exc:
                decode_operator(BinaryReader(bytes([byte])))
            assert exc.value.offset == 0

    def test_names_view_matches(self):
        assert opcodes.OPCODE_NAMES == {key: info.name for key, info in opcodes.OPCODES.items()}

    def test_proposal_coverage(self):
        assert opcodes.OPCODE_NAMES[(None, 0x6A)] == "i32.add"
        assert opcodes.OPCODE_NAMES[(None, 0x1F)] == "try_table"
        assert opcodes.OPCODE_NAMES[(opcodes.EXTENDED_PREFIX, 0x0B)] == "memory.fill"
        assert opcodes.OPCODE_NAMES[(opcodes.GC_PREFIX, 0x00)] == "struct.new"
        assert opcodes.OPCODE_NAMES[(opcodes.SIMD_PREFIX, 0x0C)] == "v128.const"
        assert opcodes.OPCODE_NAMES[(opcodes.SIMD_PREFIX, 0xAE)] == "i32x4.add"
        assert opcodes.OPCODE_NAMES[(opcodes.THREADS_PREFIX, 0x03)] == "atomic.fence"


class TestDecodeOperators:
    """Test operator streams."""

    def test_nested_blocks(self):
        code = bytes([0x02, 0x40, 0x41, 0x01, 0x1A, 0x0B, 0x0B])
        assert [op.name for op in decode_operators(code)] == [
            "block",
            "i32.const",
            "drop",
            "end",
            "end",
        ]

    def test_delegate_closes_try(self):
        code = bytes([0x06, 0x40, 0x18, 0x00, 0x0B])
        assert [op.name for op in decode_operators(code)] == ["try", "delegate", "end"]

    def test_try_table(self):
        # try_table with one catch_all clause to label 0
        code = bytes([0x1F, 0x40, 0x01, 0x02, 0x00, 0x0B, 0x0B])
        assert [op.name for op in decode_operators(code)] == ["try_table", "end", "end"]

    def test_missing_end(self):
        ops = list(decode_operators(bytes([0x02, 0x40, 0x0B])))
        assert ops[:2] == [Operator("block"), Operator("end")]
        assert isinstance(ops[2], UnexpectedEof)
        assert ops[2].offset == 3

    def test_unknown_prefixed_opcode(self):
        ops = list(decode_operators(bytes([0x01, 0xFC, 0x20, 0x0B])))
        assert ops == [Operator("nop"), UnknownOpcode("unknown opcode: 0xfc 0x20", 1)]

    def test_multibyte_prefixed_opcode(self):
        ops = list(decode_operators(bytes([0xFD, 0xAE, 0x01, 0x0B])))
        assert ops == [Operator("i32x4.add"), Operator("end")]

    def test_v128_const(self):
        ops = list(decode_operators(bytes([0xFD, 0x0C]) + bytes(16) + bytes([0x0B])))
        assert ops == [Operator("v128.const"), Operator("end")]

    def test_atomic_fence_needs_zero(self):
        ops = list(decode_operators(bytes([0xFE, 0x03, 0x01, 0x0B])))
        assert ops == [Malformed("nonzero byte after atomic.fence", 2)]

    def test_offset_and_end(self):
        data = bytes([0xFF, 0x01, 0x0B, 0xFF])
        assert list(decode_operators(data, 1, 3)) == [Operator("nop"), Operator("end")]


class TestConstExpr:
    """Test lazily decoded initializer expressions."""

    def test_operators(self):
        expr = ConstExpr(bytes([0x23, 0x00, 0x0B]), 5)
        assert expr.operators() == [Operator("global.get"), Operator("end")]

    def test_error_offset_is_absolute(self):
        expr = ConstExpr(bytes([0x41, 0x80]), 10)
        (error,) = expr.operators()
        assert isinstance(error, UnexpectedEof)
        assert error.offset == 11
