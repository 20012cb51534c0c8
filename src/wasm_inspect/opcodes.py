"""WebAssembly opcode definitions.

``OPCODES`` maps ``(prefix, opcode)`` to the instruction's canonical text
name and the immediates that follow it in the binary encoding. ``prefix`` is
``None`` for single-byte opcodes; prefixed opcodes carry their sub-opcode as a
u32 LEB128. The decoder consults this table and nothing else, so the set of
instructions it accepts is exactly the set listed here.
"""

from dataclasses import dataclass

# Control instructions referenced by the decoder
BLOCK = 0x02
LOOP = 0x03
IF = 0x04
TRY = 0x06
END = 0x0B
TRY_TABLE = 0x1F

# Prefix bytes
GC_PREFIX = 0xFB
EXTENDED_PREFIX = 0xFC
SIMD_PREFIX = 0xFD
THREADS_PREFIX = 0xFE

PREFIXES = frozenset({GC_PREFIX, EXTENDED_PREFIX, SIMD_PREFIX, THREADS_PREFIX})

# Immediate kinds
IMM_U32 = "u32"  # index, label or count
IMM_I32 = "i32"
IMM_I64 = "i64"
IMM_F32 = "f32"
IMM_F64 = "f64"
IMM_MEMARG = "memarg"
IMM_BLOCKTYPE = "blocktype"
IMM_BR_TABLE = "br_table"
IMM_VALTYPES = "valtypes"
IMM_HEAPTYPE = "heaptype"
IMM_ZERO_BYTE = "zero_byte"
IMM_CAST_FLAGS = "cast_flags"
IMM_CATCHES = "catches"
IMM_V128 = "v128"
IMM_SHUFFLE = "shuffle"
IMM_LANE = "lane"


@dataclass(frozen=True)
class OpcodeInfo:
    """Name and immediate layout of one instruction."""

    name: str
    immediates: tuple[str, ...] = ()


OPCODES: dict[tuple[int | None, int], OpcodeInfo] = {}


def _define(prefix: int | None, code: int, name: str, *immediates: str) -> None:
    key = (prefix, code)
    if key in OPCODES:
        raise ValueError(f"duplicate opcode {key!r} for {name}")
    OPCODES[key] = OpcodeInfo(name, immediates)


def _define_run(prefix: int | None, first: int, names: list[str], *immediates: str) -> None:
    """Define consecutive opcodes sharing one immediate layout.

    ``None`` entries mark reserved opcodes.
    """
    for code, name in enumerate(names, first):
        if name is not None:
            _define(prefix, code, name, *immediates)


# Control instructions
_define(None, 0x00, "unreachable")
_define(None, 0x01, "nop")
_define(None, BLOCK, "block", IMM_BLOCKTYPE)
_define(None, LOOP, "loop", IMM_BLOCKTYPE)
_define(None, IF, "if", IMM_BLOCKTYPE)
_define(None, 0x05, "else")
_define(None, TRY, "try", IMM_BLOCKTYPE)
_define(None, 0x07, "catch", IMM_U32)
_define(None, 0x08, "throw", IMM_U32)
_define(None, 0x09, "rethrow", IMM_U32)
_define(None, 0x0A, "throw_ref")
_define(None, END, "end")
_define(None, 0x0C, "br", IMM_U32)
_define(None, 0x0D, "br_if", IMM_U32)
_define(None, 0x0E, "br_table", IMM_BR_TABLE)
_define(None, 0x0F, "return")
_define(None, 0x10, "call", IMM_U32)
_define(None, 0x11, "call_indirect", IMM_U32, IMM_U32)
_define(None, 0x12, "return_call", IMM_U32)
_define(None, 0x13, "return_call_indirect", IMM_U32, IMM_U32)
_define(None, 0x14, "call_ref", IMM_U32)
_define(None, 0x15, "return_call_ref", IMM_U32)
_define(None, 0x18, "delegate", IMM_U32)
_define(None, 0x19, "catch_all")
_define(None, TRY_TABLE, "try_table", IMM_BLOCKTYPE, IMM_CATCHES)

# Parametric instructions
_define(None, 0x1A, "drop")
_define(None, 0x1B, "select")
_define(None, 0x1C, "select", IMM_VALTYPES)  # typed select

# Variable and table instructions
_define_run(
    None,
    0x20,
    ["local.get", "local.set", "local.tee", "global.get", "global.set", "table.get", "table.set"],
    IMM_U32,
)

# Memory instructions
_define_run(
    None,
    0x28,
    [
        "i32.load",
        "i64.load",
        "f32.load",
        "f64.load",
        "i32.load8_s",
        "i32.load8_u",
        "i32.load16_s",
        "i32.load16_u",
        "i64.load8_s",
        "i64.load8_u",
        "i64.load16_s",
        "i64.load16_u",
        "i64.load32_s",
        "i64.load32_u",
        "i32.store",
        "i64.store",
        "f32.store",
        "f64.store",
        "i32.store8",
        "i32.store16",
        "i64.store8",
        "i64.store16",
        "i64.store32",
    ],
    IMM_MEMARG,
)
_define(None, 0x3F, "memory.size", IMM_U32)
_define(None, 0x40, "memory.grow", IMM_U32)

# Constants
_define(None, 0x41, "i32.const", IMM_I32)
_define(None, 0x42, "i64.const", IMM_I64)
_define(None, 0x43, "f32.const", IMM_F32)
_define(None, 0x44, "f64.const", IMM_F64)

# Numeric instructions without immediates, 0x45 through 0xC4
_define_run(
    None,
    0x45,
    [
        # i32 comparison
        "i32.eqz",
        "i32.eq",
        "i32.ne",
        "i32.lt_s",
        "i32.lt_u",
        "i32.gt_s",
        "i32.gt_u",
        "i32.le_s",
        "i32.le_u",
        "i32.ge_s",
        "i32.ge_u",
        # i64 comparison
        "i64.eqz",
        "i64.eq",
        "i64.ne",
        "i64.lt_s",
        "i64.lt_u",
        "i64.gt_s",
        "i64.gt_u",
        "i64.le_s",
        "i64.le_u",
        "i64.ge_s",
        "i64.ge_u",
        # f32 comparison
        "f32.eq",
        "f32.ne",
        "f32.lt",
        "f32.gt",
        "f32.le",
        "f32.ge",
        # f64 comparison
        "f64.eq",
        "f64.ne",
        "f64.lt",
        "f64.gt",
        "f64.le",
        "f64.ge",
        # i32 arithmetic
        "i32.clz",
        "i32.ctz",
        "i32.popcnt",
        "i32.add",
        "i32.sub",
        "i32.mul",
        "i32.div_s",
        "i32.div_u",
        "i32.rem_s",
        "i32.rem_u",
        "i32.and",
        "i32.or",
        "i32.xor",
        "i32.shl",
        "i32.shr_s",
        "i32.shr_u",
        "i32.rotl",
        "i32.rotr",
        # i64 arithmetic
        "i64.clz",
        "i64.ctz",
        "i64.popcnt",
        "i64.add",
        "i64.sub",
        "i64.mul",
        "i64.div_s",
        "i64.div_u",
        "i64.rem_s",
        "i64.rem_u",
        "i64.and",
        "i64.or",
        "i64.xor",
        "i64.shl",
        "i64.shr_s",
        "i64.shr_u",
        "i64.rotl",
        "i64.rotr",
        # f32 arithmetic
        "f32.abs",
        "f32.neg",
        "f32.ceil",
        "f32.floor",
        "f32.trunc",
        "f32.nearest",
        "f32.sqrt",
        "f32.add",
        "f32.sub",
        "f32.mul",
        "f32.div",
        "f32.min",
        "f32.max",
        "f32.copysign",
        # f64 arithmetic
        "f64.abs",
        "f64.neg",
        "f64.ceil",
        "f64.floor",
        "f64.trunc",
        "f64.nearest",
        "f64.sqrt",
        "f64.add",
        "f64.sub",
        "f64.mul",
        "f64.div",
        "f64.min",
        "f64.max",
        "f64.copysign",
        # Conversions
        "i32.wrap_i64",
        "i32.trunc_f32_s",
        "i32.trunc_f32_u",
        "i32.trunc_f64_s",
        "i32.trunc_f64_u",
        "i64.extend_i32_s",
        "i64.extend_i32_u",
        "i64.trunc_f32_s",
        "i64.trunc_f32_u",
        "i64.trunc_f64_s",
        "i64.trunc_f64_u",
        "f32.convert_i32_s",
        "f32.convert_i32_u",
        "f32.convert_i64_s",
        "f32.convert_i64_u",
        "f32.demote_f64",
        "f64.convert_i32_s",
        "f64.convert_i32_u",
        "f64.convert_i64_s",
        "f64.convert_i64_u",
        "f64.promote_f32",
        "i32.reinterpret_f32",
        "i64.reinterpret_f64",
        "f32.reinterpret_i32",
        "f64.reinterpret_i64",
        # Sign extension
        "i32.extend8_s",
        "i32.extend16_s",
        "i64.extend8_s",
        "i64.extend16_s",
        "i64.extend32_s",
    ],
)

# Reference instructions
_define(None, 0xD0, "ref.null", IMM_HEAPTYPE)
_define(None, 0xD1, "ref.is_null")
_define(None, 0xD2, "ref.func", IMM_U32)
_define(None, 0xD3, "ref.eq")
_define(None, 0xD4, "ref.as_non_null")
_define(None, 0xD5, "br_on_null", IMM_U32)
_define(None, 0xD6, "br_on_non_null", IMM_U32)

# GC instructions (0xFB prefix)
_define(GC_PREFIX, 0x00, "struct.new", IMM_U32)
_define(GC_PREFIX, 0x01, "struct.new_default", IMM_U32)
_define_run(GC_PREFIX, 0x02, ["struct.get", "struct.get_s", "struct.get_u", "struct.set"], IMM_U32, IMM_U32)
_define(GC_PREFIX, 0x06, "array.new", IMM_U32)
_define(GC_PREFIX, 0x07, "array.new_default", IMM_U32)
_define_run(GC_PREFIX, 0x08, ["array.new_fixed", "array.new_data", "array.new_elem"], IMM_U32, IMM_U32)
_define_run(GC_PREFIX, 0x0B, ["array.get", "array.get_s", "array.get_u", "array.set"], IMM_U32)
_define(GC_PREFIX, 0x0F, "array.len")
_define(GC_PREFIX, 0x10, "array.fill", IMM_U32)
_define_run(GC_PREFIX, 0x11, ["array.copy", "array.init_data", "array.init_elem"], IMM_U32, IMM_U32)
_define_run(GC_PREFIX, 0x14, ["ref.test", "ref.test", "ref.cast", "ref.cast"], IMM_HEAPTYPE)
_define_run(
    GC_PREFIX,
    0x18,
    ["br_on_cast", "br_on_cast_fail"],
    IMM_CAST_FLAGS,
    IMM_U32,
    IMM_HEAPTYPE,
    IMM_HEAPTYPE,
)
_define_run(GC_PREFIX, 0x1A, ["any.convert_extern", "extern.convert_any", "ref.i31", "i31.get_s", "i31.get_u"])

# Saturating truncation, bulk memory and table instructions (0xFC prefix)
_define_run(
    EXTENDED_PREFIX,
    0x00,
    [
        "i32.trunc_sat_f32_s",
        "i32.trunc_sat_f32_u",
        "i32.trunc_sat_f64_s",
        "i32.trunc_sat_f64_u",
        "i64.trunc_sat_f32_s",
        "i64.trunc_sat_f32_u",
        "i64.trunc_sat_f64_s",
        "i64.trunc_sat_f64_u",
    ],
)
_define(EXTENDED_PREFIX, 0x08, "memory.init", IMM_U32, IMM_U32)
_define(EXTENDED_PREFIX, 0x09, "data.drop", IMM_U32)
_define(EXTENDED_PREFIX, 0x0A, "memory.copy", IMM_U32, IMM_U32)
_define(EXTENDED_PREFIX, 0x0B, "memory.fill", IMM_U32)
_define(EXTENDED_PREFIX, 0x0C, "table.init", IMM_U32, IMM_U32)
_define(EXTENDED_PREFIX, 0x0D, "elem.drop", IMM_U32)
_define(EXTENDED_PREFIX, 0x0E, "table.copy", IMM_U32, IMM_U32)
_define_run(EXTENDED_PREFIX, 0x0F, ["table.grow", "table.size", "table.fill", "memory.discard"], IMM_U32)

# SIMD instructions (0xFD prefix)
_define_run(
    SIMD_PREFIX,
    0x00,
    [
        "v128.load",
        "v128.load8x8_s",
        "v128.load8x8_u",
        "v128.load16x4_s",
        "v128.load16x4_u",
        "v128.load32x2_s",
        "v128.load32x2_u",
        "v128.load8_splat",
        "v128.load16_splat",
        "v128.load32_splat",
        "v128.load64_splat",
        "v128.store",
    ],
    IMM_MEMARG,
)
_define(SIMD_PREFIX, 0x0C, "v128.const", IMM_V128)
_define(SIMD_PREFIX, 0x0D, "i8x16.shuffle", IMM_SHUFFLE)
_define_run(
    SIMD_PREFIX,
    0x0E,
    ["i8x16.swizzle", "i8x16.splat", "i16x8.splat", "i32x4.splat", "i64x2.splat", "f32x4.splat", "f64x2.splat"],
)
_define_run(
    SIMD_PREFIX,
    0x15,
    [
        "i8x16.extract_lane_s",
        "i8x16.extract_lane_u",
        "i8x16.replace_lane",
        "i16x8.extract_lane_s",
        "i16x8.extract_lane_u",
        "i16x8.replace_lane",
        "i32x4.extract_lane",
        "i32x4.replace_lane",
        "i64x2.extract_lane",
        "i64x2.replace_lane",
        "f32x4.extract_lane",
        "f32x4.replace_lane",
        "f64x2.extract_lane",
        "f64x2.replace_lane",
    ],
    IMM_LANE,
)
_INT_COMPARISONS = ["eq", "ne", "lt_s", "lt_u", "gt_s", "gt_u", "le_s", "le_u", "ge_s", "ge_u"]
_FLOAT_COMPARISONS = ["eq", "ne", "lt", "gt", "le", "ge"]
_define_run(
    SIMD_PREFIX,
    0x23,
    [f"i8x16.{op}" for op in _INT_COMPARISONS]
    + [f"i16x8.{op}" for op in _INT_COMPARISONS]
    + [f"i32x4.{op}" for op in _INT_COMPARISONS]
    + [f"f32x4.{op}" for op in _FLOAT_COMPARISONS]
    + [f"f64x2.{op}" for op in _FLOAT_COMPARISONS]
    + ["v128.not", "v128.and", "v128.andnot", "v128.or", "v128.xor", "v128.bitselect", "v128.any_true"],
)
_define_run(
    SIMD_PREFIX,
    0x54,
    [
        "v128.load8_lane",
        "v128.load16_lane",
        "v128.load32_lane",
        "v128.load64_lane",
        "v128.store8_lane",
        "v128.store16_lane",
        "v128.store32_lane",
        "v128.store64_lane",
    ],
    IMM_MEMARG,
    IMM_LANE,
)
_define_run(SIMD_PREFIX, 0x5C, ["v128.load32_zero", "v128.load64_zero"], IMM_MEMARG)
_define_run(
    SIMD_PREFIX,
    0x5E,
    [
        "f32x4.demote_f64x2_zero",
        "f64x2.promote_low_f32x4",
        # 0x60
        "i8x16.abs",
        "i8x16.neg",
        "i8x16.popcnt",
        "i8x16.all_true",
        "i8x16.bitmask",
        "i8x16.narrow_i16x8_s",
        "i8x16.narrow_i16x8_u",
        "f32x4.ceil",
        "f32x4.floor",
        "f32x4.trunc",
        "f32x4.nearest",
        "i8x16.shl",
        "i8x16.shr_s",
        "i8x16.shr_u",
        "i8x16.add",
        "i8x16.add_sat_s",
        # 0x70
        "i8x16.add_sat_u",
        "i8x16.sub",
        "i8x16.sub_sat_s",
        "i8x16.sub_sat_u",
        "f64x2.ceil",
        "f64x2.floor",
        "i8x16.min_s",
        "i8x16.min_u",
        "i8x16.max_s",
        "i8x16.max_u",
        "f64x2.trunc",
        "i8x16.avgr_u",
        "i16x8.extadd_pairwise_i8x16_s",
        "i16x8.extadd_pairwise_i8x16_u",
        "i32x4.extadd_pairwise_i16x8_s",
        "i32x4.extadd_pairwise_i16x8_u",
        # 0x80
        "i16x8.abs",
        "i16x8.neg",
        "i16x8.q15mulr_sat_s",
        "i16x8.all_true",
        "i16x8.bitmask",
        "i16x8.narrow_i32x4_s",
        "i16x8.narrow_i32x4_u",
        "i16x8.extend_low_i8x16_s",
        "i16x8.extend_high_i8x16_s",
        "i16x8.extend_low_i8x16_u",
        "i16x8.extend_high_i8x16_u",
        "i16x8.shl",
        "i16x8.shr_s",
        "i16x8.shr_u",
        "i16x8.add",
        "i16x8.add_sat_s",
        # 0x90
        "i16x8.add_sat_u",
        "i16x8.sub",
        "i16x8.sub_sat_s",
        "i16x8.sub_sat_u",
        "f64x2.nearest",
        "i16x8.mul",
        "i16x8.min_s",
        "i16x8.min_u",
        "i16x8.max_s",
        "i16x8.max_u",
        None,
        "i16x8.avgr_u",
        "i16x8.extmul_low_i8x16_s",
        "i16x8.extmul_high_i8x16_s",
        "i16x8.extmul_low_i8x16_u",
        "i16x8.extmul_high_i8x16_u",
        # 0xA0
        "i32x4.abs",
        "i32x4.neg",
        None,
        "i32x4.all_true",
        "i32x4.bitmask",
        None,
        None,
        "i32x4.extend_low_i16x8_s",
        "i32x4.extend_high_i16x8_s",
        "i32x4.extend_low_i16x8_u",
        "i32x4.extend_high_i16x8_u",
        "i32x4.shl",
        "i32x4.shr_s",
        "i32x4.shr_u",
        "i32x4.add",
        None,
        # 0xB0
        None,
        "i32x4.sub",
        None,
        None,
        None,
        "i32x4.mul",
        "i32x4.min_s",
        "i32x4.min_u",
        "i32x4.max_s",
        "i32x4.max_u",
        "i32x4.dot_i16x8_s",
        None,
        "i32x4.extmul_low_i16x8_s",
        "i32x4.extmul_high_i16x8_s",
        "i32x4.extmul_low_i16x8_u",
        "i32x4.extmul_high_i16x8_u",
        # 0xC0
        "i64x2.abs",
        "i64x2.neg",
        None,
        "i64x2.all_true",
        "i64x2.bitmask",
        None,
        None,
        "i64x2.extend_low_i32x4_s",
        "i64x2.extend_high_i32x4_s",
        "i64x2.extend_low_i32x4_u",
        "i64x2.extend_high_i32x4_u",
        "i64x2.shl",
        "i64x2.shr_s",
        "i64x2.shr_u",
        "i64x2.add",
        None,
        # 0xD0
        None,
        "i64x2.sub",
        None,
        None,
        None,
        "i64x2.mul",
        "i64x2.eq",
        "i64x2.ne",
        "i64x2.lt_s",
        "i64x2.gt_s",
        "i64x2.le_s",
        "i64x2.ge_s",
        "i64x2.extmul_low_i32x4_s",
        "i64x2.extmul_high_i32x4_s",
        "i64x2.extmul_low_i32x4_u",
        "i64x2.extmul_high_i32x4_u",
        # 0xE0
        "f32x4.abs",
        "f32x4.neg",
        None,
        "f32x4.sqrt",
        "f32x4.add",
        "f32x4.sub",
        "f32x4.mul",
        "f32x4.div",
        "f32x4.min",
        "f32x4.max",
        "f32x4.pmin",
        "f32x4.pmax",
        "f64x2.abs",
        "f64x2.neg",
        None,
        "f64x2.sqrt",
        # 0xF0
        "f64x2.add",
        "f64x2.sub",
        "f64x2.mul",
        "f64x2.div",
        "f64x2.min",
        "f64x2.max",
        "f64x2.pmin",
        "f64x2.pmax",
        "i32x4.trunc_sat_f32x4_s",
        "i32x4.trunc_sat_f32x4_u",
        "f32x4.convert_i32x4_s",
        "f32x4.convert_i32x4_u",
        "i32x4.trunc_sat_f64x2_s_zero",
        "i32x4.trunc_sat_f64x2_u_zero",
        "f64x2.convert_low_i32x4_s",
        "f64x2.convert_low_i32x4_u",
        # 0x100, relaxed SIMD
        "i8x16.relaxed_swizzle",
        "i32x4.relaxed_trunc_f32x4_s",
        "i32x4.relaxed_trunc_f32x4_u",
        "i32x4.relaxed_trunc_f64x2_s_zero",
        "i32x4.relaxed_trunc_f64x2_u_zero",
        "f32x4.relaxed_madd",
        "f32x4.relaxed_nmadd",
        "f64x2.relaxed_madd",
        "f64x2.relaxed_nmadd",
        "i8x16.relaxed_laneselect",
        "i16x8.relaxed_laneselect",
        "i32x4.relaxed_laneselect",
        "i64x2.relaxed_laneselect",
        "f32x4.relaxed_min",
        "f32x4.relaxed_max",
        "f64x2.relaxed_min",
        # 0x110
        "f64x2.relaxed_max",
        "i16x8.relaxed_q15mulr_s",
        "i16x8.relaxed_dot_i8x16_i7x16_s",
        "i32x4.relaxed_dot_i8x16_i7x16_add_s",
    ],
)

# Atomic instructions (0xFE prefix)
_define_run(
    THREADS_PREFIX,
    0x00,
    ["memory.atomic.notify", "memory.atomic.wait32", "memory.atomic.wait64"],
    IMM_MEMARG,
)
_define(THREADS_PREFIX, 0x03, "atomic.fence", IMM_ZERO_BYTE)
_ATOMIC_RMW_OPS = ["add", "sub", "and", "or", "xor", "xchg", "cmpxchg"]
_define_run(
    THREADS_PREFIX,
    0x10,
    [
        "i32.atomic.load",
        "i64.atomic.load",
        "i32.atomic.load8_u",
        "i32.atomic.load16_u",
        "i64.atomic.load8_u",
        "i64.atomic.load16_u",
        "i64.atomic.load32_u",
        "i32.atomic.store",
        "i64.atomic.store",
        "i32.atomic.store8",
        "i32.atomic.store16",
        "i64.atomic.store8",
        "i64.atomic.store16",
        "i64.atomic.store32",
    ]
    + [
        name
        for op in _ATOMIC_RMW_OPS
        for name in (
            f"i32.atomic.rmw.{op}",
            f"i64.atomic.rmw.{op}",
            f"i32.atomic.rmw8.{op}_u",
            f"i32.atomic.rmw16.{op}_u",
            f"i64.atomic.rmw8.{op}_u",
            f"i64.atomic.rmw16.{op}_u",
            f"i64.atomic.rmw32.{op}_u",
        )
    ],
    IMM_MEMARG,
)

# Opcode to name mapping
OPCODE_NAMES: dict[tuple[int | None, int], str] = {key: info.name for key, info in OPCODES.items()}

# Opcodes that open a block closed by a matching END
BLOCK_STARTS = frozenset({(None, BLOCK), (None, LOOP), (None, IF), (None, TRY), (None, TRY_TABLE)})
