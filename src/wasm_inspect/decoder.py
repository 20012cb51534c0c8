"""WebAssembly binary format decoder: value types and operator streams."""

from typing import Iterator

from .errors import BinaryError, Malformed, UnexpectedEof, UnknownOpcode
from .reader import BinaryReader, decode_signed_leb128, decode_unsigned_leb128
from .types import (
    FuncType,
    GlobalType,
    HeapType,
    MemoryType,
    Operator,
    RefType,
    TableType,
    TagType,
    ValType,
    ConstExpr,
    HEAP_TYPED_FUNC,
    HEAP_TYPE_ENCODING,
    REF_NON_NULL,
    REF_NULL,
    TAG_KIND_EXCEPTION,
    VALTYPE_ENCODING,
)
from . import opcodes


# Function type form byte
FUNC_TYPE_FORM = 0x60

# Block type encoding
BLOCK_TYPE_EMPTY = 0x40

# Memory limits flags
MEMORY_HAS_MAX = 0x01
MEMORY_SHARED = 0x02
MEMORY_64 = 0x04

DELEGATE = 0x18


def decode_heap_type(reader: BinaryReader) -> HeapType:
    """Decode a heap type (abstract type byte or s33 type index)."""
    start = reader.position
    byte = reader.peek_byte()
    if byte in HEAP_TYPE_ENCODING:
        reader.read_byte()
        return HeapType(HEAP_TYPE_ENCODING[byte])
    index = decode_signed_leb128(reader, 33)
    if index < 0:
        raise Malformed(f"invalid heap type: 0x{byte:02x}", start)
    return HeapType(HEAP_TYPED_FUNC, index)


def decode_ref_type(reader: BinaryReader) -> RefType:
    """Decode a reference type, shorthand or prefixed."""
    start = reader.position
    byte = reader.read_byte()
    if byte in HEAP_TYPE_ENCODING:
        return RefType(HeapType(HEAP_TYPE_ENCODING[byte]), nullable=True)
    if byte in (REF_NULL, REF_NON_NULL):
        heap_type = decode_heap_type(reader)
        return RefType(heap_type, nullable=byte == REF_NULL)
    raise Malformed(f"malformed reference type: 0x{byte:02x}", start)


def decode_valtype(reader: BinaryReader) -> ValType:
    """Decode a value type."""
    start = reader.position
    byte = reader.peek_byte()
    if byte in VALTYPE_ENCODING:
        reader.read_byte()
        return VALTYPE_ENCODING[byte]
    if byte in HEAP_TYPE_ENCODING or byte in (REF_NULL, REF_NON_NULL):
        return decode_ref_type(reader)
    raise Malformed(f"invalid value type: 0x{byte:02x}", start)


def decode_blocktype(reader: BinaryReader) -> tuple | int:
    """Decode a block type (empty, valtype, or type index)."""
    start = reader.position
    byte = reader.peek_byte()
    if byte == BLOCK_TYPE_EMPTY:
        reader.read_byte()
        return ()  # Empty result
    if byte in VALTYPE_ENCODING or byte in HEAP_TYPE_ENCODING or byte in (REF_NULL, REF_NON_NULL):
        return (decode_valtype(reader),)  # Single result type
    # Otherwise it's a signed type index (for multi-value)
    index = decode_signed_leb128(reader, 33)
    if index < 0:
        raise Malformed(f"invalid block type: 0x{byte:02x}", start)
    return index


def decode_func_type(reader: BinaryReader) -> FuncType:
    """Decode a function type."""
    start = reader.position
    marker = reader.read_byte()
    if marker != FUNC_TYPE_FORM:
        raise Malformed(f"invalid leading byte in type definition: 0x{marker:02x}", start)

    param_count = decode_unsigned_leb128(reader)
    types = [decode_valtype(reader) for _ in range(param_count)]
    result_count = decode_unsigned_leb128(reader)
    types.extend(decode_valtype(reader) for _ in range(result_count))

    return FuncType(tuple(types), param_count)


def decode_table_type(reader: BinaryReader) -> TableType:
    """Decode a table type: element reference type and limits."""
    element_type = decode_ref_type(reader)
    start = reader.position
    flags = reader.read_byte()
    if flags & ~0x01:
        raise Malformed(f"invalid table resizable limits flags: 0x{flags:02x}", start)
    initial = decode_unsigned_leb128(reader)
    maximum = None
    if flags & 0x01:
        maximum = decode_unsigned_leb128(reader)
    return TableType(element_type, initial, maximum)


def decode_memory_type(reader: BinaryReader, check: bool = True) -> MemoryType:
    """Decode a memory type.

    With ``check`` a shared memory without a maximum raises ``Malformed`` at
    the flags byte; without it the caller applies ``memory_type_error``.
    """
    start = reader.position
    flags = reader.read_byte()
    if flags & ~(MEMORY_HAS_MAX | MEMORY_SHARED | MEMORY_64):
        raise Malformed(f"invalid memory limits flags: 0x{flags:02x}", start)
    memory64 = bool(flags & MEMORY_64)
    bits = 64 if memory64 else 32
    initial = decode_unsigned_leb128(reader, bits)
    maximum = None
    if flags & MEMORY_HAS_MAX:
        maximum = decode_unsigned_leb128(reader, bits)
    memory_type = MemoryType(
        memory64=memory64,
        shared=bool(flags & MEMORY_SHARED),
        initial=initial,
        maximum=maximum,
    )
    if check:
        error = memory_type_error(memory_type, start)
        if error is not None:
            raise error
    return memory_type


def memory_type_error(memory_type: MemoryType, offset: int) -> Malformed | None:
    """Return the error for a shared memory lacking a maximum, if any."""
    if memory_type.shared and memory_type.maximum is None:
        return Malformed("shared memory must have a maximum size", offset)
    return None


def decode_global_type(reader: BinaryReader) -> GlobalType:
    content_type = decode_valtype(reader)
    start = reader.position
    mutability = reader.read_byte()
    if mutability not in (0x00, 0x01):
        raise Malformed(f"malformed mutability: 0x{mutability:02x}", start)
    return GlobalType(content_type, mutability == 0x01)


def decode_tag_type(reader: BinaryReader) -> TagType:
    start = reader.position
    attribute = reader.read_byte()
    if attribute != 0x00:
        raise Malformed(f"invalid tag attribute: 0x{attribute:02x}", start)
    return TagType(TAG_KIND_EXCEPTION, decode_unsigned_leb128(reader))


# Immediate readers, keyed by the immediate kinds of the opcode table. Values
# are consumed to keep the cursor in step but not retained.


def _read_memarg(reader: BinaryReader) -> None:
    align = decode_unsigned_leb128(reader)
    if align & 0x40:
        # Multi-memory: an explicit memory index follows
        decode_unsigned_leb128(reader)
    decode_unsigned_leb128(reader, 64)


def _read_br_table(reader: BinaryReader) -> None:
    count = decode_unsigned_leb128(reader)
    for _ in range(count):
        decode_unsigned_leb128(reader)
    decode_unsigned_leb128(reader)  # default label


def _read_valtypes(reader: BinaryReader) -> None:
    count = decode_unsigned_leb128(reader)
    for _ in range(count):
        decode_valtype(reader)


def _read_zero_byte(reader: BinaryReader) -> None:
    start = reader.position
    if reader.read_byte() != 0x00:
        raise Malformed("nonzero byte after atomic.fence", start)


def _read_cast_flags(reader: BinaryReader) -> None:
    start = reader.position
    flags = reader.read_byte()
    if flags > 0x03:
        raise Malformed(f"invalid cast flags: 0x{flags:02x}", start)


def _read_catches(reader: BinaryReader) -> None:
    count = decode_unsigned_leb128(reader)
    for _ in range(count):
        start = reader.position
        kind = reader.read_byte()
        if kind in (0x00, 0x01):  # catch, catch_ref
            decode_unsigned_leb128(reader)  # tag
        elif kind not in (0x02, 0x03):  # catch_all, catch_all_ref
            raise Malformed(f"invalid catch kind: 0x{kind:02x}", start)
        decode_unsigned_leb128(reader)  # label


IMMEDIATE_READERS = {
    opcodes.IMM_U32: lambda r: decode_unsigned_leb128(r),
    opcodes.IMM_I32: lambda r: decode_signed_leb128(r, 32),
    opcodes.IMM_I64: lambda r: decode_signed_leb128(r, 64),
    opcodes.IMM_F32: lambda r: r.read_f32(),
    opcodes.IMM_F64: lambda r: r.read_f64(),
    opcodes.IMM_MEMARG: _read_memarg,
    opcodes.IMM_BLOCKTYPE: decode_blocktype,
    opcodes.IMM_BR_TABLE: _read_br_table,
    opcodes.IMM_VALTYPES: _read_valtypes,
    opcodes.IMM_HEAPTYPE: decode_heap_type,
    opcodes.IMM_ZERO_BYTE: _read_zero_byte,
    opcodes.IMM_CAST_FLAGS: _read_cast_flags,
    opcodes.IMM_CATCHES: _read_catches,
    opcodes.IMM_V128: lambda r: r.read_bytes(16),
    opcodes.IMM_SHUFFLE: lambda r: r.read_bytes(16),
    opcodes.IMM_LANE: lambda r: r.read_byte(),
}


def format_opcode(key: tuple[int | None, int]) -> str:
    prefix, code = key
    if prefix is None:
        return f"0x{code:02x}"
    return f"0x{prefix:02x} 0x{code:02x}"


def decode_instruction(reader: BinaryReader) -> tuple[tuple[int | None, int], opcodes.OpcodeInfo]:
    """Decode a single instruction, returning its opcode key and table entry."""
    start = reader.position
    byte = reader.read_byte()
    if byte in opcodes.PREFIXES:
        key = (byte, decode_unsigned_leb128(reader))
    else:
        key = (None, byte)

    info = opcodes.OPCODES.get(key)
    if info is None:
        raise UnknownOpcode(f"unknown opcode: {format_opcode(key)}", start)
    for immediate in info.immediates:
        IMMEDIATE_READERS[immediate](reader)
    return key, info


def decode_operator(reader: BinaryReader) -> Operator:
    """Decode a single instruction into its Operator."""
    _, info = decode_instruction(reader)
    return Operator(info.name)


def iter_expression(reader: BinaryReader) -> Iterator[opcodes.OpcodeInfo]:
    """Decode instructions up to and including the ``end`` closing the expression."""
    depth = 0
    while True:
        if reader.eof():
            raise UnexpectedEof("unexpected end of data: expression is missing its `end`", reader.position)
        key, info = decode_instruction(reader)
        yield info

        # Track nesting for block/loop/if/try
        if key in opcodes.BLOCK_STARTS:
            depth += 1
        elif key == (None, opcodes.END):
            if depth == 0:
                return
            depth -= 1
        elif key == (None, DELEGATE) and depth > 0:
            # delegate closes its try block in place of end
            depth -= 1


def read_const_expr(reader: BinaryReader) -> ConstExpr:
    """Capture an initializer expression as raw bytes, including its ``end``."""
    start = reader.position
    for _ in iter_expression(reader):
        pass
    return ConstExpr(reader.data[start : reader.position], start)


def rebase_error(error: BinaryError, base: int) -> BinaryError:
    """Shift an error's offset from a copied buffer back into the original."""
    if base == 0:
        return error
    return type(error)(error.message, error.offset + base)


def decode_operators(
    data: bytes, offset: int = 0, end: int | None = None, base: int = 0
) -> Iterator[Operator | BinaryError]:
    """Decode the operator stream of one expression or function body.

    Yields one Operator per instruction. A decode error is yielded in place
    and ends the stream, since the position of the next instruction is then
    unknown. ``base`` is added to error offsets when ``data`` is a copy cut
    out of a larger buffer.
    """
    reader = BinaryReader(data, offset, end)
    try:
        for info in iter_expression(reader):
            yield Operator(info.name)
        if not reader.eof():
            raise Malformed("operators remaining after the final `end`", reader.position)
    except BinaryError as e:
        yield rebase_error(e, base)
