"""Section decoders.

Each reader is built from ``(data, offset, end)``: decoding starts at
``offset`` inside ``data`` and stops at ``end`` (default: the end of
``data``). Every offset it reports is absolute within ``data``.

Building a reader decodes the section's entry count and raises
``BinaryError`` if that fails. Iterating yields one entry or ``BinaryError``
per declared entry. A failed entry is skipped when its end is known (a
length-prefixed body, a string whose length was read, a tag byte with no
payload to guess at); any other failure ends the sequence early, so it can be
shorter than the declared count.
"""

from typing import Generator, Iterator

from ._logging import get_logger
from .decoder import (
    decode_func_type,
    decode_global_type,
    decode_memory_type,
    decode_operators,
    decode_ref_type,
    decode_table_type,
    decode_tag_type,
    decode_valtype,
    memory_type_error,
    read_const_expr,
)
from .errors import BinaryError, InvalidUtf8, Malformed
from .reader import BinaryReader, decode_name, decode_unsigned_leb128
from .types import (
    ByteRange,
    CustomSection,
    Data,
    DataKind,
    Element,
    ElementItems,
    ElementKind,
    Export,
    Function,
    FunctionBody,
    Global,
    Import,
    Table,
    TableInit,
    Type,
    TypeRef,
    DATA_ACTIVE,
    DATA_PASSIVE,
    ELEMENT_ACTIVE,
    ELEMENT_DECLARED,
    ELEMENT_ITEMS_EXPRESSIONS,
    ELEMENT_ITEMS_FUNCTIONS,
    ELEMENT_PASSIVE,
    EXTERNAL_FUNC,
    EXTERNAL_GLOBAL,
    EXTERNAL_KIND_ENCODING,
    EXTERNAL_MEMORY,
    EXTERNAL_TABLE,
    EXTERNAL_TAG,
    FUNCREF,
    TABLE_INIT_EXPR,
    TABLE_INIT_REF_NULL,
)

logger = get_logger(__name__)

# Most locals a single function body may declare
MAX_FUNCTION_LOCALS = 50_000


class SkipEntry(Exception):
    """An entry failed but the cursor already sits at the next entry."""

    def __init__(self, error: BinaryError) -> None:
        super().__init__(error)
        self.error = error


class StopAfterEntry(Exception):
    """An entry was decoded with errors inside it; nothing after it can be read."""

    def __init__(self, entry) -> None:
        super().__init__(entry)
        self.entry = entry


def read_name_deferred(reader: BinaryReader) -> tuple[str | None, InvalidUtf8 | None]:
    """Decode a name, returning an InvalidUtf8 error instead of raising it.

    The string's length was read, so the cursor is past it either way.
    """
    try:
        return decode_name(reader), None
    except InvalidUtf8 as e:
        return None, e


class SectionReader:
    """Reader over a section holding a counted vector of entries."""

    name = "section"

    def __init__(self, data: bytes, offset: int = 0, end: int | None = None) -> None:
        self._reader = BinaryReader(data, offset, end)
        self.count = decode_unsigned_leb128(self._reader)
        # Offset of the first entry
        self.offset = self._reader.position
        logger.debug(
            "%s section: %d entries at offset %d", self.name, self.count, self.offset
        )

    def read_entry(self, reader: BinaryReader):
        raise NotImplementedError

    def __iter__(self) -> Iterator:
        reader = BinaryReader(self._reader.data, self.offset, self._reader.end)
        completed = yield from self._read_entries(reader)
        if completed and not reader.eof():
            yield Malformed("unexpected data at the end of the section", reader.position)

    def _read_entries(self, reader: BinaryReader) -> Generator[object, None, bool]:
        """Yield entries in order; return False if decoding stopped early."""
        for index in range(self.count):
            try:
                entry = self.read_entry(reader)
            except SkipEntry as skip:
                logger.debug(
                    "%s section: skipped entry %d: %s", self.name, index, skip.error
                )
                entry = skip.error
            except StopAfterEntry as stop:
                yield stop.entry
                return False
            except BinaryError as e:
                logger.debug(
                    "%s section: entry %d of %d failed, stopping: %s",
                    self.name,
                    index,
                    self.count,
                    e,
                )
                yield e
                return False
            yield entry
        return True

    def read_all(self, reader: BinaryReader) -> tuple[list, bool]:
        """Decode every entry from ``reader``, leaving it after the last one."""
        entries: list = []
        gen = self._read_entries(reader)
        while True:
            try:
                entries.append(next(gen))
            except StopIteration as stop:
                return entries, stop.value


class TypeSectionReader(SectionReader):
    name = "type"

    def read_entry(self, reader: BinaryReader) -> Type:
        start = reader.position
        return Type(decode_func_type(reader), start)


class ImportSectionReader(SectionReader):
    name = "import"

    def read_entry(self, reader: BinaryReader) -> Import:
        start = reader.position
        module, module_error = read_name_deferred(reader)
        name, name_error = read_name_deferred(reader)
        deferred = module_error or name_error

        tag_offset = reader.position
        tag = reader.read_byte()
        if tag == 0x00:
            ty = TypeRef(EXTERNAL_FUNC, decode_unsigned_leb128(reader))
        elif tag == 0x01:
            ty = TypeRef(EXTERNAL_TABLE, decode_table_type(reader))
        elif tag == 0x02:
            memory_type = decode_memory_type(reader, check=False)
            deferred = deferred or memory_type_error(memory_type, tag_offset + 1)
            ty = TypeRef(EXTERNAL_MEMORY, memory_type)
        elif tag == 0x03:
            ty = TypeRef(EXTERNAL_GLOBAL, decode_global_type(reader))
        elif tag == 0x04:
            ty = TypeRef(EXTERNAL_TAG, decode_tag_type(reader))
        else:
            # The payload's shape is unknown; the entry ends at its tag byte
            raise SkipEntry(
                deferred or Malformed(f"unknown import kind: 0x{tag:02x}", tag_offset)
            )

        if deferred is not None:
            raise SkipEntry(deferred)
        return Import(module, name, ty, start)


class FunctionSectionReader(SectionReader):
    name = "function"

    def read_entry(self, reader: BinaryReader) -> Function:
        start = reader.position
        return Function(decode_unsigned_leb128(reader), start)


class TableSectionReader(SectionReader):
    name = "table"

    def read_entry(self, reader: BinaryReader) -> Table:
        if reader.peek_byte() == 0x40:
            # Table with an explicit initializer expression
            reader.read_byte()
            reserved_offset = reader.position
            if reader.read_byte() != 0x00:
                raise Malformed("malformed table: reserved byte must be zero", reserved_offset)
            ty = decode_table_type(reader)
            return Table(ty, TableInit(TABLE_INIT_EXPR, read_const_expr(reader)))
        return Table(decode_table_type(reader), TableInit(TABLE_INIT_REF_NULL))


class MemorySectionReader(SectionReader):
    name = "memory"

    def read_entry(self, reader: BinaryReader):
        start = reader.position
        memory_type = decode_memory_type(reader, check=False)
        error = memory_type_error(memory_type, start)
        if error is not None:
            raise SkipEntry(error)
        return memory_type


class GlobalSectionReader(SectionReader):
    name = "global"

    def read_entry(self, reader: BinaryReader) -> Global:
        ty = decode_global_type(reader)
        return Global(ty, read_const_expr(reader))


class ExportSectionReader(SectionReader):
    name = "export"

    def read_entry(self, reader: BinaryReader) -> Export:
        name, name_error = read_name_deferred(reader)
        kind_offset = reader.position
        kind_byte = reader.read_byte()
        index = decode_unsigned_leb128(reader)
        if name_error is not None:
            raise SkipEntry(name_error)
        if kind_byte not in EXTERNAL_KIND_ENCODING:
            raise SkipEntry(Malformed(f"invalid external kind: 0x{kind_byte:02x}", kind_offset))
        return Export(name, EXTERNAL_KIND_ENCODING[kind_byte], index)


class TagSectionReader(SectionReader):
    name = "tag"

    def read_entry(self, reader: BinaryReader):
        return decode_tag_type(reader)


class ElementSectionReader(SectionReader):
    """Element segments.

    The flags value selects the segment layout:
    - bit 0: passive (bit 1 clear) or declared (bit 1 set); otherwise active
    - bit 1 (active): explicit table index
    - bit 2: items are constant expressions rather than function indices
    Any segment except an active one on the implicit table 0 spells out its
    element kind (function indices) or reference type (expressions).
    """

    name = "element"

    def read_entry(self, reader: BinaryReader) -> Element:
        start = reader.position
        flags = decode_unsigned_leb128(reader)
        if flags > 0x07:
            raise Malformed(f"invalid flags byte in element segment: 0x{flags:02x}", start)

        if flags & 0x01:
            kind = ElementKind(ELEMENT_DECLARED if flags & 0x02 else ELEMENT_PASSIVE)
        else:
            table_index = decode_unsigned_leb128(reader) if flags & 0x02 else 0
            kind = ElementKind(ELEMENT_ACTIVE, table_index, read_const_expr(reader))

        explicit_type = bool(flags & 0x03)
        if flags & 0x04:
            ty = decode_ref_type(reader) if explicit_type else FUNCREF
            count = decode_unsigned_leb128(reader)
            exprs = tuple(read_const_expr(reader) for _ in range(count))
            items = ElementItems(ELEMENT_ITEMS_EXPRESSIONS, exprs)
        else:
            if explicit_type:
                kind_offset = reader.position
                element_kind = reader.read_byte()
                if element_kind != 0x00:
                    raise Malformed(f"invalid element kind: 0x{element_kind:02x}", kind_offset)
            ty = FUNCREF
            count = decode_unsigned_leb128(reader)
            funcs = tuple(decode_unsigned_leb128(reader) for _ in range(count))
            items = ElementItems(ELEMENT_ITEMS_FUNCTIONS, funcs)

        return Element(kind, items, ty)


class CodeSectionReader(SectionReader):
    """Function bodies.

    Bodies are length-prefixed, so a malformed body never prevents decoding
    the next one; its range is kept and the error ends its ``ops``. With
    ``operators=False`` the instruction streams are not decoded and a
    well-formed body's ``ops`` is empty.
    """

    name = "code"

    def __init__(
        self, data: bytes, offset: int = 0, end: int | None = None, operators: bool = True
    ) -> None:
        super().__init__(data, offset, end)
        self.operators = operators

    def read_entry(self, reader: BinaryReader) -> FunctionBody:
        size = decode_unsigned_leb128(reader)
        body = reader.sub_reader(size)
        return decode_function_body(body, self.operators)


def decode_function_body(reader: BinaryReader, operators: bool = True) -> FunctionBody:
    """Decode one function body spanning the whole of ``reader``.

    A malformed local declaration ends the body: the locals read so far are
    kept and the error becomes the only operator.
    """
    start = reader.position
    body_range = ByteRange(start, reader.end)
    locals_list = []
    total = 0
    try:
        local_count = decode_unsigned_leb128(reader)
        for _ in range(local_count):
            count_offset = reader.position
            n = decode_unsigned_leb128(reader)
            total += n
            if total > MAX_FUNCTION_LOCALS:
                raise Malformed("too many locals", count_offset)
            locals_list.append((n, decode_valtype(reader)))
    except BinaryError as e:
        logger.debug("code section: body at %d has malformed locals: %s", start, e)
        return FunctionBody(body_range, tuple(locals_list), (e,))

    ops = ()
    if operators:
        ops = tuple(decode_operators(reader.data, reader.position, reader.end))
    return FunctionBody(body_range, tuple(locals_list), ops)


class DataSectionReader(SectionReader):
    name = "data"

    def read_entry(self, reader: BinaryReader) -> Data:
        start = reader.position
        flags = decode_unsigned_leb128(reader)
        if flags == 0:
            # Active segment for memory 0
            kind = DataKind(DATA_ACTIVE, 0, read_const_expr(reader))
        elif flags == 1:
            kind = DataKind(DATA_PASSIVE)
        elif flags == 2:
            # Active segment with explicit memory index
            memory_index = decode_unsigned_leb128(reader)
            kind = DataKind(DATA_ACTIVE, memory_index, read_const_expr(reader))
        else:
            raise Malformed(f"invalid flags byte in data segment: 0x{flags:02x}", start)
        length = decode_unsigned_leb128(reader)
        return Data(kind, reader.read_bytes(length))


def _decode_single_index(data: bytes, offset: int, end: int | None, what: str) -> int:
    reader = BinaryReader(data, offset, end)
    index = decode_unsigned_leb128(reader)
    if not reader.eof():
        raise Malformed(f"unexpected data at the end of the {what} section", reader.position)
    return index


def decode_start_section(data: bytes, offset: int = 0, end: int | None = None) -> int:
    """Decode the start section: the index of the start function."""
    return _decode_single_index(data, offset, end, "start")


def decode_data_count_section(data: bytes, offset: int = 0, end: int | None = None) -> int:
    """Decode the data count section: the number of data segments."""
    return _decode_single_index(data, offset, end, "data count")


def decode_custom_section(data: bytes, offset: int = 0, end: int | None = None) -> CustomSection:
    """Decode a custom section's name; the rest of the payload stays opaque."""
    reader = BinaryReader(data, offset, end)
    name = decode_name(reader)
    return CustomSection(name, reader.read_bytes(reader.remaining()))


def decode_type_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(TypeSectionReader(data, offset, end))


def decode_import_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(ImportSectionReader(data, offset, end))


def decode_function_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(FunctionSectionReader(data, offset, end))


def decode_table_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(TableSectionReader(data, offset, end))


def decode_memory_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(MemorySectionReader(data, offset, end))


def decode_global_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(GlobalSectionReader(data, offset, end))


def decode_export_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(ExportSectionReader(data, offset, end))


def decode_tag_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(TagSectionReader(data, offset, end))


def decode_element_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(ElementSectionReader(data, offset, end))


def decode_code_section(
    data: bytes, offset: int = 0, end: int | None = None, operators: bool = True
) -> list:
    return list(CodeSectionReader(data, offset, end, operators=operators))


def decode_data_section(data: bytes, offset: int = 0, end: int | None = None) -> list:
    return list(DataSectionReader(data, offset, end))
