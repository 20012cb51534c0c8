"""Whole-module decoding: locate the sections and hand each to its decoder."""

from pathlib import Path
from typing import BinaryIO, Iterator

from ._logging import get_logger
from .errors import BinaryError, Malformed
from .names import NAME_SECTION, decode_name_section
from .reader import BinaryReader, decode_unsigned_leb128
from .sections import (
    CodeSectionReader,
    DataSectionReader,
    ElementSectionReader,
    ExportSectionReader,
    FunctionSectionReader,
    GlobalSectionReader,
    ImportSectionReader,
    MemorySectionReader,
    TableSectionReader,
    TagSectionReader,
    TypeSectionReader,
    decode_custom_section,
    decode_data_count_section,
    decode_start_section,
)
from .types import ByteRange, DecodedModule, Section

logger = get_logger(__name__)

# WASM magic number and version
WASM_MAGIC = b"\x00asm"
WASM_VERSION = 1

# Section IDs
SECTION_CUSTOM = 0
SECTION_TYPE = 1
SECTION_IMPORT = 2
SECTION_FUNCTION = 3
SECTION_TABLE = 4
SECTION_MEMORY = 5
SECTION_GLOBAL = 6
SECTION_EXPORT = 7
SECTION_START = 8
SECTION_ELEMENT = 9
SECTION_CODE = 10
SECTION_DATA = 11
SECTION_DATA_COUNT = 12
SECTION_TAG = 13  # Exception handling proposal

SECTION_NAMES = {
    SECTION_CUSTOM: "custom",
    SECTION_TYPE: "type",
    SECTION_IMPORT: "import",
    SECTION_FUNCTION: "function",
    SECTION_TABLE: "table",
    SECTION_MEMORY: "memory",
    SECTION_GLOBAL: "global",
    SECTION_EXPORT: "export",
    SECTION_START: "start",
    SECTION_ELEMENT: "element",
    SECTION_CODE: "code",
    SECTION_DATA: "data",
    SECTION_DATA_COUNT: "datacount",
    SECTION_TAG: "tag",
}

# Counted sections and the DecodedModule list their entries go to
SECTION_READERS = {
    SECTION_TYPE: (TypeSectionReader, "types"),
    SECTION_IMPORT: (ImportSectionReader, "imports"),
    SECTION_FUNCTION: (FunctionSectionReader, "functions"),
    SECTION_TABLE: (TableSectionReader, "tables"),
    SECTION_MEMORY: (MemorySectionReader, "memories"),
    SECTION_GLOBAL: (GlobalSectionReader, "globals"),
    SECTION_EXPORT: (ExportSectionReader, "exports"),
    SECTION_ELEMENT: (ElementSectionReader, "elements"),
    SECTION_DATA: (DataSectionReader, "data"),
    SECTION_TAG: (TagSectionReader, "tags"),
}


def read_header(reader: BinaryReader) -> None:
    """Check the magic number and version."""
    magic = reader.read_bytes(4)
    if magic != WASM_MAGIC:
        raise Malformed(
            f"invalid WASM magic number: expected {WASM_MAGIC!r}, got {magic!r}", 0
        )
    version_offset = reader.position
    version = reader.read_u32()
    if version != WASM_VERSION:
        raise Malformed(f"unsupported WASM version: {version}", version_offset)


def iter_sections(data: bytes) -> Iterator[Section]:
    """Yield the sections of a module in file order.

    Raises BinaryError for a broken header, a broken section header, or a
    section whose payload runs past the end of ``data``.
    """
    reader = BinaryReader(data)
    read_header(reader)
    while not reader.eof():
        section_id = reader.read_byte()
        size = decode_unsigned_leb128(reader)
        payload = reader.sub_reader(size)
        yield Section(
            section_id,
            SECTION_NAMES.get(section_id, f"unknown({section_id})"),
            ByteRange(payload.position, payload.end),
        )


def decode_section(
    data: bytes, section: Section, module: DecodedModule, operators: bool = True
) -> None:
    """Decode a single section into ``module``.

    Section-level failures are recorded in ``module.errors``.
    """
    start, end = section.range.start, section.range.end
    try:
        if section.id in SECTION_READERS:
            reader_class, attr = SECTION_READERS[section.id]
            getattr(module, attr).extend(reader_class(data, start, end))
        elif section.id == SECTION_CODE:
            module.code.extend(CodeSectionReader(data, start, end, operators=operators))
        elif section.id == SECTION_START:
            module.start = decode_start_section(data, start, end)
        elif section.id == SECTION_DATA_COUNT:
            module.data_count = decode_data_count_section(data, start, end)
        elif section.id == SECTION_CUSTOM:
            custom = decode_custom_section(data, start, end)
            module.custom_sections.append(custom)
            module.custom_by_offset[start] = custom
            if custom.name == NAME_SECTION:
                module.names.extend(decode_name_section(data, end - len(custom.data), end))
        else:
            raise Malformed(f"unknown section id: {section.id}", start)
    except BinaryError as e:
        logger.debug("%s section at %d failed: %s", section.name, start, e)
        module.errors.append(e)


def decode_module(source: bytes | BinaryIO | Path, operators: bool = True) -> DecodedModule:
    """Decode a WebAssembly module from binary format.

    Args:
        source: WASM bytes, file-like object, or path to .wasm file
        operators: Decode the instruction stream of every function body

    Returns:
        DecodedModule with each section's entries (or per-entry errors)

    Raises:
        BinaryError: If the header is invalid. A broken section header or a
            section overrunning the module is recorded in ``errors`` and ends
            the walk, since the following sections cannot be located.
    """
    # Handle different source types
    if isinstance(source, Path):
        data = source.read_bytes()
    elif isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
    else:
        # Assume file-like object
        data = source.read()

    module = DecodedModule()
    sections = iter_sections(data)
    while True:
        try:
            section = next(sections)
        except StopIteration:
            break
        except BinaryError as e:
            if not module.sections and e.offset < 8:
                raise
            logger.debug("section walk stopped: %s", e)
            module.errors.append(e)
            break
        module.sections.append(section)
        decode_section(data, section, module, operators)

    logger.debug(
        "decoded %d sections, %d section errors", len(module.sections), len(module.errors)
    )
    return module
