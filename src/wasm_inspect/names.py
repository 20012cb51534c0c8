"""Decoder for the ``name`` custom section.

The payload is a sequence of subsections, each an id byte and a
length-prefixed body. A failure inside one subsection is reported for that
subsection alone and decoding resumes at the next; ids this decoder does not
know come back as ``NameUnknown`` with their raw bytes.
"""

from typing import Iterator

from ._logging import get_logger
from .errors import BinaryError, Malformed
from .reader import BinaryReader, decode_name, decode_unsigned_leb128
from .sections import SectionReader, SkipEntry, StopAfterEntry, read_name_deferred
from .types import (
    IndirectNaming,
    Name,
    NameUnknown,
    Naming,
    NAME_DATA,
    NAME_ELEMENT,
    NAME_FUNCTION,
    NAME_GLOBAL,
    NAME_LABEL,
    NAME_LOCAL,
    NAME_MEMORY,
    NAME_MODULE,
    NAME_TABLE,
    NAME_TYPE,
    NAME_UNKNOWN,
)

logger = get_logger(__name__)

NAME_SECTION = "name"

# Subsection ids
SUBSECTION_MODULE = 0
SUBSECTION_FUNCTION = 1
SUBSECTION_LOCAL = 2
SUBSECTION_LABEL = 3
SUBSECTION_TYPE = 4
SUBSECTION_TABLE = 5
SUBSECTION_MEMORY = 6
SUBSECTION_GLOBAL = 7
SUBSECTION_ELEMENT = 8
SUBSECTION_DATA = 9

NAME_MAP_SUBSECTIONS = {
    SUBSECTION_FUNCTION: NAME_FUNCTION,
    SUBSECTION_TYPE: NAME_TYPE,
    SUBSECTION_TABLE: NAME_TABLE,
    SUBSECTION_MEMORY: NAME_MEMORY,
    SUBSECTION_GLOBAL: NAME_GLOBAL,
    SUBSECTION_ELEMENT: NAME_ELEMENT,
    SUBSECTION_DATA: NAME_DATA,
}

INDIRECT_NAME_MAP_SUBSECTIONS = {
    SUBSECTION_LOCAL: NAME_LOCAL,
    SUBSECTION_LABEL: NAME_LABEL,
}


class NameMapReader(SectionReader):
    """A vector of ``index -> name`` pairs."""

    name = "name map"

    def read_entry(self, reader: BinaryReader) -> Naming:
        index = decode_unsigned_leb128(reader)
        name, error = read_name_deferred(reader)
        if error is not None:
            raise SkipEntry(error)
        return Naming(index, name)


class IndirectNameMapReader(SectionReader):
    """A vector of ``index -> name map`` pairs, e.g. locals per function."""

    name = "indirect name map"

    def read_entry(self, reader: BinaryReader) -> IndirectNaming:
        index = decode_unsigned_leb128(reader)
        inner = NameMapReader(reader.data, reader.position, reader.end)
        # The inner map carries no length, so it is read in step with ours
        inner_reader = BinaryReader(reader.data, inner.offset, reader.end)
        names, completed = inner.read_all(inner_reader)
        reader.position = inner_reader.position
        naming = IndirectNaming(index, tuple(names))
        if not completed:
            raise StopAfterEntry(naming)
        return naming


def decode_subsection(subsection_id: int, reader: BinaryReader) -> Name:
    """Decode one subsection body spanning the whole of ``reader``."""
    if subsection_id == SUBSECTION_MODULE:
        name = decode_name(reader)
        if not reader.eof():
            raise Malformed("trailing data at the end of a name", reader.position)
        return Name(NAME_MODULE, name)
    if subsection_id in NAME_MAP_SUBSECTIONS:
        names = NameMapReader(reader.data, reader.position, reader.end)
        return Name(NAME_MAP_SUBSECTIONS[subsection_id], tuple(names))
    if subsection_id in INDIRECT_NAME_MAP_SUBSECTIONS:
        names = IndirectNameMapReader(reader.data, reader.position, reader.end)
        return Name(INDIRECT_NAME_MAP_SUBSECTIONS[subsection_id], tuple(names))
    return Name(NAME_UNKNOWN, NameUnknown(subsection_id, reader.read_bytes(reader.remaining())))


class NameSectionReader:
    """Reader over the payload of the ``name`` section after its name string."""

    def __init__(self, data: bytes, offset: int = 0, end: int | None = None) -> None:
        self._reader = BinaryReader(data, offset, end)

    def __iter__(self) -> Iterator[Name | BinaryError]:
        reader = BinaryReader(self._reader.data, self._reader.position, self._reader.end)
        while not reader.eof():
            try:
                subsection_id = reader.read_byte()
                size = decode_unsigned_leb128(reader)
                body = reader.sub_reader(size)
            except BinaryError as e:
                # Without a length the next subsection cannot be found
                logger.debug("name section: broken subsection header: %s", e)
                yield e
                return
            try:
                entry = decode_subsection(subsection_id, body)
            except BinaryError as e:
                logger.debug("name section: subsection %d failed: %s", subsection_id, e)
                entry = e
            yield entry


def decode_name_section(data: bytes, offset: int = 0, end: int | None = None) -> list[Name | BinaryError]:
    """Decode the subsections of a ``name`` section payload.

    ``offset`` points just past the section's ``"name"`` string.
    """
    return list(NameSectionReader(data, offset, end))
