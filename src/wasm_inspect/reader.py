"""Bounds-checked byte cursor and the primitive encodings built on it."""

import struct

from .errors import InvalidUtf8, Malformed, UnexpectedEof

# Longest name the decoder accepts, in bytes
MAX_NAME_SIZE = 100_000


class BinaryReader:
    """A reader for binary data with position tracking.

    Positions are absolute within ``data``. ``end`` bounds the readable
    region so that a reader over one section (or subsection) payload can never
    run into the bytes that follow it.
    """

    def __init__(self, data: bytes, position: int = 0, end: int | None = None) -> None:
        self.data = data
        self.position = position
        self.end = len(data) if end is None else end
        if not 0 <= self.position <= self.end <= len(data):
            raise UnexpectedEof(
                f"region {self.position}..{self.end} lies outside the "
                f"{len(data)}-byte buffer",
                min(max(self.position, 0), len(data)),
            )

    def read_byte(self) -> int:
        """Read a single byte."""
        if self.position >= self.end:
            raise UnexpectedEof("unexpected end of data", self.position)
        byte = self.data[self.position]
        self.position += 1
        return byte

    def peek_byte(self) -> int:
        """Return the next byte without consuming it."""
        if self.position >= self.end:
            raise UnexpectedEof("unexpected end of data", self.position)
        return self.data[self.position]

    def read_bytes(self, n: int) -> bytes:
        """Read n bytes."""
        if self.position + n > self.end:
            raise UnexpectedEof(
                f"unexpected end of data: wanted {n} bytes, "
                f"{self.remaining()} remaining",
                self.position,
            )
        result = self.data[self.position : self.position + n]
        self.position += n
        return result

    def read_u32(self) -> int:
        """Read a fixed-width little-endian u32."""
        return struct.unpack("<I", self.read_bytes(4))[0]

    def read_f32(self) -> float:
        return struct.unpack("<f", self.read_bytes(4))[0]

    def read_f64(self) -> float:
        return struct.unpack("<d", self.read_bytes(8))[0]

    def sub_reader(self, size: int) -> "BinaryReader":
        """Return a reader bounded to the next ``size`` bytes and skip them."""
        if self.position + size > self.end:
            raise UnexpectedEof(
                f"unexpected end of data: region of {size} bytes extends "
                f"past the end by {self.position + size - self.end}",
                self.position,
            )
        child = BinaryReader(self.data, self.position, self.position + size)
        self.position += size
        return child

    def eof(self) -> bool:
        """Check if at end of data."""
        return self.position >= self.end

    def remaining(self) -> int:
        """Return number of remaining bytes."""
        return self.end - self.position


def decode_unsigned_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode an unsigned LEB128 integer of at most ``max_bits`` bits."""
    start = reader.position
    result = 0
    shift = 0
    while True:
        if reader.position >= reader.end:
            raise UnexpectedEof("unexpected end of data in LEB128 integer", start)
        byte = reader.data[reader.position]
        reader.position += 1
        result |= (byte & 0x7F) << shift
        if shift + 7 >= max_bits:
            # Last byte permitted for this width
            if byte & 0x80:
                raise Malformed("integer representation too long", start)
            if byte >> (max_bits - shift):
                raise Malformed("integer too large", start)
            return result
        if (byte & 0x80) == 0:
            return result
        shift += 7


def decode_signed_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode a signed LEB128 integer of at most ``max_bits`` bits."""
    start = reader.position
    result = 0
    shift = 0
    while True:
        if reader.position >= reader.end:
            raise UnexpectedEof("unexpected end of data in LEB128 integer", start)
        byte = reader.data[reader.position]
        reader.position += 1
        result |= (byte & 0x7F) << shift
        if shift + 7 >= max_bits:
            if byte & 0x80:
                raise Malformed("integer representation too long", start)
            # Unused high bits must repeat the sign bit
            used = max_bits - shift - 1
            high = (byte & 0x7F) >> used
            if high not in (0, (1 << (7 - used)) - 1):
                raise Malformed("integer too large", start)
            shift += 7
            break
        shift += 7
        if (byte & 0x80) == 0:
            break

    # Sign extend if the sign bit (bit 6 of the last byte) is set
    if byte & 0x40:
        result |= -(1 << shift)

    return result


def decode_name(reader: BinaryReader) -> str:
    """Decode a UTF-8 name (length-prefixed byte vector).

    On ``InvalidUtf8`` the string bytes have already been consumed, so the
    caller still knows where the surrounding entry continues.
    """
    start = reader.position
    length = decode_unsigned_leb128(reader)
    if length > MAX_NAME_SIZE:
        raise Malformed(f"name of {length} bytes exceeds the {MAX_NAME_SIZE} limit", start)
    data = reader.read_bytes(length)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidUtf8(f"malformed UTF-8 encoding: {e.reason}", start) from e
