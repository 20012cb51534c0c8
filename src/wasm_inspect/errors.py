"""Exception classes for the WebAssembly decoder."""


class WasmError(Exception):
    """Base class for all wasm_inspect errors."""

    pass


class BinaryError(WasmError):
    """Error while decoding the binary format.

    ``offset`` is absolute within the buffer handed to the decoder and points
    at the byte where the failing read began.
    """

    def __init__(self, message: str, offset: int) -> None:
        super().__init__(message, offset)
        self.message = message
        self.offset = offset

    def __str__(self) -> str:
        return f"{self.message} (at offset {self.offset})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, offset={self.offset})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BinaryError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.message == other.message
            and self.offset == other.offset
        )

    def __hash__(self) -> int:
        return hash((type(self), self.message, self.offset))


class UnexpectedEof(BinaryError):
    """Fewer bytes remain than the read requires."""

    pass


class Malformed(BinaryError):
    """An integer overflows its width or a tag byte has no known meaning."""

    pass


class InvalidUtf8(BinaryError):
    """A name field is not valid UTF-8."""

    pass


class UnknownOpcode(BinaryError):
    """An instruction matches nothing in the operator catalog."""

    pass
