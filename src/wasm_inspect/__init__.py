"""WebAssembly binary inspection.

Decodes WebAssembly modules section by section, reporting each malformed
entry in place and carrying on wherever the format allows.
"""

__version__ = "0.1.0"

from .reader import (
    BinaryReader,
    decode_unsigned_leb128,
    decode_signed_leb128,
    decode_name,
)
from .errors import WasmError, BinaryError, UnexpectedEof, Malformed, InvalidUtf8, UnknownOpcode
from .types import (
    DecodedModule,
    FuncType,
    Type,
    Import,
    Export,
    Function,
    Table,
    MemoryType,
    Global,
    Element,
    Data,
    FunctionBody,
    ConstExpr,
    Operator,
    Name,
    Section,
)
from .decoder import decode_operators
from .sections import (
    TypeSectionReader,
    ImportSectionReader,
    FunctionSectionReader,
    TableSectionReader,
    MemorySectionReader,
    GlobalSectionReader,
    ExportSectionReader,
    TagSectionReader,
    ElementSectionReader,
    CodeSectionReader,
    DataSectionReader,
)
from .names import decode_name_section
from .module import decode_module, iter_sections

__all__ = [
    # Main API
    "decode_module",
    "iter_sections",
    "decode_operators",
    "decode_name_section",
    # Section readers
    "TypeSectionReader",
    "ImportSectionReader",
    "FunctionSectionReader",
    "TableSectionReader",
    "MemorySectionReader",
    "GlobalSectionReader",
    "ExportSectionReader",
    "TagSectionReader",
    "ElementSectionReader",
    "CodeSectionReader",
    "DataSectionReader",
    # Primitives
    "BinaryReader",
    "decode_unsigned_leb128",
    "decode_signed_leb128",
    "decode_name",
    # Types
    "DecodedModule",
    "FuncType",
    "Type",
    "Import",
    "Export",
    "Function",
    "Table",
    "MemoryType",
    "Global",
    "Element",
    "Data",
    "FunctionBody",
    "ConstExpr",
    "Operator",
    "Name",
    "Section",
    # Errors
    "WasmError",
    "BinaryError",
    "UnexpectedEof",
    "Malformed",
    "InvalidUtf8",
    "UnknownOpcode",
]
