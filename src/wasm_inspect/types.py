"""WebAssembly type definitions.

Every value here is produced once by a decoder and never mutated. Cross
references (type, table, memory indices) stay plain integers; resolving them
against a whole module is left to the caller.
"""

from dataclasses import dataclass
from typing import Union

from .errors import BinaryError


# Numeric and vector value types
VALTYPE_I32 = "i32"
VALTYPE_I64 = "i64"
VALTYPE_F32 = "f32"
VALTYPE_F64 = "f64"
VALTYPE_V128 = "v128"

# Binary encoding of numeric and vector value types
VALTYPE_ENCODING = {
    0x7F: VALTYPE_I32,
    0x7E: VALTYPE_I64,
    0x7D: VALTYPE_F32,
    0x7C: VALTYPE_F64,
    0x7B: VALTYPE_V128,
}

# Heap type kinds
HEAP_TYPED_FUNC = "typed_func"
HEAP_FUNC = "func"
HEAP_EXTERN = "extern"
HEAP_ANY = "any"
HEAP_NONE = "none"
HEAP_NOEXTERN = "noextern"
HEAP_NOFUNC = "nofunc"
HEAP_EQ = "eq"
HEAP_STRUCT = "struct"
HEAP_ARRAY = "array"
HEAP_I31 = "i31"

# Binary encoding of abstract heap types (also the nullable shorthand ref types)
HEAP_TYPE_ENCODING = {
    0x73: HEAP_NOFUNC,
    0x72: HEAP_NOEXTERN,
    0x71: HEAP_NONE,
    0x70: HEAP_FUNC,
    0x6F: HEAP_EXTERN,
    0x6E: HEAP_ANY,
    0x6D: HEAP_EQ,
    0x6C: HEAP_I31,
    0x6B: HEAP_STRUCT,
    0x6A: HEAP_ARRAY,
}

# Prefix bytes for `(ref ht)` and `(ref null ht)`
REF_NON_NULL = 0x64
REF_NULL = 0x63


@dataclass(frozen=True)
class HeapType:
    """Heap type of a reference; ``index`` is set only for typed functions."""

    kind: str
    index: int | None = None

    def __repr__(self) -> str:
        if self.kind == HEAP_TYPED_FUNC:
            return f"${self.index}"
        return self.kind


@dataclass(frozen=True)
class RefType:
    """A reference type."""

    heap_type: HeapType
    nullable: bool

    def __repr__(self) -> str:
        if self.nullable and self.heap_type.kind != HEAP_TYPED_FUNC:
            return f"{self.heap_type!r}ref"
        if self.nullable:
            return f"(ref null {self.heap_type!r})"
        return f"(ref {self.heap_type!r})"


FUNCREF = RefType(HeapType(HEAP_FUNC), nullable=True)
EXTERNREF = RefType(HeapType(HEAP_EXTERN), nullable=True)

ValType = Union[str, RefType]  # One of the VALTYPE_* constants, or a RefType


@dataclass(frozen=True)
class FuncType:
    """WebAssembly function type (signature).

    Parameters and results share one tuple; the first ``param_count``
    entries are the parameters.
    """

    params_and_results: tuple[ValType, ...]
    param_count: int

    @property
    def params(self) -> tuple[ValType, ...]:
        return self.params_and_results[: self.param_count]

    @property
    def results(self) -> tuple[ValType, ...]:
        return self.params_and_results[self.param_count :]

    def __repr__(self) -> str:
        params = ", ".join(repr(p) if isinstance(p, RefType) else p for p in self.params)
        results = ", ".join(repr(r) if isinstance(r, RefType) else r for r in self.results)
        return f"({params}) -> ({results})"


@dataclass(frozen=True)
class Type:
    """An entry of the type section, with the offset of its form byte."""

    func: FuncType
    offset: int


@dataclass(frozen=True)
class TableType:
    """Table type with element type and limits."""

    element_type: RefType
    initial: int
    maximum: int | None = None


@dataclass(frozen=True)
class MemoryType:
    """Memory type; ``initial`` and ``maximum`` are in pages."""

    memory64: bool
    shared: bool
    initial: int
    maximum: int | None = None


@dataclass(frozen=True)
class GlobalType:
    """Global type with value type and mutability."""

    content_type: ValType
    mutable: bool


TAG_KIND_EXCEPTION = "exception"


@dataclass(frozen=True)
class TagType:
    """Exception tag type."""

    kind: str
    func_type_idx: int


# Type reference kinds, shared with export kinds
EXTERNAL_FUNC = "func"
EXTERNAL_TABLE = "table"
EXTERNAL_MEMORY = "memory"
EXTERNAL_GLOBAL = "global"
EXTERNAL_TAG = "tag"

EXTERNAL_KIND_ENCODING = {
    0x00: EXTERNAL_FUNC,
    0x01: EXTERNAL_TABLE,
    0x02: EXTERNAL_MEMORY,
    0x03: EXTERNAL_GLOBAL,
    0x04: EXTERNAL_TAG,
}


@dataclass(frozen=True)
class TypeRef:
    """What an import refers to.

    ``value`` is a type index for ``func`` and the matching
    TableType/MemoryType/GlobalType/TagType otherwise.
    """

    kind: str
    value: Union[int, TableType, MemoryType, GlobalType, TagType]


@dataclass(frozen=True)
class Import:
    """An import entry."""

    module: str
    name: str
    ty: TypeRef
    offset: int


@dataclass(frozen=True)
class Export:
    """An export entry."""

    name: str
    kind: str  # One of EXTERNAL_* constants
    index: int


@dataclass(frozen=True)
class Function:
    """A function section entry."""

    type_idx: int
    offset: int


@dataclass(frozen=True)
class ByteRange:
    """Half-open byte range within the decoded buffer."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Operator:
    """A decoded instruction, known by its canonical name."""

    name: str

    def __repr__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ConstExpr:
    """Raw bytes of an initializer expression, including its final ``end``.

    ``offset`` is where the expression starts in the decoded buffer.
    """

    data: bytes
    offset: int

    def operators(self) -> list[Union[Operator, BinaryError]]:
        """Decode the expression into operators."""
        from .decoder import decode_operators

        return list(decode_operators(self.data, 0, len(self.data), base=self.offset))


TABLE_INIT_REF_NULL = "ref_null"
TABLE_INIT_EXPR = "expr"


@dataclass(frozen=True)
class TableInit:
    """Initial contents of a table."""

    kind: str
    expr: ConstExpr | None = None


@dataclass(frozen=True)
class Table:
    """A table section entry."""

    ty: TableType
    init: TableInit


@dataclass(frozen=True)
class Global:
    """Global variable declaration."""

    ty: GlobalType
    init_expr: ConstExpr


ELEMENT_PASSIVE = "passive"
ELEMENT_ACTIVE = "active"
ELEMENT_DECLARED = "declared"


@dataclass(frozen=True)
class ElementKind:
    """Mode of an element segment; table fields are set only when active."""

    kind: str
    table_index: int | None = None
    offset_expr: ConstExpr | None = None


ELEMENT_ITEMS_FUNCTIONS = "functions"
ELEMENT_ITEMS_EXPRESSIONS = "expressions"


@dataclass(frozen=True)
class ElementItems:
    """Function indices or constant expressions of an element segment."""

    kind: str
    items: tuple[Union[int, ConstExpr], ...]


@dataclass(frozen=True)
class Element:
    """Element segment for table initialization."""

    kind: ElementKind
    items: ElementItems
    ty: RefType


DATA_PASSIVE = "passive"
DATA_ACTIVE = "active"


@dataclass(frozen=True)
class DataKind:
    """Mode of a data segment; memory fields are set only when active."""

    kind: str
    memory_index: int | None = None
    offset_expr: ConstExpr | None = None


@dataclass(frozen=True)
class Data:
    """Data segment for memory initialization."""

    kind: DataKind
    data: bytes


@dataclass(frozen=True)
class FunctionBody:
    """A code section entry.

    ``range`` covers the body after its size prefix. ``locals`` holds the
    ``(count, type)`` declarations and ``ops`` the decoded operators. If the
    locals or the operator stream are malformed, ``ops`` ends with the error.
    """

    range: ByteRange
    locals: tuple[tuple[int, ValType], ...]
    ops: tuple[Union[Operator, BinaryError], ...]


@dataclass(frozen=True)
class CustomSection:
    """A custom section: its name and uninterpreted payload."""

    name: str
    data: bytes


@dataclass(frozen=True)
class Naming:
    """A name for an index from the name section."""

    index: int
    name: str


@dataclass(frozen=True)
class IndirectNaming:
    """Names of the items (locals, labels) inside the item at ``index``."""

    index: int
    names: tuple[Union[Naming, BinaryError], ...]


@dataclass(frozen=True)
class NameUnknown:
    """A name subsection with an identifier this decoder does not know."""

    subsection_id: int
    data: bytes


NAME_MODULE = "module"
NAME_FUNCTION = "function"
NAME_LOCAL = "local"
NAME_LABEL = "label"
NAME_TYPE = "type"
NAME_TABLE = "table"
NAME_MEMORY = "memory"
NAME_GLOBAL = "global"
NAME_ELEMENT = "element"
NAME_DATA = "data"
NAME_UNKNOWN = "unknown"


@dataclass(frozen=True)
class Name:
    """One subsection of the name section.

    ``value`` is a str for ``module``, a tuple of IndirectNaming-or-error for
    ``local``/``label``, a NameUnknown for ``unknown`` and a tuple of
    Naming-or-error otherwise.
    """

    kind: str
    value: Union[str, tuple, NameUnknown]


@dataclass(frozen=True)
class Section:
    """A section located by the module walker; ``range`` covers its payload."""

    id: int
    name: str
    range: ByteRange


@dataclass
class DecodedModule:
    """Everything decoded from one module, section by section.

    Each list holds the entries of its section in order, with a BinaryError
    in place of any entry that failed. ``errors`` collects failures that
    affected a whole section. ``custom_by_offset`` maps a custom section's
    payload offset to its decoded header, so a custom section whose name
    failed to decode simply has no entry.
    """

    sections: list[Section]
    types: list[Type | BinaryError]
    imports: list[Import | BinaryError]
    functions: list[Function | BinaryError]
    tables: list[Table | BinaryError]
    memories: list[MemoryType | BinaryError]
    globals: list[Global | BinaryError]
    exports: list[Export | BinaryError]
    start: int | None
    elements: list[Element | BinaryError]
    data_count: int | None
    code: list[FunctionBody | BinaryError]
    data: list[Data | BinaryError]
    tags: list[TagType | BinaryError]
    custom_sections: list[CustomSection]
    custom_by_offset: dict[int, CustomSection]
    names: list[Name | BinaryError]
    errors: list[BinaryError]

    def __init__(self) -> None:
        self.sections = []
        self.types = []
        self.imports = []
        self.functions = []
        self.tables = []
        self.memories = []
        self.globals = []
        self.exports = []
        self.start = None
        self.elements = []
        self.data_count = None
        self.code = []
        self.data = []
        self.tags = []
        self.custom_sections = []
        self.custom_by_offset = {}
        self.names = []
        self.errors = []

    def custom_section_for(self, section: Section) -> CustomSection | None:
        """Return the decoded custom section behind ``section``, if any."""
        return self.custom_by_offset.get(section.range.start)

    def entry_errors(self) -> list[BinaryError]:
        """Return every per-entry error, including those inside names and bodies."""
        found = []
        for entries in (
            self.types,
            self.imports,
            self.functions,
            self.tables,
            self.memories,
            self.globals,
            self.exports,
            self.elements,
            self.code,
            self.data,
            self.tags,
        ):
            for entry in entries:
                if isinstance(entry, BinaryError):
                    found.append(entry)
                elif isinstance(entry, FunctionBody):
                    found.extend(op for op in entry.ops if isinstance(op, BinaryError))
        for name in self.names:
            if isinstance(name, BinaryError):
                found.append(name)
            elif isinstance(name.value, tuple):
                for naming in name.value:
                    if isinstance(naming, BinaryError):
                        found.append(naming)
                    elif isinstance(naming, IndirectNaming):
                        found.extend(n for n in naming.names if isinstance(n, BinaryError))
        return found
