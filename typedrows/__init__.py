"""
typedrows — stream CSV lines into schema-typed tuples.

Contract (v0):
- The schema is an ordered list of type tags, fixed when the stream is built:
    str, int, int8/16/32/64, uint8/16/32/64, float, decimal, bool, datetime, date
  Aliases: string -> str, double -> float.
  Python types map onto tags: str, int, float, bool, Decimal, datetime, date.
  Items may be named with ":" ("age:int"); named schemas yield namedtuples.
- One input line is one row. A trailing newline is removed before tokenizing.
- Tokenizing (single line, non-escaping):
    a quote opens a quoted span only at the start of a field; the next quote
    closes it; delimiters inside the span stay in the field.
    Dialect(protect_delimiters=False) selects the simple mode instead:
    split on the delimiter first, then strip quotes per cell.
- Conversion: str fields are returned unchanged. Every other type must
  consume the whole field: empty cells, surrounding whitespace, trailing
  junk, non-finite floats and fixed-width overflow all fail.
- Errors: the first failing field aborts the row with DecodeError carrying
  line (1-based, after skipped lines), column (0-based) and source_line
  (1-based, all consumed lines). The stream stays usable: the next pull
  continues with the next line.

API:
- reader(f, schema, ...) -> RowStream, an iterator of typed tuples
- RowStream.results() -> iterator of RowResult (no raising per row)
- tokenize / scan_fields / split_cells
- convert / decode_row / parse_schema
- format_record

Python: 3.10+
"""

from __future__ import annotations

import csv
import enum
import logging
import math
import re
from collections import namedtuple
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


# ----------------------------
# Exceptions
# ----------------------------

class TypedRowsError(ValueError):
    """Base class for every error raised by typedrows."""


class DialectError(TypedRowsError):
    """Raised when stream settings cannot be used for tokenizing."""


class SchemaError(TypedRowsError):
    """Raised on an empty schema, an unknown type tag, or bad column names."""


class ConversionError(TypedRowsError):
    """Raised when a single field cannot be converted to its target type."""

    def __init__(self, *, value: str, type_name: str, reason: str) -> None:
        super().__init__(f"Can't convert {value!r} into {type_name}: {reason}")
        self.value = value
        self.type_name = type_name
        self.reason = reason


class DecodeError(TypedRowsError):
    """Raised when a row cannot be decoded, with line/column context."""

    def __init__(
        self,
        message: str,
        *,
        line: int,
        column: int,
        value: Optional[str] = None,
        reason: str = "",
        source_line: Optional[int] = None,
    ) -> None:
        msg = f"DecodeError(line={line}, column={column}, value={value!r}): {message}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.message = message
        self.line = line          # 1-based data line (skipped lines excluded)
        self.column = column      # 0-based field index
        self.value = value        # raw token; None on field-count mismatch
        self.reason = reason
        self.source_line = line if source_line is None else source_line


# ----------------------------
# Dialect
# ----------------------------

TypeName = str


def _check_chars(delimiter: str, quotechar: str) -> None:
    for name, value in (("delimiter", delimiter), ("quotechar", quotechar)):
        if not isinstance(value, str) or len(value) != 1:
            raise DialectError(f"{name} must be a single character, got {value!r}")
    if delimiter == quotechar:
        raise DialectError(f"delimiter and quotechar must differ, both are {delimiter!r}")
    if delimiter in "\r\n" or quotechar in "\r\n":
        raise DialectError("delimiter and quotechar cannot be line terminators")


@dataclass(frozen=True)
class Dialect:
    delimiter: str = ","
    quotechar: str = '"'
    # False: split on the delimiter first, then strip quotes per cell
    protect_delimiters: bool = True
    # bool parsing (case-insensitive, no trimming)
    bool_true: Tuple[str, ...] = ("true", "t", "yes", "y", "1")
    bool_false: Tuple[str, ...] = ("false", "f", "no", "n", "0")
    datetime_parser: Callable[[str], datetime] = staticmethod(datetime.fromisoformat)
    date_parser: Callable[[str], date] = staticmethod(date.fromisoformat)

    def __post_init__(self) -> None:
        _check_chars(self.delimiter, self.quotechar)
        object.__setattr__(self, "bool_true", tuple(s.lower() for s in self.bool_true))
        object.__setattr__(self, "bool_false", tuple(s.lower() for s in self.bool_false))
        overlap = set(self.bool_true) & set(self.bool_false)
        if overlap:
            raise DialectError(f"bool literals are both true and false: {sorted(overlap)!r}")


DEFAULT = Dialect()


# ----------------------------
# Value conversion
# ----------------------------

_INT_RE = re.compile(r"[+-]?[0-9]+")
_REAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_INT_BOUNDS: Dict[TypeName, Tuple[int, int]] = {
    "int8": (-(2 ** 7), 2 ** 7 - 1),
    "int16": (-(2 ** 15), 2 ** 15 - 1),
    "int32": (-(2 ** 31), 2 ** 31 - 1),
    "int64": (-(2 ** 63), 2 ** 63 - 1),
    "uint8": (0, 2 ** 8 - 1),
    "uint16": (0, 2 ** 16 - 1),
    "uint32": (0, 2 ** 32 - 1),
    "uint64": (0, 2 ** 64 - 1),
}


def _parse_int(raw: str, td: Dialect) -> int:
    if _INT_RE.fullmatch(raw) is None:
        raise ValueError("not an integer literal")
    return int(raw)


def _bounded_int(type_name: TypeName) -> Callable[[str, Dialect], int]:
    lo, hi = _INT_BOUNDS[type_name]

    def parse(raw: str, td: Dialect) -> int:
        value = _parse_int(raw, td)
        if not lo <= value <= hi:
            raise ValueError(f"out of range for {type_name} [{lo}, {hi}]")
        return value

    return parse


def _parse_float(raw: str, td: Dialect) -> float:
    if _REAL_RE.fullmatch(raw) is None:
        raise ValueError("not a decimal number literal")
    value = float(raw)
    if math.isinf(value):
        raise ValueError("overflows float")
    return value


def _parse_decimal(raw: str, td: Dialect) -> Decimal:
    if _REAL_RE.fullmatch(raw) is None:
        raise ValueError("not a decimal number literal")
    return Decimal(raw)


def _parse_bool(raw: str, td: Dialect) -> bool:
    s = raw.lower()
    if s in td.bool_true:
        return True
    if s in td.bool_false:
        return False
    raise ValueError(f"invalid bool literal (expected one of {td.bool_true + td.bool_false!r})")


_CONVERTERS: Dict[TypeName, Callable[[str, Dialect], Any]] = {
    "str": lambda raw, td: raw,
    "int": _parse_int,
    "float": _parse_float,
    "decimal": _parse_decimal,
    "bool": _parse_bool,
    "datetime": lambda raw, td: td.datetime_parser(raw),
    "date": lambda raw, td: td.date_parser(raw),
}
_CONVERTERS.update({name: _bounded_int(name) for name in _INT_BOUNDS})

_ALIASES: Dict[str, TypeName] = {"string": "str", "double": "float"}

_PY_TYPES: Dict[type, TypeName] = {
    str: "str",
    int: "int",
    float: "float",
    bool: "bool",
    Decimal: "decimal",
    datetime: "datetime",
    date: "date",
}

TypeSpec = Union[TypeName, type]


def resolve_type(target: TypeSpec) -> TypeName:
    """Map a Python type or tag string onto a canonical type tag."""
    if isinstance(target, type):
        try:
            return _PY_TYPES[target]
        except KeyError:
            raise SchemaError(f"Unsupported type: {target.__name__!r}") from None
    if isinstance(target, str):
        name = target.strip().lower()
        name = _ALIASES.get(name, name)
        if name in _CONVERTERS:
            return name
    raise SchemaError(f"Unknown type tag: {target!r}")


def _convert(raw: str, type_name: TypeName, td: Dialect) -> Any:
    if type_name == "str":
        return raw
    if raw == "":
        raise ConversionError(value=raw, type_name=type_name, reason="empty field")
    if raw != raw.strip():
        raise ConversionError(value=raw, type_name=type_name, reason="surrounding whitespace")
    parse = _CONVERTERS[type_name]
    try:
        return parse(raw, td)
    except Exception as e:
        raise ConversionError(value=raw, type_name=type_name, reason=str(e)) from e


def convert(raw: str, target: TypeSpec, dialect: Dialect = DEFAULT) -> Any:
    """
    Convert one raw field to `target`.
    str targets return `raw` unchanged; anything else must consume the
    whole field or ConversionError is raised.
    """
    return _convert(raw, resolve_type(target), dialect)


# ----------------------------
# Schema
# ----------------------------

@dataclass(frozen=True)
class Schema:
    types: Tuple[TypeSpec, ...]   # canonical tags after __post_init__
    names: Optional[Tuple[str, ...]] = None
    _record: Optional[type] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.types:
            raise SchemaError("Schema must have at least one column")
        object.__setattr__(self, "types", tuple(resolve_type(t) for t in self.types))
        if self.names is None:
            return
        object.__setattr__(self, "names", tuple(self.names))
        if len(self.names) != len(self.types):
            raise SchemaError(f"Schema has {len(self.types)} types but {len(self.names)} names")
        seen = set()
        for n in self.names:
            if n in seen:
                raise SchemaError(f"Duplicate column name: {n!r}")
            seen.add(n)
        try:
            record = namedtuple("Record", self.names)
        except ValueError as e:
            raise SchemaError(f"Invalid column names: {e}") from e
        object.__setattr__(self, "_record", record)

    def __len__(self) -> int:
        return len(self.types)

    def make_record(self, values: Sequence[Any]) -> Tuple[Any, ...]:
        if self._record is None:
            return tuple(values)
        return self._record(*values)


SchemaSpec = Union[Schema, str, Mapping[str, TypeSpec], Iterable[TypeSpec]]


def _split_named(item: TypeSpec) -> Tuple[Optional[str], TypeSpec]:
    if isinstance(item, str) and ":" in item:
        name, type_part = item.rsplit(":", 1)
        name = name.strip()
        if not name:
            raise SchemaError(f"Empty column name in {item!r}")
        return name, type_part
    return None, item


def parse_schema(spec: SchemaSpec) -> Schema:
    """
    Build a Schema from:
    - a Schema (returned as is)
    - a comma-separated string: "str,int,float" or "name:str,age:int"
    - a mapping of column name -> type
    - a sequence of Python types and/or tag strings
    Either every column is named or none is.
    """
    if isinstance(spec, Schema):
        return spec

    if isinstance(spec, str):
        items: List[TypeSpec] = [s.strip() for s in spec.split(",")]
    elif isinstance(spec, Mapping):
        return Schema(
            types=tuple(resolve_type(t) for t in spec.values()),
            names=tuple(spec.keys()),
        )
    else:
        items = list(spec)

    names: List[str] = []
    types: List[TypeName] = []
    for item in items:
        name, type_part = _split_named(item)
        if name is not None:
            names.append(name)
        types.append(resolve_type(type_part))

    if names and len(names) != len(types):
        raise SchemaError("Either every column is named or none is")
    return Schema(types=tuple(types), names=tuple(names) if names else None)


# ----------------------------
# Tokenizing
# ----------------------------

def split_cells(line: str, delimiter: str = ",", quote: str = '"') -> List[str]:
    """
    Split on `delimiter` first, then strip quotes cell by cell.
    A cell that opens a quote without closing it starts a span that the
    next cell ending with a quote closes; the cells are not re-joined.
    """
    _check_chars(delimiter, quote)
    out: List[str] = []
    in_quotes = False
    for cell in line.split(delimiter):
        if not in_quotes:
            if cell.startswith(quote):
                if len(cell) == 1:
                    cell = ""
                elif cell.endswith(quote):
                    cell = cell[1:-1]
                else:
                    in_quotes = True
                    cell = cell[1:]
        elif cell.endswith(quote):
            in_quotes = False
            cell = cell[:-1]
        out.append(cell)
    return out


def scan_fields(line: str, delimiter: str = ",", quote: str = '"') -> List[str]:
    """
    Quote-aware split via csv.reader. A quote opens a span only as the first
    character of a field and the next quote closes it; any other quote is
    literal. An unterminated span runs to the end of the line.
    """
    _check_chars(delimiter, quote)
    rows = csv.reader([line], delimiter=delimiter, quotechar=quote, doublequote=False, strict=False)
    try:
        fields = next(rows, [])
    except csv.Error as e:
        raise DialectError(f"Cannot tokenize line {line!r}: {e}") from e
    # csv.reader yields no fields for an empty line
    return fields or [""]


def tokenize(
    line: str,
    delimiter: str = ",",
    quote: str = '"',
    *,
    protect_delimiters: bool = True,
) -> List[str]:
    if protect_delimiters:
        return scan_fields(line, delimiter, quote)
    return split_cells(line, delimiter, quote)


# ----------------------------
# Row decoding
# ----------------------------

def decode_row(
    tokens: Sequence[str],
    schema: SchemaSpec,
    line_number: int,
    *,
    dialect: Dialect = DEFAULT,
    source_line: Optional[int] = None,
) -> Tuple[Any, ...]:
    """Convert `tokens` positionally; raise DecodeError at the first bad field."""
    schema = parse_schema(schema)
    n = len(schema)
    if len(tokens) != n:
        raise DecodeError(
            "wrong number of fields",
            line=line_number, column=min(len(tokens), n),
            reason=f"expected {n} fields, got {len(tokens)}",
            source_line=source_line,
        )

    values: List[Any] = []
    for i, (raw, type_name) in enumerate(zip(tokens, schema.types)):
        try:
            values.append(_convert(raw, type_name, dialect))
        except ConversionError as e:
            raise DecodeError(
                "error parsing value",
                line=line_number, column=i, value=raw, reason=e.reason,
                source_line=source_line,
            ) from e
    return schema.make_record(values)


# ----------------------------
# Row stream
# ----------------------------

class StreamState(enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RowResult:
    line: int
    record: Optional[Tuple[Any, ...]] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _strip_newline(raw: str) -> str:
    if raw.endswith("\n"):
        raw = raw[:-1]
    if raw.endswith("\r"):
        raw = raw[:-1]
    return raw


class RowStream:
    """
    Lazy, forward-only iterator of typed rows over a line source.

    Each pull reads one line. A row that fails to decode raises DecodeError;
    pulling again continues with the following line. Once the source runs
    dry every pull raises StopIteration. The source is never closed here.
    """

    def __init__(
        self,
        lines: Iterable[str],
        schema: SchemaSpec,
        *,
        delimiter: Optional[str] = None,
        quotechar: Optional[str] = None,
        skip_lines: int = 0,
        dialect: Dialect = DEFAULT,
    ) -> None:
        if skip_lines < 0:
            raise DialectError(f"skip_lines must be non-negative, got {skip_lines!r}")
        overrides: Dict[str, str] = {}
        if delimiter is not None:
            overrides["delimiter"] = delimiter
        if quotechar is not None:
            overrides["quotechar"] = quotechar
        self.dialect = replace(dialect, **overrides) if overrides else dialect
        self.schema = parse_schema(schema)
        self.skip_lines = skip_lines

        self._lines = iter(lines)
        self.state = StreamState.NOT_STARTED
        self.line_num = 0         # data lines read, skipped lines excluded
        self.lines_consumed = 0   # every line pulled from the source
        self.rows_decoded = 0

    def __iter__(self) -> "RowStream":
        return self

    def __next__(self) -> Tuple[Any, ...]:
        return self._decode(self._pull())

    def results(self) -> Iterator[RowResult]:
        """Yield a RowResult per remaining line instead of raising DecodeError."""
        while True:
            try:
                line = self._pull()
            except StopIteration:
                return
            try:
                record = self._decode(line)
            except DecodeError as e:
                yield RowResult(line=self.line_num, error=e)
            else:
                yield RowResult(line=self.line_num, record=record)

    def _read_line(self) -> Optional[str]:
        try:
            raw = next(self._lines)
        except StopIteration:
            return None
        self.lines_consumed += 1
        return _strip_newline(raw)

    def _pull(self) -> str:
        if self.state is StreamState.EXHAUSTED:
            raise StopIteration
        if self.state is StreamState.NOT_STARTED:
            self.state = StreamState.ACTIVE
            for _ in range(self.skip_lines):
                if self._read_line() is None:
                    break
            if self.skip_lines:
                logger.debug("Skipped %d leading line(s)", self.lines_consumed)

        line = self._read_line()
        if line is None:
            self.state = StreamState.EXHAUSTED
            logger.debug("Line source exhausted after %d row(s)", self.rows_decoded)
            raise StopIteration
        self.line_num += 1
        return line

    def _decode(self, line: str) -> Tuple[Any, ...]:
        td = self.dialect
        tokens = tokenize(line, td.delimiter, td.quotechar, protect_delimiters=td.protect_delimiters)
        try:
            record = decode_row(
                tokens, self.schema, self.line_num,
                dialect=td, source_line=self.lines_consumed,
            )
        except DecodeError as e:
            logger.debug("Line %d failed at column %d: %s", e.line, e.column, e.reason)
            raise
        self.rows_decoded += 1
        return record


def reader(
    f: Iterable[str],
    schema: SchemaSpec,
    *,
    delimiter: Optional[str] = None,
    quotechar: Optional[str] = None,
    skip_lines: int = 0,
    dialect: Dialect = DEFAULT,
) -> RowStream:
    return RowStream(
        f,
        schema,
        delimiter=delimiter,
        quotechar=quotechar,
        skip_lines=skip_lines,
        dialect=dialect,
    )


# ----------------------------
# Formatting
# ----------------------------

def _format_value(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    return str(v)


def format_record(record: Sequence[Any]) -> str:
    """Render a record as "{a, b, c}"; an empty record renders as "{}"."""
    return "{" + ", ".join(_format_value(v) for v in record) + "}"


__all__ = [
    "TypedRowsError",
    "DialectError",
    "SchemaError",
    "ConversionError",
    "DecodeError",
    "Dialect",
    "DEFAULT",
    "Schema",
    "StreamState",
    "RowResult",
    "RowStream",
    "__version__",
    "convert",
    "resolve_type",
    "parse_schema",
    "split_cells",
    "scan_fields",
    "tokenize",
    "decode_row",
    "reader",
    "format_record",
]
