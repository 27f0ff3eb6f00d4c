"""
Scalar value semantics for sqlsim.

Rows hold plain Python values: int, float, str, bool or None. The helpers in
this module make every coercion explicit. Numeric conversion is loose:
text that does not look like a number becomes NaN instead of raising, NULL
converts to 0, and ordering between a string and a non-string compares both
sides as numbers.
"""

import json
import math
import re
from typing import Any, Dict, Iterable, List

from sqlsim.types import DataType, Row, TableSchema

NAN = float('nan')

_INT_TEXT = re.compile(r'^[+-]?\d+$')
_FLOAT_TEXT = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')
_HEX_TEXT = re.compile(r'^0[xX][0-9a-fA-F]+$')
_INT_PREFIX = re.compile(r'^\s*([+-]?\d+)')
_FLOAT_PREFIX = re.compile(r'^\s*([+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?))')


def is_number(value: Any) -> bool:
    """True for int/float values (booleans are not numbers)"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def to_number(value: Any):
    """Number()-style conversion. Never raises; returns NaN instead."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if _INT_TEXT.match(text):
            return int(text)
        if _HEX_TEXT.match(text):
            return int(text, 16)
        if text in ('Infinity', '+Infinity'):
            return math.inf
        if text == '-Infinity':
            return -math.inf
        if _FLOAT_TEXT.match(text):
            return float(text)
        return NAN
    return NAN


def to_float(value) -> float:
    """float() for numbers; integers beyond the float range become +/-inf"""
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


def to_text(value: Any) -> str:
    """String()-style conversion"""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if math.isinf(value):
            return 'Infinity' if value > 0 else '-Infinity'
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def parse_int(text: str):
    """Leading-integer parse; NaN when no digits lead the text"""
    match = _INT_PREFIX.match(text)
    if not match:
        return NAN
    return int(match.group(1))


def parse_float(text: str):
    """Leading-float parse; NaN when no number leads the text"""
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return NAN
    token = match.group(1)
    if token.lstrip('+-') == 'Infinity':
        return -math.inf if token.startswith('-') else math.inf
    return float(token)


def _kind(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'bool'
    if is_number(value):
        return 'number'
    if isinstance(value, str):
        return 'text'
    return type(value).__name__


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without coercion: 1 = 1.0, but 1 != '1' and 1 != TRUE"""
    if _kind(a) != _kind(b):
        return False
    return a == b


def less_than(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a < b
    x, y = to_number(a), to_number(b)
    if is_nan(x) or is_nan(y):
        return False
    return x < y


def greater_than(a: Any, b: Any) -> bool:
    return less_than(b, a)


def less_equal(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a <= b
    x, y = to_number(a), to_number(b)
    if is_nan(x) or is_nan(y):
        return False
    return x <= y


def greater_equal(a: Any, b: Any) -> bool:
    return less_equal(b, a)


def _normalize_key_part(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def tuple_key(values: Iterable[Any]) -> str:
    """Stable serialization of an ordered list of values"""
    return json.dumps([_normalize_key_part(v) for v in values], default=str)


def has_null(values: Iterable[Any]) -> bool:
    return any(v is None for v in values)


def _round_half_up(number: float, scale: int) -> float:
    factor = 10 ** scale
    return math.floor(number * factor + 0.5) / factor


def cast_value(value: Any, col) -> Any:
    """Cast one value for a column; NULL stays NULL"""
    if value is None:
        return None

    data_type = col.data_type
    if data_type == DataType.INT:
        if is_number(value):
            if isinstance(value, float) and not math.isfinite(value):
                return value
            return math.trunc(value)
        return parse_int(to_text(value))

    elif data_type == DataType.REAL:
        if is_number(value):
            return to_float(value)
        return parse_float(to_text(value))

    elif data_type == DataType.DECIMAL:
        number = to_float(value) if is_number(value) else parse_float(to_text(value))
        if math.isnan(number) or math.isinf(number):
            number = 0.0
        return _round_half_up(number, col.scale or 0)

    elif data_type == DataType.CHAR:
        text = to_text(value)
        length = col.length if col.length is not None else len(text)
        return text[:length].ljust(length, ' ')

    elif data_type == DataType.VARCHAR:
        text = to_text(value)
        length = col.length if col.length is not None else len(text)
        return text[:length]

    elif data_type == DataType.BOOLEAN:
        return truthy(value)

    # TEXT
    return to_text(value)


def cast_row_types(row: Row, schema: TableSchema) -> Row:
    """Return a new row with every present column cast to its declared type.

    Columns missing from the source row stay absent; keys unknown to the
    schema are dropped.
    """
    typed: Dict[str, Any] = {}
    for col in schema.columns:
        if col.name not in row:
            continue
        typed[col.name] = cast_value(row[col.name], col)
    return typed


def infer_type_from_values(values: List[Any]) -> DataType:
    """Column type for a materialized view column from its non-null values"""
    if values and all(isinstance(v, bool) for v in values):
        return DataType.BOOLEAN
    if values and all(is_number(v) for v in values):
        if all(isinstance(v, int) or (isinstance(v, float) and v.is_integer())
               for v in values):
            return DataType.INT
        return DataType.REAL
    return DataType.TEXT
