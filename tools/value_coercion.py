"""
value_coercion.py - Text to primitive conversion

Converts trimmed character data (or attribute values) into the primitive
kind of a record field.

Rules:
    string  - trimmed text, verbatim
    bool    - True only for the exact literal 'true'
    bytes   - trimmed text, UTF-8 encoded
    integer - base-10, optional sign (signed kinds only), checked against
              the declared bit width
"""

import re
from enum import Enum
from typing import Annotated, Any, Dict, Tuple

from decode_errors import CoercionError, UnsupportedTypeError


class IntKind(Enum):
    """Fixed-width integer kinds."""
    I8 = 'i8'
    I16 = 'i16'
    I32 = 'i32'
    I64 = 'i64'
    U8 = 'u8'
    U16 = 'u16'
    U32 = 'u32'
    U64 = 'u64'


class PrimitiveKind(Enum):
    STRING = 'string'
    BOOL = 'bool'
    BYTES = 'bytes'
    INT = 'int'


# Map integer kinds to (signed, bits)
INT_WIDTHS: Dict[IntKind, Tuple[bool, int]] = {
    IntKind.I8: (True, 8),
    IntKind.I16: (True, 16),
    IntKind.I32: (True, 32),
    IntKind.I64: (True, 64),
    IntKind.U8: (False, 8),
    IntKind.U16: (False, 16),
    IntKind.U32: (False, 32),
    IntKind.U64: (False, 64),
}

# Field type aliases for records
Int8 = Annotated[int, IntKind.I8]
Int16 = Annotated[int, IntKind.I16]
Int32 = Annotated[int, IntKind.I32]
Int64 = Annotated[int, IntKind.I64]
UInt8 = Annotated[int, IntKind.U8]
UInt16 = Annotated[int, IntKind.U16]
UInt32 = Annotated[int, IntKind.U32]
UInt64 = Annotated[int, IntKind.U64]
UInt = UInt64

_SIGNED_RE = re.compile(r'^[+-]?[0-9]+$')
_UNSIGNED_RE = re.compile(r'^[0-9]+$')


def parse_int(text: str, kind: IntKind, strict: bool = True) -> int:
    """
    Parse a base-10 integer for the given kind.

    Values wider than 64 bits always fail. Values that fit in 64 bits but
    not in the declared width fail when strict, otherwise they wrap to the
    declared width.
    """
    signed, bits = INT_WIDTHS[kind]
    pattern = _SIGNED_RE if signed else _UNSIGNED_RE
    if not pattern.match(text):
        label = 'integer' if signed else 'unsigned integer'
        raise CoercionError(f"failed to parse {label}: invalid syntax {text!r}")

    value = int(text)
    if signed:
        lo, hi = -(1 << 63), (1 << 63) - 1
    else:
        lo, hi = 0, (1 << 64) - 1
    if not lo <= value <= hi:
        raise CoercionError(f"failed to parse integer: {text!r} out of range")

    if bits == 64:
        return value
    return fit_width(value, kind, strict, text)


def fit_width(value: int, kind: IntKind, strict: bool, text: str = '') -> int:
    signed, bits = INT_WIDTHS[kind]
    if signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1
    if lo <= value <= hi:
        return value
    if strict:
        raise CoercionError(
            f"value {text or value!r} overflows {kind.value} (range {lo}..{hi})")
    # Two's-complement truncation
    value &= (1 << bits) - 1
    if signed and value > hi:
        value -= 1 << bits
    return value


def coerce(text: str, kind: PrimitiveKind, int_kind: IntKind = IntKind.I64,
           strict_integers: bool = True) -> Any:
    """Convert raw text to a primitive value. Text is trimmed first."""
    text = text.strip()
    if kind is PrimitiveKind.STRING:
        return text
    if kind is PrimitiveKind.BOOL:
        return text == 'true'
    if kind is PrimitiveKind.BYTES:
        return text.encode('utf-8')
    if kind is PrimitiveKind.INT:
        return parse_int(text, int_kind, strict_integers)
    raise UnsupportedTypeError(f"unsupported type: {kind}")
