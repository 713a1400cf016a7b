"""Stata format 113 variable types.

A type code is a single byte. Codes 1..244 are fixed-length strings whose
width is the code itself; codes 251..255 are the five numeric kinds:

    type          code
    ---------------------
    str1          1 = 0x01
    ...
    str244      244 = 0xf4
    byte        251 = 0xfb
    int         252 = 0xfc
    long        253 = 0xfd
    float       254 = 0xfe
    double      255 = 0xff

Every code maps to exactly one numpy dtype, always little-endian.
"""

from __future__ import annotations

from enum import IntEnum

import numpy as np

from statadta.errors import UnknownTypeError

MIN_STR_WIDTH = 1
MAX_STR_WIDTH = 244

DEFAULT_NUMERIC_FORMAT = "%9.0g"


class NumericType(IntEnum):
    """Sentinel codes of the numeric storage types."""

    BYTE = 251
    INT = 252
    LONG = 253
    FLOAT = 254
    DOUBLE = 255

    @property
    def type_name(self) -> str:
        return self.name.lower()


_NUMERIC_BY_NAME: dict[str, NumericType] = {t.type_name: t for t in NumericType}

_NUMERIC_WIDTHS: dict[int, int] = {
    NumericType.BYTE: 1,
    NumericType.INT: 2,
    NumericType.LONG: 4,
    NumericType.FLOAT: 4,
    NumericType.DOUBLE: 8,
}

_NUMERIC_DTYPES: dict[int, np.dtype] = {
    NumericType.BYTE: np.dtype("<i1"),
    NumericType.INT: np.dtype("<i2"),
    NumericType.LONG: np.dtype("<i4"),
    NumericType.FLOAT: np.dtype("<f4"),
    NumericType.DOUBLE: np.dtype("<f8"),
}

# System missing value "." of each numeric type in format 113.
MISSING_VALUES: dict[int, int | float] = {
    NumericType.BYTE: 101,
    NumericType.INT: 32741,
    NumericType.LONG: 2147483621,
    NumericType.FLOAT: 2.0**127,
    NumericType.DOUBLE: 2.0**1023,
}

# Largest non-missing value of the integer types; the smallest is -(max + 1)
# for byte/int/long in 113 files (-127, -32767, -2147483647).
VALID_RANGES: dict[int, tuple[int, int]] = {
    NumericType.BYTE: (-127, 100),
    NumericType.INT: (-32767, 32740),
    NumericType.LONG: (-2147483647, 2147483620),
}


def is_string_type(code: int) -> bool:
    """True for the fixed-length string codes 1..244."""
    return MIN_STR_WIDTH <= code <= MAX_STR_WIDTH


def is_numeric_type(code: int) -> bool:
    return code in _NUMERIC_WIDTHS


def validate_type_code(code: int) -> int:
    """Return ``code`` unchanged if it is a valid 113 type code.

    Raises:
        UnknownTypeError: If the code is neither a string width nor a numeric sentinel.
    """
    if isinstance(code, bool) or not isinstance(code, int):
        raise UnknownTypeError(f"type code must be an integer, got {code!r}")
    if not (is_string_type(code) or is_numeric_type(code)):
        raise UnknownTypeError(f"invalid type code: {code}")
    return int(code)


def type_code_for(name: str) -> int:
    """Convert a type name such as ``str10`` or ``double`` to its type code.

    Args:
        name: ``strN`` with 1 <= N <= 244, or one of byte, int, long, float, double.

    Returns:
        The type code.

    Raises:
        UnknownTypeError: For malformed or out-of-range string types and
            unknown numeric names.
    """
    if name.startswith("str"):
        digits = name[3:]
        if not (digits.isascii() and digits.isdigit()):
            raise UnknownTypeError(f"invalid string type: {name}")
        width = int(digits)
        if not is_string_type(width):
            raise UnknownTypeError(f"string type out of range: {name}")
        return width
    numeric = _NUMERIC_BY_NAME.get(name)
    if numeric is None:
        raise UnknownTypeError(f"unknown type: {name}")
    return int(numeric)


def type_name(code: int) -> str:
    """Inverse of type_code_for: ``9`` -> ``str9``, ``255`` -> ``double``."""
    code = validate_type_code(code)
    if is_string_type(code):
        return f"str{code}"
    return NumericType(code).type_name


def byte_width(code: int) -> int:
    """Number of bytes a value of this type occupies in a record."""
    code = validate_type_code(code)
    if is_string_type(code):
        return code
    return _NUMERIC_WIDTHS[code]


def numpy_dtype(code: int) -> np.dtype:
    """Little-endian numpy dtype holding values of this type."""
    code = validate_type_code(code)
    if is_string_type(code):
        return np.dtype(f"S{code}")
    return _NUMERIC_DTYPES[code]


def default_format(code: int) -> str:
    """Display format used when a field does not set one."""
    code = validate_type_code(code)
    if is_string_type(code):
        return f"%{code}s"
    return DEFAULT_NUMERIC_FORMAT


def coerce_type(typ: int | str) -> int:
    """Accept either a type code or a type name and return the code."""
    if isinstance(typ, str):
        return type_code_for(typ)
    return validate_type_code(typ)
