"""Value encoding for dta records.

Numeric values are stored as fixed-width little-endian integers and IEEE
floats; strings are stored as fixed-length byte fields. Two paths share
the same rules:

- coerce_column turns caller data into a numpy array of the field's
  dtype, used by bulk writes through a structured record dtype.
- pack_value writes one scalar into a record buffer, used by the
  incremental append API.

None and NaN are written as the system missing value of the column's type
(empty bytes for strings). Strings longer than their slot are truncated,
or rejected in strict mode.
"""

from __future__ import annotations

import math
import operator
import struct
from typing import TYPE_CHECKING, Any, BinaryIO, Sequence

import numpy as np
import pandas as pd
from loguru import logger

from statadta.errors import (
    InputError,
    NoFieldsError,
    TruncationError,
    ValueOutOfRangeError,
)
from statadta.models.field import DtaField
from statadta.models.types import (
    MAX_STR_WIDTH,
    MISSING_VALUES,
    VALID_RANGES,
    NumericType,
    is_string_type,
    numpy_dtype,
    type_name,
)

if TYPE_CHECKING:
    from statadta.io.layout import RecordLayout

_STRUCTS: dict[int, struct.Struct] = {
    NumericType.BYTE: struct.Struct("<b"),
    NumericType.INT: struct.Struct("<h"),
    NumericType.LONG: struct.Struct("<i"),
    NumericType.FLOAT: struct.Struct("<f"),
    NumericType.DOUBLE: struct.Struct("<d"),
}

_FLOAT32_MAX = float(np.finfo(np.float32).max)


def is_missing(value: Any) -> bool:
    """True for None, NaN and pandas NA/NaT."""
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    return isinstance(value, (float, np.floating)) and math.isnan(value)


def fixed_text(
    value: str | bytes | None,
    width: int,
    *,
    encoding: str = "latin-1",
    strict: bool = False,
    field: str | None = None,
    what: str = "value",
) -> bytes:
    """Encode ``value`` into exactly ``width`` bytes, null padded.

    Longer values are cut at ``width`` bytes (no terminating null), unless
    ``strict`` is set, in which case TruncationError is raised.
    """
    raw = _to_bytes(value, encoding)
    if len(raw) > width:
        if strict:
            raise TruncationError(f"{what} {value!r} exceeds {width} bytes", field=field)
        raw = raw[:width]
    return raw.ljust(width, b"\x00")


def _to_bytes(value: Any, encoding: str) -> bytes:
    if is_missing(value):
        return b""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return str(value).encode(encoding, errors="replace")


def _as_int(value: Any, field: str | None) -> int:
    if isinstance(value, (float, np.floating)):
        if not float(value).is_integer():
            raise InputError(f"non-integer value {value!r} for an integer type", field=field)
        return int(value)
    try:
        return operator.index(value)
    except TypeError:
        raise InputError(f"cannot store {value!r} in an integer type", field=field) from None


def pack_text(
    value: str | bytes | None,
    buf: bytearray,
    offset: int,
    width: int,
    *,
    encoding: str = "latin-1",
    strict: bool = False,
    field: str | None = None,
) -> int:
    """Copy a string value into a ``width``-byte slot of ``buf``; returns ``width``.

    No terminating null is added: a value shorter than the slot leaves the
    rest of the slot as it was. Callers null-pad short values themselves.
    """
    raw = _to_bytes(value, encoding)
    if len(raw) > width:
        if strict:
            raise TruncationError(f"value {value!r} exceeds {width} bytes", field=field)
        raw = raw[:width]
    buf[offset : offset + len(raw)] = raw
    return width


def pack_value(
    typ: int,
    value: Any,
    buf: bytearray,
    offset: int,
    *,
    width: int | None = None,
    encoding: str = "latin-1",
    strict: bool = False,
    field: str | None = None,
) -> int:
    """Encode ``value`` into ``buf`` at ``offset`` and return the bytes consumed.

    String values are copied verbatim without null termination: bytes of the
    slot past the end of the value keep whatever the buffer held before.
    ``width`` overrides the slot width of string types.
    """
    if is_string_type(typ):
        n = width if width is not None else typ
        return pack_text(value, buf, offset, n, encoding=encoding, strict=strict, field=field)

    if is_missing(value):
        value = MISSING_VALUES[typ]
    elif typ in VALID_RANGES:
        value = _as_int(value, field)
        if strict:
            lo, hi = VALID_RANGES[typ]
            if not lo <= value <= hi:
                raise ValueOutOfRangeError(
                    f"{value} outside the valid {type_name(typ)} range [{lo}, {hi}]", field=field
                )
    else:
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InputError(f"cannot store {value!r} in a {type_name(typ)}", field=field) from None
    try:
        _STRUCTS[typ].pack_into(buf, offset, value)
    except (struct.error, OverflowError) as e:
        raise ValueOutOfRangeError(f"{value!r} does not fit a {type_name(typ)}: {e}", field=field) from e
    return _STRUCTS[typ].size


def _as_array(values: Any) -> tuple[np.ndarray, np.ndarray]:
    """Return (array, missing mask) for any array-like, scalar or pandas object."""
    if isinstance(values, (pd.Series, pd.Index)):
        mask = values.isna().to_numpy()
        if mask.any() or not isinstance(values.dtype, np.dtype):
            arr = values.to_numpy(dtype=object)
        else:
            arr = values.to_numpy()
        return arr, mask
    if isinstance(values, np.ma.MaskedArray):
        return np.asarray(values.data), np.ma.getmaskarray(values)
    arr = np.asarray(values)
    if arr.dtype.kind == "f":
        return arr, np.isnan(arr)
    if arr.dtype.kind == "O":
        mask = np.fromiter((is_missing(v) for v in arr.reshape(-1)), dtype=bool, count=arr.size)
        return arr, mask.reshape(arr.shape)
    return arr, np.zeros(arr.shape, dtype=bool)


def coerce_column(
    typ: int,
    values: Any,
    *,
    encoding: str = "latin-1",
    strict: bool = False,
    field: str | None = None,
) -> np.ndarray:
    """Convert ``values`` to a numpy array of the dtype backing ``typ``.

    A scalar yields a 0-d array, a sequence a 1-d array. Calling it again on
    its own output returns an equal array.

    Raises:
        InputError: For data that cannot be represented by ``typ``.
    """
    arr, mask = _as_array(values)
    if arr.ndim > 1:
        raise InputError(f"column data must be one-dimensional, got shape {arr.shape}", field=field)
    if is_string_type(typ):
        return _coerce_strings(typ, arr, encoding=encoding, strict=strict, field=field)
    return _coerce_numbers(typ, arr, mask, strict=strict, field=field)


def infer_column_type(values: Any, *, encoding: str = "latin-1", field: str | None = None) -> int:
    """Pick the type code for a column from its numpy dtype.

    int8 -> byte, int16 -> int, int32/int64 -> long, float16/float32 ->
    float, float64 -> double, bool -> byte. Text columns become strN
    with N the widest encoded value (at least 1, capped at 244).

    Raises:
        TypeError: For data kinds with no dta counterpart.
    """
    arr, mask = _as_array(values)
    # nullable pandas dtypes (Int16, Float32, boolean) keep their width
    backing = getattr(getattr(values, "dtype", None), "numpy_dtype", None)
    if isinstance(backing, np.dtype) and backing.kind in "biuf":
        arr = np.zeros(0, dtype=backing)
    kind = arr.dtype.kind
    if kind == "O":
        present = [v for v, m in zip(arr.reshape(-1), mask.reshape(-1)) if not m]
        if any(isinstance(v, (str, bytes, bytearray)) for v in present):
            kind = "U"
        elif present:
            arr = np.array(present)
            kind = arr.dtype.kind
        else:
            kind = "f"
            arr = np.zeros(0)

    if kind == "b":
        return NumericType.BYTE
    if kind == "i":
        return {1: NumericType.BYTE, 2: NumericType.INT}.get(arr.dtype.itemsize, NumericType.LONG)
    if kind == "u":
        return NumericType.INT if arr.dtype.itemsize == 1 else NumericType.LONG
    if kind == "f":
        return NumericType.DOUBLE if arr.dtype.itemsize >= 8 else NumericType.FLOAT
    if kind in "SU":
        widest = max((len(_to_bytes(v, encoding)) for v in arr.reshape(-1)), default=0)
        if widest > MAX_STR_WIDTH:
            logger.warning(
                "Column '{}' width {} exceeds the {}-byte string max, capping to {}",
                field,
                widest,
                MAX_STR_WIDTH,
                MAX_STR_WIDTH,
            )
        return min(max(widest, 1), MAX_STR_WIDTH)
    raise TypeError(f"unsupported data type {arr.dtype} in field {field}")


def _coerce_strings(typ: int, arr: np.ndarray, *, encoding: str, strict: bool, field: str | None) -> np.ndarray:
    dtype = numpy_dtype(typ)
    if arr.dtype.kind == "S" and arr.dtype.itemsize <= typ:
        return arr.astype(dtype)
    flat = arr.reshape(-1)
    items: list[bytes] = []
    truncated = 0
    for v in flat:
        raw = _to_bytes(v, encoding)
        if len(raw) > typ:
            if strict:
                raise TruncationError(f"value {v!r} exceeds {typ} bytes", field=field)
            truncated += 1
            raw = raw[:typ]
        items.append(raw)
    if truncated:
        logger.warning("Truncated {} value(s) of '{}' to {} bytes", truncated, field, typ)
    return np.array(items, dtype=dtype).reshape(arr.shape)


def _coerce_numbers(
    typ: int, arr: np.ndarray, mask: np.ndarray, *, strict: bool, field: str | None
) -> np.ndarray:
    dtype = numpy_dtype(typ)
    if arr.dtype.kind == "O":
        filled = np.where(mask, 0, arr)
        try:
            arr = np.array(filled.tolist())
        except (TypeError, ValueError) as e:
            raise InputError(f"cannot store values in a {type_name(typ)}: {e}", field=field) from e
    if arr.dtype.kind not in "biuf":
        raise InputError(f"cannot store {arr.dtype} data in a {type_name(typ)}", field=field)

    present = arr[~mask]
    if typ in VALID_RANGES:
        if arr.dtype.kind == "f" and present.size and not np.all(np.mod(present, 1) == 0):
            raise InputError(f"non-integer values for a {type_name(typ)}", field=field)
        if strict:
            lo, hi = VALID_RANGES[typ]
            # already-encoded missing values
            present = present[present != MISSING_VALUES[typ]]
        else:
            info = np.iinfo(dtype)
            lo, hi = int(info.min), int(info.max)
        if present.size and (present.min() < lo or present.max() > hi):
            raise ValueOutOfRangeError(
                f"values [{present.min()}, {present.max()}] outside {type_name(typ)} range [{lo}, {hi}]",
                field=field,
            )
    elif typ == NumericType.FLOAT and present.size:
        if not np.all(np.abs(present.astype(np.float64)) <= _FLOAT32_MAX):
            raise ValueOutOfRangeError("values do not fit a float", field=field)

    out = np.where(mask, 0, arr).astype(dtype)
    if mask.any():
        out[mask] = MISSING_VALUES[typ]
    return out


def missing_fill(typ: int) -> int | float | bytes:
    """Value written for rows a column does not cover."""
    if is_string_type(typ):
        return b""
    return MISSING_VALUES[typ]


def write_records(
    sink: BinaryIO,
    fields: Sequence[DtaField],
    num_obs: int,
    *,
    layout: RecordLayout,
    encoding: str = "latin-1",
    strict: bool = False,
    chunk_rows: int = 10_000,
) -> int:
    """Encode ``num_obs`` records from the fields' backing data and write them.

    Rows past the end of a shorter column, and every row of a field without
    data, hold the missing value of the field's type. Single-value fields
    repeat their value on every row.

    Returns:
        Number of bytes written.

    Raises:
        NoFieldsError: If ``fields`` is empty.
    """
    if not fields:
        raise NoFieldsError("no fields to write")
    columns = [
        None
        if f.data is None
        else coerce_column(f.typ, f.data, encoding=encoding, strict=strict, field=f.name)
        for f in fields
    ]
    written = 0
    for start in range(0, num_obs, chunk_rows):
        n = min(chunk_rows, num_obs - start)
        block = np.zeros(n, dtype=layout.dtype)
        for f, key, col in zip(fields, layout.keys, columns):
            target = block[key]
            if col is None:
                target[:] = missing_fill(f.typ)
            elif col.ndim == 0:
                target[:] = col
            else:
                seg = col[start : start + n]
                target[: len(seg)] = seg
                target[len(seg) :] = missing_fill(f.typ)
        data = block.tobytes()
        sink.write(data)
        written += len(data)
    logger.debug("Encoded {} record(s) of {} bytes", num_obs, layout.record_size)
    return written
