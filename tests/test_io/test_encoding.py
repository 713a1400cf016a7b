"""Tests for value encoding: scalar packing, column coercion and record blocks."""

from __future__ import annotations

import io

import numpy as np
import pandas as pd
import pytest
from loguru import logger

from statadta.errors import InputError, NoFieldsError, TruncationError, ValueOutOfRangeError
from statadta.io.encoding import (
    coerce_column,
    fixed_text,
    infer_column_type,
    is_missing,
    pack_text,
    pack_value,
    write_records,
)
from statadta.io.layout import compute_layout
from statadta.models.field import DtaField
from statadta.models.types import MISSING_VALUES, NumericType


class TestIsMissing:
    @pytest.mark.parametrize("value", [None, float("nan"), np.nan, np.float32("nan"), pd.NA, pd.NaT])
    def test_missing(self, value: object) -> None:
        assert is_missing(value)

    @pytest.mark.parametrize("value", [0, 0.0, "", b"", "NA"])
    def test_not_missing(self, value: object) -> None:
        assert not is_missing(value)


class TestFixedText:
    def test_null_padded(self) -> None:
        assert fixed_text("ab", 5) == b"ab\x00\x00\x00"

    def test_truncated_without_terminator(self) -> None:
        assert fixed_text("abcdef", 4) == b"abcd"

    def test_strict_raises(self) -> None:
        with pytest.raises(TruncationError, match="field x"):
            fixed_text("abcdef", 4, strict=True, field="x")

    def test_latin1_encoding(self) -> None:
        assert fixed_text("é", 2) == b"\xe9\x00"

    def test_utf8_encoding(self) -> None:
        assert fixed_text("é", 2, encoding="utf-8") == b"\xc3\xa9"


class TestPackValue:
    def test_little_endian_long(self) -> None:
        buf = bytearray(4)
        assert pack_value(NumericType.LONG, 1, buf, 0) == 4
        assert bytes(buf) == b"\x01\x00\x00\x00"

    def test_little_endian_int_at_offset(self) -> None:
        buf = bytearray(3)
        pack_value(NumericType.INT, 0x0102, buf, 1)
        assert bytes(buf) == b"\x00\x02\x01"

    def test_negative_byte(self) -> None:
        buf = bytearray(1)
        pack_value(NumericType.BYTE, -1, buf, 0)
        assert bytes(buf) == b"\xff"

    @pytest.mark.parametrize(
        ("typ", "expected"),
        [
            (NumericType.BYTE, "65"),
            (NumericType.INT, "e57f"),
            (NumericType.LONG, "e5ffff7f"),
            (NumericType.FLOAT, "0000007f"),
            (NumericType.DOUBLE, "000000000000e07f"),
        ],
    )
    def test_missing_codes(self, typ: NumericType, expected: str) -> None:
        buf = bytearray(8)
        n = pack_value(typ, None, buf, 0)
        assert bytes(buf[:n]) == bytes.fromhex(expected)

    def test_nan_is_missing(self) -> None:
        buf = bytearray(8)
        pack_value(NumericType.DOUBLE, float("nan"), buf, 0)
        assert bytes(buf) == bytes.fromhex("000000000000e07f")

    def test_integral_float_accepted(self) -> None:
        buf = bytearray(2)
        pack_value(NumericType.INT, 3.0, buf, 0)
        assert bytes(buf) == b"\x03\x00"

    def test_fractional_float_rejected(self) -> None:
        with pytest.raises(InputError, match="non-integer"):
            pack_value(NumericType.INT, 2.5, bytearray(2), 0)

    def test_text_in_float_field(self) -> None:
        with pytest.raises(InputError, match="field w"):
            pack_value(NumericType.DOUBLE, "heavy", bytearray(8), 0, field="w")

    def test_overflow_raises(self) -> None:
        with pytest.raises(ValueOutOfRangeError):
            pack_value(NumericType.BYTE, 200, bytearray(1), 0)

    def test_strict_range(self) -> None:
        buf = bytearray(1)
        pack_value(NumericType.BYTE, 101, buf, 0)
        with pytest.raises(ValueOutOfRangeError, match="valid byte range"):
            pack_value(NumericType.BYTE, 101, buf, 0, strict=True)

    def test_string_delegates_to_text(self) -> None:
        buf = bytearray(5)
        assert pack_value(5, "hi", buf, 0) == 5
        assert bytes(buf) == b"hi\x00\x00\x00"


class TestPackText:
    def test_leaves_previous_bytes(self) -> None:
        buf = bytearray(b"abcdefghi")
        assert pack_text("xy", buf, 0, 9) == 9
        assert bytes(buf) == b"xycdefghi"

    def test_truncates(self) -> None:
        buf = bytearray(3)
        pack_text("abcdef", buf, 0, 3)
        assert bytes(buf) == b"abc"

    def test_bytes_copied_verbatim(self) -> None:
        buf = bytearray(4)
        pack_text(b"\x01\x02", buf, 1, 3)
        assert bytes(buf) == b"\x00\x01\x02\x00"


class TestCoerceColumn:
    def test_missing_integers(self) -> None:
        out = coerce_column(NumericType.BYTE, [1, None, 3])
        assert out.dtype == np.dtype("i1")
        assert out.tolist() == [1, 101, 3]

    def test_nan_doubles(self) -> None:
        out = coerce_column(NumericType.DOUBLE, [1.5, np.nan])
        assert out.tolist() == [1.5, 2.0**1023]

    def test_nullable_series(self) -> None:
        out = coerce_column(NumericType.LONG, pd.Series([1, None], dtype="Int64"))
        assert out.tolist() == [1, MISSING_VALUES[NumericType.LONG]]

    def test_strings(self) -> None:
        out = coerce_column(9, ["alice", None])
        assert out.dtype == np.dtype("S9")
        assert out.tolist() == [b"alice", b""]

    def test_string_truncation_logs(self) -> None:
        messages: list[str] = []
        sink_id = logger.add(lambda msg: messages.append(str(msg)), level="WARNING", format="{message}")
        try:
            out = coerce_column(3, ["abcdef", "ab"], field="code")
        finally:
            logger.remove(sink_id)
        assert out.tolist() == [b"abc", b"ab"]
        assert any("Truncated 1 value(s) of 'code'" in m for m in messages)

    def test_strict_string_truncation(self) -> None:
        with pytest.raises(TruncationError):
            coerce_column(3, ["abcdef"], strict=True)

    def test_fractional_values_for_integer_type(self) -> None:
        with pytest.raises(InputError, match="non-integer"):
            coerce_column(NumericType.BYTE, [1.5])

    def test_out_of_storage_range(self) -> None:
        with pytest.raises(ValueOutOfRangeError):
            coerce_column(NumericType.BYTE, [300])

    def test_strict_valid_range(self) -> None:
        assert coerce_column(NumericType.BYTE, [101]).tolist() == [101]
        with pytest.raises(ValueOutOfRangeError):
            coerce_column(NumericType.BYTE, [101, 102], strict=True)

    def test_float_overflow(self) -> None:
        with pytest.raises(ValueOutOfRangeError):
            coerce_column(NumericType.FLOAT, [1e39])

    def test_scalar_gives_0d(self) -> None:
        out = coerce_column(NumericType.INT, 5)
        assert out.ndim == 0
        assert int(out) == 5

    def test_two_dimensional_rejected(self) -> None:
        with pytest.raises(InputError, match="one-dimensional"):
            coerce_column(NumericType.INT, [[1, 2], [3, 4]])

    def test_text_in_numeric_field(self) -> None:
        with pytest.raises(InputError):
            coerce_column(NumericType.DOUBLE, ["a", "b"])

    @pytest.mark.parametrize("strict", [False, True])
    def test_coercing_twice_is_stable(self, strict: bool) -> None:
        once = coerce_column(NumericType.BYTE, [1, None], strict=strict)
        twice = coerce_column(NumericType.BYTE, once, strict=strict)
        assert np.array_equal(once, twice)


class TestInferColumnType:
    @pytest.mark.parametrize(
        ("dtype", "expected"),
        [
            ("i1", NumericType.BYTE),
            ("i2", NumericType.INT),
            ("i4", NumericType.LONG),
            ("i8", NumericType.LONG),
            ("u1", NumericType.INT),
            ("u2", NumericType.LONG),
            ("f4", NumericType.FLOAT),
            ("f8", NumericType.DOUBLE),
            ("?", NumericType.BYTE),
        ],
    )
    def test_numeric_dtypes(self, dtype: str, expected: NumericType) -> None:
        assert infer_column_type(np.zeros(2, dtype=dtype)) == expected

    def test_string_width_is_widest(self) -> None:
        assert infer_column_type(["a", "abc", None]) == 3

    def test_empty_strings_get_width_one(self) -> None:
        assert infer_column_type(["", ""]) == 1

    def test_width_capped(self) -> None:
        assert infer_column_type(["x" * 300], field="notes") == 244

    def test_width_counts_encoded_bytes(self) -> None:
        assert infer_column_type(["éé"], encoding="utf-8") == 4

    def test_all_missing_object_is_double(self) -> None:
        assert infer_column_type([None, None]) == NumericType.DOUBLE

    def test_nullable_integers(self) -> None:
        assert infer_column_type(pd.Series([1, None], dtype="Int16")) == NumericType.INT

    def test_unsupported_dtype(self) -> None:
        with pytest.raises(TypeError, match="unsupported data type"):
            infer_column_type(np.array(["2024-01-01"], dtype="datetime64[D]"))


class TestWriteRecords:
    def test_no_fields(self) -> None:
        sink = io.BytesIO()
        with pytest.raises(NoFieldsError):
            write_records(sink, [], 0, layout=compute_layout([]))
        assert sink.getvalue() == b""

    def test_short_columns_padded(self) -> None:
        fields = [
            DtaField(name="n", typ="byte", data=coerce_column(NumericType.BYTE, [1, 2, 3])),
            DtaField(name="s", typ="str3", data=coerce_column(3, ["ab"])),
            DtaField(name="m", typ="int"),
        ]
        sink = io.BytesIO()
        written = write_records(sink, fields, 3, layout=compute_layout(fields))
        assert written == 18
        assert sink.getvalue() == (
            b"\x01ab\x00\xe5\x7f" + b"\x02\x00\x00\x00\xe5\x7f" + b"\x03\x00\x00\x00\xe5\x7f"
        )

    def test_scalar_repeats(self) -> None:
        fields = [DtaField(name="k", typ="int", data=coerce_column(NumericType.INT, 7))]
        sink = io.BytesIO()
        write_records(sink, fields, 3, layout=compute_layout(fields))
        assert sink.getvalue() == b"\x07\x00" * 3

    def test_chunking_does_not_change_output(self) -> None:
        fields = [DtaField(name="v", typ="long", data=np.arange(7, dtype="<i4"))]
        layout = compute_layout(fields)
        whole, chunked = io.BytesIO(), io.BytesIO()
        write_records(whole, fields, 7, layout=layout)
        write_records(chunked, fields, 7, layout=layout, chunk_rows=2)
        assert whole.getvalue() == chunked.getvalue()
        assert len(whole.getvalue()) == 7 * layout.record_size
