"""Tests for the DtaField and DtaHeader models."""

from __future__ import annotations

from datetime import datetime

import numpy as np
import pytest
from pydantic import ValidationError

from statadta.models.field import DtaField
from statadta.models.header import DtaHeader, format_time_stamp


class TestDtaField:
    def test_type_name_is_coerced(self) -> None:
        f = DtaField(name="site", typ="str9")
        assert f.typ == 9
        assert f.byte_width == 9
        assert f.is_string
        assert f.type_name == "str9"

    def test_default_formats(self) -> None:
        assert DtaField(name="s", typ=15).display_format == "%15s"
        assert DtaField(name="x", typ="double").display_format == "%9.0g"

    def test_explicit_format_kept(self) -> None:
        f = DtaField(name="x", typ="double", display_format="%6.2f")
        assert f.display_format == "%6.2f"

    def test_label_defaults_to_empty(self) -> None:
        assert DtaField(name="x", typ="byte").label == ""

    def test_invalid_typ_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DtaField(name="x", typ=250)
        with pytest.raises(ValidationError):
            DtaField(name="x", typ="varchar")

    def test_num_values(self) -> None:
        assert DtaField(name="x", typ="byte").num_values is None
        col = DtaField(name="x", typ="byte", data=np.zeros(4, dtype="i1"))
        assert col.num_values == 4
        scalar = DtaField(name="x", typ="byte", data=np.array(3, dtype="i1"))
        assert scalar.num_values is None

    def test_data_not_dumped(self) -> None:
        f = DtaField(name="x", typ="byte", data=np.zeros(2, dtype="i1"))
        assert "data" not in f.model_dump()


class TestDtaHeader:
    def test_constants(self) -> None:
        h = DtaHeader()
        assert h.version == 113
        assert h.byte_order == 2
        assert h.file_type == 1
        assert h.unused == 0
        assert h.num_vars == 0
        assert h.num_obs == 0

    def test_version_cannot_change(self) -> None:
        h = DtaHeader()
        with pytest.raises(ValidationError):
            h.version = 114

    def test_counts_validated_on_assignment(self) -> None:
        h = DtaHeader()
        h.num_obs = 12
        assert h.num_obs == 12
        with pytest.raises(ValidationError):
            h.num_vars = 40000
        with pytest.raises(ValidationError):
            h.num_obs = -1

    def test_time_stamp_text(self) -> None:
        h = DtaHeader(timestamp=datetime(2024, 3, 5, 9, 7, 59))
        assert h.time_stamp_text == "05 Mar 2024 09:07"

    def test_time_stamp_is_locale_independent(self) -> None:
        assert format_time_stamp(datetime(1999, 12, 31, 23, 59)) == "31 Dec 1999 23:59"
