"""Data models for dta variables, headers and storage types."""

from statadta.models.field import DtaField
from statadta.models.header import DtaHeader
from statadta.models.types import (
    MAX_STR_WIDTH,
    MISSING_VALUES,
    NumericType,
    byte_width,
    default_format,
    numpy_dtype,
    type_code_for,
    type_name,
)

__all__ = [
    "DtaField",
    "DtaHeader",
    "MAX_STR_WIDTH",
    "MISSING_VALUES",
    "NumericType",
    "byte_width",
    "default_format",
    "numpy_dtype",
    "type_code_for",
    "type_name",
]
