"""Encoding and writing of Stata format 113 files."""

from statadta.io.extract import extract_fields, parse_tag
from statadta.io.frame import fields_from_dataframe, write_dataframe
from statadta.io.layout import RecordLayout, compute_layout, emit_descriptors, emit_header
from statadta.io.writer import DtaFile, WriteState

__all__ = [
    "DtaFile",
    "RecordLayout",
    "WriteState",
    "compute_layout",
    "emit_descriptors",
    "emit_header",
    "extract_fields",
    "fields_from_dataframe",
    "parse_tag",
    "write_dataframe",
]
