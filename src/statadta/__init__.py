"""statadta: write Stata format 113 (.dta) files from typed columns or records.

Common entry points are re-exported here:
    from statadta import DtaFile, DtaField, extract_fields, write_dataframe
"""

from statadta.config import WriterConfig
from statadta.errors import DtaError, InputError, LayoutError
from statadta.io.extract import extract_fields
from statadta.io.frame import fields_from_dataframe, write_dataframe
from statadta.io.writer import DtaFile, WriteState
from statadta.models.field import DtaField
from statadta.models.types import byte_width, type_code_for, type_name

__version__ = "0.1.0"

__all__ = [
    "DtaError",
    "DtaField",
    "DtaFile",
    "InputError",
    "LayoutError",
    "WriteState",
    "WriterConfig",
    "byte_width",
    "extract_fields",
    "fields_from_dataframe",
    "type_code_for",
    "type_name",
    "write_dataframe",
]
