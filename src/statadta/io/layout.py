"""Header, descriptor and record layout of a format 113 dta file.

After the 109-byte header come six descriptor blocks, each indexed by
variable position, then a 5-byte expansion terminator:

    Contents     Length          Format  Comments
    typlist      nvar            byte    type code per variable
    varlist      33*nvar         char    variable names, null padded
    srtlist      2*(nvar+1)      int     sort order, always empty here
    fmtlist      12*nvar         char    display formats
    lbllist      33*nvar         char    value-label names, always empty here
    variable     81*nvar         char    variable labels
    labels
    expansion    5               byte    zero terminator

Records follow, each the concatenation of its fields' encoded values at
offsets equal to the running sum of the preceding byte widths.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from loguru import logger

from statadta.errors import UnsupportedFieldTypeError
from statadta.io.encoding import fixed_text
from statadta.models.field import DtaField
from statadta.models.header import DATA_LABEL_SIZE, TIME_STAMP_SIZE, DtaHeader
from statadta.models.types import byte_width, is_numeric_type, is_string_type, numpy_dtype

VAR_NAME_SIZE = 33
FMT_SIZE = 12
VALUE_LABEL_NAME_SIZE = 33
VAR_LABEL_SIZE = 81
EXPANSION_TERMINATOR = b"\x00" * 5

_HEADER_STRUCT = struct.Struct(f"<BBBBhi{DATA_LABEL_SIZE}s{TIME_STAMP_SIZE}s")


@dataclass(frozen=True)
class RecordLayout:
    """Byte layout of one record.

    Attributes:
        offsets: Start of each field within the record, in declared order.
        widths: Byte width of each field.
        record_size: Sum of the widths.
        keys: Names of the fields in ``dtype`` (positional, since dta
            variable names need not be unique).
        dtype: numpy structured dtype with the same offsets and itemsize.
    """

    offsets: tuple[int, ...]
    widths: tuple[int, ...]
    record_size: int
    keys: tuple[str, ...]
    dtype: np.dtype | None
    _index: dict[int, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {offset: i for i, offset in enumerate(self.offsets)})

    def field_at(self, offset: int) -> int | None:
        """Index of the field starting at ``offset``, if any."""
        return self._index.get(offset)


def compute_layout(fields: Sequence[DtaField]) -> RecordLayout:
    """Compute offsets and record size for ``fields``.

    Raises:
        UnsupportedFieldTypeError: If a field's type code is not writable.
    """
    offsets: list[int] = []
    widths: list[int] = []
    formats: list[np.dtype] = []
    offset = 0
    for f in fields:
        if not (is_string_type(f.typ) or is_numeric_type(f.typ)):
            raise UnsupportedFieldTypeError(f"field type [{f.typ}] not supported", field=f.name)
        width = byte_width(f.typ)
        offsets.append(offset)
        widths.append(width)
        formats.append(numpy_dtype(f.typ))
        offset += width

    keys = tuple(f"f{i}" for i in range(len(fields)))
    dtype = None
    if fields:
        dtype = np.dtype(
            {"names": list(keys), "formats": formats, "offsets": offsets, "itemsize": offset}
        )
    logger.debug("Record layout: {} field(s), {} bytes per record", len(fields), offset)
    return RecordLayout(
        offsets=tuple(offsets),
        widths=tuple(widths),
        record_size=offset,
        keys=keys,
        dtype=dtype,
    )


def emit_header(header: DtaHeader, *, encoding: str = "latin-1", strict: bool = False) -> bytes:
    """Serialize the 109-byte file header."""
    return _HEADER_STRUCT.pack(
        header.version,
        header.byte_order,
        header.file_type,
        header.unused,
        header.num_vars,
        header.num_obs,
        fixed_text(header.data_label, DATA_LABEL_SIZE, encoding=encoding, strict=strict, what="data label"),
        fixed_text(header.time_stamp_text, TIME_STAMP_SIZE, encoding=encoding, strict=strict, what="time stamp"),
    )


def descriptor_size(num_vars: int) -> int:
    """Length in bytes of the descriptor section for ``num_vars`` variables."""
    per_var = 1 + VAR_NAME_SIZE + FMT_SIZE + VALUE_LABEL_NAME_SIZE + VAR_LABEL_SIZE
    return num_vars * per_var + 2 * (num_vars + 1) + len(EXPANSION_TERMINATOR)


def emit_descriptors(
    fields: Sequence[DtaField], *, encoding: str = "latin-1", strict: bool = False
) -> bytes:
    """Serialize the descriptor blocks and expansion terminator for ``fields``.

    Names, formats and labels are cut to their slot width without a
    terminating null when too long (TruncationError in strict mode).
    """
    typlist = bytearray()
    varlist = bytearray()
    fmtlist = bytearray()
    lbllist = bytearray()
    varlabels = bytearray()
    for f in fields:
        if not (is_string_type(f.typ) or is_numeric_type(f.typ)):
            raise UnsupportedFieldTypeError(f"field type [{f.typ}] not supported", field=f.name)
        typlist.append(f.typ)
        varlist += _slot(f.name, VAR_NAME_SIZE, f, "name", encoding, strict)
        fmtlist += _slot(f.display_format, FMT_SIZE, f, "format", encoding, strict)
        lbllist += bytes(VALUE_LABEL_NAME_SIZE)
        varlabels += _slot(f.label, VAR_LABEL_SIZE, f, "label", encoding, strict)
    srtlist = bytes(2 * (len(fields) + 1))
    return b"".join(
        (bytes(typlist), bytes(varlist), srtlist, bytes(fmtlist), bytes(lbllist), bytes(varlabels), EXPANSION_TERMINATOR)
    )


def _slot(text: str, width: int, f: DtaField, what: str, encoding: str, strict: bool) -> bytes:
    slot = fixed_text(text, width, encoding=encoding, strict=strict, field=f.name, what=what)
    if not strict and len(text.encode(encoding, errors="replace")) > width:
        logger.warning("Truncated {} of '{}' to {} bytes", what, f.name, width)
    return slot
