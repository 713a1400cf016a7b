"""Stata format 113 file writer.

Writes data into a Stata 113 (.dta) file, readable by Stata 8 and later.
Format reference: https://www.stata.com/help.cgi?dta_113

A DtaFile is filled in one of two ways:

- bulk: columns are attached with add_field and the whole file is written
  by write_to / write_file.
- incremental: fields are declared with add_field_meta (or taken from a
  record type), then begin_write emits the header and descriptors, values
  are appended field by field, commit_record flushes each record, and
  end_write rewrites the header with the final observation count.

The writer does little validation of names and labels. It is up to the
caller to ensure they meet Stata's rules.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, BinaryIO

from loguru import logger

from statadta.config import WriterConfig
from statadta.errors import (
    IncompleteRecordError,
    InputError,
    LayoutFrozenError,
    NoFieldsError,
    RecordOverflowError,
    SessionStateError,
    TooManyFieldsError,
    UnseekableSinkError,
)
from statadta.io.encoding import (
    coerce_column,
    fixed_text,
    infer_column_type,
    pack_text,
    pack_value,
    write_records,
)
from statadta.io.extract import extract_fields, record_values
from statadta.io.layout import RecordLayout, compute_layout, emit_descriptors, emit_header
from statadta.models.field import DtaField
from statadta.models.header import MAX_NUM_VARS, DtaHeader
from statadta.models.types import NumericType, byte_width, coerce_type, is_string_type


class WriteState(StrEnum):
    """Lifecycle of a DtaFile. FINALIZED is terminal."""

    EMPTY = "empty"
    FIELDS_DEFINED = "fields_defined"
    WRITING = "writing"
    FINALIZED = "finalized"


class DtaFile:
    """A dta dataset: header state, ordered fields and the write cursor.

    A DtaFile is owned by a single writer; it has no internal locking.

    Usage::

        dta = DtaFile()
        dta.add_field_meta("id", "identifier", "long")
        dta.add_field_meta("name", "subject name", "str9")
        with dta.session("out.dta"):
            dta.append_long(1)
            dta.append_str("alice")
            dta.commit_record()
    """

    def __init__(self, config: WriterConfig | None = None) -> None:
        self.config = config or WriterConfig()
        self.header = DtaHeader(data_label=self.config.data_label)
        self.fields: list[DtaField] = []
        self.record_size = 0
        self.state = WriteState.EMPTY
        self._layout: RecordLayout | None = None
        self._rec_buf = bytearray()
        self._offset = 0
        self._sink: BinaryIO | None = None
        self._owns_sink = False
        self._start = 0

    @classmethod
    def from_fields(cls, fields: Iterable[DtaField], config: WriterConfig | None = None) -> DtaFile:
        dta = cls(config)
        dta.add_fields(fields)
        return dta

    @classmethod
    def from_record(cls, record: Any, config: WriterConfig | None = None) -> DtaFile:
        """Build a file whose fields are extracted from a dataclass or pydantic model."""
        config = config or WriterConfig()
        fields = extract_fields(record, encoding=config.encoding, strict=config.strict)
        return cls.from_fields(fields, config)

    # ------------------------------------------------------------------
    # Field definition
    # ------------------------------------------------------------------

    @property
    def num_vars(self) -> int:
        return self.header.num_vars

    @property
    def num_obs(self) -> int:
        return self.header.num_obs

    @property
    def offset(self) -> int:
        """Write cursor within the current record."""
        return self._offset

    def _register(self, field: DtaField) -> DtaField:
        if self.state in (WriteState.WRITING, WriteState.FINALIZED):
            raise LayoutFrozenError(f"cannot add fields in state {self.state}", field=field.name)
        if len(self.fields) >= MAX_NUM_VARS:
            raise TooManyFieldsError(f"a dta 113 file holds at most {MAX_NUM_VARS} variables", field=field.name)
        n = field.num_values
        if n is not None and n > self.header.num_obs:
            self.header.num_obs = n
        self.fields.append(field)
        self.record_size += field.byte_width
        self.header.num_vars = len(self.fields)
        self.state = WriteState.FIELDS_DEFINED
        return field

    def add_field(
        self,
        name: str,
        label: str,
        data: Any,
        typ: int | str | None = None,
        display_format: str | None = None,
    ) -> DtaField:
        """Add a column backed by ``data``.

        The type is inferred from the data's dtype unless ``typ`` is given.
        Similarly named fields, name/label rules and equal column lengths
        are not checked; shorter columns are padded with missing values.

        Raises:
            TypeError: If ``data`` has no dta counterpart (programmer error).
            InputError: If values cannot be stored in the chosen type.
        """
        if typ is None:
            code = infer_column_type(data, encoding=self.config.encoding, field=name)
        else:
            code = coerce_type(typ)
        column = coerce_column(code, data, encoding=self.config.encoding, strict=self.config.strict, field=name)
        return self._register(
            DtaField(name=name, typ=code, label=label, display_format=display_format or "", data=column)
        )

    def add_field_meta(
        self, name: str, label: str, typ: int | str, display_format: str | None = None
    ) -> DtaField:
        """Describe a field whose values are appended record by record.

        ``typ`` is a type code (1..244 for strN, 251..255 for numerics) or a
        type name such as ``str9`` or ``double``.
        """
        code = coerce_type(typ)
        return self._register(DtaField(name=name, typ=code, label=label, display_format=display_format or ""))

    def add_fields(self, fields: Iterable[DtaField]) -> None:
        for f in fields:
            self._register(f)

    # ------------------------------------------------------------------
    # Bulk writing
    # ------------------------------------------------------------------

    def _prepare_header(self, num_obs: int) -> RecordLayout:
        if not self.fields:
            raise NoFieldsError("no fields")
        layout = compute_layout(self.fields)
        self.header.num_vars = len(self.fields)
        self.header.num_obs = num_obs
        self.header.timestamp = self.config.timestamp or datetime.now()
        return layout

    def _preamble(self) -> bytes:
        head = emit_header(self.header, encoding=self.config.encoding, strict=self.config.strict)
        desc = emit_descriptors(self.fields, encoding=self.config.encoding, strict=self.config.strict)
        return head + desc

    def _prepare_bulk(self) -> tuple[RecordLayout, int, bytes]:
        if self.state is WriteState.WRITING:
            raise SessionStateError("bulk write called during an open write session")
        num_obs = max((f.num_values or 0 for f in self.fields), default=0)
        layout = self._prepare_header(num_obs)
        return layout, num_obs, self._preamble()

    def _write_bulk(self, sink: BinaryIO, layout: RecordLayout, num_obs: int, preamble: bytes) -> int:
        sink.write(preamble)
        written = len(preamble)
        written += write_records(
            sink,
            self.fields,
            num_obs,
            layout=layout,
            encoding=self.config.encoding,
            strict=self.config.strict,
            chunk_rows=self.config.chunk_rows,
        )
        logger.info(
            "Wrote dta 113: {} vars x {} obs ({} bytes per record)",
            self.num_vars,
            num_obs,
            layout.record_size,
        )
        return written

    def write_to(self, sink: BinaryIO) -> int:
        """Write header, descriptors and every record from the fields' data.

        Returns:
            Number of bytes written.

        Raises:
            NoFieldsError: If no fields are defined; nothing is written.
        """
        return self._write_bulk(sink, *self._prepare_bulk())

    def write_file(self, path: str | Path) -> int:
        """Create or truncate ``path`` and write the whole file to it.

        Header and descriptors are encoded before ``path`` is opened; when
        that fails an existing file is left as it was.
        """
        prepared = self._prepare_bulk()
        with open(path, "wb", buffering=self.config.buffer_size) as f:
            return self._write_bulk(f, *prepared)

    # ------------------------------------------------------------------
    # Incremental writing
    # ------------------------------------------------------------------

    def begin_write(self, sink: str | Path | BinaryIO) -> None:
        """Open ``sink``, emit the header and descriptors and fix the record layout.

        Must be called once after all fields are defined and before any
        record is appended. ``sink`` is a path (created or truncated) or a
        seekable binary file object positioned where the file should start.
        """
        if self.state in (WriteState.WRITING, WriteState.FINALIZED):
            raise SessionStateError(f"begin_write called in state {self.state}")
        layout = self._prepare_header(0)
        preamble = self._preamble()

        if isinstance(sink, (str, os.PathLike)):
            f: BinaryIO = open(sink, "wb", buffering=self.config.buffer_size)
            owns = True
        else:
            seekable = getattr(sink, "seekable", None)
            if seekable is None or not seekable():
                raise UnseekableSinkError("sink must support seeking back to its start")
            f = sink
            owns = False

        try:
            self._start = f.tell()
            f.write(preamble)
        except BaseException:
            if owns:
                f.close()
            raise

        self._sink = f
        self._owns_sink = owns
        self._layout = layout
        self._rec_buf = bytearray(self.record_size)
        self._offset = 0
        self.state = WriteState.WRITING
        logger.info("Began dta 113 write: {} vars, {} bytes per record", self.num_vars, self.record_size)

    def end_write(self) -> None:
        """Flush, rewrite the header with the final observation count and release the sink.

        A sink opened from a path is closed; a caller's file object is
        flushed and left open, positioned at the end of the file.
        """
        self._require_writing("end_write")
        sink = self._sink
        try:
            sink.flush()
            sink.seek(self._start)
            sink.write(emit_header(self.header, encoding=self.config.encoding, strict=self.config.strict))
            sink.flush()
            sink.seek(0, os.SEEK_END)
        finally:
            self._release()
        logger.info("Finalized dta 113: {} vars x {} obs", self.num_vars, self.num_obs)

    def abort(self) -> None:
        """Release an open sink without rewriting the header."""
        if self.state is not WriteState.WRITING:
            return
        self._release()
        logger.warning("Aborted dta write after {} record(s); the file is incomplete", self.num_obs)

    def _release(self) -> None:
        sink, owns = self._sink, self._owns_sink
        self._sink = None
        self._owns_sink = False
        self.state = WriteState.FINALIZED
        if owns and sink is not None:
            sink.close()

    @contextmanager
    def session(self, sink: str | Path | BinaryIO) -> Iterator[DtaFile]:
        """begin_write on entry, end_write on exit (abort if the block raises)."""
        self.begin_write(sink)
        try:
            yield self
        except BaseException:
            self.abort()
            raise
        self.end_write()

    def _require_writing(self, op: str) -> None:
        if self.state is not WriteState.WRITING:
            raise SessionStateError(f"{op} requires an open write session (state {self.state})")

    def _field_name_at(self, offset: int) -> str | None:
        if self._layout is None:
            return None
        idx = self._layout.field_at(offset)
        return None if idx is None else self.fields[idx].name

    def _reserve(self, width: int, op: str) -> str | None:
        self._require_writing(op)
        name = self._field_name_at(self._offset)
        if self._offset + width > self.record_size:
            raise RecordOverflowError(
                f"{op} of {width} byte(s) at offset {self._offset} exceeds record size {self.record_size}",
                field=name,
            )
        return name

    def _append_numeric(self, typ: NumericType, value: Any, op: str) -> None:
        name = self._reserve(byte_width(typ), op)
        self._offset += pack_value(
            typ, value, self._rec_buf, self._offset, strict=self.config.strict, field=name
        )

    def append_byte(self, v: int | None) -> None:
        self._append_numeric(NumericType.BYTE, v, "append_byte")

    def append_int(self, v: int | None) -> None:
        self._append_numeric(NumericType.INT, v, "append_int")

    def append_long(self, v: int | None) -> None:
        self._append_numeric(NumericType.LONG, v, "append_long")

    def append_float(self, v: float | None) -> None:
        self._append_numeric(NumericType.FLOAT, v, "append_float")

    def append_double(self, v: float | None) -> None:
        self._append_numeric(NumericType.DOUBLE, v, "append_double")

    def _string_width(self, width: int | None, op: str) -> int:
        if width is not None:
            return width
        idx = self._layout.field_at(self._offset)
        if idx is None or not self.fields[idx].is_string:
            raise InputError(
                f"{op} needs an explicit width away from a string field",
                field=self._field_name_at(self._offset),
            )
        return self.fields[idx].typ

    def append_str(self, v: str | None, width: int | None = None) -> None:
        """Append a string into a ``width``-byte slot (default: the string field at the cursor).

        The value is not null terminated: when shorter than the slot, the
        remaining bytes keep what the previous record left there. Pass
        values padded with ``\\x00`` to clear them.
        """
        self._append_text(v, width, "append_str")

    def append_bytes(self, v: bytes | None, width: int | None = None) -> None:
        """Like append_str for raw bytes."""
        self._append_text(v, width, "append_bytes")

    def _append_text(self, v: str | bytes | None, width: int | None, op: str) -> None:
        self._require_writing(op)
        n = self._string_width(width, op)
        name = self._reserve(n, op)
        self._offset += pack_text(
            v,
            self._rec_buf,
            self._offset,
            n,
            encoding=self.config.encoding,
            strict=self.config.strict,
            field=name,
        )

    def append(self, value: Any) -> None:
        """Append ``value`` encoded as the field at the cursor.

        Unlike append_str, string values are null padded to the full slot.
        """
        self._require_writing("append")
        idx = self._layout.field_at(self._offset)
        if idx is None:
            if self._offset >= self.record_size:
                raise RecordOverflowError(f"record of {self.record_size} bytes is already full")
            raise InputError(f"cursor at offset {self._offset} is not at a field boundary")
        f = self.fields[idx]
        if is_string_type(f.typ):
            padded = fixed_text(
                value, f.typ, encoding=self.config.encoding, strict=self.config.strict, field=f.name
            )
            self._append_text(padded, f.typ, "append")
        else:
            self._append_numeric(NumericType(f.typ), value, "append")

    def commit_record(self) -> None:
        """Write the record buffer to the sink and start the next record.

        Must be called after appending every field of the record. A partial
        record is written as is (IncompleteRecordError in strict mode).
        """
        self._require_writing("commit_record")
        if self._offset != self.record_size and self.config.strict:
            raise IncompleteRecordError(
                f"record committed after {self._offset} of {self.record_size} bytes",
                field=self._field_name_at(self._offset),
            )
        self._sink.write(self._rec_buf)
        self._offset = 0
        self.header.num_obs += 1

    def discard_record(self) -> None:
        """Drop the values appended since the last commit and move the cursor back to the first field."""
        self._require_writing("discard_record")
        if self._offset:
            logger.debug("Discarded partial record of {} bytes", self._offset)
        self._offset = 0

    def append_row(self, values: Sequence[Any]) -> None:
        """Append one value per field, in field order, and commit the record."""
        self._require_writing("append_row")
        if self._offset != 0:
            raise SessionStateError("append_row called with a partially appended record")
        if len(values) != len(self.fields):
            raise InputError(f"expected {len(self.fields)} values, got {len(values)}")
        try:
            for v in values:
                self.append(v)
        except Exception:
            self.discard_record()
            raise
        self.commit_record()

    def append_record(self, record: Any) -> None:
        """Append the attribute values of a dataclass or pydantic instance as one record."""
        self.append_row(record_values(record))
