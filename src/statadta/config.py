"""Runtime settings for the dta writer.

WriterConfig is immutable and shared by a DtaFile for its whole lifetime.
The defaults reproduce the lenient behavior expected by existing callers:
strings that overflow their slot are silently truncated and numeric values
are only checked against the width of their storage type.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BUFFER_SIZE = 64 * 1024


class WriterConfig(BaseModel):
    """Settings applied when emitting the header, descriptors and records."""

    model_config = ConfigDict(frozen=True)

    data_label: str = Field(default="", description="Dataset label stored in the header (80 bytes max)")
    timestamp: datetime | None = Field(
        default=None, description="Time stamp written to the header; defaults to now at begin_write"
    )
    encoding: str = Field(default="latin-1", description="Codec used to turn text into bytes")
    strict: bool = Field(
        default=False,
        description="Fail instead of truncating, range-check numerics and reject incomplete records",
    )
    buffer_size: int = Field(default=DEFAULT_BUFFER_SIZE, ge=1, description="Output buffer size in bytes")
    chunk_rows: int = Field(default=10_000, ge=1, description="Rows encoded per chunk in bulk mode")
