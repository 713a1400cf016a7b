"""Column descriptor model.

A DtaField describes one variable of a dta file: its name, storage type,
label and display format, plus the data backing it when the file is written
from pre-built columns. Backing data is held in a numpy array whose dtype is
fixed by the type code (see statadta.models.types.numpy_dtype):

- 1-d array: a column of values, one per observation
- 0-d array: a single value (the attribute of an extracted record)
- None: metadata only; values are supplied later by incremental appends
"""

from __future__ import annotations

from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from statadta.models.types import (
    byte_width,
    coerce_type,
    default_format,
    is_string_type,
    type_name,
)


class DtaField(BaseModel):
    """A single dta variable and its optional backing data."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., description="Variable name (33-byte slot, silently truncated)")
    typ: int = Field(..., description="Type code: 1..244 for strN, 251..255 for numerics")
    label: str = Field(default="", description="Variable label (81-byte slot)")
    display_format: str = Field(default="", description="Display format such as '%9.0g' (12-byte slot)")
    data: Any = Field(default=None, exclude=True, repr=False, description="Typed backing data")

    @field_validator("typ", mode="before")
    @classmethod
    def _coerce_typ(cls, v: Any) -> int:
        return coerce_type(v)

    @model_validator(mode="after")
    def _fill_defaults(self) -> DtaField:
        if not self.display_format:
            self.display_format = default_format(self.typ)
        return self

    @property
    def byte_width(self) -> int:
        return byte_width(self.typ)

    @property
    def type_name(self) -> str:
        return type_name(self.typ)

    @property
    def is_string(self) -> bool:
        return is_string_type(self.typ)

    @property
    def num_values(self) -> int | None:
        """Number of observations carried by a column, None for scalar or absent data."""
        if isinstance(self.data, np.ndarray) and self.data.ndim == 1:
            return int(self.data.shape[0])
        return None
