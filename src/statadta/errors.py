"""Exception hierarchy for the dta writer.

Two families are raised by this package:

- InputError: bad input supplied by the caller (unknown type strings,
  non-record values handed to extraction, values that cannot be encoded).
  Also a ValueError so generic callers can catch it as such.
- LayoutError: the dataset layout or the write session is in a state
  that cannot produce a valid record section.

I/O failures from the underlying sink are never wrapped; they surface as
the OSError raised by the file object.
"""

from __future__ import annotations


class DtaError(Exception):
    """Base class for all dta writer errors.

    Carries the offending field name, when one is known, so callers can
    diagnose without inspecting writer internals.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        if field is not None:
            message = f"field {field}: {message}"
        super().__init__(message)


class InputError(DtaError, ValueError):
    """Raised when caller-supplied input cannot be turned into a valid field."""


class NotARecordError(InputError):
    """Raised when extraction is given something other than a dataclass or pydantic model."""


class UnknownTypeError(InputError):
    """Raised for a type string that is not strN (1..244), byte, int, long, float or double."""


class TypeInferenceError(InputError):
    """Raised when an in-memory type cannot be mapped to a dta type without an explicit typ."""


class NoFieldsFoundError(InputError):
    """Raised when extraction yields zero fields."""


class TruncationError(InputError):
    """Raised in strict mode when a string does not fit its fixed-size slot."""


class ValueOutOfRangeError(InputError):
    """Raised when a numeric value cannot be represented by the field's type."""


class UnseekableSinkError(InputError):
    """Raised when a write session is opened on a sink that cannot seek back to its start."""


class LayoutError(DtaError):
    """Raised when the dataset layout cannot be encoded."""


class UnsupportedFieldTypeError(LayoutError):
    """Raised when a field carries a type code outside the writable kinds."""


class NoFieldsError(LayoutError):
    """Raised when records are written for a dataset without fields."""


class RecordOverflowError(LayoutError):
    """Raised when an append would write past the end of the record buffer."""


class IncompleteRecordError(LayoutError):
    """Raised in strict mode when a record is committed before every field was appended."""


class LayoutFrozenError(LayoutError):
    """Raised when fields are added after the header and descriptors were emitted."""


class SessionStateError(LayoutError):
    """Raised when a write operation is not allowed in the current write state."""


class TooManyFieldsError(LayoutError):
    """Raised when a field would take the dataset past the format's variable limit."""
