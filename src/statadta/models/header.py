"""Fixed 109-byte header of a format 113 dta file.

Layout (little-endian):

    Contents     Length  Format  Comments
    version           1  byte    113 = 0x71
    byteorder         1  byte    0x01 HILO, 0x02 LOHI (always LOHI here)
    filetype          1  byte    0x01
    unused            1  byte    0x00
    nvar              2  int     number of variables
    nobs              4  int     number of observations
    data_label       81  char    dataset label, null padded
    time_stamp       18  char    "dd Mon yyyy hh:mm", null padded
    Total           109
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

DTA_VERSION = 113
BYTE_ORDER_LOHI = 2
FILE_TYPE = 1

HEADER_SIZE = 109
DATA_LABEL_SIZE = 81
TIME_STAMP_SIZE = 18

MAX_NUM_VARS = 32767
MAX_NUM_OBS = 2**31 - 1

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_time_stamp(ts: datetime) -> str:
    """Render ``ts`` as Stata expects it, independent of the process locale."""
    return f"{ts.day:02d} {_MONTHS[ts.month - 1]} {ts.year:04d} {ts.hour:02d}:{ts.minute:02d}"


class DtaHeader(BaseModel):
    """Header state of a dta file. Version and byte order never vary."""

    model_config = ConfigDict(validate_assignment=True)

    version: int = Field(default=DTA_VERSION, frozen=True)
    byte_order: int = Field(default=BYTE_ORDER_LOHI, frozen=True)
    file_type: int = Field(default=FILE_TYPE, frozen=True)
    unused: int = Field(default=0, frozen=True)
    num_vars: int = Field(default=0, ge=0, le=MAX_NUM_VARS, description="Number of variables")
    num_obs: int = Field(default=0, ge=0, le=MAX_NUM_OBS, description="Number of observations")
    data_label: str = Field(default="", description="Dataset label")
    timestamp: datetime = Field(default_factory=datetime.now, description="Date/time saved")

    @property
    def time_stamp_text(self) -> str:
        return format_time_stamp(self.timestamp)
