"""pandas DataFrame ingestion.

Maps DataFrame columns to dta fields and writes whole frames. Integer and
float columns keep their width (int64 is stored as long and must fit in
32 bits); nullable extension dtypes are supported and their missing values
become Stata system missing. Text columns are sized to their widest value.
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd
from loguru import logger

from statadta.config import WriterConfig
from statadta.errors import TypeInferenceError
from statadta.io.encoding import coerce_column, infer_column_type
from statadta.io.writer import DtaFile
from statadta.models.field import DtaField
from statadta.models.types import coerce_type


def _check_supported(df: pd.DataFrame) -> None:
    for col in df.columns:
        dtype = df[col].dtype
        if (
            pd.api.types.is_datetime64_any_dtype(dtype)
            or pd.api.types.is_timedelta64_dtype(dtype)
            or isinstance(dtype, pd.CategoricalDtype)
            or pd.api.types.is_complex_dtype(dtype)
        ):
            raise TypeInferenceError(f"unsupported column dtype {dtype}", field=str(col))


def fields_from_dataframe(
    df: pd.DataFrame,
    labels: dict[str, str] | None = None,
    formats: dict[str, str] | None = None,
    types: dict[str, int | str] | None = None,
    *,
    config: WriterConfig | None = None,
) -> list[DtaField]:
    """Build one DtaField per DataFrame column, in column order.

    Args:
        df: Source frame.
        labels: Column name -> variable label. Unlabeled columns get an empty label.
        formats: Column name -> display format.
        types: Column name -> explicit type code or name, overriding inference.
        config: Encoding and strictness used for values.

    Raises:
        TypeInferenceError: For column dtypes without a dta counterpart.
        ValueOutOfRangeError: For integers that do not fit their type.
    """
    config = config or WriterConfig()
    labels = labels or {}
    formats = formats or {}
    types = types or {}
    _check_supported(df)

    fields: list[DtaField] = []
    for col in df.columns:
        name = str(col)
        series = df[col]
        if name in types:
            typ = coerce_type(types[name])
        else:
            try:
                typ = infer_column_type(series, encoding=config.encoding, field=name)
            except TypeError as e:
                raise TypeInferenceError(str(e), field=name) from e
        data = coerce_column(typ, series, encoding=config.encoding, strict=config.strict, field=name)
        fields.append(
            DtaField(
                name=name,
                typ=typ,
                label=labels.get(name, ""),
                display_format=formats.get(name, ""),
                data=data,
            )
        )
    logger.debug("Mapped {} column(s) to dta fields", len(fields))
    return fields


def write_dataframe(
    df: pd.DataFrame,
    path: str | Path,
    labels: dict[str, str] | None = None,
    data_label: str | None = None,
    *,
    formats: dict[str, str] | None = None,
    types: dict[str, int | str] | None = None,
    config: WriterConfig | None = None,
) -> DtaFile:
    """Write a DataFrame as a Stata 113 file.

    Args:
        df: DataFrame to write.
        path: Output file path, created or truncated.
        labels: Column name -> variable label.
        data_label: Dataset label; overrides ``config.data_label``.
        formats: Column name -> display format.
        types: Column name -> explicit type, overriding inference.
        config: Writer settings.

    Returns:
        The DtaFile that was written, for inspection of its layout.
    """
    path = Path(path)
    config = config or WriterConfig()
    if data_label is not None:
        config = config.model_copy(update={"data_label": data_label})

    fields = fields_from_dataframe(df, labels, formats, types, config=config)
    dta = DtaFile.from_fields(fields, config)

    logger.info("Writing dta 113: {} rows x {} cols -> {}", len(df), len(df.columns), path)
    dta.write_file(path)
    return dta
