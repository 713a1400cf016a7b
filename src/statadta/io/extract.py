"""Derive dta fields from an annotated record type.

A record is a dataclass or a pydantic model, given as a class or an
instance. Every exported attribute (name not starting with ``_``) becomes
one field, in declaration order. Per-attribute configuration lives under
the ``dta`` key of the attribute's metadata:

    @dataclass
    class Visit:
        subject: str = field(metadata={"dta": "name:subjid,label:Subject,typ:str10"})
        weight: np.float32 = field(metadata={"dta": {"label": "Weight (kg)"}})
        visits: np.int16 = 0

    class Visit(BaseModel):
        subject: str = Field(json_schema_extra={"dta": {"typ": "str10"}})

Recognized keys:

- name: variable name, defaults to the lowercased attribute name
- label: variable label, defaults to the resolved name
- typ: type name (strN, byte, int, long, float, double); inferred from
  the annotation when absent
- format: display format, defaults to the type's default

Text attributes have no inferable width and need an explicit ``typ``.
Python ``int`` and ``bool`` have no fixed width either.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Mapping
from typing import Annotated, Any

import numpy as np
from loguru import logger
from pydantic import BaseModel

from statadta.errors import NoFieldsFoundError, NotARecordError, TypeInferenceError, UnknownTypeError
from statadta.io.encoding import coerce_column
from statadta.models.field import DtaField
from statadta.models.types import type_code_for

CONFIG_KEY = "dta"

_INFERRED_TYPES: dict[Any, str] = {
    np.int8: "byte",
    np.int16: "int",
    np.int32: "long",
    np.int64: "long",
    np.float32: "float",
    np.float64: "double",
    float: "double",
}


def parse_tag(tag: str) -> dict[str, str]:
    """Split a ``key:value,key:value`` tag string into a dict.

    Parts without a colon are ignored; keys and values are stripped.
    """
    config: dict[str, str] = {}
    for part in tag.split(","):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition(":")
        if sep:
            config[key.strip()] = value.strip()
    return config


def infer_type_name(annotation: Any) -> str:
    """Map an in-memory attribute type to a dta type name.

    Raises:
        TypeInferenceError: For text types and types without a fixed width.
    """
    annotation = _unwrap(annotation)
    if annotation in (str, bytes):
        raise TypeInferenceError("string type requires explicit 'typ' with strN")
    name = _INFERRED_TYPES.get(annotation)
    if name is None:
        raise TypeInferenceError(f"unsupported type {annotation!r} for dta type inference")
    return name


def _unwrap(annotation: Any) -> Any:
    """Strip Annotated[...] and Optional[...] wrappers."""
    origin = typing.get_origin(annotation)
    if origin is Annotated:
        return _unwrap(typing.get_args(annotation)[0])
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _unwrap(args[0])
    return annotation


def _field_config(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        return parse_tag(raw)
    if isinstance(raw, Mapping):
        return {str(k): str(v) for k, v in raw.items() if v is not None}
    raise TypeError(f"'{CONFIG_KEY}' metadata must be a tag string or a mapping, got {type(raw).__name__}")


def _record_attributes(record: Any) -> tuple[type, list[tuple[str, Any, dict[str, str]]]]:
    """Return the record class and its exported (attribute, annotation, config) triples."""
    cls = record if isinstance(record, type) else type(record)

    if dataclasses.is_dataclass(cls):
        hints = typing.get_type_hints(cls, include_extras=True)
        attrs = [
            (f.name, hints.get(f.name, f.type), _field_config(f.metadata.get(CONFIG_KEY)))
            for f in dataclasses.fields(cls)
        ]
    elif issubclass(cls, BaseModel):
        attrs = []
        for attr, info in cls.model_fields.items():
            extra = info.json_schema_extra if isinstance(info.json_schema_extra, Mapping) else {}
            attrs.append((attr, info.annotation, _field_config(extra.get(CONFIG_KEY))))
    else:
        raise NotARecordError(f"extract_fields: not a record: {cls.__name__}")

    return cls, [a for a in attrs if not a[0].startswith("_")]


def extract_fields(record: Any, *, encoding: str = "latin-1", strict: bool = False) -> list[DtaField]:
    """Extract one DtaField per exported attribute of a dataclass or pydantic model.

    Args:
        record: A dataclass/pydantic model class or instance. Instances
            contribute their attribute values as single-value field data.
        encoding: Codec for string attribute values.
        strict: Reject string values longer than their declared width.

    Returns:
        Fields in attribute declaration order.

    Raises:
        NotARecordError: If ``record`` is not a dataclass or pydantic model.
        UnknownTypeError: For an unrecognized ``typ``.
        TypeInferenceError: When ``typ`` is absent and the attribute type
            cannot be mapped.
        NoFieldsFoundError: If the record has no exported attributes.
    """
    cls, attrs = _record_attributes(record)
    is_instance = not isinstance(record, type)

    fields: list[DtaField] = []
    for attr, annotation, config in attrs:
        name = config.get("name") or attr.lower()
        label = config.get("label") or name
        typ_str = config.get("typ")
        if not typ_str:
            try:
                typ_str = infer_type_name(annotation)
            except TypeInferenceError as e:
                raise TypeInferenceError(str(e), field=attr) from None
        try:
            typ = type_code_for(typ_str)
        except UnknownTypeError as e:
            raise UnknownTypeError(str(e), field=attr) from None

        data = None
        if is_instance:
            data = coerce_column(typ, getattr(record, attr), encoding=encoding, strict=strict, field=name)

        fields.append(
            DtaField(
                name=name,
                typ=typ,
                label=label,
                display_format=config.get("format", ""),
                data=data,
            )
        )

    if not fields:
        raise NoFieldsFoundError(f"extract_fields: no fields found in {cls.__name__}")
    logger.debug("Extracted {} field(s) from {}", len(fields), cls.__name__)
    return fields


def record_values(record: Any) -> list[Any]:
    """Values of a record instance's exported attributes, in declaration order."""
    if isinstance(record, type):
        raise NotARecordError("record_values needs a record instance, not a class")
    _, attrs = _record_attributes(record)
    return [getattr(record, attr) for attr, _, _ in attrs]
