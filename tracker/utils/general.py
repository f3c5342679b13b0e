"""General Utility Functions."""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Protocol, Union, runtime_checkable

__all__ = ["convert_to_json_safe"]

JsonSafeType = Union[
    None,
    str,
    int,
    bool,
    float,
    Dict[str, "JsonSafeType"],
    List["JsonSafeType"],
]


@runtime_checkable
class PydanticLike(Protocol):
    """Anything exposing a Pydantic-style ``model_dump``."""

    def model_dump(self) -> Dict[str, "JsonInputType"]: ...  # noqa: E704


JsonInputType = Union[
    None,
    str,
    int,
    bool,
    float,
    Decimal,
    datetime,
    date,
    Dict[str, "JsonInputType"],
    List["JsonInputType"],
    PydanticLike,
]


def convert_to_json_safe(data: JsonInputType) -> JsonSafeType:
    """Recursively convert a structure to JSON-safe types.

    - ``datetime`` / ``date`` become ISO strings
    - ``Decimal`` becomes its exact string form, keeping percentages
      such as ``7.99`` free of float drift in Supabase payloads
    - NaN / Inf floats become ``None``
    - enums become their values
    - tuples become lists; Pydantic models are dumped first
    """
    if isinstance(data, Enum):
        return data.value

    if data is None or isinstance(data, (str, bool, int)):
        return data

    if isinstance(data, float):
        if math.isnan(data) or math.isinf(data):
            return None
        return data

    if isinstance(data, Decimal):
        return str(data)

    # datetime before date: datetime is a subclass of date.
    if isinstance(data, datetime):
        return data.isoformat()

    if isinstance(data, date):
        return data.isoformat()

    if isinstance(data, dict):
        return {str(key): convert_to_json_safe(value) for key, value in data.items()}

    if isinstance(data, (list, tuple)):
        return [convert_to_json_safe(item) for item in data]

    if isinstance(data, PydanticLike):
        return convert_to_json_safe(data.model_dump())

    return str(data)
