"""
String Helpers: key normalization for ingested rows.

Sales exports and Supabase payloads arrive with camelCase, PascalCase or
spaced headers.  Everything is converted to snake_case at the
repository/ingestion boundary before it reaches the models.
"""

from __future__ import annotations

import re
from typing import Union

__all__ = ["JsonValue", "normalize_keys", "to_snake_case"]

JsonValue = Union[
    str,
    int,
    float,
    bool,
    None,
    dict[str, "JsonValue"],
    list["JsonValue"],
]

# "MRCoriginal" -> "MRC_original"
_RE_UPPER_RUN = re.compile(r"([A-Z]+)([A-Z][a-z])")
# "grossCommission" -> "gross_Commission"
_RE_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
# Spaces, hyphens and dots in spreadsheet headers.
_RE_SEPARATORS = re.compile(r"[\s\-.]+")
_RE_MULTI_UNDERSCORE = re.compile(r"_+")


def to_snake_case(name: str) -> str:
    """Convert a camelCase, PascalCase or spaced header to snake_case.

    ::

        grossCommission  -> gross_commission
        TotalPurchases   -> total_purchases
        New Buyers       -> new_buyers
        products-sold    -> products_sold
    """
    s1 = _RE_UPPER_RUN.sub(r"\1_\2", name.strip())
    s2 = _RE_CAMEL_BOUNDARY.sub(r"\1_\2", s1)
    s3 = _RE_SEPARATORS.sub("_", s2)
    s4 = _RE_MULTI_UNDERSCORE.sub("_", s3)
    return s4.strip("_").lower()


def normalize_keys(
    data: Union[dict[str, JsonValue], list[JsonValue], JsonValue],
) -> Union[dict[str, JsonValue], list[JsonValue], JsonValue]:
    """Recursively convert all dictionary keys to snake_case."""
    if isinstance(data, dict):
        return {to_snake_case(k): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data
