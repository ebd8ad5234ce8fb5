"""Normalisation of store-native scalar values.

Query rows can carry values that do not serialise to JSON as-is: decoded
``TIMESTAMP`` columns (``datetime``), ``Decimal`` aggregates, and temporal or
integer wrapper objects handed back by graph drivers.  :func:`normalize`
walks a result structure recursively and replaces every such value with a
plain ``int``/``float`` or an ISO-8601 string, so nothing store-specific leaks
past the query boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from numbers import Integral, Real
from typing import Any, Callable


@dataclass(frozen=True)
class DecodedScalar:
    """Classification of a single store-native value."""

    is_numeric: bool = False
    numeric_value: int | float | None = None
    is_temporal: bool = False
    iso_string: str | None = None


ScalarDecoder = Callable[[Any], "DecodedScalar | None"]


def format_datetime(value: datetime) -> str:
    """Render *value* as ISO-8601 UTC with a ``Z`` suffix.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def decode_scalar(value: Any) -> DecodedScalar | None:
    """Default decoder.

    Returns *None* for values that are not scalar wrappers (plain strings,
    native ``int``/``float``, containers), which callers leave untouched.
    """
    if value is None or isinstance(value, (bool, str, bytes)):
        return None
    if isinstance(value, datetime):
        return DecodedScalar(is_temporal=True, iso_string=format_datetime(value))
    if isinstance(value, (date, time)):
        return DecodedScalar(is_temporal=True, iso_string=value.isoformat())
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return DecodedScalar(is_numeric=True, numeric_value=int(value))
        return DecodedScalar(is_numeric=True, numeric_value=float(value))
    if isinstance(value, (int, float)):
        return None
    if isinstance(value, Integral):
        return DecodedScalar(is_numeric=True, numeric_value=int(value))
    if isinstance(value, Real):
        return DecodedScalar(is_numeric=True, numeric_value=float(value))

    # Driver temporal types (e.g. neo4j.time.DateTime) expose ``to_native()``
    # or ``iso_format()``; driver integers expose ``to_int()``/``toNumber``.
    to_native = getattr(value, "to_native", None)
    if callable(to_native):
        native = to_native()
        if isinstance(native, (datetime, date, time)):
            return decode_scalar(native)
    iso_format = getattr(value, "iso_format", None)
    if callable(iso_format):
        return DecodedScalar(is_temporal=True, iso_string=str(iso_format()))
    for attr in ("to_int", "toNumber"):
        converter = getattr(value, attr, None)
        if callable(converter):
            return DecodedScalar(is_numeric=True, numeric_value=converter())
    return None


def normalize(value: Any, decoder: ScalarDecoder = decode_scalar) -> Any:
    """Recursively replace store-native values with plain Python values.

    Dicts keep their keys, lists and tuples become lists.
    """
    if isinstance(value, dict):
        return {key: normalize(val, decoder) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize(item, decoder) for item in value]

    decoded = decoder(value)
    if decoded is None:
        return value
    if decoded.is_temporal:
        return decoded.iso_string
    if decoded.is_numeric:
        return decoded.numeric_value
    return value
