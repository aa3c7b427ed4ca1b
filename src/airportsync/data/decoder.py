"""Airport payload decoding.

Turns the body of an airports API response into :class:`Airport` records.

Schema
------
The body must be a JSON array of objects with fields:
    - code, icao, name, city, state, url: strings. Required.
    - lat, lon: numbers in decimal degrees. Required.
    - runway_length: integer or null. Optional.

Unlike a lenient loader, any bad element fails the whole batch with a
:class:`~airportsync.errors.DecodeError`; a partial list is never returned.

The ``icao`` value is read and then overwritten by ``url``, so by default
the persisted ``icao`` holds the airport URL. Pass ``icao_from_url=False``
to keep the ICAO code.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping

from airportsync.core.models import Airport
from airportsync.errors import DecodeError

__all__ = ["decode_airports", "decode_airport"]

_STRING_FIELDS = ("code", "icao", "name", "city", "state", "url")

# SQLite INTEGER is a signed 64-bit value
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def _require_str(item: Mapping[str, Any], key: str, index: int) -> str:
    if key not in item:
        raise DecodeError("missing required field", index=index, field=key)
    v = item[key]
    if not isinstance(v, str):
        raise DecodeError(
            f"expected string, got {type(v).__name__}", index=index, field=key
        )
    return v


def _require_float(item: Mapping[str, Any], key: str, index: int) -> float:
    if key not in item:
        raise DecodeError("missing required field", index=index, field=key)
    v = item[key]
    # bool is an int subclass; JSON true/false is never a coordinate
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise DecodeError(
            f"expected number, got {type(v).__name__}", index=index, field=key
        )
    try:
        f = float(v)
    except OverflowError:
        raise DecodeError("number out of range", index=index, field=key) from None
    if not math.isfinite(f):
        raise DecodeError(
            f"expected finite number, got {v!r}", index=index, field=key
        )
    return f


def _optional_int(item: Mapping[str, Any], key: str, index: int) -> int | None:
    v = item.get(key)
    if v is None:
        return None
    if isinstance(v, bool):
        raise DecodeError("expected integer, got bool", index=index, field=key)
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    if isinstance(v, int):
        if not _INT_MIN <= v <= _INT_MAX:
            raise DecodeError("integer out of range", index=index, field=key)
        return v
    raise DecodeError(
        f"expected integer or null, got {v!r}", index=index, field=key
    )


def decode_airport(
    item: Any, index: int = 0, *, icao_from_url: bool = True
) -> Airport:
    """Decode a single array element into an :class:`Airport`."""
    if not isinstance(item, dict):
        raise DecodeError(
            f"expected object, got {type(item).__name__}", index=index
        )

    strings = {key: _require_str(item, key, index) for key in _STRING_FIELDS}
    if not strings["code"].strip():
        raise DecodeError("code must not be blank", index=index, field="code")

    icao = strings["icao"]
    if icao_from_url:
        icao = strings["url"]

    return Airport(
        code=strings["code"],
        icao=icao,
        name=strings["name"],
        city=strings["city"],
        state=strings["state"],
        latitude=_require_float(item, "lat", index),
        longitude=_require_float(item, "lon", index),
        runway_length=_optional_int(item, "runway_length", index),
    )


def decode_airports(
    body: str | bytes, *, icao_from_url: bool = True
) -> list[Airport]:
    """Decode a response body into airports, preserving element order.

    Parameters
    ----------
    body: str | bytes
        Raw response body, expected to hold a JSON array of airport objects.
    icao_from_url: bool
        When true (default) the ``icao`` attribute is taken from ``url``.

    Returns
    -------
    list[Airport]
        One record per array element.

    Raises
    ------
    DecodeError
        On invalid JSON, a non-array root, a bad element, or a repeated code.
    """
    try:
        data = json.loads(body)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise DecodeError(f"expected JSON array, got {type(data).__name__}")

    out: list[Airport] = []
    seen: set[str] = set()
    for i, item in enumerate(data):
        ap = decode_airport(item, i, icao_from_url=icao_from_url)
        if ap.code in seen:
            raise DecodeError(
                f"duplicate code {ap.code!r}", index=i, field="code"
            )
        seen.add(ap.code)
        out.append(ap)
    return out
