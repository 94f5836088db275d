"""Opaque keyset cursor tokens.

The cursor encodes the last returned row's sort value and id, so the next
page starts strictly after it even when rows are inserted concurrently.

Token format: url-safe base64 without padding over compact JSON
{"v": <sort value>, "t": <type tag>, "id": <id>}. Datetimes are tagged
"dt" and restored as datetime objects; other values keep their JSON type.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import orjson

from enterprise_perf.errors import InvalidCursorError

MAX_CURSOR_LENGTH = 2048

_DATETIME = "dt"
_JSON = "json"

# Sort values a position may hold besides datetimes and null
_SCALARS = (str, int, float, bool)


@dataclass(frozen=True)
class CursorData:
    """Decoded cursor position."""

    value: Any
    id: Any


def encode_cursor(value: Any, id: Any) -> str:
    """Encode the position of the last row on a page."""
    if isinstance(value, datetime):
        data = {"v": value.isoformat(), "t": _DATETIME, "id": id}
    else:
        data = {"v": value, "t": _JSON, "id": id}
    json_bytes = orjson.dumps(data, default=str)
    return base64.urlsafe_b64encode(json_bytes).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> CursorData:
    """Decode a cursor token.

    Raises:
        InvalidCursorError: If the token is not one this module produced
    """
    if not cursor or len(cursor) > MAX_CURSOR_LENGTH:
        raise InvalidCursorError(cursor, "cursor is empty or too long")

    try:
        padded = cursor + "=" * ((4 - len(cursor) % 4) % 4)
        data = orjson.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeEncodeError, ValueError) as e:
        raise InvalidCursorError(cursor) from e

    if not isinstance(data, dict) or "v" not in data or "id" not in data:
        raise InvalidCursorError(cursor, "missing position fields")

    value, entity_id = data["v"], data["id"]
    tag = data.get("t", _JSON)
    if tag == _DATETIME:
        try:
            value = datetime.fromisoformat(value)
        except (TypeError, ValueError) as e:
            raise InvalidCursorError(cursor, "bad timestamp") from e
    elif tag != _JSON:
        raise InvalidCursorError(cursor, f"unknown value type '{tag}'")
    elif not isinstance(value, _SCALARS) and value is not None:
        raise InvalidCursorError(cursor, "sort value must be a scalar")

    if isinstance(entity_id, bool) or not isinstance(entity_id, (str, int)):
        raise InvalidCursorError(cursor, "id must be a string or integer")

    return CursorData(value=value, id=entity_id)


def keyset_condition(
    position: CursorData,
    sort_field: str,
    id_field: str,
) -> dict[str, Any]:
    """Filter selecting rows strictly after a position in descending order.

    Null and missing sort values order last, so they follow every non-null
    position and only compare by id among themselves.
    """
    after_id = {id_field: {"$lt": position.id}}
    if position.value is None:
        return {"$and": [null_condition(sort_field), after_id]}
    return {
        "$or": [
            {sort_field: {"$lt": position.value}},
            {sort_field: position.value, **after_id},
            null_condition(sort_field),
        ]
    }


def null_condition(field: str) -> dict[str, Any]:
    return {"$or": [{field: None}, {field: {"$exists": False}}]}
