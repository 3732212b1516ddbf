"""
Canonical byte encoding of signable statements.

Layout, one line per item, lines joined by ``\\n``::

    mprdb-record-v1
    server_uuid:36:2f1c...
    key_id:16:a1b2...
    ...

The first line is a per-kind tag. Each field is ``name:length:value`` where
``length`` is the byte length of the UTF-8 value, in a fixed order per kind.
Optional fields that are absent are left out; ``submit_uuid`` on a record and
every ``signature`` are never part of the encoding.
"""

from __future__ import annotations

from typing import Any, Callable

from mprdb.errors import MalformedRecord
from mprdb.types import Recall, Record, Registration, Statement, Unregistration

POINTS_MIN = -(2**31)
POINTS_MAX = 2**31 - 1
TIMESTAMP_MAX = 2**63 - 1


def _text(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedRecord(f"{name} must be a string")
    return value


def _identifier(name: str, value: Any) -> str:
    value = _text(name, value)
    if not value:
        raise MalformedRecord(f"{name} is required")
    return value


def _bounded_int(low: int, high: int) -> Callable[[str, Any], str]:
    def check(name: str, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedRecord(f"{name} must be an integer")
        if value < low or value > high:
            raise MalformedRecord(f"{name} out of range [{low}, {high}]: {value}")
        return str(value)

    return check


_points = _bounded_int(POINTS_MIN, POINTS_MAX)
_timestamp = _bounded_int(0, TIMESTAMP_MAX)

# (field, formatter, required)
_LAYOUTS: dict[type, tuple[str, tuple[tuple[str, Callable[[str, Any], str], bool], ...]]] = {
    Record: (
        "mprdb-record-v1",
        (
            ("server_uuid", _identifier, True),
            ("key_id", _identifier, True),
            ("player_uuid", _identifier, True),
            ("points", _points, True),
            ("timestamp", _timestamp, True),
            ("comment", _text, False),
        ),
    ),
    Recall: (
        "mprdb-recall-v1",
        (
            ("server_uuid", _identifier, True),
            ("key_id", _identifier, True),
            ("submit_uuid", _identifier, True),
            ("timestamp", _timestamp, True),
            ("comment", _text, False),
        ),
    ),
    Unregistration: (
        "mprdb-unregister-v1",
        (
            ("server_uuid", _identifier, True),
            ("key_id", _identifier, True),
            ("timestamp", _timestamp, True),
            ("comment", _text, False),
        ),
    ),
    Registration: (
        "mprdb-register-v1",
        (
            ("server_name", _identifier, True),
            ("key_id", _identifier, True),
            ("public_key", _identifier, True),
            ("timestamp", _timestamp, True),
        ),
    ),
}


def kind_of(statement: Statement) -> str:
    layout = _LAYOUTS.get(type(statement))
    if layout is None:
        raise MalformedRecord(f"Unsupported statement type: {type(statement).__name__}")
    return layout[0]


def encode(statement: Statement) -> bytes:
    layout = _LAYOUTS.get(type(statement))
    if layout is None:
        raise MalformedRecord(f"Unsupported statement type: {type(statement).__name__}")
    tag, fields = layout

    lines = [tag.encode("ascii")]
    for name, formatter, required in fields:
        value = getattr(statement, name, None)
        if value is None:
            if required:
                raise MalformedRecord(f"{name} is required")
            continue
        try:
            data = formatter(name, value).encode("utf-8")
        except UnicodeEncodeError as error:
            raise MalformedRecord(f"{name} is not encodable as UTF-8: {error}")
        lines.append(name.encode("ascii") + b":" + str(len(data)).encode("ascii") + b":" + data)
    return b"\n".join(lines)
