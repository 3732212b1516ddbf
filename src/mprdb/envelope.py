"""JSON wire form of signed statements exchanged with the registry."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from mprdb.canonical import kind_of
from mprdb.types import JsonDict, Recall, Record, Registration, ServerInfo, Statement, Unregistration


def _to_base64url(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).decode("ascii").rstrip("=")


def _from_base64url(value: str) -> bytes:
    pad = len(value) % 4
    padded = value if pad == 0 else value + ("=" * (4 - pad))
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _signature_from(value: Any) -> bytes | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return _from_base64url(value)
    except (binascii.Error, ValueError):
        return None


def statement_to_dict(statement: Statement) -> JsonDict:
    if statement.signature is None:
        raise ValueError("Statement is not signed")

    if isinstance(statement, Record):
        body: dict[str, Any] = {
            "server_uuid": statement.server_uuid,
            "key_id": statement.key_id,
            "player_uuid": statement.player_uuid,
            "points": statement.points,
            "timestamp": statement.timestamp,
            "comment": statement.comment,
        }
    elif isinstance(statement, Recall):
        body = {
            "server_uuid": statement.server_uuid,
            "key_id": statement.key_id,
            "submit_uuid": statement.submit_uuid,
            "timestamp": statement.timestamp,
            "comment": statement.comment,
        }
    elif isinstance(statement, Unregistration):
        body = {
            "server_uuid": statement.server_uuid,
            "key_id": statement.key_id,
            "timestamp": statement.timestamp,
            "comment": statement.comment,
        }
    elif isinstance(statement, Registration):
        body = {
            "server_name": statement.server_name,
            "key_id": statement.key_id,
            "public_key": statement.public_key,
            "timestamp": statement.timestamp,
        }
    else:
        raise ValueError(f"Unsupported statement type: {type(statement).__name__}")

    return JsonDict({
        "kind": kind_of(statement),
        "content": body,
        "signature": _to_base64url(statement.signature),
    })


def record_from_dict(value: dict) -> Record:
    """
    Build a ``Record`` from a registry response item.

    Field values are passed through without coercion: a record with missing
    or mistyped fields is returned as-is and the verifier reports it as
    malformed.
    """
    content = value.get("content")
    if not isinstance(content, dict):
        content = {}
    submit_uuid = value.get("uuid") or value.get("submit_uuid")
    return Record(
        server_uuid=content.get("server_uuid"),
        key_id=content.get("key_id"),
        player_uuid=content.get("player_uuid"),
        points=content.get("points"),
        timestamp=content.get("timestamp"),
        comment=content.get("comment"),
        submit_uuid=str(submit_uuid) if submit_uuid else None,
        signature=_signature_from(value.get("signature")),
    )


def record_to_display_dict(record: Record) -> JsonDict:
    return JsonDict({
        "submit_uuid": record.submit_uuid,
        "server_uuid": record.server_uuid,
        "key_id": record.key_id,
        "player_uuid": record.player_uuid,
        "points": record.points,
        "timestamp": record.timestamp,
        "comment": record.comment,
    })


def server_from_dict(value: dict) -> ServerInfo:
    return ServerInfo(
        server_uuid=str(value.get("uuid", "")),
        name=str(value.get("server_name", "")),
        public_key=str(value.get("public_key", "")),
        key_id=str(value.get("key_id", "")),
    )
