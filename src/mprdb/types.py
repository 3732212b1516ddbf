"""Shared datatypes for the mprdb client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


@dataclass(frozen=True)
class TrustEntry:
    server_uuid: str
    key_id: str
    public_key: bytes
    name: str
    trust_level: int


@dataclass(frozen=True)
class Record:
    """A ban record. ``submit_uuid`` is assigned by the registry and never signed."""

    server_uuid: str
    key_id: str
    player_uuid: str
    points: int
    timestamp: int
    comment: str | None = None
    submit_uuid: str | None = None
    signature: bytes | None = None


@dataclass(frozen=True)
class Recall:
    server_uuid: str
    key_id: str
    submit_uuid: str
    timestamp: int
    comment: str | None = None
    signature: bytes | None = None


@dataclass(frozen=True)
class Unregistration:
    server_uuid: str
    key_id: str
    timestamp: int
    comment: str | None = None
    signature: bytes | None = None


@dataclass(frozen=True)
class Registration:
    server_name: str
    key_id: str
    public_key: str
    timestamp: int
    signature: bytes | None = None


Statement = Union[Record, Recall, Unregistration, Registration]


class Verdict(str, Enum):
    VALID = "valid"
    UNKNOWN_SIGNER = "unknown_signer"
    INVALID = "invalid"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class VerificationResult:
    verdict: Verdict
    trust_level: int | None = None
    entry: TrustEntry | None = None
    reason: str | None = None

    @property
    def valid(self) -> bool:
        return self.verdict is Verdict.VALID


class RemoveResult(str, Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class KeyInfo:
    key_id: str
    public_key: str
    created_at: str
    encrypted: bool = False


@dataclass(frozen=True)
class GenerateKeyResult:
    key_id: str
    public_key: str
    cert_file: str


@dataclass(frozen=True)
class ServerInfo:
    server_uuid: str
    name: str
    public_key: str
    key_id: str


class JsonDict(dict[str, Any]):
    """Typed alias for JSON dictionaries used in internal serialization."""
