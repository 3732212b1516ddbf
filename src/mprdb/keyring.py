"""Key container: one JSON file holding our signing keys and trusted peer keys."""

from __future__ import annotations

import base64
import binascii
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from mprdb.errors import InvalidKeyMaterial, KeyContainerError
from mprdb.types import JsonDict, TrustEntry

CONTAINER_VERSION = 1
PUBLIC_KEY_PREFIX = "ed25519:"


def iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def encode_public_key(public_key: bytes) -> str:
    return PUBLIC_KEY_PREFIX + base64.b64encode(public_key).decode("ascii")


def decode_public_key(value: str) -> bytes:
    value = value.strip()
    if not value.startswith(PUBLIC_KEY_PREFIX):
        raise InvalidKeyMaterial(f"Public key must start with '{PUBLIC_KEY_PREFIX}'")
    try:
        return base64.b64decode(value.removeprefix(PUBLIC_KEY_PREFIX), validate=True)
    except (binascii.Error, ValueError) as error:
        raise InvalidKeyMaterial(f"Public key is not valid base64: {error}")


def _peer_to_dict(entry: TrustEntry) -> JsonDict:
    return JsonDict({
        "serverUuid": entry.server_uuid,
        "keyId": entry.key_id,
        "publicKey": encode_public_key(entry.public_key),
        "name": entry.name,
        "trustLevel": entry.trust_level,
    })


def _peer_from_dict(value: dict) -> TrustEntry:
    return TrustEntry(
        server_uuid=str(value["serverUuid"]),
        key_id=str(value["keyId"]),
        public_key=decode_public_key(str(value["publicKey"])),
        name=str(value.get("name", "")),
        trust_level=int(value.get("trustLevel", 0)),
    )


class KeyContainer:
    """
    Durable storage for key material.

    Layout::

        {"version": 1, "keys": [...], "peers": [...]}

    Every write replaces the file atomically (temp file + ``os.replace``) so a
    failed write never leaves a truncated container behind.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> JsonDict:
        if not self.path.exists():
            return JsonDict({"version": CONTAINER_VERSION, "keys": [], "peers": []})

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as error:
            raise KeyContainerError(f"Failed to parse key container {self.path}: {error}")

        if not isinstance(raw, dict):
            raise KeyContainerError(f"Key container {self.path} is invalid")
        version = raw.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise KeyContainerError(f"Key container {self.path} has no valid version")
        if version != CONTAINER_VERSION:
            raise KeyContainerError(f"Unsupported key container version: {version}")

        raw.setdefault("keys", [])
        raw.setdefault("peers", [])
        if not isinstance(raw["keys"], list) or not isinstance(raw["peers"], list):
            raise KeyContainerError(f"Key container {self.path} is invalid")
        return JsonDict(raw)

    def write(self, document: JsonDict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".keyring-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(document, indent=2) + "\n")
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def read_keys(self) -> list[JsonDict]:
        return [JsonDict(item) for item in self.read()["keys"] if isinstance(item, dict)]

    def append_key(self, key_record: JsonDict) -> None:
        document = self.read()
        document["keys"].append(key_record)
        self.write(document)

    def read_peers(self) -> list[TrustEntry]:
        entries: list[TrustEntry] = []
        for item in self.read()["peers"]:
            try:
                entries.append(_peer_from_dict(item))
            except (KeyError, TypeError, ValueError, InvalidKeyMaterial) as error:
                raise KeyContainerError(f"Invalid peer entry in {self.path}: {error}")
        return entries

    def write_peers(self, entries: list[TrustEntry]) -> None:
        document = self.read()
        document["peers"] = [_peer_to_dict(entry) for entry in entries]
        self.write(document)
