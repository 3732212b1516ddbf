"""Trusted peer keys keyed by (server uuid, key id)."""

from __future__ import annotations

import threading

from nacl.signing import VerifyKey

from mprdb.errors import InvalidKeyMaterial, PersistenceFailure
from mprdb.keyring import KeyContainer
from mprdb.logger import get_logger
from mprdb.types import RemoveResult, TrustEntry

logger = get_logger(__name__)

EntryKey = tuple[str, str]


def _check_public_key(public_key: bytes) -> bytes:
    if not isinstance(public_key, bytes):
        raise InvalidKeyMaterial("Public key must be bytes")
    try:
        VerifyKey(public_key)
    except (TypeError, ValueError) as error:
        raise InvalidKeyMaterial(f"Public key is not a valid Ed25519 key: {error}")
    return public_key


class TrustStore:
    """
    In-memory view of the peers section of a key container.

    Mutations write the whole peer list back to the container before
    returning. If that write fails the previous entries are restored and
    ``PersistenceFailure`` is raised.
    """

    def __init__(self, container: KeyContainer, entries: list[TrustEntry] | None = None):
        self._container = container
        self._entries: dict[EntryKey, TrustEntry] = {}
        self._lock = threading.Lock()
        for entry in entries or []:
            self._entries[(entry.server_uuid, entry.key_id)] = entry

    @classmethod
    def load(cls, container: KeyContainer) -> "TrustStore":
        return cls(container, container.read_peers())

    def _commit(self, previous: dict[EntryKey, TrustEntry]) -> None:
        try:
            self._container.write_peers(list(self._entries.values()))
        except Exception as error:
            self._entries = previous
            logger.error("trust store write to %s failed, rolled back: %s", self._container.path, error)
            if isinstance(error, PersistenceFailure):
                raise
            raise PersistenceFailure(f"Failed to write trust store to {self._container.path}: {error}")

    def add(
        self,
        server_uuid: str,
        key_id: str,
        public_key: bytes,
        name: str,
        trust_level: int,
    ) -> TrustEntry:
        if not server_uuid or not key_id:
            raise ValueError("server_uuid and key_id are required")
        if isinstance(trust_level, bool) or not isinstance(trust_level, int) or trust_level < 0:
            raise ValueError(f"trust_level must be a non-negative integer, got {trust_level!r}")
        entry = TrustEntry(
            server_uuid=server_uuid,
            key_id=key_id,
            public_key=_check_public_key(public_key),
            name=name,
            trust_level=trust_level,
        )

        with self._lock:
            previous = dict(self._entries)
            self._entries[(server_uuid, key_id)] = entry
            self._commit(previous)

        logger.info("trusted %s/%s as %r (trust %d)", server_uuid, key_id, name, trust_level)
        return entry

    def remove(self, server_uuid: str, key_id: str) -> RemoveResult:
        with self._lock:
            if (server_uuid, key_id) not in self._entries:
                return RemoveResult.NOT_FOUND
            previous = dict(self._entries)
            del self._entries[(server_uuid, key_id)]
            self._commit(previous)

        logger.info("removed %s/%s from trust store", server_uuid, key_id)
        return RemoveResult.REMOVED

    def lookup(self, server_uuid: str, key_id: str) -> TrustEntry | None:
        return self._entries.get((server_uuid, key_id))

    def list_by_server(self, server_uuid: str) -> list[TrustEntry]:
        return [entry for entry in self._entries.values() if entry.server_uuid == server_uuid]

    def list_all(self) -> list[TrustEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
