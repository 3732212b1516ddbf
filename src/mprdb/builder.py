"""Assembles and signs outgoing statements. Never talks to the registry."""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Callable, TypeVar

from mprdb.canonical import encode
from mprdb.errors import ConfigMissing
from mprdb.identity import SigningIdentity
from mprdb.types import Recall, Record, Registration, Unregistration

S = TypeVar("S", Record, Recall, Unregistration, Registration)


class StatementBuilder:
    def __init__(
        self,
        identity: SigningIdentity,
        server_uuid: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._identity = identity
        self._server_uuid = server_uuid
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _require_server_uuid(self) -> str:
        if not self._server_uuid:
            raise ConfigMissing("server_uuid")
        return self._server_uuid

    def _sign(self, statement: S) -> S:
        return replace(statement, signature=self._identity.sign(encode(statement)))

    def submission(self, player_uuid: str, points: int, comment: str | None = None) -> Record:
        return self._sign(Record(
            server_uuid=self._require_server_uuid(),
            key_id=self._identity.key_id,
            player_uuid=player_uuid,
            points=points,
            timestamp=self._now(),
            comment=comment,
        ))

    def recall(self, submit_uuid: str, comment: str | None = None) -> Recall:
        return self._sign(Recall(
            server_uuid=self._require_server_uuid(),
            key_id=self._identity.key_id,
            submit_uuid=submit_uuid,
            timestamp=self._now(),
            comment=comment,
        ))

    def unregistration(self, comment: str | None = None) -> Unregistration:
        return self._sign(Unregistration(
            server_uuid=self._require_server_uuid(),
            key_id=self._identity.key_id,
            timestamp=self._now(),
            comment=comment,
        ))

    def registration(self, server_name: str) -> Registration:
        return self._sign(Registration(
            server_name=server_name,
            key_id=self._identity.key_id,
            public_key=self._identity.public_key_text,
            timestamp=self._now(),
        ))

