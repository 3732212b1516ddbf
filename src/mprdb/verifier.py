"""Signature verification of inbound statements against the trust store."""

from __future__ import annotations

from typing import Iterable, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from mprdb.canonical import encode
from mprdb.errors import MalformedRecord
from mprdb.logger import get_logger
from mprdb.trust_store import TrustStore
from mprdb.types import Recall, Record, Unregistration, Verdict, VerificationResult

logger = get_logger(__name__)

Verifiable = Union[Record, Recall, Unregistration]


def verify(statement: Verifiable, trust_store: TrustStore) -> VerificationResult:
    if not isinstance(statement, (Record, Recall, Unregistration)):
        reason = f"Not a peer-signed statement: {type(statement).__name__}"
        logger.info("malformed statement: %s", reason)
        return VerificationResult(verdict=Verdict.MALFORMED, reason=reason)

    # MALFORMED takes precedence over UNKNOWN_SIGNER.
    try:
        payload = encode(statement)
    except MalformedRecord as error:
        logger.info("malformed statement: %s", error)
        return VerificationResult(verdict=Verdict.MALFORMED, reason=str(error))

    entry = trust_store.lookup(statement.server_uuid, statement.key_id)
    if entry is None:
        logger.info("unknown signer %s/%s", statement.server_uuid, statement.key_id)
        return VerificationResult(
            verdict=Verdict.UNKNOWN_SIGNER,
            reason=f"No trusted key {statement.key_id} for server {statement.server_uuid}",
        )

    signature = statement.signature
    if not signature:
        return VerificationResult(verdict=Verdict.INVALID, entry=entry, reason="Missing signature")

    try:
        VerifyKey(entry.public_key).verify(payload, signature)
    except (BadSignatureError, TypeError, ValueError) as error:
        logger.info("bad signature from %s/%s: %s", entry.server_uuid, entry.key_id, error)
        return VerificationResult(verdict=Verdict.INVALID, entry=entry, reason="Signature mismatch")

    return VerificationResult(verdict=Verdict.VALID, trust_level=entry.trust_level, entry=entry)


def verify_all(
    statements: Iterable[Verifiable],
    trust_store: TrustStore,
) -> list[tuple[Verifiable, VerificationResult]]:
    return [(statement, verify(statement, trust_store)) for statement in statements]
