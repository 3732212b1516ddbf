"""mprdb: signed ban records, a local trust store, and a registry client."""

from mprdb.batch import BanListItem, BatchSummary, import_banlist, load_banlist, run_batch
from mprdb.builder import StatementBuilder
from mprdb.canonical import encode, kind_of
from mprdb.config import ClientConfig, load_config, save_config, update_config
from mprdb.errors import (
    ConfigMissing,
    Conflict,
    InvalidKeyMaterial,
    KeyContainerError,
    KeyUnavailable,
    MalformedRecord,
    MprdbError,
    PersistenceFailure,
    RegistryError,
)
from mprdb.identity import (
    SigningIdentity,
    generate_key,
    key_id_for,
    list_keys,
    load_signing_identity,
)
from mprdb.journal import SubmissionJournal
from mprdb.keyring import KeyContainer, decode_public_key, encode_public_key
from mprdb.registry import RegistryClient
from mprdb.trust_store import TrustStore
from mprdb.types import (
    Recall,
    Record,
    Registration,
    RemoveResult,
    TrustEntry,
    Unregistration,
    VerificationResult,
    Verdict,
)
from mprdb.verifier import verify, verify_all

__all__ = [
    "BanListItem",
    "BatchSummary",
    "ClientConfig",
    "ConfigMissing",
    "Conflict",
    "InvalidKeyMaterial",
    "KeyContainer",
    "KeyContainerError",
    "KeyUnavailable",
    "MalformedRecord",
    "MprdbError",
    "PersistenceFailure",
    "Recall",
    "Record",
    "Registration",
    "RegistryClient",
    "RegistryError",
    "RemoveResult",
    "SigningIdentity",
    "StatementBuilder",
    "SubmissionJournal",
    "TrustEntry",
    "TrustStore",
    "Unregistration",
    "VerificationResult",
    "Verdict",
    "decode_public_key",
    "encode",
    "encode_public_key",
    "generate_key",
    "import_banlist",
    "key_id_for",
    "kind_of",
    "list_keys",
    "load_banlist",
    "load_config",
    "load_signing_identity",
    "run_batch",
    "save_config",
    "update_config",
    "verify",
    "verify_all",
]

__version__ = "0.1.0"
