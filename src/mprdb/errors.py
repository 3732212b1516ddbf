"""
Exception types for the mprdb client.

Verification outcomes (unknown signer, bad signature, malformed record) are
not exceptions; see ``mprdb.types.Verdict``.
"""

from __future__ import annotations


class MprdbError(Exception):
    """Base class for every error surfaced to the operator."""


class KeyUnavailable(MprdbError):
    """Raised when no usable signing key can be loaded."""


class InvalidKeyMaterial(MprdbError):
    """Raised when public key bytes cannot be decoded as an Ed25519 key."""


class MalformedRecord(MprdbError):
    """Raised when a statement cannot be canonicalized."""


class PersistenceFailure(MprdbError):
    """Raised when a trust store write-through fails; the mutation was rolled back."""


class KeyContainerError(MprdbError):
    """Raised when the key container file cannot be read."""


class ConfigMissing(MprdbError):
    """Raised when a required configuration value is unset."""

    def __init__(self, name: str):
        super().__init__(f"missing configuration: {name}")
        self.name = name


class RegistryError(MprdbError):
    """Raised when the registry rejects a request or cannot be reached."""

    def __init__(self, status: int | None, reason: str):
        prefix = f"registry error ({status})" if status is not None else "registry unreachable"
        super().__init__(f"{prefix}: {reason}")
        self.status = status
        self.reason = reason


class Conflict(RegistryError):
    """Raised when the registry reports a duplicate registration."""
