"""Local signing identity: key generation and all-or-nothing loading."""

from __future__ import annotations

import base64
import binascii
import hashlib
from typing import Any, Callable, Optional

from nacl.exceptions import CryptoError
from nacl.pwhash import argon2id
from nacl.secret import SecretBox
from nacl.signing import SigningKey
from nacl.utils import random as random_bytes

from mprdb.config import ClientConfig
from mprdb.errors import InvalidKeyMaterial, KeyContainerError, KeyUnavailable
from mprdb.keyring import KeyContainer, decode_public_key, encode_public_key, iso_now
from mprdb.logger import get_logger
from mprdb.types import GenerateKeyResult, JsonDict, KeyInfo

logger = get_logger(__name__)

KDF_NAME = "argon2id"

PassphraseProvider = Callable[[], str]


def key_id_for(public_key: bytes) -> str:
    return hashlib.sha256(public_key).digest()[:8].hex()


class SigningIdentity:
    """Our Ed25519 key. The secret half never leaves this object."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key
        self._public_key = bytes(signing_key.verify_key)
        self._key_id = key_id_for(self._public_key)

    @property
    def key_id(self) -> str:
        return self._key_id

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def public_key_text(self) -> str:
        return encode_public_key(self._public_key)

    def sign(self, data: bytes) -> bytes:
        return self._signing_key.sign(data).signature

    def __repr__(self) -> str:
        return f"SigningIdentity(key_id={self._key_id!r})"


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _secret_box(passphrase: str, salt: bytes, opslimit: int, memlimit: int) -> SecretBox:
    key = argon2id.kdf(
        SecretBox.KEY_SIZE,
        passphrase.encode("utf-8"),
        salt,
        opslimit=opslimit,
        memlimit=memlimit,
    )
    return SecretBox(key)


def _seal_seed(seed: bytes, passphrase: str) -> JsonDict:
    salt = random_bytes(argon2id.SALTBYTES)
    opslimit = argon2id.OPSLIMIT_INTERACTIVE
    memlimit = argon2id.MEMLIMIT_INTERACTIVE
    sealed = _secret_box(passphrase, salt, opslimit, memlimit).encrypt(seed)
    return JsonDict({
        "encryptedPrivateKey": _b64(bytes(sealed)),
        "kdf": {"name": KDF_NAME, "salt": _b64(salt), "opslimit": opslimit, "memlimit": memlimit},
    })


def _create_key_record(passphrase: str | None = None) -> JsonDict:
    signing_key = SigningKey.generate()
    public_key = bytes(signing_key.verify_key)
    record = JsonDict({
        "keyId": key_id_for(public_key),
        "publicKey": encode_public_key(public_key),
        "createdAt": iso_now(),
    })
    if passphrase:
        record.update(_seal_seed(bytes(signing_key), passphrase))
    else:
        record["privateKey"] = _b64(bytes(signing_key))
    return record


def generate_key(cert_file: str, passphrase: str | None = None) -> GenerateKeyResult:
    """
    Append a new key to the container at ``cert_file``.

    With a ``passphrase`` the seed is stored sealed with a key derived by
    argon2id; without one it is stored as plain base64.
    """
    container = KeyContainer(cert_file)
    record = _create_key_record(passphrase)
    container.append_key(record)
    logger.info("generated signing key %s in %s", record["keyId"], container.path)
    return GenerateKeyResult(
        key_id=str(record["keyId"]),
        public_key=str(record["publicKey"]),
        cert_file=str(container.path),
    )


def list_keys(cert_file: str) -> list[KeyInfo]:
    return [
        KeyInfo(
            key_id=str(item.get("keyId", "")),
            public_key=str(item.get("publicKey", "")),
            created_at=str(item.get("createdAt", "")),
            encrypted="encryptedPrivateKey" in item,
        )
        for item in KeyContainer(cert_file).read_keys()
    ]


def _select_key(keys: list[JsonDict], key_id: str | None, path: str) -> JsonDict:
    if key_id:
        for item in keys:
            if item.get("keyId") == key_id:
                return item
        raise KeyUnavailable(f"Key {key_id} not found in {path}")

    if len(keys) == 1:
        return keys[0]
    if not keys:
        raise KeyUnavailable(f"No signing key in {path}. Run `mprdb keygen` first.")
    ids = ", ".join(str(item.get("keyId")) for item in keys)
    raise KeyUnavailable(f"Multiple keys found ({ids}). Set one with `mprdb config --key-id`.")


def _b64decode(value: Any, what: str) -> bytes:
    try:
        return base64.b64decode(str(value), validate=True)
    except (binascii.Error, ValueError):
        raise KeyUnavailable(f"{what} is not valid base64")


def _open_seed(record: JsonDict, passphrase: Optional[PassphraseProvider]) -> bytes:
    key_id = record.get("keyId")
    kdf = record.get("kdf")
    if not isinstance(kdf, dict) or kdf.get("name") != KDF_NAME:
        raise KeyUnavailable(f"Key {key_id} has unsupported passphrase parameters")
    opslimit, memlimit = kdf.get("opslimit"), kdf.get("memlimit")
    if not isinstance(opslimit, int) or not isinstance(memlimit, int):
        raise KeyUnavailable(f"Key {key_id} has unsupported passphrase parameters")
    if passphrase is None:
        raise KeyUnavailable(f"Key {key_id} is protected by a passphrase")

    salt = _b64decode(kdf.get("salt", ""), "Key salt")
    sealed = _b64decode(record.get("encryptedPrivateKey", ""), "Encrypted private key")
    secret = passphrase()
    try:
        return _secret_box(secret, salt, opslimit, memlimit).decrypt(sealed)
    except (CryptoError, ValueError, TypeError):
        raise KeyUnavailable(f"Wrong passphrase for key {key_id}")


def load_signing_identity(
    config: ClientConfig,
    passphrase: Optional[PassphraseProvider] = None,
) -> SigningIdentity:
    """
    Load the configured key. ``passphrase`` is only called when the selected
    key is sealed.
    """
    container = KeyContainer(config.cert_file)
    if not container.exists():
        raise KeyUnavailable(f"Key container not found at {config.cert_file}")

    try:
        keys = container.read_keys()
    except (KeyContainerError, OSError) as error:
        raise KeyUnavailable(str(error))

    record = _select_key(keys, config.key_id, config.cert_file)

    if "encryptedPrivateKey" in record:
        seed = _open_seed(record, passphrase)
    else:
        seed = _b64decode(record.get("privateKey", ""), "Private key")
    if len(seed) != 32:
        raise KeyUnavailable("Invalid private key length")

    identity = SigningIdentity(SigningKey(seed))

    try:
        stored_public = decode_public_key(str(record.get("publicKey", "")))
    except InvalidKeyMaterial as error:
        raise KeyUnavailable(str(error))
    if stored_public != identity.public_key:
        raise KeyUnavailable("Public key mismatch in key container")
    if record.get("keyId") != identity.key_id:
        raise KeyUnavailable("Key id does not match public key")

    return identity
