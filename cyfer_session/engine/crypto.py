"""
Engine Crypto Core — Key derivation, record encryption and serialization.

- Key derivation: Argon2id(master_password, salt) → 32-byte key
- Records: AES-256-GCM with a random 96-bit nonce → {nonce_b64, ct_b64}
- Bundles: orjson-encoded {username, secret, notes}

Security Note:
    Never log plaintext, keys or ciphertext values.
    Derived keys are returned as ``bytearray`` so callers can zeroize them.
"""
import os
import base64
import binascii
import logging
from typing import Optional

import orjson
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ConfigDict, Field

from ..conf import DEFAULT_KDF_M_COST, DEFAULT_KDF_P_COST, DEFAULT_KDF_T_COST
from ..models import SecretBundle

logger = logging.getLogger("cyfer.engine")

NONCE_SIZE = 12  # 96-bit nonce
SALT_SIZE = 16
KEY_LENGTH = 32  # AES-256


class CryptoError(Exception):
    """Decryption failed: wrong key or corrupted record."""


class KdfParams(BaseModel):
    """Argon2id cost parameters stored alongside the vault."""

    m_cost_kib: int = Field(default=DEFAULT_KDF_M_COST, ge=8)
    t_cost: int = Field(default=DEFAULT_KDF_T_COST, ge=1)
    p_cost: int = Field(default=DEFAULT_KDF_P_COST, ge=1)

    model_config = ConfigDict(frozen=True)


class EncRecord(BaseModel):
    """One encrypted blob as stored in the vault file."""

    nonce_b64: str
    ct_b64: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    return os.urandom(SALT_SIZE)


def derive_key(master_password: str, salt: bytes, kdf: KdfParams) -> bytearray:
    """Derive a 32-byte encryption key using Argon2id.

    Args:
        master_password: User-supplied master password.
        salt: Per-vault random salt.
        kdf: Argon2id cost parameters.

    Returns:
        32-byte derived key in a mutable buffer.
    """
    raw = hash_secret_raw(
        secret=master_password.encode("utf-8"),
        salt=salt,
        time_cost=kdf.t_cost,
        memory_cost=kdf.m_cost_kib,
        parallelism=kdf.p_cost,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )
    return bytearray(raw)


def zeroize(buf: Optional[bytearray]) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0


# ---------------------------------------------------------------------------
# Record encryption
# ---------------------------------------------------------------------------

def encrypt(key: bytearray, plaintext: bytes) -> EncRecord:
    """Encrypt plaintext under ``key``.

    Args:
        key: 32-byte derived key.
        plaintext: Data to encrypt.

    Returns:
        EncRecord with base64 nonce and ciphertext (payload + GCM tag).
    """
    cipher = AESGCM(bytes(key))
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext, None)
    return EncRecord(
        nonce_b64=base64.b64encode(nonce).decode("ascii"),
        ct_b64=base64.b64encode(ct).decode("ascii"),
    )


def decrypt(key: bytearray, record: EncRecord) -> bytes:
    """Decrypt an EncRecord.

    Raises:
        CryptoError: Wrong password or corrupted record.
    """
    try:
        nonce = decode_b64(record.nonce_b64)
        ct = decode_b64(record.ct_b64)
    except ValueError as err:
        raise CryptoError("Malformed encrypted record") from err
    if len(nonce) != NONCE_SIZE:
        raise CryptoError(
            f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}"
        )
    cipher = AESGCM(bytes(key))
    try:
        return cipher.decrypt(nonce, ct, None)
    except InvalidTag as err:
        raise CryptoError(
            "Decryption failed (wrong password or corrupted vault)"
        ) from err


def decode_b64(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as err:
        raise ValueError("Invalid base64 data") from err


# ---------------------------------------------------------------------------
# Bundle serialization
# ---------------------------------------------------------------------------

def serialize_bundle(bundle: SecretBundle) -> bytes:
    """Serialize a SecretBundle to bytes for encryption."""
    return orjson.dumps(bundle.model_dump())


def deserialize_bundle(data: bytes) -> SecretBundle:
    """Deserialize bytes produced by serialize_bundle."""
    return SecretBundle.model_validate(orjson.loads(data))
