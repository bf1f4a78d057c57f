"""Cyfer Engine — reference secrets engine behind the Command Bridge.

Security Note (Threat Model):
    The vault file holds only ciphertext, a random salt and KDF parameters.
    Keys are derived per call with Argon2id and zeroized afterwards, but
    decrypted bundles exist briefly in process memory as Python strings.
    A memory dump taken during a call could expose them. This is an
    accepted limitation of a pure-Python engine.
"""

from .bridge import LocalCommandBridge
from .crypto import EncRecord, KdfParams
from .store import (
    EngineError,
    IncorrectPasswordError,
    ServiceExistsError,
    ServiceNotFoundError,
    VaultExistsError,
    VaultNotFoundError,
    VaultStore,
)

__all__ = [
    "LocalCommandBridge",
    "EncRecord",
    "KdfParams",
    "EngineError",
    "IncorrectPasswordError",
    "ServiceExistsError",
    "ServiceNotFoundError",
    "VaultExistsError",
    "VaultNotFoundError",
    "VaultStore",
]
