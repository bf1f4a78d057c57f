"""
VaultStore — the on-disk vault owned by the local secrets engine.

File layout (JSON)::

    {
      "salt_b64": "...",
      "kdf": {"m_cost_kib": 19456, "t_cost": 2, "p_cost": 1},
      "secrets": {"<service>": {"nonce_b64": "...", "ct_b64": "..."}},
      "verifier": {"nonce_b64": "...", "ct_b64": "..."}
    }

The verifier encrypts a constant marker; a master password is correct when
the verifier decrypts under its derived key. Every operation re-derives the
key and re-verifies the password; nothing is cached between calls.

Security Note:
    Never log passwords, keys, plaintext or ciphertext. Only log service
    names and the vault path.
"""
import os
import base64
import logging
import tempfile
import threading
from pathlib import Path
from typing import Optional

import orjson
from pydantic import BaseModel, Field

from .crypto import (
    CryptoError,
    EncRecord,
    KdfParams,
    decode_b64,
    decrypt,
    derive_key,
    deserialize_bundle,
    encrypt,
    generate_salt,
    serialize_bundle,
    zeroize,
)
from ..models import SecretBundle

logger = logging.getLogger("cyfer.engine")

VERIFIER_PLAINTEXT = b"vault-check"

# one writer lock per vault file, shared by every VaultStore on that path
_path_locks: dict[Path, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = path.resolve()
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.Lock())


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------

class EngineError(Exception):
    """Base class for secrets engine failures."""


class VaultExistsError(EngineError):
    pass


class VaultNotFoundError(EngineError):
    pass


class IncorrectPasswordError(EngineError):
    pass


class ServiceExistsError(EngineError):
    pass


class ServiceNotFoundError(EngineError):
    pass


class CorruptVaultError(EngineError):
    pass


class VaultFile(BaseModel):
    """Serialized vault document."""

    salt_b64: str
    kdf: KdfParams
    secrets: dict[str, EncRecord] = Field(default_factory=dict)
    verifier: EncRecord


class VaultStore:
    """File-backed encrypted vault.

    Args:
        path: Location of the vault JSON file.
        kdf: Argon2id parameters used when creating a new vault. Existing
            vaults always use the parameters stored in the file.
    """

    def __init__(self, path: Path, kdf: Optional[KdfParams] = None):
        self.path = Path(path)
        self._kdf = kdf or KdfParams()
        self._lock = _lock_for(self.path)

    def __repr__(self) -> str:
        return f"<VaultStore [{self.path}]>"

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> VaultFile:
        """Load and validate the vault file.

        Raises:
            VaultNotFoundError: If no vault file exists.
            CorruptVaultError: If the file cannot be parsed.
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError as err:
            raise VaultNotFoundError(f"No vault at {self.path}") from err
        try:
            return VaultFile.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValueError) as err:
            raise CorruptVaultError(f"Unreadable vault at {self.path}") from err

    def write(self, vault: VaultFile) -> None:
        """Write the vault atomically: unique temp file, fsync, rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = orjson.dumps(vault.model_dump(), option=orjson.OPT_INDENT_2)
        with tempfile.NamedTemporaryFile(
            dir=self.path.parent,
            prefix=f"{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as fp:
            tmp = Path(fp.name)
            try:
                fp.write(data)
                fp.flush()
                os.fsync(fp.fileno())
            except OSError:
                fp.close()
                tmp.unlink(missing_ok=True)
                raise
        try:
            os.replace(tmp, self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def _unlock_key(self, vault: VaultFile, master_password: str) -> bytearray:
        """Derive the vault key and check it against the verifier.

        Raises:
            IncorrectPasswordError: If the verifier does not decrypt.
        """
        try:
            salt = decode_b64(vault.salt_b64)
        except ValueError as err:
            raise CorruptVaultError("Vault salt is not valid base64") from err
        key = derive_key(master_password, salt, vault.kdf)
        try:
            check = decrypt(key, vault.verifier)
        except CryptoError as err:
            zeroize(key)
            raise IncorrectPasswordError("Incorrect master password") from err
        if check != VERIFIER_PLAINTEXT:
            zeroize(key)
            raise IncorrectPasswordError("Incorrect master password")
        return key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def init(self, master_password: str) -> VaultFile:
        """Create a new, empty vault protected by ``master_password``.

        Raises:
            VaultExistsError: If a vault file already exists.
        """
        with self._lock:
            if self.exists():
                raise VaultExistsError(f"Vault already exists at {self.path}")
            salt = generate_salt()
            key = derive_key(master_password, salt, self._kdf)
            try:
                verifier = encrypt(key, VERIFIER_PLAINTEXT)
            finally:
                zeroize(key)
            vault = VaultFile(
                salt_b64=base64.b64encode(salt).decode("ascii"),
                kdf=self._kdf,
                secrets={},
                verifier=verifier,
            )
            self.write(vault)
        logger.info("Vault initialized at %s", self.path)
        return vault

    def check_password(self, master_password: str) -> bool:
        """Return True if ``master_password`` opens the vault.

        Raises:
            VaultNotFoundError / CorruptVaultError: The vault cannot be read.
        """
        vault = self.read()
        try:
            key = self._unlock_key(vault, master_password)
        except IncorrectPasswordError:
            return False
        zeroize(key)
        return True

    def list_services(self, master_password: str) -> list[str]:
        vault = self.read()
        zeroize(self._unlock_key(vault, master_password))
        return list(vault.secrets.keys())

    def get_service(self, master_password: str, service: str) -> SecretBundle:
        """Decrypt and return the bundle stored under ``service``.

        Raises:
            ServiceNotFoundError: If the service is not in the vault.
        """
        vault = self.read()
        key = self._unlock_key(vault, master_password)
        try:
            record = vault.secrets.get(service)
            if record is None:
                raise ServiceNotFoundError(f"No such service: {service}")
            try:
                plaintext = bytearray(decrypt(key, record))
            except CryptoError as err:
                raise CorruptVaultError(f"Entry {service} cannot be decrypted") from err
            try:
                return deserialize_bundle(bytes(plaintext))
            except ValueError as err:
                raise CorruptVaultError(f"Entry {service} is malformed") from err
            finally:
                zeroize(plaintext)
        finally:
            zeroize(key)

    def add_service(
        self, master_password: str, service: str, bundle: SecretBundle,
    ) -> None:
        """Encrypt and store a new entry.

        The read, re-encryption and write run under the per-file lock, so
        concurrent writers never lose each other's entries.

        Raises:
            ServiceExistsError: If ``service`` is already stored.
        """
        if not service:
            raise EngineError("Service name cannot be empty")
        with self._lock:
            vault = self.read()
            key = self._unlock_key(vault, master_password)
            try:
                if service in vault.secrets:
                    raise ServiceExistsError(f"Service already exists: {service}")
                plaintext = bytearray(serialize_bundle(bundle))
                try:
                    vault.secrets[service] = encrypt(key, bytes(plaintext))
                finally:
                    zeroize(plaintext)
            finally:
                zeroize(key)
            self.write(vault)
        logger.debug("Engine add: service=%s", service)

    def delete_service(self, master_password: str, service: str) -> None:
        """Remove an entry.

        Raises:
            ServiceNotFoundError: If the service is not in the vault.
        """
        with self._lock:
            vault = self.read()
            zeroize(self._unlock_key(vault, master_password))
            if vault.secrets.pop(service, None) is None:
                raise ServiceNotFoundError(f"No such service: {service}")
            self.write(vault)
        logger.debug("Engine delete: service=%s", service)
