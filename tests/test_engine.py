"""
Tests for the reference secrets engine.

Tests cover:
- Crypto helpers (key derivation, record encryption)
- VaultStore lifecycle and file format
- LocalCommandBridge error translation and concurrent writers
- Full controller sessions against a real vault file
"""
import asyncio

import orjson
import pytest

from cyfer_session.controller import VaultSessionController
from cyfer_session.engine import (
    IncorrectPasswordError,
    KdfParams,
    LocalCommandBridge,
    ServiceExistsError,
    ServiceNotFoundError,
    VaultExistsError,
    VaultNotFoundError,
    VaultStore,
)
from cyfer_session.engine.crypto import (
    CryptoError,
    EncRecord,
    decrypt,
    derive_key,
    encrypt,
    generate_salt,
    zeroize,
)
from cyfer_session.engine.store import CorruptVaultError
from cyfer_session.exceptions import BackendError
from cyfer_session.models import ErrorKind, SecretBundle, SessionState, VaultExistence

# Fast Argon2id parameters for tests
FAST_KDF = KdfParams(m_cost_kib=8, t_cost=1, p_cost=1)
PASSWORD = "correct horse"


@pytest.fixture
def store(tmp_path):
    return VaultStore(tmp_path / "cyfer" / "vault.json", kdf=FAST_KDF)


@pytest.fixture
def ready_store(store):
    store.init(PASSWORD)
    store.add_service(PASSWORD, "GitHub", SecretBundle(username="octocat", secret="hunter2"))
    return store


class TestCrypto:
    """Tests for engine crypto helpers."""

    def test_derive_key_is_deterministic(self):
        salt = generate_salt()
        assert derive_key(PASSWORD, salt, FAST_KDF) == derive_key(PASSWORD, salt, FAST_KDF)
        assert len(derive_key(PASSWORD, salt, FAST_KDF)) == 32

    def test_salt_changes_key(self):
        assert derive_key(PASSWORD, generate_salt(), FAST_KDF) != derive_key(
            PASSWORD, generate_salt(), FAST_KDF,
        )

    def test_encrypt_decrypt(self):
        key = derive_key(PASSWORD, generate_salt(), FAST_KDF)
        record = encrypt(key, b"payload")
        assert decrypt(key, record) == b"payload"

    def test_nonce_is_random(self):
        key = derive_key(PASSWORD, generate_salt(), FAST_KDF)
        assert encrypt(key, b"x").nonce_b64 != encrypt(key, b"x").nonce_b64

    def test_wrong_key(self):
        salt = generate_salt()
        record = encrypt(derive_key(PASSWORD, salt, FAST_KDF), b"payload")
        with pytest.raises(CryptoError):
            decrypt(derive_key("wrong", salt, FAST_KDF), record)

    def test_malformed_record(self):
        key = derive_key(PASSWORD, generate_salt(), FAST_KDF)
        with pytest.raises(CryptoError):
            decrypt(key, EncRecord(nonce_b64="not base64!", ct_b64="AAAA"))

    def test_zeroize(self):
        buf = bytearray(b"secret")
        zeroize(buf)
        assert buf == bytearray(6)
        zeroize(None)


class TestVaultStore:
    """Tests for the file-backed vault."""

    def test_init_writes_file(self, store):
        assert not store.exists()
        store.init(PASSWORD)
        assert store.exists()
        document = orjson.loads(store.path.read_bytes())
        assert set(document) == {"salt_b64", "kdf", "secrets", "verifier"}
        assert document["secrets"] == {}
        assert document["kdf"] == {"m_cost_kib": 8, "t_cost": 1, "p_cost": 1}
        assert PASSWORD not in store.path.read_text()

    def test_init_twice(self, store):
        store.init(PASSWORD)
        with pytest.raises(VaultExistsError):
            store.init(PASSWORD)

    def test_no_temp_file_left(self, ready_store):
        assert list(ready_store.path.parent.iterdir()) == [ready_store.path]

    def test_check_password(self, ready_store):
        assert ready_store.check_password(PASSWORD) is True
        assert ready_store.check_password("wrong") is False

    def test_check_password_without_vault(self, store):
        with pytest.raises(VaultNotFoundError):
            store.check_password(PASSWORD)

    def test_get_service(self, ready_store):
        bundle = ready_store.get_service(PASSWORD, "GitHub")
        assert bundle.username == "octocat"
        assert bundle.secret == "hunter2"
        assert bundle.notes is None
        assert "hunter2" not in ready_store.path.read_text()

    def test_wrong_password_everywhere(self, ready_store):
        with pytest.raises(IncorrectPasswordError):
            ready_store.list_services("wrong")
        with pytest.raises(IncorrectPasswordError):
            ready_store.get_service("wrong", "GitHub")
        with pytest.raises(IncorrectPasswordError):
            ready_store.delete_service("wrong", "GitHub")

    def test_add_duplicate(self, ready_store):
        with pytest.raises(ServiceExistsError):
            ready_store.add_service(
                PASSWORD, "GitHub", SecretBundle(username="x", secret="y"),
            )

    def test_delete(self, ready_store):
        ready_store.delete_service(PASSWORD, "GitHub")
        assert ready_store.list_services(PASSWORD) == []
        with pytest.raises(ServiceNotFoundError):
            ready_store.delete_service(PASSWORD, "GitHub")

    def test_get_missing(self, ready_store):
        with pytest.raises(ServiceNotFoundError):
            ready_store.get_service(PASSWORD, "Nope")

    def test_corrupt_file(self, store):
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")
        with pytest.raises(CorruptVaultError):
            store.read()

    def test_existing_vault_keeps_its_kdf(self, ready_store):
        """Test a store opened with other defaults still reads the file's params."""
        reopened = VaultStore(ready_store.path)
        assert reopened.check_password(PASSWORD)


class TestLocalCommandBridge:
    """Tests for engine error translation."""

    @pytest.mark.asyncio
    async def test_verify_wrong_password_is_false(self, ready_store):
        bridge = LocalCommandBridge(ready_store)
        assert await bridge.verify_password(PASSWORD) is True
        assert await bridge.verify_password("wrong") is False

    @pytest.mark.asyncio
    async def test_verify_without_vault_is_backend_error(self, store):
        with pytest.raises(BackendError):
            await LocalCommandBridge(store).verify_password(PASSWORD)

    @pytest.mark.asyncio
    async def test_engine_errors_become_backend_errors(self, ready_store):
        bridge = LocalCommandBridge(ready_store)
        with pytest.raises(BackendError):
            await bridge.create_vault(PASSWORD)
        with pytest.raises(BackendError):
            await bridge.get_service(PASSWORD, "Nope")
        with pytest.raises(BackendError):
            await bridge.list_services("wrong")

    @pytest.mark.asyncio
    async def test_list_services(self, ready_store):
        names = await LocalCommandBridge(ready_store).list_services(PASSWORD)
        assert names == frozenset({"GitHub"})

    @pytest.mark.asyncio
    async def test_concurrent_adds_are_all_kept(self, ready_store):
        """Test parallel writers on one vault file never lose an entry."""
        bridge = LocalCommandBridge(ready_store)
        names = [f"svc{i}" for i in range(8)]
        await asyncio.gather(*(
            bridge.add_service(PASSWORD, name, SecretBundle(username="u", secret=name))
            for name in names
        ))
        assert await bridge.list_services(PASSWORD) == frozenset({"GitHub", *names})
        assert list(ready_store.path.parent.iterdir()) == [ready_store.path]

    @pytest.mark.asyncio
    async def test_concurrent_stores_share_the_file_lock(self, ready_store):
        """Test two store objects on the same path serialize their writes."""
        other = VaultStore(ready_store.path, kdf=FAST_KDF)
        await asyncio.gather(
            LocalCommandBridge(ready_store).add_service(
                PASSWORD, "Bank", SecretBundle(username="a", secret="b"),
            ),
            LocalCommandBridge(other).delete_service(PASSWORD, "GitHub"),
            LocalCommandBridge(other).add_service(
                PASSWORD, "Mail", SecretBundle(username="c", secret="d"),
            ),
        )
        assert set(ready_store.list_services(PASSWORD)) == {"Bank", "Mail"}


class TestControllerOnRealVault:
    """End-to-end sessions against a vault file."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store):
        controller = VaultSessionController(LocalCommandBridge(store))
        assert (await controller.check_existence()).value is VaultExistence.ABSENT
        assert (await controller.create_vault(PASSWORD, PASSWORD)).ok
        assert controller.services == frozenset()

        assert (await controller.add_service("GitHub", "octocat", "hunter2", "work")).ok
        assert (await controller.add_service("Bank", "alice", "pin")).ok
        assert controller.filter("git") == ("GitHub",)

        view = (await controller.select_service("GitHub")).value
        assert view.notes == "work"
        controller.toggle_reveal()
        assert view.display_secret == "hunter2"

        assert (await controller.delete_service("GitHub")).ok
        assert controller.services == {"Bank"}
        assert controller.view.selection is None

        controller.lock()
        assert controller.state is SessionState.LOCKED

        outcome = await controller.unlock("wrong password")
        assert outcome.error.kind is ErrorKind.INVALID_CREDENTIAL
        assert (await controller.unlock(PASSWORD)).ok
        assert controller.services == {"Bank"}

    @pytest.mark.asyncio
    async def test_fresh_controller_sees_existing_vault(self, ready_store):
        controller = VaultSessionController(LocalCommandBridge(ready_store))
        assert (await controller.check_existence()).value is VaultExistence.PRESENT
        assert (await controller.unlock(PASSWORD)).value == ("GitHub",)
