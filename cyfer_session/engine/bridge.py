"""
LocalCommandBridge — in-process CommandBridge over a VaultStore.

Store operations are blocking (Argon2id and file I/O), so each call runs in
a worker thread. Engine failures are translated into ``BackendError``;
a wrong password on ``verify_password`` is ``False``.
"""
import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from ..bridge import CommandBridge, coerce_service_names
from ..exceptions import BackendError
from ..models import SecretBundle
from .store import EngineError, VaultStore

logger = logging.getLogger("cyfer.bridge")

T = TypeVar("T")


class LocalCommandBridge(CommandBridge):
    """CommandBridge backed by a VaultStore on the local filesystem."""

    def __init__(self, store: VaultStore):
        self.store = store

    def __repr__(self) -> str:
        return f"<LocalCommandBridge {self.store!r}>"

    async def _run(self, command: str, func: Callable[..., T], *args: Any) -> T:
        logger.debug("Engine call: %s", command)
        try:
            return await asyncio.to_thread(func, *args)
        except EngineError as err:
            raise BackendError(str(err)) from err
        except OSError as err:
            raise BackendError(f"{command} failed: {err}") from err

    async def vault_exists(self) -> bool:
        return await self._run("check_if_vault_exists", self.store.exists)

    async def create_vault(self, master_password: str) -> None:
        await self._run("create_vault", self.store.init, master_password)

    async def verify_password(self, master_password: str) -> bool:
        return await self._run(
            "is_correct_password", self.store.check_password, master_password,
        )

    async def list_services(self, master_password: str) -> frozenset[str]:
        names = await self._run(
            "list_services", self.store.list_services, master_password,
        )
        return coerce_service_names(names)

    async def get_service(self, master_password: str, service: str) -> SecretBundle:
        return await self._run(
            "get_service", self.store.get_service, master_password, service,
        )

    async def add_service(
        self, master_password: str, service: str, secret_bundle: SecretBundle
    ) -> None:
        await self._run(
            "add_service", self.store.add_service,
            master_password, service, secret_bundle,
        )

    async def delete_service(self, master_password: str, service: str) -> None:
        await self._run(
            "delete_service", self.store.delete_service, master_password, service,
        )
