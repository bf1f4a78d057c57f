"""Shared fixtures: an in-memory CommandBridge that records every call."""
import asyncio
from typing import Optional

import pytest

from cyfer_session.bridge import CommandBridge
from cyfer_session.conf import SessionConfig
from cyfer_session.controller import VaultSessionController
from cyfer_session.exceptions import BackendError
from cyfer_session.models import SecretBundle

MASTER = "longenough1"


class FakeBridge(CommandBridge):
    """Dict-backed engine double.

    ``fail`` holds command names that should raise BackendError on their
    next invocations; ``gate`` optionally holds an asyncio.Event that calls
    wait on, so tests can keep a call in flight. When ``gated`` is set, only
    the commands it names wait on the gate.
    """

    def __init__(
        self,
        exists: bool = False,
        password: str = MASTER,
        entries: Optional[dict] = None,
    ):
        self.exists = exists
        self.password = password
        self.entries: dict[str, SecretBundle] = dict(entries or {})
        self.calls: list[str] = []
        self.fail: set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.gated: Optional[set[str]] = None

    async def _enter(self, command: str) -> None:
        self.calls.append(command)
        if self.gate is not None and (self.gated is None or command in self.gated):
            await self.gate.wait()
        if command in self.fail:
            raise BackendError(f"{command} failed")

    def _authorize(self, master_password: str) -> None:
        if master_password != self.password:
            raise BackendError("Incorrect master password")

    async def vault_exists(self) -> bool:
        await self._enter("exists")
        return self.exists

    async def create_vault(self, master_password: str) -> None:
        await self._enter("create")
        if self.exists:
            raise BackendError("Vault already exists")
        self.exists = True
        self.password = master_password

    async def verify_password(self, master_password: str) -> bool:
        await self._enter("verify")
        return master_password == self.password

    async def list_services(self, master_password: str) -> frozenset[str]:
        await self._enter("list")
        self._authorize(master_password)
        return frozenset(self.entries)

    async def get_service(self, master_password: str, service: str) -> SecretBundle:
        await self._enter("get")
        self._authorize(master_password)
        if service not in self.entries:
            raise BackendError(f"No such service: {service}")
        return self.entries[service]

    async def add_service(
        self, master_password: str, service: str, secret_bundle: SecretBundle
    ) -> None:
        await self._enter("add")
        self._authorize(master_password)
        if service in self.entries:
            raise BackendError(f"Service already exists: {service}")
        self.entries[service] = secret_bundle

    async def delete_service(self, master_password: str, service: str) -> None:
        await self._enter("delete")
        self._authorize(master_password)
        if self.entries.pop(service, None) is None:
            raise BackendError(f"No such service: {service}")


def github_bundle() -> SecretBundle:
    return SecretBundle(username="octocat", secret="hunter2", notes="2fa on")


@pytest.fixture
def bridge():
    """A fresh engine with no vault."""
    return FakeBridge()


@pytest.fixture
def populated_bridge():
    """An engine with an existing vault holding three services."""
    return FakeBridge(
        exists=True,
        entries={
            "GitHub": github_bundle(),
            "GitLab": SecretBundle(username="tanuki", secret="s3cret"),
            "Bank": SecretBundle(username="alice", secret="pin-1234"),
        },
    )


@pytest.fixture
def controller(bridge):
    return VaultSessionController(bridge)


async def unlocked(bridge: FakeBridge, config: Optional[SessionConfig] = None):
    """Return a controller with an open session over ``bridge``."""
    controller = VaultSessionController(bridge, config)
    assert (await controller.check_existence()).ok
    assert (await controller.unlock(MASTER)).ok
    bridge.calls.clear()
    return controller
