"""
Command Bridge — the request/response contract with the secrets engine.

Every controller operation is exactly one bridge call. Implementations
either return the documented success value or raise ``BackendError``;
a wrong master password on ``verify_password`` is the boolean ``False``,
never an exception.

Wire envelope (``HttpCommandBridge``)::

    POST {base_url}/commands/{command}
    {"masterPassword": ..., "service": ..., "secretBundle": {...}}

    -> {"ok": true, "result": ...}
    -> {"ok": false, "error": "..."}

Security Note:
    Never log request bodies. Only command names and service names.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp
import orjson

from .exceptions import BackendError
from .models import SecretBundle

logger = logging.getLogger("cyfer.bridge")

# Command names on the wire
CMD_EXISTS = "check_if_vault_exists"
CMD_CREATE = "create_vault"
CMD_VERIFY = "is_correct_password"
CMD_LIST = "list_services"
CMD_GET = "get_service"
CMD_ADD = "add_service"
CMD_DELETE = "delete_service"

COMMANDS = frozenset({
    CMD_EXISTS, CMD_CREATE, CMD_VERIFY, CMD_LIST, CMD_GET, CMD_ADD, CMD_DELETE,
})


class CommandBridge(ABC):
    """Asynchronous channel to a secrets engine."""

    @abstractmethod
    async def vault_exists(self) -> bool:
        ...

    @abstractmethod
    async def create_vault(self, master_password: str) -> None:
        ...

    @abstractmethod
    async def verify_password(self, master_password: str) -> bool:
        ...

    @abstractmethod
    async def list_services(self, master_password: str) -> frozenset[str]:
        ...

    @abstractmethod
    async def get_service(self, master_password: str, service: str) -> SecretBundle:
        ...

    @abstractmethod
    async def add_service(
        self, master_password: str, service: str, secret_bundle: SecretBundle
    ) -> None:
        ...

    @abstractmethod
    async def delete_service(self, master_password: str, service: str) -> None:
        ...

    async def close(self) -> None:
        """Release any resources held by the bridge."""


def coerce_service_names(result: Any) -> frozenset[str]:
    """Validate a list-entries result into a set of service names.

    Raises:
        BackendError: If the result is not a list of non-empty strings.
    """
    if not isinstance(result, (list, tuple, set, frozenset)):
        raise BackendError("Engine returned a malformed service list")
    names = frozenset(result)
    if not all(isinstance(name, str) and name for name in names):
        raise BackendError("Engine returned an invalid service name")
    return names


class HttpCommandBridge(CommandBridge):
    """CommandBridge speaking JSON over HTTP to a remote engine.

    Example:
        >>> async with HttpCommandBridge("http://127.0.0.1:8470") as bridge:
        ...     await bridge.vault_exists()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _invoke(self, command: str, **payload: Any) -> Any:
        """POST one command and unwrap the reply envelope."""
        url = f"{self._base_url}/commands/{command}"
        session = await self._get_session()
        logger.debug("Bridge call: %s", command)
        try:
            async with session.post(
                url,
                data=orjson.dumps(payload),
                headers={"Content-Type": "application/json"},
            ) as response:
                status = response.status
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise BackendError(f"{command} failed: {err}") from err
        try:
            envelope = orjson.loads(body)
        except orjson.JSONDecodeError as err:
            raise BackendError(
                f"{command} returned an unreadable reply (HTTP {status})"
            ) from err
        if not isinstance(envelope, dict):
            raise BackendError(f"{command} returned a malformed reply")
        if not envelope.get("ok"):
            raise BackendError(
                envelope.get("error") or f"{command} failed with HTTP {status}"
            )
        return envelope.get("result")

    async def vault_exists(self) -> bool:
        result = await self._invoke(CMD_EXISTS)
        if not isinstance(result, bool):
            raise BackendError("Engine returned a non-boolean existence flag")
        return result

    async def create_vault(self, master_password: str) -> None:
        await self._invoke(CMD_CREATE, masterPassword=master_password)

    async def verify_password(self, master_password: str) -> bool:
        result = await self._invoke(CMD_VERIFY, masterPassword=master_password)
        if not isinstance(result, bool):
            raise BackendError("Engine returned a non-boolean verification")
        return result

    async def list_services(self, master_password: str) -> frozenset[str]:
        result = await self._invoke(CMD_LIST, masterPassword=master_password)
        return coerce_service_names(result)

    async def get_service(self, master_password: str, service: str) -> SecretBundle:
        result = await self._invoke(
            CMD_GET, masterPassword=master_password, service=service,
        )
        if not isinstance(result, dict):
            raise BackendError(f"Engine returned a malformed entry for {service}")
        try:
            return SecretBundle.model_validate(result)
        except ValueError as err:
            raise BackendError(
                f"Engine returned a malformed entry for {service}"
            ) from err

    async def add_service(
        self, master_password: str, service: str, secret_bundle: SecretBundle
    ) -> None:
        await self._invoke(
            CMD_ADD,
            masterPassword=master_password,
            service=service,
            secretBundle=secret_bundle.model_dump(),
        )

    async def delete_service(self, master_password: str, service: str) -> None:
        await self._invoke(
            CMD_DELETE, masterPassword=master_password, service=service,
        )

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "HttpCommandBridge":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
