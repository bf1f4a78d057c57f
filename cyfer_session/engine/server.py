"""
Engine HTTP server — exposes a CommandBridge over the JSON wire envelope.

Routes:
    POST /commands/{command}   body: {"masterPassword", "service", "secretBundle"}
    GET  /health

Replies are ``{"ok": true, "result": ...}`` on success and
``{"ok": false, "error": "..."}`` with a 4xx/5xx status on failure.

Security Note:
    The server is meant to listen on loopback only. Request bodies carry the
    master password and are never logged.
"""
import logging
from typing import Any

import orjson
from aiohttp import web

from ..bridge import (
    CMD_ADD,
    CMD_CREATE,
    CMD_DELETE,
    CMD_EXISTS,
    CMD_GET,
    CMD_LIST,
    CMD_VERIFY,
    COMMANDS,
    CommandBridge,
)
from ..exceptions import BackendError
from ..models import SecretBundle

logger = logging.getLogger("cyfer.engine")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8470

BRIDGE_KEY = web.AppKey("bridge", CommandBridge)


def _reply(payload: dict, status: int = 200) -> web.Response:
    return web.json_response(
        payload, status=status, dumps=lambda obj: orjson.dumps(obj).decode("utf-8"),
    )


def _require_str(body: dict, field: str) -> str:
    value = body.get(field)
    if not isinstance(value, str) or not value:
        raise web.HTTPBadRequest(
            text=orjson.dumps({"ok": False, "error": f"{field} is required"}).decode(),
            content_type="application/json",
        )
    return value


async def _dispatch(bridge: CommandBridge, command: str, body: dict) -> Any:
    if command == CMD_EXISTS:
        return await bridge.vault_exists()
    password = _require_str(body, "masterPassword")
    if command == CMD_CREATE:
        await bridge.create_vault(password)
        return True
    if command == CMD_VERIFY:
        return await bridge.verify_password(password)
    if command == CMD_LIST:
        return sorted(await bridge.list_services(password))
    service = _require_str(body, "service")
    if command == CMD_GET:
        bundle = await bridge.get_service(password, service)
        return bundle.model_dump()
    if command == CMD_DELETE:
        await bridge.delete_service(password, service)
        return True
    if command == CMD_ADD:
        try:
            bundle = SecretBundle.model_validate(body.get("secretBundle"))
        except ValueError:
            raise web.HTTPBadRequest(
                text=orjson.dumps(
                    {"ok": False, "error": "secretBundle is invalid"}
                ).decode(),
                content_type="application/json",
            ) from None
        await bridge.add_service(password, service, bundle)
        return True
    raise web.HTTPNotFound()


async def handle_command(request: web.Request) -> web.Response:
    command = request.match_info["command"]
    if command not in COMMANDS:
        return _reply({"ok": False, "error": f"Unknown command: {command}"}, status=404)
    raw = await request.read()
    try:
        body = orjson.loads(raw) if raw else {}
    except orjson.JSONDecodeError:
        return _reply({"ok": False, "error": "Request body is not JSON"}, status=400)
    if not isinstance(body, dict):
        return _reply({"ok": False, "error": "Request body must be an object"}, status=400)
    bridge = request.app[BRIDGE_KEY]
    try:
        result = await _dispatch(bridge, command, body)
    except BackendError as err:
        logger.warning("Command %s failed: %s", command, err)
        return _reply({"ok": False, "error": str(err)}, status=422)
    return _reply({"ok": True, "result": result})


async def handle_health(request: web.Request) -> web.Response:
    return _reply({"ok": True, "result": "healthy"})


def create_app(bridge: CommandBridge) -> web.Application:
    """Build the engine application around ``bridge``."""
    app = web.Application()
    app[BRIDGE_KEY] = bridge
    app.router.add_post("/commands/{command}", handle_command)
    app.router.add_get("/health", handle_health)
    return app


def run_server(
    bridge: CommandBridge, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
) -> None:
    """Serve the engine until interrupted."""
    logger.info("Starting engine server on %s:%d", host, port)
    web.run_app(create_app(bridge), host=host, port=port, print=None)
