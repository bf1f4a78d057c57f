"""
cyfer — command line client for a Cyfer vault.

Usage:
    cyfer init
    cyfer list
    cyfer get SERVICE [--show]
    cyfer add SERVICE
    cyfer del SERVICE [--yes]
    cyfer serve [--host HOST] [--port PORT]

Every vault command opens a session through ``VaultSessionController`` and
locks it again before exiting.
"""
import sys
import asyncio
import getpass
import logging
import argparse
from collections.abc import Callable
from pathlib import Path
from typing import Optional

from .bridge import CommandBridge, HttpCommandBridge
from .conf import EngineConfig, SessionConfig
from .controller import VaultSessionController
from .engine import KdfParams, LocalCommandBridge, VaultStore
from .engine.server import DEFAULT_HOST, DEFAULT_PORT, run_server
from .models import Outcome, VaultExistence
from .version import __version__

logger = logging.getLogger("cyfer.cli")

Prompt = Callable[[str], str]


class CommandFailed(Exception):
    """A CLI step failed; the message is shown to the user."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cyfer", description="Manage an encrypted password vault.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--vault", type=Path, help="Vault file (default: CYFER_VAULT_PATH)")
    parser.add_argument("--engine-url", help="Use a remote engine instead of a local vault file")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create a new vault")
    sub.add_parser("list", help="List stored services")

    get = sub.add_parser("get", help="Show one service")
    get.add_argument("service")
    get.add_argument("--show", action="store_true", help="Print the secret unmasked")

    add = sub.add_parser("add", help="Store a new service")
    add.add_argument("service")

    delete = sub.add_parser("del", help="Delete a service")
    delete.add_argument("service")
    delete.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    serve = sub.add_parser("serve", help="Expose the local vault over HTTP")
    serve.add_argument("--host", default=DEFAULT_HOST)
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    return parser


def _engine_config(args: argparse.Namespace) -> EngineConfig:
    config = EngineConfig.from_env()
    if args.vault is not None:
        config = config.model_copy(update={"vault_path": args.vault})
    return config


def local_bridge(config: EngineConfig) -> LocalCommandBridge:
    kdf = KdfParams(
        m_cost_kib=config.m_cost_kib, t_cost=config.t_cost, p_cost=config.p_cost,
    )
    return LocalCommandBridge(VaultStore(config.vault_path, kdf=kdf))


def make_bridge(
    args: argparse.Namespace, config: SessionConfig, engine_config: EngineConfig,
) -> CommandBridge:
    url = args.engine_url or config.engine_url
    if url:
        return HttpCommandBridge(url, timeout=config.bridge_timeout)
    return local_bridge(engine_config)


def _check(outcome: Outcome) -> Outcome:
    if not outcome.ok:
        raise CommandFailed(outcome.error.message)
    return outcome


async def _open(controller: VaultSessionController, prompt: Prompt) -> None:
    existence = _check(await controller.check_existence()).value
    if existence is not VaultExistence.PRESENT:
        raise CommandFailed("No vault found. Run `cyfer init` first.")
    _check(await controller.unlock(prompt("Enter master password: ")))


async def run_command(
    args: argparse.Namespace,
    controller: VaultSessionController,
    prompt: Optional[Prompt] = None,
    ask: Optional[Prompt] = None,
    out=None,
) -> None:
    """Execute one vault subcommand against ``controller``.

    Raises:
        CommandFailed: If any intent fails or the user aborts.
    """
    prompt = prompt or getpass.getpass
    ask = ask or input
    out = out or sys.stdout
    try:
        if args.command == "init":
            existence = _check(await controller.check_existence()).value
            if existence is VaultExistence.PRESENT:
                raise CommandFailed("Vault already initialized")
            password = prompt("Set master password: ")
            confirmation = prompt("Confirm master password: ")
            _check(await controller.create_vault(password, confirmation))
            print("Vault initialized", file=out)
            return

        await _open(controller, prompt)

        if args.command == "list":
            for name in controller.view.services:
                print(name, file=out)
        elif args.command == "get":
            view = _check(await controller.select_service(args.service)).value
            if args.show:
                controller.toggle_reveal()
            print(f"{view.username} , {view.display_secret}", file=out)
            if view.notes:
                print(view.notes, file=out)
        elif args.command == "add":
            username = ask("Enter username: ")
            secret = prompt("Enter secret: ")
            notes = ask("Enter notes: ")
            _check(await controller.add_service(args.service, username, secret, notes or None))
            print(f"Service added {args.service.strip()}", file=out)
        elif args.command == "del":
            if not args.yes:
                answer = ask(f"Delete {args.service}? [y/N]: ").strip().lower()
                if answer not in ("y", "yes"):
                    raise CommandFailed("Aborted")
            _check(await controller.delete_service(args.service))
            print(f"Service deleted {args.service}", file=out)
    finally:
        controller.lock()


async def _main_async(
    args: argparse.Namespace, config: SessionConfig, engine_config: EngineConfig,
) -> None:
    bridge = make_bridge(args, config, engine_config)
    try:
        await run_command(args, VaultSessionController(bridge, config))
    finally:
        await bridge.close()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = SessionConfig.from_env()
        engine_config = _engine_config(args)
    except ValueError as err:
        print(f"error: invalid configuration: {err}", file=sys.stderr)
        return 1
    if args.command == "serve":
        run_server(local_bridge(engine_config), host=args.host, port=args.port)
        return 0
    try:
        asyncio.run(_main_async(args, config, engine_config))
    except CommandFailed as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0
