"""
Command line interface: login, logout, status, start and set-project.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import socket
import sys
import time
from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import uvicorn
from fastapi import FastAPI

from gemini_proxy import __version__
from gemini_proxy.core.app.application_factory import build_app, create_http_client
from gemini_proxy.core.auth import oauth_flow
from gemini_proxy.core.auth.token_manager import TokenManager
from gemini_proxy.core.common.exceptions import ProxyError
from gemini_proxy.core.common.logging_utils import configure_logging, get_logger
from gemini_proxy.core.config.app_config import AppConfig, LogLevel, load_config
from gemini_proxy.core.persistence import CredentialStore

logger = logging.getLogger(__name__)

SEPARATOR = "=" * 55
NOT_AUTHENTICATED_MESSAGE = "Not authenticated. Run 'gemini-proxy login' first."


def is_port_in_use(host: str, port: int) -> bool:
    """Check if a port is in use on a given host."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((host, port)) == 0


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-proxy",
        description="OpenAI-compatible proxy for Google Gemini",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--config",
        dest="config_file",
        metavar="FILE",
        default=None,
        help="Path to a YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override the configured log level",
    )
    parser.add_argument(
        "--log-file", dest="log_file", default=None, help="Also write logs to FILE"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    login = subparsers.add_parser("login", help="Authenticate with Google")
    login.add_argument(
        "--no-browser",
        dest="open_browser",
        action="store_false",
        help="Print the authorization URL without opening a browser",
    )
    subparsers.add_parser("logout", help="Remove saved credentials")
    subparsers.add_parser("status", help="Check authentication status")

    start = subparsers.add_parser("start", help="Start the proxy server")
    start.add_argument("-p", "--port", type=int, default=None, help="Port to run on")
    start.add_argument("--host", default=None, help="Host to bind to")

    set_project = subparsers.add_parser(
        "set-project", help="Set a specific Google Cloud project ID"
    )
    set_project.add_argument("project_id", metavar="projectId")

    return parser


def parse_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_cli_parser().parse_args(argv)


def apply_cli_args(args: argparse.Namespace) -> AppConfig:
    """Load configuration and apply command line overrides."""
    cfg = load_config(args.config_file)
    updates: dict = {}
    if getattr(args, "host", None):
        updates["host"] = args.host
    if getattr(args, "port", None) is not None:
        updates["port"] = args.port
    logging_updates: dict = {}
    if args.log_level:
        logging_updates["level"] = LogLevel(args.log_level)
    if args.log_file:
        logging_updates["log_file"] = args.log_file
    if logging_updates:
        updates["logging"] = cfg.logging.model_copy(update=logging_updates)
    return cfg.model_copy(update=updates) if updates else cfg


def _configure_logging(cfg: AppConfig) -> None:
    configure_logging(
        level=cfg.logging.level.value,
        log_file=cfg.logging.log_file,
        secrets=[cfg.oauth.client_secret],
    )


def format_timestamp(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


def cmd_login(cfg: AppConfig, store: CredentialStore, args: argparse.Namespace) -> int:
    print("\nStarting OAuth flow for Gemini...\n")

    async def _run() -> None:
        async with create_http_client(cfg.backend) as client:
            credential = await oauth_flow.login(
                store,
                client,
                cfg.oauth,
                open_browser=getattr(args, "open_browser", True),
            )
        print(f"\n{SEPARATOR}")
        print("Authentication successful!")
        print(SEPARATOR)
        print(f"   Email: {credential.email or oauth_flow.UNKNOWN_EMAIL}")
        print(f"   Expires: {format_timestamp(credential.expires_at)}")
        print("\nYou can now start the proxy server:")
        print("   gemini-proxy start")
        print(f"{SEPARATOR}\n")

    asyncio.run(_run())
    return 0


def cmd_logout(cfg: AppConfig, store: CredentialStore, args: argparse.Namespace) -> int:
    if store.has_credential():
        store.set_credential(None)
        print("Logged out successfully")
    else:
        print("No authentication found")
    return 0


def cmd_status(cfg: AppConfig, store: CredentialStore, args: argparse.Namespace) -> int:
    credential = store.credential
    if credential is None:
        print(NOT_AUTHENTICATED_MESSAGE)
        return 0

    is_valid = time.time() < credential.expires_at
    print(f"\n{SEPARATOR}")
    print("Authentication Status")
    print(SEPARATOR)
    print(f"   Email: {credential.email or oauth_flow.UNKNOWN_EMAIL}")
    print(f"   Project ID: {store.project_id or 'auto-detected'}")
    print(f"   Expires: {format_timestamp(credential.expires_at)}")
    print(f"   Valid: {'Yes' if is_valid else 'No (expired)'}")
    print(f"{SEPARATOR}\n")
    return 0


def cmd_set_project(
    cfg: AppConfig, store: CredentialStore, args: argparse.Namespace
) -> int:
    store.set_project_id(args.project_id)
    print(f"Project ID set to: {args.project_id}")
    return 0


async def refresh_if_expired(cfg: AppConfig, store: CredentialStore) -> None:
    """Refresh the stored token before serving, if it is (nearly) expired."""
    credential = store.credential
    if credential is not None and credential.is_expired():
        print("Access token expired, refreshing...")
        async with create_http_client(cfg.backend) as client:
            await TokenManager(store, client, cfg.oauth).ensure_valid_token()


def cmd_start(
    cfg: AppConfig,
    store: CredentialStore,
    args: argparse.Namespace,
    build_app_fn: Callable[[AppConfig, CredentialStore], FastAPI] | None = None,
) -> int:
    if not store.has_credential():
        sys.stderr.write(f"ERROR: {NOT_AUTHENTICATED_MESSAGE}\n")
        return 1

    asyncio.run(refresh_if_expired(cfg, store))

    if is_port_in_use(cfg.host, cfg.port):
        error_msg = f"Port {cfg.port} is already in use."
        logger.error(error_msg)
        sys.stderr.write(f"\nERROR: {error_msg}\n")
        return 1

    app = (build_app_fn or _default_build_app)(cfg, store)
    get_logger(__name__).info("Starting proxy server", host=cfg.host, port=cfg.port)
    print(f"Gemini proxy listening on http://{cfg.host}:{cfg.port}")
    print(f"   OpenAI base URL: http://{cfg.host}:{cfg.port}/v1")
    uvicorn.run(
        app,
        host=cfg.host,
        port=cfg.port,
        log_level=cfg.logging.level.value.lower(),
    )
    return 0


def _default_build_app(cfg: AppConfig, store: CredentialStore) -> FastAPI:
    return build_app(cfg, store=store)


COMMANDS: dict[
    str, Callable[[AppConfig, CredentialStore, argparse.Namespace], int]
] = {
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "start": cmd_start,
    "set-project": cmd_set_project,
}


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``gemini-proxy`` console script."""
    args = parse_cli_args(argv)
    try:
        cfg = apply_cli_args(args)
        _configure_logging(cfg)
        store = CredentialStore(cfg.credentials_file)
        store.load()
        return COMMANDS[args.command](cfg, store, args)
    except ProxyError as e:
        logger.debug("Command failed", exc_info=True)
        sys.stderr.write(f"ERROR: {e.message}\n")
        return 1
    except httpx.HTTPError as e:
        sys.stderr.write(f"ERROR: network failure: {e}\n")
        return 1
    except KeyboardInterrupt:
        sys.stderr.write("\nInterrupted.\n")
        return 130


if __name__ == "__main__":
    sys.exit(main())
