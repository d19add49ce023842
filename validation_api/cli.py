"""Command line entry point for the validation API."""

from __future__ import annotations

import argparse
import ipaddress
import logging
import os
import sys
from typing import Optional, Sequence

import uvicorn

from validation_api.app import build_app
from validation_api.graphql import sdl
from validation_api.mcp import run_stdio
from validation_api.projection import ValidationProjection
from validation_api.rest import openapi_json

DEFAULT_ADDR = "0.0.0.0:8080"

log = logging.getLogger(__name__)


def _socket_addr(text: str) -> tuple[str, int]:
    """Parse ``ip:port`` or ``[ipv6]:port`` into ``(host, port)``."""
    host, sep, port_text = text.rpartition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"invalid socket address: {text!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        expected_version = 6
    else:
        expected_version = 4
    try:
        ip = ipaddress.ip_address(host)
        port = int(port_text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid socket address: {text!r}") from exc
    if ip.version != expected_version or not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"invalid socket address: {text!r}")
    return str(ip), port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="validation-api", description="AKEYLESS-VALIDATION-PLATFORM API"
    )
    sub = parser.add_subparsers(dest="cmd")
    serve = sub.add_parser("serve", help="Run the HTTP server.")
    serve.add_argument(
        "--addr",
        type=_socket_addr,
        default=os.environ.get("VALIDATION_API_ADDR", DEFAULT_ADDR),
        help="HTTP listen address (REST + WebSocket + MCP).",
    )
    sub.add_parser("mcp", help="Run as an MCP stdio server.")
    sub.add_parser("open-api", help="Print all REST routes as OpenAPI 3 JSON.")
    sub.add_parser("graphql-sdl", help="Print the GraphQL SDL.")
    return parser


def _serve(host: str, port: int) -> None:
    projection = ValidationProjection()
    log.info("no watchers attached; projection starts empty")
    app = build_app(projection)
    log.info("validation-api HTTP face ready on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    if args.cmd is None:
        _serve(*_socket_addr(DEFAULT_ADDR))
    elif args.cmd == "serve":
        _serve(*args.addr)
    elif args.cmd == "mcp":
        run_stdio()
    elif args.cmd == "open-api":
        print(openapi_json())
    elif args.cmd == "graphql-sdl":
        print(sdl())
    return 0


if __name__ == "__main__":
    sys.exit(main())