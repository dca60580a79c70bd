"""Command line entry point: ``junctionsync serve|watch|publish``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from junctionsync.config import ServerConfig, SyncConfig
from junctionsync.engine import SyncEngine
from junctionsync.exceptions import SyncError
from junctionsync.models.state import StateDocument
from junctionsync.server.app import run_server
from junctionsync.state.events import ConnectionStatus


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="junctionsync",
        description="Shared junction state: endpoint and participant tools.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the authoritative endpoint")
    serve.add_argument("--host", help="Bind address")
    serve.add_argument("--port", type=int, help="Listen port")
    serve.add_argument("--persistence", help="volatile or file")
    serve.add_argument("--state-file", help="JSON file for the file backend")
    serve.add_argument("--environment", help="Environment name reported by the health check")

    for name, help_text in (
        ("watch", "Follow the shared document and print every adopted version"),
        ("publish", "Merge a JSON edit into the shared document"),
    ):
        participant = sub.add_parser(name, help=help_text)
        participant.add_argument("--base-url", help="Endpoint root URL")
        participant.add_argument("--client-id", help="Participant id stamped on writes")
        if name == "watch":
            participant.add_argument("--method", help="polling, websocket or sse")
            participant.add_argument("--interval-ms", type=int, help="Polling interval in milliseconds")
        else:
            participant.add_argument("edit", help='Top-level fields as JSON, e.g. \'{"controlMode":"manual"}\'')
    return parser


def _overrides(args: argparse.Namespace, mapping: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for attr, field_name in mapping.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides[field_name] = value
    return overrides


def _print_state(doc: StateDocument) -> None:
    print(json.dumps(doc.to_wire(), separators=(",", ":")), flush=True)


def _print_status(status: ConnectionStatus) -> None:
    print(f"# status: {status}", file=sys.stderr, flush=True)


async def _watch(config: SyncConfig) -> None:
    async with SyncEngine(config) as engine:
        engine.subscribe_status(_print_status)
        engine.subscribe(_print_state)
        await asyncio.Event().wait()


async def _publish(config: SyncConfig, edit: dict[str, Any]) -> int:
    async with SyncEngine(config) as engine:
        if not await engine.publish(edit):
            print("Publishing failed; see log for details", file=sys.stderr)
            return 1
        _print_state(engine.state)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "serve":
            overrides = _overrides(
                args,
                {
                    "host": "host",
                    "port": "port",
                    "persistence": "persistence",
                    "state_file": "state_file",
                    "environment": "environment",
                },
            )
            run_server(ServerConfig.from_env(**overrides))
            return 0

        overrides = _overrides(
            args,
            {
                "base_url": "base_url",
                "client_id": "client_id",
                "method": "method",
                "interval_ms": "polling_interval_ms",
            },
        )
        config = SyncConfig.from_env(**overrides)

        if args.command == "watch":
            asyncio.run(_watch(config))
            return 0

        try:
            edit = json.loads(args.edit)
        except json.JSONDecodeError as exc:
            print(f"Edit is not valid JSON: {exc}", file=sys.stderr)
            return 2
        if not isinstance(edit, dict):
            print("Edit must be a JSON object", file=sys.stderr)
            return 2
        # A one-shot write has nothing to listen for.
        return asyncio.run(_publish(config.replace(method="polling", polling_interval_ms=3_600_000), edit))
    except SyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
