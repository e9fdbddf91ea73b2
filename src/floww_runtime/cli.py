"""CLI entrypoint: run the container server or dispatch one request from a file."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import uvicorn
from pydantic import ValidationError

from floww_runtime import __version__
from floww_runtime.runtime.config import RuntimeSettings
from floww_runtime.runtime.logging import configure_logging
from floww_runtime.runtime.models import AggregateOutcome
from floww_runtime.runtime.renderer import (
    STATUS_BAD_REQUEST,
    RenderTarget,
    render,
    render_definitions,
    render_error,
)
from floww_runtime.runtime.service import RuntimeService, validation_message
from floww_runtime.server.app import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="floww-runtime",
        description="Trigger dispatch runtime for workflow bundles",
    )
    parser.add_argument("--version", action="version", version=f"floww-runtime {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the container HTTP server")
    serve.add_argument("--host", default=None, help="Bind address (defaults to HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (defaults to PORT)")

    invoke = subparsers.add_parser(
        "invoke",
        help="Dispatch one request read from a JSON file and print the rendered envelope",
    )
    invoke.add_argument(
        "--payload",
        required=True,
        help="Path to a JSON request ('-' reads stdin)",
    )
    invoke.add_argument(
        "--target",
        choices=[t.value for t in RenderTarget],
        default=RenderTarget.CONTAINER.value,
        help="Envelope to render",
    )
    invoke.add_argument(
        "--timeout-seconds",
        type=float,
        default=None,
        help="Dispatch deadline (defaults to FLOWW_DISPATCH_TIMEOUT_SECONDS)",
    )

    return parser


def _read_payload(path: str) -> object:
    if path == "-":
        return json.load(sys.stdin)
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _invoke(args: argparse.Namespace, settings: RuntimeSettings) -> int:
    target = RenderTarget(args.target)
    try:
        payload = _read_payload(args.payload)
    except (OSError, ValueError) as e:
        logger.error("Could not read payload", extra={"path": args.payload, "error": str(e)})
        return 2
    if not isinstance(payload, dict):
        message = "Invalid request: payload must be an object"
        print(json.dumps(render_error(STATUS_BAD_REQUEST, message, target)))
        return 1

    service = RuntimeService(settings)
    try:
        result = asyncio.run(service.handle_event(payload, timeout=args.timeout_seconds))
    except ValidationError as e:
        print(json.dumps(render_error(STATUS_BAD_REQUEST, validation_message(e), target)))
        return 1

    if isinstance(result, AggregateOutcome):
        rendered = render(result, target)
        ok = result.loaded
    else:
        rendered = render_definitions(result, target)
        ok = result.success
    print(json.dumps(rendered, indent=2))
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = RuntimeSettings()
    configure_logging(settings.log_level)

    if args.command == "serve":
        uvicorn.run(
            create_app(settings),
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_config=None,
        )
        return 0

    if args.command == "invoke":
        return _invoke(args, settings)

    logger.error("Unknown command", extra={"command": args.command})
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
