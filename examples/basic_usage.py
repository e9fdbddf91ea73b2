#!/usr/bin/env python3
"""Programmatic dispatch example.

This demonstrates using the runtime components directly:

* load settings from `.env`
* build a request carrying a small in-memory bundle
* dispatch a webhook event and print the container envelope

The webhook path is passed as an argument so you can see a zero-match dispatch too.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence

from floww_runtime.runtime.config import RuntimeSettings
from floww_runtime.runtime.logging import configure_logging
from floww_runtime.runtime.payloads import InvokeTriggerRequest
from floww_runtime.runtime.renderer import RenderTarget, render
from floww_runtime.runtime.service import RuntimeService

BUNDLE_MAIN = '''
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/custom", method="POST")
def on_custom(ctx, event):
    ctx.logger.info("Webhook received: %s", event.body.get("message"))
'''


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dispatch a webhook to an in-memory bundle.")
    parser.add_argument("--path", default="/custom", help='Webhook path, e.g. "/custom"')
    parser.add_argument("--message", default="Hello from test invocation!", help="Body message")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = RuntimeSettings()
    configure_logging(settings.log_level)

    request = InvokeTriggerRequest.model_validate(
        {
            "userCode": {"files": {"main.py": BUNDLE_MAIN}, "entrypoint": "main.py"},
            "trigger": {
                "provider": {"type": "builtin", "alias": "default"},
                "triggerType": "onWebhook",
                "input": {"path": args.path, "method": "POST"},
            },
            "data": {"body": {"message": args.message}},
        }
    )

    service = RuntimeService(settings)
    outcome = asyncio.run(service.invoke_trigger(request))
    print(json.dumps(render(outcome, RenderTarget.CONTAINER), indent=2))
    return 0 if outcome.loaded else 1


if __name__ == "__main__":
    raise SystemExit(main())
