"""Render dispatch outcomes into the envelope each host target expects.

Container hosts return the payload as the HTTP response body. Serverless hosts wrap
the same payload in `{statusCode, body}` with `body` JSON-encoded, because the
platform envelope requires a string body.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from floww_runtime.runtime.models import AggregateOutcome
from floww_runtime.runtime.payloads import DefinitionsResult

STATUS_OK = 200
STATUS_BAD_REQUEST = 400
STATUS_LOAD_FAILURE = 500


class RenderTarget(StrEnum):
    CONTAINER = "container"
    SERVERLESS = "serverless"


def _message(outcome: AggregateOutcome) -> str:
    if outcome.load_error is not None:
        return outcome.load_error

    message = f"Workflow executed successfully: {outcome.triggers_processed} trigger(s) processed"
    if outcome.triggers_matched == 0:
        return f"{message} (no matching triggers)"
    if outcome.errors:
        failures = "; ".join(
            f"{error.declaration} [{error.kind}]: {error.message}" for error in outcome.errors
        )
        return f"{message}, {len(outcome.errors)} failed: {failures}"
    return message


def container_payload(outcome: AggregateOutcome) -> dict[str, Any]:
    status = STATUS_OK if outcome.loaded else STATUS_LOAD_FAILURE
    return {
        "statusCode": status,
        "message": _message(outcome),
        "triggersProcessed": outcome.triggers_processed if outcome.loaded else 0,
    }


def _wrap(payload: dict[str, Any], target: RenderTarget) -> dict[str, Any]:
    if target is RenderTarget.SERVERLESS:
        return {"statusCode": payload["statusCode"], "body": json.dumps(payload)}
    return payload


def render(outcome: AggregateOutcome, target: RenderTarget = RenderTarget.CONTAINER) -> dict[str, Any]:
    return _wrap(container_payload(outcome), target)


def render_error(
    status_code: int, message: str, target: RenderTarget = RenderTarget.CONTAINER
) -> dict[str, Any]:
    """Envelope for requests rejected before dispatch (e.g. invalid payloads)."""

    payload = {"statusCode": status_code, "message": message, "triggersProcessed": 0}
    return _wrap(payload, target)


def render_definitions(
    result: DefinitionsResult, target: RenderTarget = RenderTarget.CONTAINER
) -> dict[str, Any]:
    payload = result.model_dump(exclude_none=True)
    if target is RenderTarget.SERVERLESS:
        status = STATUS_OK if result.success else STATUS_LOAD_FAILURE
        return {"statusCode": status, "body": json.dumps(payload)}
    return payload
