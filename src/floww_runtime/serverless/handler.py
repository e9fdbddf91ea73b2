"""Serverless entrypoint.

Configure the function handler as `floww_runtime.serverless.handler.handler`. Each
invocation runs in its own event loop; the runtime service (and its bundle cache)
is module level so warm invocations reuse loaded bundles.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

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

logger = logging.getLogger(__name__)

_service: RuntimeService | None = None


def get_service() -> RuntimeService:
    global _service
    if _service is None:
        settings = RuntimeSettings()
        configure_logging(settings.log_level)
        _service = RuntimeService(settings)
    return _service


def _decode_event(event: Any) -> Any:
    # API-gateway style invocations carry the request as a JSON string body.
    if isinstance(event, Mapping) and "userCode" not in event and isinstance(event.get("body"), str):
        return json.loads(event["body"])
    if isinstance(event, str | bytes):
        return json.loads(event)
    return event


def handler(event: Any, context: Any = None) -> dict[str, Any]:
    try:
        payload = _decode_event(event)
    except ValueError as e:
        logger.warning("Rejected undecodable event", extra={"error": str(e)})
        return render_error(STATUS_BAD_REQUEST, f"Invalid request: {e}", RenderTarget.SERVERLESS)
    if not isinstance(payload, Mapping):
        return render_error(
            STATUS_BAD_REQUEST, "Invalid request: event must be an object", RenderTarget.SERVERLESS
        )

    service = get_service()
    try:
        result = asyncio.run(service.handle_event(payload))
    except ValidationError as e:
        message = validation_message(e)
        logger.warning("Rejected invalid request", extra={"detail": message})
        return render_error(STATUS_BAD_REQUEST, message, RenderTarget.SERVERLESS)

    if isinstance(result, AggregateOutcome):
        return render(result, RenderTarget.SERVERLESS)
    return render_definitions(result, RenderTarget.SERVERLESS)
