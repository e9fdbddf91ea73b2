"""FastAPI app factory for the container target.

Endpoints are thin wrappers over `RuntimeService`; the renderer decides status codes
and envelope shape so the container and serverless targets stay identical.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from floww_runtime import __version__
from floww_runtime.runtime.config import RuntimeSettings
from floww_runtime.runtime.payloads import GetDefinitionsRequest, InvokeTriggerRequest
from floww_runtime.runtime.renderer import (
    STATUS_BAD_REQUEST,
    RenderTarget,
    render,
    render_definitions,
    render_error,
)
from floww_runtime.runtime.service import RuntimeService
from floww_runtime.server.models import DefinitionsResponse, ExecuteResponse

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for item in exc.errors():
        location = ".".join(str(p) for p in item.get("loc", ()) if p != "body") or "<root>"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "Invalid request: " + "; ".join(parts)


def create_app(
    settings: RuntimeSettings | None = None, service: RuntimeService | None = None
) -> FastAPI:
    settings = settings or RuntimeSettings()
    service = service or RuntimeService(settings)

    app = FastAPI(
        title="Floww Runtime",
        version=__version__,
        description="Trigger dispatch runtime for workflow bundles.",
    )

    # Expose for request handlers and tests.
    app.state.settings = settings
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def invalid_request(_request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _validation_message(exc)
        logger.warning("Rejected invalid request", extra={"detail": message})
        return JSONResponse(
            status_code=STATUS_BAD_REQUEST,
            content=render_error(STATUS_BAD_REQUEST, message, RenderTarget.CONTAINER),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/execute", response_model=ExecuteResponse, response_model_by_alias=True)
    async def execute(req: InvokeTriggerRequest) -> JSONResponse:
        outcome = await service.invoke_trigger(req)
        payload = render(outcome, RenderTarget.CONTAINER)
        return JSONResponse(status_code=payload["statusCode"], content=payload)

    @app.post("/definitions", response_model=DefinitionsResponse)
    async def definitions(req: GetDefinitionsRequest) -> DefinitionsResponse:
        result = await service.get_definitions(req)
        return DefinitionsResponse.model_validate(render_definitions(result, RenderTarget.CONTAINER))

    return app
