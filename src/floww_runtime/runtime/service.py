"""Runtime service shared by the container and serverless targets.

Host adapters decode their transport, call one of these operations and render the
result. Everything host-independent (bundle cache, dispatch, execution reporting)
lives here so both targets behave identically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from floww_runtime.bundle.loader import BundleLoader
from floww_runtime.providers.factory import ConfiguredClientFactory
from floww_runtime.providers.secrets import ProviderConfigSecretResolver
from floww_runtime.runtime.config import RuntimeSettings
from floww_runtime.runtime.context import ContextBuilder, summarise_validation_error
from floww_runtime.runtime.dispatcher import Dispatcher
from floww_runtime.runtime.errors import BundleLoadError
from floww_runtime.runtime.log_capture import LogCapture
from floww_runtime.runtime.models import AggregateOutcome
from floww_runtime.runtime.payloads import (
    EVENT_GET_DEFINITIONS,
    DefinitionsResult,
    GetDefinitionsRequest,
    InvokeTriggerRequest,
)
from floww_runtime.runtime.registry import TriggerRegistry
from floww_runtime.runtime.reporting import report_execution_status

logger = logging.getLogger(__name__)


class RuntimeService:
    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        registry: TriggerRegistry | None = None,
    ) -> None:
        self.settings = settings or RuntimeSettings()
        self.registry = registry or TriggerRegistry(
            BundleLoader(), max_size=self.settings.bundle_cache_size
        )
        self.dispatcher = Dispatcher(
            self.registry, timeout_seconds=self.settings.dispatch_timeout_seconds
        )

    async def invoke_trigger(
        self, request: InvokeTriggerRequest, *, timeout: float | None = None
    ) -> AggregateOutcome:
        """Dispatch one event and report the outcome to the backend when asked to.

        A bundle that fails to load yields a failed outcome rather than raising.
        """

        started = time.monotonic()
        builder = ContextBuilder(
            secret_resolver=ProviderConfigSecretResolver(request.provider_configs),
            client_factory=ConfiguredClientFactory(request.provider_configs),
        )
        bundle = request.to_bundle(self.settings.default_entrypoint)
        descriptor = request.to_descriptor()

        with LogCapture(builder.dispatch_id) as capture:
            try:
                outcome = await self.dispatcher.dispatch(
                    bundle, descriptor, context_builder=builder, timeout=timeout
                )
            except BundleLoadError as e:
                logger.error(
                    "Bundle failed to load",
                    exc_info=e,
                    extra={"entrypoint": bundle.entrypoint, "dispatch_id": builder.dispatch_id},
                )
                outcome = AggregateOutcome.failed(str(e))

        if request.wants_report:
            await asyncio.to_thread(
                report_execution_status,
                backend_url=str(request.backend_url),
                execution_id=str(request.execution_id),
                auth_token=str(request.auth_token),
                logs=capture.entries(),
                duration_ms=int((time.monotonic() - started) * 1000),
                error=_report_error(outcome),
                timeout=self.settings.report_timeout_seconds,
            )
        return outcome

    async def get_definitions(self, request: GetDefinitionsRequest) -> DefinitionsResult:
        bundle = request.to_bundle(self.settings.default_entrypoint)
        try:
            registered = await self.registry.aget(bundle)
        except BundleLoadError as e:
            logger.error("Bundle failed to load", exc_info=e, extra={"entrypoint": bundle.entrypoint})
            return DefinitionsResult(success=False, error=str(e))
        return DefinitionsResult(
            success=True,
            triggers=registered.definitions(),
            providers=registered.provider_definitions(),
        )

    async def handle_event(
        self, payload: Mapping[str, Any], *, timeout: float | None = None
    ) -> AggregateOutcome | DefinitionsResult:
        """Route a raw request on its `type` field.

        Raises:
            pydantic.ValidationError: if the payload does not match the request shape.
        """

        if payload.get("type") == EVENT_GET_DEFINITIONS:
            return await self.get_definitions(GetDefinitionsRequest.model_validate(payload))
        return await self.invoke_trigger(InvokeTriggerRequest.model_validate(payload), timeout=timeout)


def _report_error(outcome: AggregateOutcome) -> str | None:
    if outcome.load_error is not None:
        return outcome.load_error
    if outcome.errors:
        return "; ".join(f"{error.declaration}: {error.message}" for error in outcome.errors)
    return None


def validation_message(error: ValidationError) -> str:
    """One-line summary of a request validation failure (input values omitted)."""

    return f"Invalid request: {summarise_validation_error(error)}"
