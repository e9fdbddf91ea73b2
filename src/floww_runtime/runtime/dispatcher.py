"""Dispatcher: registry lookup -> match -> concurrent, isolated invocation.

Every matched declaration runs in its own asyncio task. Tasks are created in
registry insertion order; nothing is promised about completion order. An exception
in one task is recorded for that declaration only and never cancels its siblings.

Sync handlers run in a worker thread. Cancelling a timed-out sync handler is
best-effort: the thread keeps running but its result is discarded and the
invocation is reported as a timeout. The worker keeps the invocation's provider
clients open until it returns.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import inspect
import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any

from floww_runtime.bundle.loader import Bundle
from floww_runtime.providers.factory import ConfiguredClientFactory
from floww_runtime.providers.secrets import ProviderConfigSecretResolver
from floww_runtime.runtime.context import ContextBuilder, InvocationContext, activate
from floww_runtime.runtime.errors import DispatchTimeoutError, FlowwRuntimeError, HandlerError
from floww_runtime.runtime.matcher import match
from floww_runtime.runtime.models import (
    AggregateOutcome,
    ErrorInfo,
    EventDescriptor,
    Handler,
    InvocationOutcome,
    TriggerDeclaration,
)
from floww_runtime.runtime.registry import TriggerRegistry

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _failed(
    declaration: TriggerDeclaration, error: FlowwRuntimeError, started: float
) -> InvocationOutcome:
    return InvocationOutcome(
        declaration=declaration,
        succeeded=False,
        error=ErrorInfo.from_error(declaration, error),
        duration_ms=_elapsed_ms(started),
    )


class Dispatcher:
    def __init__(
        self,
        registry: TriggerRegistry,
        *,
        timeout_seconds: float | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._registry = registry
        self._timeout_seconds = timeout_seconds
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="floww-handler")

    async def dispatch(
        self,
        bundle: Bundle,
        descriptor: EventDescriptor,
        *,
        context_builder: ContextBuilder | None = None,
        timeout: float | None = None,
    ) -> AggregateOutcome:
        """Run every declaration in *bundle* that matches *descriptor*.

        Raises:
            BundleLoadError: if the bundle cannot be loaded. Nothing is invoked.
        """

        started = time.monotonic()
        registered = await self._registry.aget(bundle)

        candidates = registered.lookup(
            descriptor.provider.type, descriptor.provider.alias, descriptor.trigger_type
        )
        matched = match(descriptor, candidates)
        if not matched:
            logger.info(
                "No matching triggers",
                extra={
                    "provider": descriptor.provider.key,
                    "trigger_type": descriptor.trigger_type,
                    "input": dict(descriptor.input),
                    "candidates": len(candidates),
                },
            )
            return AggregateOutcome(duration_ms=_elapsed_ms(started))

        builder = context_builder or ContextBuilder(
            secret_resolver=ProviderConfigSecretResolver(),
            client_factory=ConfiguredClientFactory(),
        )
        deadline = timeout if timeout is not None else self._timeout_seconds

        completed: list[InvocationOutcome] = []
        tasks: dict[asyncio.Task[None], TriggerDeclaration] = {}
        try:
            for declaration in matched:
                logger.info("Executing trigger", extra={"trigger": declaration.label})
                task = asyncio.create_task(
                    self._invoke(declaration, descriptor, builder, completed),
                    name=f"trigger:{declaration.label}",
                )
                tasks[task] = declaration

            _, pending = await asyncio.wait(tasks, timeout=deadline)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

            # Every matched declaration ends up with exactly one outcome.
            recorded = {id(outcome.declaration) for outcome in completed}
            for task, declaration in tasks.items():
                if id(declaration) in recorded or not task.cancelled():
                    continue
                error: FlowwRuntimeError
                if task in pending:
                    error = DispatchTimeoutError(f"Handler did not finish within {deadline:g}s")
                    logger.warning("Trigger handler timed out", extra={"trigger": declaration.label})
                else:
                    error = HandlerError("Handler was cancelled")
                    logger.warning("Trigger handler cancelled", extra={"trigger": declaration.label})
                completed.append(_failed(declaration, error, started))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        outcome = AggregateOutcome.from_outcomes(completed, duration_ms=_elapsed_ms(started))
        logger.info(
            "Dispatch finished",
            extra={
                "matched": outcome.triggers_matched,
                "processed": outcome.triggers_processed,
                "errors": len(outcome.errors),
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    async def _invoke(
        self,
        declaration: TriggerDeclaration,
        descriptor: EventDescriptor,
        builder: ContextBuilder,
        completed: list[InvocationOutcome],
    ) -> None:
        started = time.monotonic()
        context: InvocationContext | None = None
        error: FlowwRuntimeError | None = None
        try:
            context = builder.build(declaration, descriptor)
            with activate(context):
                await self._call_handler(declaration.handler, context)
        except FlowwRuntimeError as e:
            error = e
        except asyncio.CancelledError as e:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            # Raised by the handler itself rather than by a cancel() on this task.
            error = HandlerError.from_exception(e)
        except (Exception, SystemExit, KeyboardInterrupt) as e:
            error = HandlerError.from_exception(e)
        finally:
            if context is not None:
                context.providers.release()

        if error is not None:
            logger.warning(
                "Trigger handler failed",
                exc_info=error.__cause__ or error,
                extra={"trigger": declaration.label, "kind": error.kind},
            )
            completed.append(_failed(declaration, error, started))
            return
        completed.append(
            InvocationOutcome(
                declaration=declaration, succeeded=True, duration_ms=_elapsed_ms(started)
            )
        )

    async def _call_handler(self, handler: Handler, context: InvocationContext) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(context, context.event)

        # The copied context carries the active invocation, so `current_context()`
        # works inside sync handlers.
        run = functools.partial(contextvars.copy_context().run, handler, context, context.event)
        context.providers.retain()
        worker = self._executor.submit(run)
        worker.add_done_callback(lambda _: context.providers.release())
        result = await asyncio.wrap_future(worker)
        if inspect.isawaitable(result):
            return await result
        return result
