"""Invocation context handed to every matched handler.

A context is built per (declaration, event) pair and lives for exactly one
invocation. Its secret and client caches are never shared between invocations, so
concurrent handlers cannot race on them and a secret rotated between two dispatch
calls is observed by the second one.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from floww_runtime.providers.factory import ProviderClientFactory
from floww_runtime.providers.secrets import SecretResolver
from floww_runtime.runtime.errors import SecretValidationError
from floww_runtime.runtime.logging import USER_LOGGER_NAME
from floww_runtime.runtime.models import (
    DEFAULT_ALIAS,
    KIND_CRON,
    EventDescriptor,
    ProviderIdentity,
    TriggerDeclaration,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _decode_header(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    if isinstance(value, list | tuple):
        return ", ".join(_decode_header(v) for v in value)
    return str(value)


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """An inbound HTTP delivery (builtin webhooks and provider webhooks alike)."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None

    @staticmethod
    def from_descriptor(descriptor: EventDescriptor) -> WebhookEvent:
        data = descriptor.data if isinstance(descriptor.data, Mapping) else {}
        raw_headers = data.get("headers")
        headers = (
            {str(k).lower(): _decode_header(v) for k, v in raw_headers.items()}
            if isinstance(raw_headers, Mapping)
            else {}
        )

        body = data.get("body") if "body" in data else descriptor.data
        if isinstance(body, str | bytes) and "json" in headers.get("content-type", ""):
            try:
                body = json.loads(body)
            except ValueError:
                logger.debug("Webhook body is not valid JSON; passing raw text")

        query = data.get("query")
        method = data.get("method") or descriptor.input.get("method") or "POST"
        path = data.get("path") or descriptor.input.get("path") or ""
        return WebhookEvent(
            method=str(method).upper(),
            path=str(path),
            headers=headers,
            query=dict(query) if isinstance(query, Mapping) else {},
            body=body,
        )


@dataclass(frozen=True, slots=True)
class CronEvent:
    expression: str | None
    scheduled_time: datetime
    actual_time: datetime

    @staticmethod
    def from_descriptor(
        descriptor: EventDescriptor, declaration: TriggerDeclaration
    ) -> CronEvent:
        data = descriptor.data if isinstance(descriptor.data, Mapping) else {}
        now = datetime.now(tz=UTC)
        return CronEvent(
            expression=declaration.predicate.get("expression"),
            scheduled_time=_parse_time(data.get("scheduledTime") or data.get("scheduled_time"), now),
            actual_time=now,
        )


def _parse_time(value: Any, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return default
    return default


def build_event(declaration: TriggerDeclaration, descriptor: EventDescriptor) -> Any:
    if declaration.kind == KIND_CRON:
        return CronEvent.from_descriptor(descriptor, declaration)
    return WebhookEvent.from_descriptor(descriptor)


def summarise_validation_error(error: ValidationError) -> str:
    # Never echo input values: they are secrets.
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg', 'invalid')}")
    return "; ".join(parts)


class SecretsAccessor:
    """Lazily resolves named secrets, at most once per name for this invocation."""

    def __init__(self, resolver: SecretResolver) -> None:
        self._resolver = resolver
        self._resolved: dict[str, Mapping[str, Any] | None] = {}

    def _raw(self, name: str) -> Mapping[str, Any]:
        if name not in self._resolved:
            self._resolved[name] = self._resolver.resolve(name)
        value = self._resolved[name]
        if value is None:
            raise SecretValidationError(name, "not configured")
        return value

    def get(self, name: str, schema: type[ModelT]) -> ModelT:
        """Return secret *name* validated against the pydantic *schema*.

        Raises:
            SecretValidationError: if the secret is missing or does not match *schema*.
        """

        raw = self._raw(name)
        try:
            return schema.model_validate(dict(raw))
        except ValidationError as e:
            raise SecretValidationError(
                name, f"does not match {schema.__name__}: {summarise_validation_error(e)}"
            ) from None


class ProviderClients:
    """Provider API clients for this invocation, created on first use.

    The invocation holds the clients from the start. A worker thread running a sync
    handler takes a second hold with `retain()`, so a timed-out invocation does not
    close sessions the worker is still using: the clients close on the last `release()`.
    """

    def __init__(self, factory: ProviderClientFactory) -> None:
        self._factory = factory
        self._clients: dict[str, Any] = {}
        self._holders = 1
        self._lock = threading.Lock()

    def retain(self) -> None:
        with self._lock:
            self._holders += 1

    def release(self) -> None:
        with self._lock:
            self._holders -= 1
            if self._holders > 0:
                return
        self.close()

    def get(self, provider_type: str, alias: str = DEFAULT_ALIAS) -> Any:
        identity = ProviderIdentity(type=provider_type, alias=alias)
        if identity.key not in self._clients:
            self._clients[identity.key] = self._factory.create(identity)
        return self._clients[identity.key]

    def close(self) -> None:
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if callable(close):
                close()
        self._clients.clear()


@dataclass
class InvocationContext:
    invocation_id: str
    trigger: TriggerDeclaration
    event: Any
    data: Any
    secrets: SecretsAccessor
    providers: ProviderClients
    logger: logging.LoggerAdapter[logging.Logger]

    @property
    def provider(self) -> ProviderIdentity:
        return self.trigger.provider

    @property
    def client(self) -> Any:
        """API client for the provider that declared this trigger (None for builtin)."""

        return self.providers.get(self.provider.type, self.provider.alias)


_CURRENT_CONTEXT: ContextVar[InvocationContext | None] = ContextVar(
    "floww_invocation_context", default=None
)


def current_context() -> InvocationContext:
    context = _CURRENT_CONTEXT.get()
    if context is None:
        raise RuntimeError("No trigger invocation is active")
    return context


@contextmanager
def activate(context: InvocationContext) -> Iterator[InvocationContext]:
    token = _CURRENT_CONTEXT.set(context)
    try:
        yield context
    finally:
        _CURRENT_CONTEXT.reset(token)


class ContextBuilder:
    """Builds one `InvocationContext` per matched declaration."""

    def __init__(
        self,
        *,
        secret_resolver: SecretResolver,
        client_factory: ProviderClientFactory,
        dispatch_id: str | None = None,
    ) -> None:
        self._secret_resolver = secret_resolver
        self._client_factory = client_factory
        self._dispatch_id = dispatch_id or uuid.uuid4().hex

    @property
    def dispatch_id(self) -> str:
        return self._dispatch_id

    def build(self, declaration: TriggerDeclaration, descriptor: EventDescriptor) -> InvocationContext:
        invocation_id = uuid.uuid4().hex
        adapter = logging.LoggerAdapter(
            logging.getLogger(f"{USER_LOGGER_NAME}.{declaration.provider.type}"),
            {
                "dispatch_id": self._dispatch_id,
                "invocation_id": invocation_id,
                "trigger": declaration.label,
            },
        )
        return InvocationContext(
            invocation_id=invocation_id,
            trigger=declaration,
            event=build_event(declaration, descriptor),
            data=descriptor.data,
            secrets=SecretsAccessor(self._secret_resolver),
            providers=ProviderClients(self._client_factory),
            logger=adapter,
        )
