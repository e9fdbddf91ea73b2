"""Value types shared by the dispatch core.

Everything here is immutable once built. Declarations live as long as their loaded
bundle; descriptors and outcomes live for one dispatch call.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from floww_runtime.runtime.errors import FlowwRuntimeError

DEFAULT_ALIAS = "default"

# Trigger verbs handled specially by the matcher. Every other kind is a provider
# webhook matched on predicate fields.
KIND_CRON = "onCron"
KIND_WEBHOOK = "onWebhook"

Handler = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class ProviderIdentity:
    """An integration family plus the configured account alias."""

    type: str
    alias: str = DEFAULT_ALIAS

    @property
    def key(self) -> str:
        """The `type:alias` key used by provider config maps."""

        return f"{self.type}:{self.alias}"

    def to_json(self) -> dict[str, str]:
        return {"type": self.type, "alias": self.alias}


@dataclass(frozen=True, slots=True, eq=False)
class TriggerDeclaration:
    """One registered trigger.

    Equality is identity: a bundle may register the same (provider, kind, predicate)
    twice and both registrations must fire.
    """

    provider: ProviderIdentity
    kind: str
    predicate: Mapping[str, Any]
    handler: Handler
    index: int = 0

    def __post_init__(self) -> None:
        # Unset filter fields are wildcards; drop them so lookups only see real filters.
        cleaned = {k: v for k, v in dict(self.predicate).items() if v is not None}
        object.__setattr__(self, "predicate", MappingProxyType(cleaned))

    @property
    def label(self) -> str:
        return f"{self.provider.key}.{self.kind}#{self.index}"

    def to_definition(self) -> dict[str, Any]:
        return {
            "provider": self.provider.to_json(),
            "triggerType": self.kind,
            "input": dict(self.predicate),
        }


@dataclass(frozen=True, slots=True)
class EventDescriptor:
    """Identity and payload of one inbound occurrence."""

    provider: ProviderIdentity
    trigger_type: str
    input: Mapping[str, Any] = field(default_factory=dict)
    data: Any = None


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    declaration: str
    kind: str
    message: str

    @staticmethod
    def from_error(declaration: TriggerDeclaration, error: FlowwRuntimeError) -> ErrorInfo:
        return ErrorInfo(declaration=declaration.label, kind=error.kind, message=str(error))

    def to_json(self) -> dict[str, str]:
        return {"declaration": self.declaration, "kind": self.kind, "message": self.message}


@dataclass(frozen=True, slots=True)
class InvocationOutcome:
    declaration: TriggerDeclaration
    succeeded: bool
    matched: bool = True
    error: ErrorInfo | None = None
    duration_ms: int = 0


@dataclass(frozen=True, slots=True)
class AggregateOutcome:
    """Result of one dispatch call.

    `triggers_processed` counts invocations that completed without error. `errors`
    is in completion order. `load_error` is set only when the bundle never loaded.
    """

    triggers_processed: int = 0
    triggers_matched: int = 0
    errors: tuple[ErrorInfo, ...] = ()
    load_error: str | None = None
    duration_ms: int = 0

    @property
    def loaded(self) -> bool:
        return self.load_error is None

    @staticmethod
    def from_outcomes(
        outcomes: Iterable[InvocationOutcome], *, duration_ms: int = 0
    ) -> AggregateOutcome:
        items = list(outcomes)
        return AggregateOutcome(
            triggers_processed=sum(1 for o in items if o.succeeded),
            triggers_matched=len(items),
            errors=tuple(o.error for o in items if o.error is not None),
            duration_ms=duration_ms,
        )

    @staticmethod
    def failed(message: str) -> AggregateOutcome:
        return AggregateOutcome(load_error=message)
