"""Context-scoped collection of trigger registrations.

SDK calls made while a bundle's entrypoint executes land in the active
`RegistrationPass`. Outside a pass, `register_trigger` still builds the declaration
but records it nowhere, so SDK objects can be used directly in tests.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from floww_runtime.runtime.models import Handler, ProviderIdentity, TriggerDeclaration


@dataclass
class RegistrationPass:
    declarations: list[TriggerDeclaration] = field(default_factory=list)
    providers: dict[str, ProviderIdentity] = field(default_factory=dict)

    def add(
        self,
        provider: ProviderIdentity,
        kind: str,
        predicate: Mapping[str, Any],
        handler: Handler,
    ) -> TriggerDeclaration:
        declaration = TriggerDeclaration(
            provider=provider,
            kind=kind,
            predicate=predicate,
            handler=handler,
            index=len(self.declarations),
        )
        self.declarations.append(declaration)
        self.track_provider(provider)
        return declaration

    def track_provider(self, provider: ProviderIdentity) -> None:
        self.providers.setdefault(provider.key, provider)


_ACTIVE_PASS: ContextVar[RegistrationPass | None] = ContextVar(
    "floww_registration_pass", default=None
)


@contextmanager
def registration_pass() -> Iterator[RegistrationPass]:
    current = RegistrationPass()
    token = _ACTIVE_PASS.set(current)
    try:
        yield current
    finally:
        _ACTIVE_PASS.reset(token)


def register_trigger(
    provider: ProviderIdentity,
    kind: str,
    predicate: Mapping[str, Any],
    handler: Handler,
) -> TriggerDeclaration:
    if not callable(handler):
        raise TypeError(f"{provider.type}.{kind} handler must be callable, got {handler!r}")
    active = _ACTIVE_PASS.get()
    if active is None:
        return TriggerDeclaration(provider=provider, kind=kind, predicate=predicate, handler=handler)
    return active.add(provider, kind, predicate, handler)


def track_provider(provider: ProviderIdentity) -> None:
    active = _ACTIVE_PASS.get()
    if active is not None:
        active.track_provider(provider)
