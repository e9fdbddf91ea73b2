"""Trigger registry.

`RegisteredTriggers` is the immutable result of one bundle load, indexed by
(provider type, provider alias, kind). `TriggerRegistry` caches those results per
bundle fingerprint.

Cache discipline:
- first load of a fingerprint is single-flight: concurrent callers block on one
  per-fingerprint lock and reuse the winner's result
- reads of a loaded fingerprint are plain dict lookups with no lock
- failed loads are not cached; the next dispatch retries

Locks are `threading` locks rather than asyncio ones because a serverless host runs
each invocation in a fresh event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from typing import Any

from floww_runtime.bundle.loader import Bundle, BundleLoader
from floww_runtime.runtime.models import ProviderIdentity, TriggerDeclaration

logger = logging.getLogger(__name__)

_LookupKey = tuple[str, str, str]


class RegisteredTriggers:
    """The declarations of one loaded bundle."""

    def __init__(
        self,
        declarations: Iterable[TriggerDeclaration],
        providers: Iterable[ProviderIdentity] = (),
    ) -> None:
        self._declarations = tuple(declarations)
        self._providers = tuple(providers)

        index: dict[_LookupKey, list[TriggerDeclaration]] = {}
        for declaration in self._declarations:
            key = (declaration.provider.type, declaration.provider.alias, declaration.kind)
            index.setdefault(key, []).append(declaration)
        self._index: dict[_LookupKey, tuple[TriggerDeclaration, ...]] = {
            key: tuple(items) for key, items in index.items()
        }

    def __len__(self) -> int:
        return len(self._declarations)

    @property
    def declarations(self) -> tuple[TriggerDeclaration, ...]:
        return self._declarations

    def lookup(self, provider_type: str, provider_alias: str, kind: str) -> list[TriggerDeclaration]:
        """All declarations for the exact triple, in registration order.

        No declarations is a normal outcome and yields an empty list.
        """

        return list(self._index.get((provider_type, provider_alias, kind), ()))

    def definitions(self) -> list[dict[str, Any]]:
        return [declaration.to_definition() for declaration in self._declarations]

    def provider_definitions(self) -> list[dict[str, str]]:
        return [provider.to_json() for provider in self._providers]


class TriggerRegistry:
    """Loads bundles through a `BundleLoader` and caches the result."""

    def __init__(self, loader: BundleLoader | None = None, *, max_size: int = 16) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._loader = loader or BundleLoader()
        self._max_size = max_size
        self._cache: dict[str, RegisteredTriggers] = {}
        self._guard = threading.Lock()
        self._load_locks: dict[str, threading.Lock] = {}

    def load(self, bundle: Bundle) -> RegisteredTriggers:
        """Load *bundle* without consulting the cache.

        Raises:
            BundleLoadError: if the entrypoint is missing or raises during registration.
        """

        loaded = self._loader.load(bundle)
        return RegisteredTriggers(loaded.declarations, loaded.providers)

    def get(self, bundle: Bundle) -> RegisteredTriggers:
        """Return the cached registry for *bundle*, loading it once if needed."""

        key = bundle.fingerprint
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        with self._guard:
            lock = self._load_locks.setdefault(key, threading.Lock())

        with lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            try:
                registered = self.load(bundle)
            except BaseException:
                # Not cached; the next caller retries with a fresh lock.
                with self._guard:
                    self._load_locks.pop(key, None)
                raise
            with self._guard:
                self._cache[key] = registered
                self._load_locks.pop(key, None)
                while len(self._cache) > self._max_size:
                    evicted = next(iter(self._cache))
                    del self._cache[evicted]
                    logger.debug("Evicted cached bundle", extra={"fingerprint": evicted[:12]})
            return registered

    async def aget(self, bundle: Bundle) -> RegisteredTriggers:
        """Async variant of :meth:`get`; cold loads run in a worker thread."""

        cached = self._cache.get(bundle.fingerprint)
        if cached is not None:
            return cached
        return await asyncio.to_thread(self.get, bundle)
