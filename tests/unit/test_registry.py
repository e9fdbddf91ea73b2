from __future__ import annotations

import threading
import time

import pytest

from floww_runtime.bundle.loader import Bundle, LoadedBundle
from floww_runtime.runtime.errors import BundleLoadError
from floww_runtime.runtime.models import ProviderIdentity, TriggerDeclaration
from floww_runtime.runtime.registry import RegisteredTriggers, TriggerRegistry

BUILTIN = ProviderIdentity("builtin")
JIRA = ProviderIdentity("jira", "work")


def _noop(ctx, event) -> None:
    return None


def _decl(provider: ProviderIdentity, kind: str, index: int, **predicate) -> TriggerDeclaration:
    return TriggerDeclaration(
        provider=provider, kind=kind, predicate=predicate, handler=_noop, index=index
    )


class CountingLoader:
    def __init__(self, declarations=(), delay: float = 0.0, fail: bool = False) -> None:
        self.calls = 0
        self._declarations = tuple(declarations)
        self._delay = delay
        self._fail = fail
        self._lock = threading.Lock()

    def load(self, bundle: Bundle) -> LoadedBundle:
        with self._lock:
            self.calls += 1
        time.sleep(self._delay)
        if self._fail:
            raise BundleLoadError("broken bundle")
        return LoadedBundle(declarations=self._declarations, providers=(BUILTIN,))


def _bundle(source: str = "") -> Bundle:
    return Bundle(files={"main.py": source}, entrypoint="main.py")


def test_lookup_returns_exact_triple_in_insertion_order() -> None:
    first = _decl(BUILTIN, "onWebhook", 0, path="/a")
    cron = _decl(BUILTIN, "onCron", 1, expression="* * * * *")
    second = _decl(BUILTIN, "onWebhook", 2, path="/b")
    jira = _decl(JIRA, "onIssueCreated", 3)

    registered = RegisteredTriggers([first, cron, second, jira], [BUILTIN, JIRA])

    assert registered.lookup("builtin", "default", "onWebhook") == [first, second]
    assert registered.lookup("jira", "work", "onIssueCreated") == [jira]
    assert registered.lookup("jira", "default", "onIssueCreated") == []
    assert registered.lookup("gitlab", "default", "onMergeRequestComment") == []
    assert len(registered) == 4


def test_duplicate_declarations_are_both_kept() -> None:
    a = _decl(BUILTIN, "onWebhook", 0, path="/same")
    b = _decl(BUILTIN, "onWebhook", 1, path="/same")

    registered = RegisteredTriggers([a, b])

    assert registered.lookup("builtin", "default", "onWebhook") == [a, b]


def test_definitions_and_providers() -> None:
    registered = RegisteredTriggers(
        [_decl(JIRA, "onIssueCreated", 0, project_key="OPS", issue_type=None)], [JIRA]
    )

    assert registered.definitions() == [
        {
            "provider": {"type": "jira", "alias": "work"},
            "triggerType": "onIssueCreated",
            "input": {"project_key": "OPS"},
        }
    ]
    assert registered.provider_definitions() == [{"type": "jira", "alias": "work"}]


def test_get_caches_by_fingerprint() -> None:
    loader = CountingLoader()
    registry = TriggerRegistry(loader)  # type: ignore[arg-type]

    first = registry.get(_bundle("A = 1"))
    again = registry.get(_bundle("A = 1"))
    other = registry.get(_bundle("A = 2"))

    assert first is again
    assert other is not first
    assert loader.calls == 2


def test_concurrent_first_loads_are_single_flight() -> None:
    loader = CountingLoader(delay=0.05)
    registry = TriggerRegistry(loader)  # type: ignore[arg-type]
    bundle = _bundle("A = 1")
    results: list[RegisteredTriggers] = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(registry.get(bundle))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert loader.calls == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)


def test_failed_loads_are_not_cached() -> None:
    loader = CountingLoader(fail=True)
    registry = TriggerRegistry(loader)  # type: ignore[arg-type]

    for _ in range(2):
        with pytest.raises(BundleLoadError):
            registry.get(_bundle())

    assert loader.calls == 2
    assert registry._load_locks == {}


def test_cache_evicts_oldest_entry() -> None:
    loader = CountingLoader()
    registry = TriggerRegistry(loader, max_size=2)  # type: ignore[arg-type]

    registry.get(_bundle("A = 1"))
    registry.get(_bundle("A = 2"))
    registry.get(_bundle("A = 3"))
    registry.get(_bundle("A = 1"))

    assert loader.calls == 4


def test_max_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TriggerRegistry(max_size=0)
