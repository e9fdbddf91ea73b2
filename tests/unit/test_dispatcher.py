"""Unit tests for dispatch: matching, isolation and timeouts."""

from __future__ import annotations

import asyncio
import threading
import types

import pytest

from floww_runtime.bundle.loader import Bundle
from floww_runtime.providers.secrets import ProviderConfigSecretResolver
from floww_runtime.runtime.context import ContextBuilder
from floww_runtime.runtime.dispatcher import Dispatcher
from floww_runtime.runtime.errors import BundleLoadError
from floww_runtime.runtime.models import EventDescriptor, ProviderIdentity
from floww_runtime.runtime.registry import TriggerRegistry

BUILTIN = ProviderIdentity("builtin")
JIRA = ProviderIdentity("jira")

TWO_WEBHOOKS = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/a")
def on_a(ctx, event):
    recorder.calls.append("a")


@builtin.triggers.on_webhook(path="/b")
def on_b(ctx, event):
    recorder.calls.append("b")
"""

ONE_FAILS = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/hook")
def broken(ctx, event):
    raise RuntimeError("handler exploded")


@builtin.triggers.on_webhook(path="/hook")
async def works(ctx, event):
    recorder.calls.append("works")
"""

JIRA_FILTERS = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Jira

jira = Jira()


@jira.triggers.on_issue_created()
def any_project(ctx, event):
    recorder.calls.append("wildcard")


@jira.triggers.on_issue_created(project_key="X")
def project_x(ctx, event):
    recorder.calls.append("x")
"""

SLOW_AND_FAST = """
import asyncio
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_cron("* * * * *")
async def slow(ctx, event):
    await asyncio.sleep(30)
    recorder.calls.append("slow")


@builtin.triggers.on_cron("* * * * *")
async def fast(ctx, event):
    recorder.calls.append("fast")
"""


def _bundle(source: str) -> Bundle:
    return Bundle(files={"main.py": source}, entrypoint="main.py")


def _dispatch(source: str, descriptor: EventDescriptor, **kwargs):
    dispatcher = Dispatcher(TriggerRegistry())
    return asyncio.run(dispatcher.dispatch(_bundle(source), descriptor, **kwargs))


def test_only_the_matching_path_runs(recorder: types.ModuleType) -> None:
    outcome = _dispatch(TWO_WEBHOOKS, EventDescriptor(BUILTIN, "onWebhook", {"path": "/a"}))

    assert recorder.calls == ["a"]
    assert outcome.triggers_processed == 1
    assert outcome.errors == ()


def test_zero_matches_is_not_an_error(recorder: types.ModuleType) -> None:
    outcome = _dispatch(TWO_WEBHOOKS, EventDescriptor(BUILTIN, "onWebhook", {"path": "/other"}))
    unknown_provider = _dispatch(TWO_WEBHOOKS, EventDescriptor(JIRA, "onIssueCreated"))

    assert recorder.calls == []
    for result in (outcome, unknown_provider):
        assert result.loaded
        assert result.triggers_processed == 0
        assert result.triggers_matched == 0
        assert result.errors == ()


def test_failing_handler_does_not_affect_siblings(recorder: types.ModuleType) -> None:
    outcome = _dispatch(ONE_FAILS, EventDescriptor(BUILTIN, "onWebhook", {"path": "/hook"}))

    assert recorder.calls == ["works"]
    assert outcome.triggers_matched == 2
    assert outcome.triggers_processed == 1
    (error,) = outcome.errors
    assert error.kind == "handler"
    assert error.message == "handler exploded"
    assert error.declaration == "builtin:default.onWebhook#0"


def test_wildcard_and_exact_filters_both_fire(recorder: types.ModuleType) -> None:
    outcome = _dispatch(JIRA_FILTERS, EventDescriptor(JIRA, "onIssueCreated", data={"projectKey": "X"}))
    assert sorted(recorder.calls) == ["wildcard", "x"]
    assert outcome.triggers_processed == 2

    recorder.calls.clear()
    outcome = _dispatch(JIRA_FILTERS, EventDescriptor(JIRA, "onIssueCreated", data={"projectKey": "Y"}))
    assert recorder.calls == ["wildcard"]
    assert outcome.triggers_processed == 1


def test_timeout_cancels_slow_handler_only(recorder: types.ModuleType) -> None:
    outcome = _dispatch(SLOW_AND_FAST, EventDescriptor(BUILTIN, "onCron"), timeout=0.2)

    assert recorder.calls == ["fast"]
    assert outcome.triggers_matched == 2
    assert outcome.triggers_processed == 1
    (error,) = outcome.errors
    assert error.kind == "timeout"
    assert error.declaration == "builtin:default.onCron#0"


def test_secret_errors_are_scoped_to_one_invocation(recorder: types.ModuleType) -> None:
    source = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/s")
def needs_secret(ctx, event):
    ctx.secrets.get("missing", dict)


@builtin.triggers.on_webhook(path="/s")
def plain(ctx, event):
    recorder.calls.append("plain")
"""
    outcome = _dispatch(source, EventDescriptor(BUILTIN, "onWebhook", {"path": "/s"}))

    assert recorder.calls == ["plain"]
    (error,) = outcome.errors
    assert error.kind == "secret_validation"
    assert "missing" in error.message


def test_load_error_propagates() -> None:
    with pytest.raises(BundleLoadError):
        _dispatch("raise SystemError('nope')\n", EventDescriptor(BUILTIN, "onCron"))


def test_exit_in_one_handler_does_not_end_the_dispatch(recorder: types.ModuleType) -> None:
    source = """
import sys
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/h")
def exits(ctx, event):
    sys.exit(3)


@builtin.triggers.on_webhook(path="/h")
def sibling(ctx, event):
    recorder.calls.append("ok")
"""
    outcome = _dispatch(source, EventDescriptor(BUILTIN, "onWebhook", {"path": "/h"}))

    assert recorder.calls == ["ok"]
    assert outcome.triggers_matched == 2
    assert outcome.triggers_processed == 1
    (error,) = outcome.errors
    assert error.kind == "handler"
    assert error.message == "SystemExit: 3"
    assert error.declaration == "builtin:default.onWebhook#0"


def test_handler_raising_cancelled_error_is_recorded(recorder: types.ModuleType) -> None:
    source = """
import asyncio
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/h")
async def gives_up(ctx, event):
    raise asyncio.CancelledError()


@builtin.triggers.on_webhook(path="/h")
def sibling(ctx, event):
    recorder.calls.append("ok")
"""
    outcome = _dispatch(source, EventDescriptor(BUILTIN, "onWebhook", {"path": "/h"}))

    assert recorder.calls == ["ok"]
    assert outcome.triggers_matched == 2
    assert outcome.triggers_processed == 1
    (error,) = outcome.errors
    assert error.kind == "handler"
    assert error.message == "CancelledError"
    assert error.declaration == "builtin:default.onWebhook#0"


def test_failing_async_handler_is_recorded(recorder: types.ModuleType) -> None:
    source = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/h")
async def rejects(ctx, event):
    raise ValueError("bad payload")


@builtin.triggers.on_webhook(path="/h")
def sibling(ctx, event):
    recorder.calls.append("ok")
"""
    outcome = _dispatch(source, EventDescriptor(BUILTIN, "onWebhook", {"path": "/h"}))

    assert recorder.calls == ["ok"]
    assert outcome.triggers_processed == 1
    (error,) = outcome.errors
    assert error.kind == "handler"
    assert error.message == "bad payload"
    assert error.declaration == "builtin:default.onWebhook#0"


def test_invocations_start_in_declaration_order(recorder: types.ModuleType) -> None:
    source = """
import asyncio
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_cron("* * * * *")
async def first(ctx, event):
    recorder.calls.append("first")
    await asyncio.sleep(0.02)


@builtin.triggers.on_cron("* * * * *")
async def second(ctx, event):
    recorder.calls.append("second")
    await asyncio.sleep(0.01)


@builtin.triggers.on_cron("* * * * *")
async def third(ctx, event):
    recorder.calls.append("third")
"""
    outcome = _dispatch(source, EventDescriptor(BUILTIN, "onCron"))

    assert recorder.calls == ["first", "second", "third"]
    assert outcome.triggers_processed == 3


class _TrackedClient:
    def __init__(self, events: list[str]) -> None:
        self._events = events
        self.closed = threading.Event()

    def post(self) -> None:
        self._events.append("post")

    def close(self) -> None:
        self._events.append("close")
        self.closed.set()


class _TrackedFactory:
    def __init__(self) -> None:
        self.events: list[str] = []
        self.clients: list[_TrackedClient] = []

    def create(self, provider: ProviderIdentity) -> _TrackedClient:
        client = _TrackedClient(self.events)
        self.clients.append(client)
        return client


def test_timed_out_sync_handler_keeps_its_clients_open(recorder: types.ModuleType) -> None:
    source = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/slow")
def slow(ctx, event):
    client = ctx.providers.get("gitlab")
    recorder.started.set()
    recorder.release.wait(5)
    client.post()
"""
    recorder.started = threading.Event()
    recorder.release = threading.Event()
    factory = _TrackedFactory()
    builder = ContextBuilder(secret_resolver=ProviderConfigSecretResolver(), client_factory=factory)

    outcome = _dispatch(
        source,
        EventDescriptor(BUILTIN, "onWebhook", {"path": "/slow"}),
        context_builder=builder,
        timeout=0.2,
    )

    (error,) = outcome.errors
    assert error.kind == "timeout"
    assert recorder.started.is_set()
    assert factory.events == []

    recorder.release.set()
    (client,) = factory.clients
    assert client.closed.wait(5)
    assert factory.events == ["post", "close"]
