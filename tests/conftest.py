"""Test configuration and fixtures."""

from __future__ import annotations

import sys
import types
from collections.abc import Callable
from typing import Any

import pytest

from floww_runtime.runtime.config import RuntimeSettings
from floww_runtime.runtime.service import RuntimeService

RECORDER_MODULE = "floww_test_recorder"

WEBHOOK_BUNDLE = """
import floww_test_recorder as recorder
from floww_runtime.sdk import Builtin

builtin = Builtin()


@builtin.triggers.on_webhook(path="/custom")
def on_custom(ctx, event):
    recorder.calls.append(("custom", event.body["message"]))
"""


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> types.ModuleType:
    """A real module bundle code can import to record handler calls."""
    module = types.ModuleType(RECORDER_MODULE)
    module.calls = []  # type: ignore[attr-defined]
    monkeypatch.setitem(sys.modules, RECORDER_MODULE, module)
    return module


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> RuntimeSettings:
    """Settings isolated from the developer's environment and `.env`."""
    for name in (
        "LOG_LEVEL",
        "FLOWW_DISPATCH_TIMEOUT_SECONDS",
        "FLOWW_DEFAULT_ENTRYPOINT",
        "FLOWW_BUNDLE_CACHE_SIZE",
        "FLOWW_REPORT_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FLOWW_DISPATCH_TIMEOUT_SECONDS", "5")
    monkeypatch.chdir(tmp_path)
    return RuntimeSettings()


@pytest.fixture
def service(settings: RuntimeSettings) -> RuntimeService:
    return RuntimeService(settings)


@pytest.fixture
def invoke_payload() -> Callable[..., dict[str, Any]]:
    """Build an `invoke_trigger` request body."""

    def build(
        files: dict[str, str],
        *,
        provider_type: str = "builtin",
        alias: str = "default",
        trigger_type: str = "onWebhook",
        input: dict[str, Any] | None = None,
        data: Any = None,
        entrypoint: str | None = "main.py",
        **extra: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "userCode": {"files": files, "entrypoint": entrypoint},
            "trigger": {
                "provider": {"type": provider_type, "alias": alias},
                "triggerType": trigger_type,
                "input": input or {},
            },
            "data": data,
        }
        payload.update(extra)
        return payload

    return build


@pytest.fixture
def webhook_bundle() -> str:
    """Main file declaring a builtin webhook on `/custom` that records its body message."""
    return WEBHOOK_BUNDLE
