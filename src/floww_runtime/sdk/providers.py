"""Provider declarations used by workflow bundles.

Each provider instance is bound to a credential alias. Its `triggers` namespace
registers declarations with the active registration pass:

    gitlab = Gitlab("work")

    @gitlab.triggers.on_merge_request_comment(project_id=123)
    def review(ctx, event):
        ...

Every trigger method also accepts `handler=` for the non-decorator form.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from floww_runtime.bundle.registration import register_trigger, track_provider
from floww_runtime.runtime.models import (
    DEFAULT_ALIAS,
    KIND_CRON,
    KIND_WEBHOOK,
    Handler,
    ProviderIdentity,
    TriggerDeclaration,
)

KIND_MERGE_REQUEST_COMMENT = "onMergeRequestComment"
KIND_ISSUE_CREATED = "onIssueCreated"
KIND_ISSUE_UPDATED = "onIssueUpdated"
KIND_COMMENT_ADDED = "onCommentAdded"

Decorator = Callable[[Handler], Handler]


class _Triggers:
    def __init__(self, provider: ProviderIdentity) -> None:
        self._provider = provider

    def _declare(
        self, kind: str, predicate: Mapping[str, Any], handler: Handler | None
    ) -> TriggerDeclaration | Decorator:
        if handler is not None:
            return register_trigger(self._provider, kind, predicate, handler)

        def decorator(func: Handler) -> Handler:
            register_trigger(self._provider, kind, predicate, func)
            return func

        return decorator


class Provider:
    """Base class for provider declarations."""

    provider_type = ""
    triggers_class: type[_Triggers] = _Triggers

    def __init__(self, credential: str = DEFAULT_ALIAS) -> None:
        if not credential:
            raise ValueError("credential alias must not be empty")
        self.identity = ProviderIdentity(type=self.provider_type, alias=credential)
        self.triggers = self.triggers_class(self.identity)
        track_provider(self.identity)

    @property
    def credential(self) -> str:
        return self.identity.alias

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.identity.alias!r})"


class BuiltinTriggers(_Triggers):
    def on_cron(self, expression: str, handler: Handler | None = None) -> Any:
        if not expression or not expression.strip():
            raise ValueError("cron expression is required")
        return self._declare(KIND_CRON, {"expression": expression}, handler)

    def on_webhook(
        self, path: str, method: str | None = None, handler: Handler | None = None
    ) -> Any:
        if not path.startswith("/"):
            raise ValueError(f"webhook path must start with '/', got {path!r}")
        predicate = {"path": path, "method": method.upper() if method else None}
        return self._declare(KIND_WEBHOOK, predicate, handler)


class Builtin(Provider):
    """Cron schedules and plain inbound webhooks."""

    provider_type = "builtin"
    triggers_class = BuiltinTriggers
    triggers: BuiltinTriggers


class GitlabTriggers(_Triggers):
    def on_merge_request_comment(
        self,
        project_id: str | int | None = None,
        group_id: str | int | None = None,
        handler: Handler | None = None,
    ) -> Any:
        """Comments on merge requests of one project, of any project in a group, or anywhere."""

        predicate = {"project_id": project_id, "group_id": group_id}
        return self._declare(KIND_MERGE_REQUEST_COMMENT, predicate, handler)


class Gitlab(Provider):
    provider_type = "gitlab"
    triggers_class = GitlabTriggers
    triggers: GitlabTriggers


class JiraTriggers(_Triggers):
    def on_issue_created(
        self,
        project_key: str | None = None,
        issue_type: str | None = None,
        handler: Handler | None = None,
    ) -> Any:
        predicate = {"project_key": project_key, "issue_type": issue_type}
        return self._declare(KIND_ISSUE_CREATED, predicate, handler)

    def on_issue_updated(
        self,
        project_key: str | None = None,
        issue_type: str | None = None,
        handler: Handler | None = None,
    ) -> Any:
        predicate = {"project_key": project_key, "issue_type": issue_type}
        return self._declare(KIND_ISSUE_UPDATED, predicate, handler)

    def on_comment_added(
        self, project_key: str | None = None, handler: Handler | None = None
    ) -> Any:
        return self._declare(KIND_COMMENT_ADDED, {"project_key": project_key}, handler)


class Jira(Provider):
    provider_type = "jira"
    triggers_class = JiraTriggers
    triggers: JiraTriggers
