"""Event matcher.

Pure filtering of registry candidates against one event descriptor. Nothing here
invokes handlers or touches I/O.

Rules per kind:
- `onCron`: always matches; schedule evaluation belongs to the external scheduler.
- `onWebhook`: exact, case-sensitive path equality; method must equal when declared.
- anything else (provider webhooks): every declared predicate field must equal the
  field extracted from the event. Undeclared fields are wildcards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from floww_runtime.runtime.models import (
    KIND_CRON,
    KIND_WEBHOOK,
    EventDescriptor,
    TriggerDeclaration,
)

logger = logging.getLogger(__name__)

_MISSING = object()

FieldExtractor = Callable[[Any], Any]


def _path(*keys: str) -> FieldExtractor:
    def extract(data: Any) -> Any:
        current = data
        for key in keys:
            if not isinstance(current, Mapping) or key not in current:
                return _MISSING
            current = current[key]
        return current

    return extract


# Where provider payloads carry the fields that declarations filter on.
# GitLab note hooks: https://docs.gitlab.com/ee/user/project/integrations/webhook_events.html
# Jira issue events: https://developer.atlassian.com/server/jira/platform/webhooks/
FIELD_EXTRACTORS: dict[str, tuple[FieldExtractor, ...]] = {
    "project_id": (
        _path("body", "project", "id"),
        _path("body", "project_id"),
        _path("project", "id"),
    ),
    "group_id": (
        _path("body", "project", "namespace_id"),
        _path("project", "namespace_id"),
    ),
    "project_key": (
        _path("body", "issue", "fields", "project", "key"),
        _path("issue", "fields", "project", "key"),
    ),
    "issue_type": (
        _path("body", "issue", "fields", "issuetype", "name"),
        _path("issue", "fields", "issuetype", "name"),
    ),
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def extract_field(descriptor: EventDescriptor, field_name: str) -> Any:
    """Return the value of *field_name* carried by the event, or `_MISSING`."""

    for extractor in FIELD_EXTRACTORS.get(field_name, ()):
        value = extractor(descriptor.data)
        if value is not _MISSING and value is not None:
            return value

    body = descriptor.data.get("body") if isinstance(descriptor.data, Mapping) else None
    for source in (descriptor.data, body, descriptor.input):
        if not isinstance(source, Mapping):
            continue
        for key in (field_name, _camel(field_name)):
            if source.get(key) is not None:
                return source[key]
    return _MISSING


def _same_value(expected: Any, actual: Any) -> bool:
    # Provider payloads carry numeric ids where declarations often use strings.
    return expected == actual or str(expected) == str(actual)


def _match_webhook(declaration: TriggerDeclaration, descriptor: EventDescriptor) -> bool:
    path = declaration.predicate.get("path")
    if path is None or descriptor.input.get("path") != path:
        return False
    method = declaration.predicate.get("method")
    if method is None:
        return True
    actual = descriptor.input.get("method")
    return isinstance(actual, str) and actual.upper() == str(method).upper()


def _match_fields(declaration: TriggerDeclaration, descriptor: EventDescriptor) -> bool:
    for field_name, expected in declaration.predicate.items():
        actual = extract_field(descriptor, field_name)
        if actual is _MISSING or not _same_value(expected, actual):
            return False
    return True


def matches(declaration: TriggerDeclaration, descriptor: EventDescriptor) -> bool:
    if declaration.provider != descriptor.provider or declaration.kind != descriptor.trigger_type:
        return False
    if declaration.kind == KIND_CRON:
        return True
    if declaration.kind == KIND_WEBHOOK:
        return _match_webhook(declaration, descriptor)
    return _match_fields(declaration, descriptor)


def match(
    descriptor: EventDescriptor, candidates: Iterable[TriggerDeclaration]
) -> list[TriggerDeclaration]:
    """Filter *candidates* down to the declarations that fire for *descriptor*.

    Candidate order (registry insertion order) is preserved.
    """

    matched = [declaration for declaration in candidates if matches(declaration, descriptor)]
    logger.debug(
        "Matched triggers",
        extra={
            "provider": descriptor.provider.key,
            "trigger_type": descriptor.trigger_type,
            "matched": [declaration.label for declaration in matched],
        },
    )
    return matched
