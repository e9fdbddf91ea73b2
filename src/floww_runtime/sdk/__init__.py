"""Declaration SDK imported by workflow bundles."""

from floww_runtime.runtime.context import InvocationContext, current_context
from floww_runtime.sdk.providers import Builtin, Gitlab, Jira, Provider
from floww_runtime.sdk.secret import Secret

__all__ = [
    "Builtin",
    "Gitlab",
    "InvocationContext",
    "Jira",
    "Provider",
    "Secret",
    "current_context",
]
