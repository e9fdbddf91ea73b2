"""Provider client factory collaborator."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from floww_runtime.providers.gitlab import GitLabClient
from floww_runtime.providers.jira import JiraClient
from floww_runtime.runtime.models import ProviderIdentity

logger = logging.getLogger(__name__)

ClientBuilder = Callable[[Mapping[str, Any]], Any]

CLIENT_BUILDERS: dict[str, ClientBuilder] = {
    "gitlab": GitLabClient.from_config,
    "jira": JiraClient.from_config,
}


class ProviderClientFactory(Protocol):
    def create(self, provider: ProviderIdentity) -> Any | None: ...


class ConfiguredClientFactory:
    """Build provider API clients from the decrypted configs shipped with a request.

    Provider types without a client (e.g. `builtin`) yield None.
    """

    def __init__(
        self,
        provider_configs: Mapping[str, Mapping[str, Any]] | None = None,
        builders: Mapping[str, ClientBuilder] | None = None,
    ) -> None:
        self._configs = dict(provider_configs or {})
        self._builders = dict(CLIENT_BUILDERS if builders is None else builders)

    def create(self, provider: ProviderIdentity) -> Any | None:
        builder = self._builders.get(provider.type)
        if builder is None:
            return None
        config = self._configs.get(provider.key)
        if config is None:
            raise LookupError(f"{provider.type} credential '{provider.alias}' not configured")
        logger.debug("Creating provider client", extra={"provider": provider.key})
        return builder(config)
