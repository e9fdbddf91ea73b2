"""Secret resolution collaborator.

The runtime never stores secrets. A resolver hands back the raw mapping for a name;
validation against the handler's declared schema happens in the invocation context.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

SECRET_CONFIG_TYPE = "secret"


class SecretResolver(Protocol):
    def resolve(self, name: str) -> Mapping[str, Any] | None: ...


class ProviderConfigSecretResolver:
    """Resolve secrets from the decrypted provider configs shipped with a request.

    Lookup order for secret `database`:
    - `secret:database`
    - `database:default` (secrets registered as their own provider type)
    """

    def __init__(self, provider_configs: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._configs = dict(provider_configs or {})

    def resolve(self, name: str) -> Mapping[str, Any] | None:
        for key in (f"{SECRET_CONFIG_TYPE}:{name}", f"{name}:default"):
            value = self._configs.get(key)
            if value is not None:
                return value
        return None
