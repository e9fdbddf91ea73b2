"""External collaborators consumed by the runtime: secrets and provider API clients."""

from floww_runtime.providers.factory import ConfiguredClientFactory, ProviderClientFactory
from floww_runtime.providers.secrets import ProviderConfigSecretResolver, SecretResolver

__all__ = [
    "ConfiguredClientFactory",
    "ProviderClientFactory",
    "ProviderConfigSecretResolver",
    "SecretResolver",
]
