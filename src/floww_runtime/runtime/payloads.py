"""Pydantic models for the wire payloads accepted by both host targets."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from floww_runtime.bundle.loader import Bundle
from floww_runtime.runtime.models import DEFAULT_ALIAS, EventDescriptor, ProviderIdentity

EVENT_INVOKE_TRIGGER = "invoke_trigger"
EVENT_GET_DEFINITIONS = "get_definitions"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderPayload(_WireModel):
    type: str = Field(min_length=1)
    alias: str = DEFAULT_ALIAS

    def to_identity(self) -> ProviderIdentity:
        return ProviderIdentity(type=self.type, alias=self.alias)


class TriggerPayload(_WireModel):
    provider: ProviderPayload
    trigger_type: str = Field(
        min_length=1,
        validation_alias=AliasChoices("trigger_type", "triggerType"),
    )
    input: dict[str, Any] = Field(default_factory=dict)

    @field_validator("input", mode="before")
    @classmethod
    def _none_input_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class UserCodePayload(_WireModel):
    files: dict[str, str]
    entrypoint: str | None = None

    def to_bundle(self, default_entrypoint: str) -> Bundle:
        return Bundle(files=dict(self.files), entrypoint=self.entrypoint or default_entrypoint)


class _BundleRequest(_WireModel):
    user_code: UserCodePayload = Field(validation_alias=AliasChoices("userCode", "user_code"))
    provider_configs: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("providerConfigs", "provider_configs"),
    )

    @field_validator("provider_configs", mode="before")
    @classmethod
    def _none_configs_are_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_bundle(self, default_entrypoint: str) -> Bundle:
        return self.user_code.to_bundle(default_entrypoint)


class InvokeTriggerRequest(_BundleRequest):
    """Dispatch request: a bundle, the trigger identity and the event payload."""

    type: Literal["invoke_trigger"] = EVENT_INVOKE_TRIGGER
    trigger: TriggerPayload
    data: Any = None

    # Execution reporting; all three must be present for a report to be sent.
    backend_url: str | None = Field(
        default=None, validation_alias=AliasChoices("backendUrl", "backend_url")
    )
    execution_id: str | None = Field(
        default=None, validation_alias=AliasChoices("executionId", "execution_id")
    )
    auth_token: str | None = Field(
        default=None, validation_alias=AliasChoices("authToken", "auth_token")
    )

    def to_descriptor(self) -> EventDescriptor:
        return EventDescriptor(
            provider=self.trigger.provider.to_identity(),
            trigger_type=self.trigger.trigger_type,
            input=dict(self.trigger.input),
            data=self.data,
        )

    @property
    def wants_report(self) -> bool:
        return bool(self.backend_url and self.execution_id and self.auth_token)


class GetDefinitionsRequest(_BundleRequest):
    type: Literal["get_definitions"] = EVENT_GET_DEFINITIONS


class DefinitionsResult(BaseModel):
    success: bool
    triggers: list[dict[str, Any]] = Field(default_factory=list)
    providers: list[dict[str, str]] = Field(default_factory=list)
    error: str | None = None
