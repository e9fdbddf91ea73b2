"""Configuration for the dispatch runtime.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Both host targets (container and serverless) read the same settings. Nothing here is
required: every value has a default so a bare container or function can start.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeSettings(BaseSettings):
    """Settings for the dispatch runtime.

    Environment variables:
    - LOG_LEVEL                          (optional)
    - HOST / PORT                        (container only)
    - FLOWW_DISPATCH_TIMEOUT_SECONDS     (optional)
    - FLOWW_DEFAULT_ENTRYPOINT           (optional)
    - FLOWW_BUNDLE_CACHE_SIZE            (optional)
    - FLOWW_REPORT_TIMEOUT_SECONDS       (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `RuntimeSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT", gt=0, le=65535)

    dispatch_timeout_seconds: float = Field(
        default=300.0,
        validation_alias="FLOWW_DISPATCH_TIMEOUT_SECONDS",
        description=(
            "Overall deadline for one dispatch call. Handlers still running when it "
            "expires are cancelled and reported as timeouts."
        ),
        gt=0,
    )

    default_entrypoint: str = Field(
        default="main.py",
        validation_alias="FLOWW_DEFAULT_ENTRYPOINT",
        description="Entrypoint used when a request does not name one.",
    )

    bundle_cache_size: int = Field(
        default=16,
        validation_alias="FLOWW_BUNDLE_CACHE_SIZE",
        description="Maximum number of loaded bundles kept in memory.",
        ge=1,
    )

    report_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="FLOWW_REPORT_TIMEOUT_SECONDS",
        description="HTTP timeout for execution status reports sent to the backend.",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )
