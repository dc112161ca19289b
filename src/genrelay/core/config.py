"""Configuration management for genrelay.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the GENRELAY_ prefix,
allowing deployment-specific credentials and model choices without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (GENRELAY_* prefix)
2. .env file in the project root
3. Default values defined in GenRelayConfig

Example .env file:
    GENRELAY_REPLICATE_API_TOKEN=r8_...
    GENRELAY_SUPABASE_URL=https://abc.supabase.co
    GENRELAY_SUPABASE_SERVICE_KEY=eyJ...
    GENRELAY_VIDEO_MODE=callback
    GENRELAY_CALLBACK_URL=https://relay.example.com/api/generate/callback

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
The FastAPI lifespan reads it once to build the provider and storage clients;
request handling never reads it directly, so tests can pass their own
GenRelayConfig instances.

Usage Example
-------------
    from genrelay.core.config import config

    print(config.image_model_id)
    print(config.safety_disabled)

Safety Checker
--------------
The provider's safety checker is turned off outside of production.
``safety_disabled`` implements that rule: it is True when
``disable_safety`` is set explicitly or when ``environment`` is anything other
than ``"production"``.

Callback Mode
-------------
Video generation defaults to callback mode: the prediction is submitted with
``callback_url`` as its webhook and the request returns 202 immediately.  If
``callback_url`` is unset, callback-mode requests fail with a 500
(MisconfiguredCallback) before anything is submitted.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenRelayConfig(BaseSettings):
    """Main configuration for genrelay.

    Attributes
    ----------
    Provider Settings:
        replicate_api_token : str
            Replicate API token (Bearer auth)
        replicate_base_url : str
            Base URL of the Replicate HTTP API
        poll_interval : float
            Seconds between prediction status polls in synchronous mode
        sync_wait : int
            Seconds Replicate may hold the create request open (``Prefer: wait=N``);
            must stay below ``http_timeout``
        image_model_id : str
            Model used for ``type="image"`` requests
        video_model_id : str
            Model used for ``type="video"`` requests
        video_mode : Literal["sync", "callback"]
            Whether video requests wait for the result or use the webhook

    Retry Settings:
        max_attempts : int
            Total provider attempts in synchronous mode (not retries)
        backoff_min, backoff_max : float
            Bounds, in seconds, of the randomized delay between attempts

    Storage Settings:
        supabase_url : str
            Supabase project URL
        supabase_service_key : str
            Service-role key used for storage uploads and row inserts
        storage_bucket : str
            Storage bucket receiving generated media
        messages_table : str
            Table receiving chat-message reference rows after video callbacks
        record_references : bool
            Whether callback completions write a reference row at all
        reference_failure_policy : Literal["propagate", "swallow"]
            What a failed reference-row insert does to the callback response

    Server Settings:
        server_host, server_port : bind address for uvicorn
        http_timeout : float
            Timeout applied to every outbound HTTP call
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GENRELAY_",
        case_sensitive=False,
    )

    # Provider settings
    replicate_api_token: str = Field(
        default="",
        description="Replicate API token",
    )
    replicate_base_url: str = Field(
        default="https://api.replicate.com",
        description="Base URL of the Replicate HTTP API",
    )
    poll_interval: float = Field(
        default=1.0,
        description="Seconds between prediction status polls",
        gt=0,
    )
    sync_wait: int = Field(
        default=30,
        description="Seconds Replicate may block the create request before polling takes over",
        ge=1,
        le=60,
    )
    image_model_id: str = Field(
        default="black-forest-labs/flux-dev",
        description="Provider model used for image requests",
    )
    video_model_id: str = Field(
        default="kwaivgi/kling-v2.1",
        description="Provider model used for video requests",
    )
    video_mode: Literal["sync", "callback"] = Field(
        default="callback",
        description="Wait for video results (sync) or submit with a webhook (callback)",
    )
    callback_url: str | None = Field(
        default=None,
        description="Public URL of POST /api/generate/callback",
    )

    # Retry settings
    max_attempts: int = Field(
        default=2,
        description="Total provider attempts in synchronous mode",
        ge=1,
        le=10,
    )
    backoff_min: float = Field(default=0.2, ge=0)
    backoff_max: float = Field(default=0.6, ge=0)

    # Storage settings
    supabase_url: str = Field(
        default="",
        description="Supabase project URL",
    )
    supabase_service_key: str = Field(
        default="",
        description="Supabase service-role key",
    )
    storage_bucket: str = Field(
        default="characters",
        description="Storage bucket receiving generated media",
    )
    messages_table: str = Field(
        default="messages",
        description="Table receiving video reference rows",
    )
    record_references: bool = Field(
        default=True,
        description="Insert a chat-message row after a video callback materializes",
    )
    reference_failure_policy: Literal["propagate", "swallow"] = Field(
        default="propagate",
        description="Fail the callback (propagate) or log and continue (swallow)",
    )

    # Behaviour
    serialize_generations: bool = Field(
        default=False,
        description="Run at most one generation at a time in this process",
    )
    disable_safety: bool = Field(
        default=False,
        description="Disable the provider safety checker regardless of environment",
    )
    environment: str = Field(
        default="development",
        description="Deployment environment name",
    )

    # Server settings
    http_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for outbound HTTP calls",
        gt=0,
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=3000,
        description="Server port",
        ge=1024,
        le=65535,
    )

    @model_validator(mode="after")
    def _check_sync_wait(self) -> "GenRelayConfig":
        # The create request must return before the client read timeout.
        if self.sync_wait >= self.http_timeout:
            raise ValueError(
                f"sync_wait ({self.sync_wait}s) must be below http_timeout ({self.http_timeout}s)"
            )
        return self

    @property
    def safety_disabled(self) -> bool:
        """Whether the provider safety checker should be turned off."""
        return self.disable_safety or self.environment.lower() != "production"


# Global configuration instance
config = GenRelayConfig()
