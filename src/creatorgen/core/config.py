"""Configuration management for the creatorgen orchestrator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the CREATORGEN_ prefix,
allowing deployments to swap providers, credentials, and budgets without code
changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (CREATORGEN_* prefix)
2. .env file in the project root
3. Default values defined in CreatorGenConfig

Example .env file:
    CREATORGEN_FAL_KEY=fal-xxxxxxxx
    CREATORGEN_GEMINI_API_KEY=AIza...
    CREATORGEN_DEFAULT_MODEL_ID=nano-banana-pro
    CREATORGEN_IMAGE_COST=3
    CREATORGEN_POLL_BUDGET_SECONDS=290

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Route handlers read it through ``app.state`` so that tests can substitute a
configuration built against temporary directories.

Usage Example
-------------
    from creatorgen.core.config import config

    print(config.default_model_id)
    print(config.poll_budget_seconds)

Budgets
-------
The polling budget (290s by default) is chosen to stay below the caller's own
300s request timeout.  The poll interval and the rate-limit retry delay are
exposed so that tests can shrink them to milliseconds.

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- data_dir: Holds the SQLite datastore
- storage_dir: Root of the local object storage buckets
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AspectRatio = Literal["9:16", "16:9", "1:1", "4:5", "3:4"]


class CreatorGenConfig(BaseSettings):
    """Main configuration for the generation orchestrator.

    Values are loaded from environment variables with the CREATORGEN_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Credits and roles:
        image_cost : int
            Credits charged per successful image generation
        privileged_roles : list[str]
            Roles that bypass the pause gate and the credit check
        default_recharge_threshold : int
            Threshold used when a profile enables auto-recharge without one

    Provider selection:
        default_model_id : str
            Model used when a request names none
        text_to_image_model_id : str
            Fallback when the selected model needs an input image and none exist
        compositing_model_id : str
            Model forced for template + subject remixes

    Provider endpoints:
        fal_key, fal_queue_url : str
            Credentials and base URL for the queue-polling provider
        gemini_api_key, gemini_base_url : str
            Credentials and base URL for the synchronous image API
        gemini_safety_threshold : str
            Harm-block threshold forwarded with every synchronous request

    Budgets:
        poll_interval_seconds : float
            Delay between two status polls
        poll_budget_seconds : float
            Wall-clock budget for a queued job
        rate_limit_retry_delay_seconds : float
            Delay before the single retry after a 429
        http_timeout_seconds : float
            Per-request timeout for outbound HTTP calls

    Upload guardrails:
        max_reference_images, max_file_bytes, max_total_bytes

    Storage and datastore:
        data_dir, database_path, storage_dir, storage_bucket, public_base_url

    Server:
        server_host, server_port

    Notes
    -----
    - Configuration is immutable after initialization
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CREATORGEN_",
        case_sensitive=False,
    )

    # Credits and roles
    image_cost: int = Field(default=3, ge=0, description="Credits per generated image")
    privileged_roles: list[str] = Field(
        default_factory=lambda: ["admin", "super_admin"],
        description="Roles that bypass the pause gate and credit enforcement",
    )
    default_recharge_threshold: int = Field(
        default=10,
        ge=0,
        description="Auto-recharge threshold used when a profile does not set one",
    )

    # Provider selection
    default_model_id: str = Field(
        default="nano-banana-pro",
        description="Model used when the request does not name one",
    )
    text_to_image_model_id: str = Field(
        default="nano-banana-pro",
        description="Text-to-image fallback for edit-only models without input images",
    )
    compositing_model_id: str = Field(
        default="nano-banana-pro",
        description="Multi-image model forced for template + subject remixes",
    )

    # Queue-polling provider
    fal_key: str = Field(default="", description="API key for the queue provider")
    fal_queue_url: str = Field(
        default="https://queue.fal.run",
        description="Base URL of the queue provider",
    )

    # Synchronous provider
    gemini_api_key: str = Field(default="", description="API key for the synchronous provider")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the synchronous image API",
    )
    gemini_safety_threshold: str = Field(
        default="BLOCK_ONLY_HIGH",
        description="Harm-block threshold sent with synchronous requests",
    )

    # Budgets
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    poll_budget_seconds: float = Field(
        default=290.0,
        gt=0,
        description="Wall-clock polling budget (kept under the caller's 300s timeout)",
    )
    rate_limit_retry_delay_seconds: float = Field(default=2.0, ge=0)
    http_timeout_seconds: float = Field(default=60.0, gt=0)

    # Upload guardrails
    max_reference_images: int = Field(default=10, ge=1)
    max_file_bytes: int = Field(default=7 * 1024 * 1024, ge=1)
    max_total_bytes: int = Field(default=20 * 1024 * 1024, ge=1)
    default_aspect_ratio: AspectRatio = Field(default="9:16")

    # Auto-recharge service
    auto_recharge_url: str = Field(
        default="http://localhost:3000/api/stripe/auto-charge",
        description="Endpoint that charges a saved payment method for a credit pack",
    )
    internal_secret: str = Field(
        default="",
        description="Shared secret sent as x-internal-secret to internal services",
    )

    # Storage and datastore
    data_dir: Path = Field(default=Path("data"), description="Directory for the datastore")
    database_name: str = Field(default="creatorgen.sqlite3")
    storage_dir: Path = Field(
        default=Path("storage"),
        description="Root directory of the local object storage",
    )
    storage_bucket: str = Field(default="generations")
    public_base_url: str = Field(
        default="http://localhost:7860",
        description="Externally visible base URL used to build public asset URLs",
    )

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=7860, ge=1024, le=65535)

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        """Absolute location of the SQLite datastore file."""
        return self.data_dir / self.database_name

    def is_privileged(self, role: str | None) -> bool:
        """Return True when *role* bypasses pause and credit checks."""
        return bool(role) and role in self.privileged_roles


# Global configuration instance
# Loads values from environment variables (CREATORGEN_* prefix) and .env file.
config = CreatorGenConfig()
