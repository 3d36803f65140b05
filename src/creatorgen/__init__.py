"""creatorgen - credit-metered image generation orchestrator."""

__version__ = "0.3.0"

from creatorgen.core.config import CreatorGenConfig, config

# Import providers to ensure they're registered
from creatorgen.core.providers import FalQueueProvider, GeminiImageProvider, provider_registry  # noqa: F401

__all__ = [
    "CreatorGenConfig",
    "config",
    "provider_registry",
    "FalQueueProvider",
    "GeminiImageProvider",
]
