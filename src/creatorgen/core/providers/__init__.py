"""Generation providers and the gateway that selects between them.

Importing this package registers the bundled providers with
:data:`provider_registry`.
"""

from creatorgen.core.providers.base import JobHandle, ProviderBase, ResolvedHandle, provider_registry
from creatorgen.core.providers.catalog import GENERATION_MODELS, ModelSpec, get_model_spec
from creatorgen.core.providers.fal_queue import FalQueueProvider
from creatorgen.core.providers.gateway import ProviderGateway, derive_strength
from creatorgen.core.providers.gemini import GeminiImageProvider

__all__ = [
    "FalQueueProvider",
    "GENERATION_MODELS",
    "GeminiImageProvider",
    "JobHandle",
    "ModelSpec",
    "ProviderBase",
    "ProviderGateway",
    "ResolvedHandle",
    "derive_strength",
    "get_model_spec",
    "provider_registry",
]
