"""Base classes and registry for generation providers.

Each backend AI service (a synchronous image API, an asynchronous job queue)
has its own provider class implementing one interface::

    handle = await provider.submit(job)
    outcome = await handle.wait(budget_seconds)

Synchronous providers return a handle that is already resolved; queue
providers return a handle that polls the job until it settles.  Callers never
branch on the provider kind.

Provider Kinds
--------------
- **sync**: the result comes back in the submit response.  Inputs are sent
  inline, so the provider's ``input_transport`` is ``"inline"``.
- **queue**: submit returns a job identifier that is polled.  The backend
  fetches inputs itself, so ``input_transport`` is ``"url"``.

Usage Example
-------------
    >>> from creatorgen.core.providers import provider_registry
    >>> provider = provider_registry.instantiate("fal-queue", config, http, outputs)
    >>> handle = await provider.submit(job)
    >>> outcome = await handle.wait(290.0)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Literal

import httpx

from creatorgen.core.config import CreatorGenConfig
from creatorgen.core.models import ProviderJob, ProviderKind, ProviderOutcome

if TYPE_CHECKING:
    from creatorgen.core.outputs import OutputWriter

logger = logging.getLogger(__name__)


class JobHandle(ABC):
    """A submitted job whose outcome can be awaited."""

    @abstractmethod
    async def wait(self, budget_seconds: float) -> ProviderOutcome:
        """Wait for the job to settle within *budget_seconds*.

        Returns a :class:`ProviderOutcome` carrying either the result URL or
        the terminal error.  Task cancellation propagates unchanged.
        """


class ResolvedHandle(JobHandle):
    """Handle for a job whose outcome is already known."""

    def __init__(self, outcome: ProviderOutcome) -> None:
        self.outcome = outcome

    async def wait(self, budget_seconds: float) -> ProviderOutcome:
        return self.outcome


class ProviderBase(ABC):
    """Abstract base class for all generation providers.

    Attributes
    ----------
    name : str
        Registry name (e.g. ``"gemini"``)
    description : str
        Brief description of the backend
    kind : ProviderKind
        ``"sync"`` or ``"queue"``
    input_transport : str
        ``"inline"`` when the provider takes image bytes, ``"url"`` when it
        fetches inputs itself
    """

    name: str = "base"
    description: str = "Base class for providers"
    kind: ProviderKind = "sync"
    input_transport: Literal["inline", "url"] = "inline"

    def __init__(
        self,
        config: CreatorGenConfig,
        http: httpx.AsyncClient,
        outputs: OutputWriter | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Configuration holding credentials, URLs and budgets
            http: Shared HTTP client
            outputs: Writer for providers that return image bytes
        """
        self.config = config
        self.http = http
        self.outputs = outputs

    @abstractmethod
    def build_payload(self, job: ProviderJob, family: str) -> dict[str, Any]:
        """Shape the provider request body for *job*."""

    @abstractmethod
    async def submit(self, job: ProviderJob, upstream_model: str, family: str) -> JobHandle:
        """Send *job* to the backend.

        Returns:
            A handle for the submitted job.  Submission errors are reported
            through a resolved handle carrying the error.
        """

    def get_provider_info(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "kind": self.kind,
            "input_transport": self.input_transport,
        }


class ProviderRegistry:
    """Registry for discovering and instantiating provider classes.

    Notes
    -----
    - Providers must be registered before they can be instantiated
    - Registry is global and shared across the application
    """

    def __init__(self) -> None:
        self._providers: dict[str, type[ProviderBase]] = {}

    def register(self, provider_class: type[ProviderBase]) -> type[ProviderBase]:
        """Register a provider class.  Usable as a class decorator."""
        name = provider_class.name

        if name in self._providers:
            logger.warning("Provider '%s' is already registered, overwriting", name)

        self._providers[name] = provider_class
        logger.debug("Registered provider: %s", name)
        return provider_class

    def instantiate(
        self,
        name: str,
        config: CreatorGenConfig,
        http: httpx.AsyncClient,
        outputs: OutputWriter | None = None,
    ) -> ProviderBase:
        """Create an instance of a registered provider.

        Raises
        ------
        KeyError
            If *name* is not registered
        """
        if name not in self._providers:
            available = ", ".join(self.list_available())
            raise KeyError(f"Provider '{name}' not found. Available providers: {available}")

        return self._providers[name](config=config, http=http, outputs=outputs)

    def list_available(self) -> list[str]:
        return list(self._providers.keys())


# Global provider registry instance
provider_registry = ProviderRegistry()
