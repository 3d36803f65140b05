"""Error taxonomy for the generation orchestrator.

Every terminal failure of a generation attempt is raised as a subclass of
:class:`GenerationError`.  Each class carries a machine-readable ``kind``, the
HTTP status the API layer should answer with, a human-readable message, and
an optional ``details`` mapping that is merged into the JSON error body.

============================  ======  ===========================================
Exception                     Status  Meaning
============================  ======  ===========================================
ValidationError               400     Bad, missing, or oversized input
AssetUnavailable              400     Reference could not be fetched at all
InsufficientCredits           402     Balance below the operation cost
ProfileNotFound               404     No profile for the requesting user
ProviderRateLimited           429     Upstream still rate limited after retry
ProviderFailure               502*    Upstream error or no usable output
SystemPaused                  503     Generations disabled by an operator
GenerationTimeout             504     Polling budget exhausted
============================  ======  ===========================================

``*`` ProviderFailure passes the upstream status through when one exists.

Only :class:`ProviderRateLimited` is ever retried, and only inside the
synchronous provider.  Credits are never deducted for any of these.
"""

from __future__ import annotations

from typing import Any


class GenerationError(Exception):
    """Base class for terminal generation failures."""

    kind: str = "generation_error"
    status_code: int = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details

    def to_dict(self) -> dict[str, Any]:
        """Return the structured error body sent to API clients."""
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        body.update(self.details)
        return body


class ValidationError(GenerationError):
    """User-correctable input problem.  Never retried by the system."""

    kind = "validation_error"
    status_code = 400


class ProfileNotFound(GenerationError):
    kind = "profile_not_found"
    status_code = 404


class InsufficientCredits(GenerationError):
    """Balance below the cost of the requested operation.

    ``details`` always carries ``required``, ``available`` and ``plan``.
    """

    kind = "insufficient_credits"
    status_code = 402

    def __init__(self, required: int, available: int, plan: str | None = None) -> None:
        super().__init__(
            "Insufficient credits",
            required=required,
            available=available,
            plan=plan,
        )
        self.required = required
        self.available = available


class SystemPaused(GenerationError):
    kind = "system_paused"
    status_code = 503

    def __init__(self, message: str = "Generations are temporarily paused. Please try again later.") -> None:
        super().__init__(message)


class AssetUnavailable(GenerationError):
    """Both the public fetch and the authenticated storage read failed."""

    kind = "asset_unavailable"
    status_code = 400


class ProviderRateLimited(GenerationError):
    kind = "provider_rate_limited"
    status_code = 429

    def __init__(self, message: str = "System busy, please try again in a moment.", **details: Any) -> None:
        super().__init__(message, **details)


class ProviderFailure(GenerationError):
    """Upstream returned an error or no usable output.

    When the upstream answered with an HTTP error status, that status is
    surfaced to the caller; otherwise 502 is used.
    """

    kind = "provider_error"
    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.upstream_status = upstream_status
        if upstream_status is not None and upstream_status >= 400:
            self.status_code = upstream_status


class GenerationTimeout(GenerationError):
    kind = "timeout"
    status_code = 504
