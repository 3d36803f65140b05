"""Collaborator interfaces consumed by the orchestrator.

The orchestrator never talks to a concrete database or bucket.  It depends on
the narrow asynchronous interfaces below, which keeps every component testable
with in-process fakes and lets deployments plug in a hosted datastore.

Interfaces
----------
ProfileStore
    Profile reads and credit balance mutation.
GenerationRecordStore
    Append-only generation provenance records.
ConfigStore
    Process-wide flags and per-template rules.
ObjectStorage
    Upload/download of binary assets under a single bucket.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import unquote, urlparse

from creatorgen.core.models import GenerationRecord, Profile, TemplateRules


class ProfileStore(ABC):
    """Read profiles and mutate credit balances."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Return the profile for *user_id*, or ``None`` if it does not exist."""

    async def decrement_credits(self, user_id: str, amount: int) -> int | None:
        """Atomically subtract *amount* from the balance.

        Implementations must apply the decrement only if the balance stays
        non-negative, in a single datastore operation.

        Returns:
            The new balance, or ``None`` if the guard rejected the decrement.

        Raises:
            NotImplementedError: The store has no atomic primitive.  Callers
                fall back to :meth:`update_credits`.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_credits(self, user_id: str, credits: int) -> None:
        """Overwrite the balance with *credits*."""


class GenerationRecordStore(ABC):
    @abstractmethod
    async def insert(self, record: GenerationRecord) -> str:
        """Persist *record* and return its identifier."""


class ConfigStore(ABC):
    @abstractmethod
    async def get_flag(self, key: str) -> bool:
        """Return the boolean value of flag *key* (``False`` when unset)."""

    @abstractmethod
    async def get_template_rules(self, template_id: str) -> TemplateRules | None:
        """Return the rules attached to *template_id*, if the template is known."""


class ObjectStorage(ABC):
    """Binary asset storage rooted at one bucket.

    Attributes:
        bucket: Bucket name.  Public URLs contain ``/<bucket>/<path>``, which
            is how :meth:`path_from_url` recovers the object path.
    """

    bucket: str = "generations"

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store *data* at *path* and return its public URL."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Authenticated read of the object at *path*.

        Raises:
            FileNotFoundError: The object does not exist.
        """

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Return the public URL an object at *path* would be served from."""

    def path_from_url(self, url: str) -> str | None:
        """Extract the object path from a public URL of this bucket.

        Args:
            url: A URL such as ``https://cdn/storage/v1/object/public/generations/users/u1/a.png``.

        Returns:
            The path after ``/<bucket>/`` (``users/u1/a.png``), or ``None``
            when the URL does not point into this bucket.
        """
        marker = f"/{self.bucket}/"
        path = unquote(urlparse(url).path)
        index = path.find(marker)
        if index < 0:
            return None
        object_path = path[index + len(marker) :]
        return object_path or None
