"""Auto-recharge dispatch.

When a settlement leaves a balance at or below the profile's threshold and
auto-recharge is enabled, a recharge is triggered for the profile's saved
credit pack.  The trigger runs as an independent asyncio task: the request
that caused it never waits for it, and its failures are logged, never
raised to the caller.

:class:`HttpRechargeService` posts ``{userId, packId}`` to the billing
service with the ``x-internal-secret`` header.  :class:`RechargeDispatcher`
owns the task bookkeeping and can be drained on shutdown or in tests.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from creatorgen.core.models import Profile

logger = logging.getLogger(__name__)


class RechargeService(ABC):
    @abstractmethod
    async def trigger(self, user_id: str, new_balance: int, pack_id: str, threshold: int) -> dict[str, Any]:
        """Charge the saved payment method for *pack_id*."""


class HttpRechargeService(RechargeService):
    """Recharge service reached over HTTP."""

    def __init__(self, http: httpx.AsyncClient, url: str, internal_secret: str) -> None:
        self._http = http
        self._url = url
        self._secret = internal_secret

    async def trigger(self, user_id: str, new_balance: int, pack_id: str, threshold: int) -> dict[str, Any]:
        logger.info(
            "Auto-recharge triggered for user %s. Balance: %d, Threshold: %d",
            user_id,
            new_balance,
            threshold,
        )
        response = await self._http.post(
            self._url,
            json={"userId": user_id, "packId": pack_id},
            headers={"x-internal-secret": self._secret},
        )
        response.raise_for_status()
        data = response.json()
        logger.info(
            "Auto-recharge succeeded for user %s: added %s credits, new balance %s",
            user_id,
            data.get("creditsAdded"),
            data.get("newBalance"),
        )
        return data


def should_recharge(profile: Profile, new_balance: int, default_threshold: int) -> bool:
    """Return True when *profile* is due a recharge at *new_balance*."""
    if not profile.auto_recharge_enabled or not profile.auto_recharge_pack_id:
        return False
    threshold = profile.auto_recharge_threshold
    if threshold is None:
        threshold = default_threshold
    return new_balance <= threshold


class RechargeDispatcher:
    """Fire-and-forget launcher for recharge triggers.

    Task references are kept until completion so they are not garbage
    collected mid-flight.
    """

    def __init__(self, service: RechargeService, default_threshold: int = 10) -> None:
        self._service = service
        self._default_threshold = default_threshold
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def maybe_dispatch(self, profile: Profile, new_balance: int) -> bool:
        """Schedule a recharge if *profile* is due one.  Never awaits it."""
        if not should_recharge(profile, new_balance, self._default_threshold):
            return False

        threshold = profile.auto_recharge_threshold
        if threshold is None:
            threshold = self._default_threshold

        task = asyncio.create_task(
            self._run(profile.user_id, new_balance, profile.auto_recharge_pack_id, threshold)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, user_id: str, new_balance: int, pack_id: str, threshold: int) -> None:
        try:
            await self._service.trigger(user_id, new_balance, pack_id, threshold)
        except Exception:
            logger.exception("Auto-recharge failed for user %s", user_id)

    async def drain(self) -> None:
        """Wait for all in-flight recharge tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
