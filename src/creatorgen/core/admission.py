"""Credit-based admission control.

Two calls bracket every generation attempt:

1. :meth:`AdmissionController.check_and_reserve` runs strictly before any
   provider call.  Privileged roles are always allowed; everyone else needs
   ``balance >= cost``.
2. :meth:`AdmissionController.settle` runs once, strictly after a confirmed
   successful result.  It is never called for a failed or ambiguous attempt
   and is never retried.

Settlement uses the store's atomic conditional decrement.  Stores without
one raise :class:`NotImplementedError`, and settlement falls back to a plain
read-modify-write update clamped at zero.  After settlement, the recharge
dispatcher is asked to top the account up if it crossed its threshold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from creatorgen.core.errors import InsufficientCredits, ProfileNotFound
from creatorgen.core.models import Profile
from creatorgen.core.recharge import RechargeDispatcher
from creatorgen.storage.base import ProfileStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of the credit pre-check.

    Attributes:
        allowed: Whether the attempt may proceed.
        profile: The profile read for the decision.
        privileged: The role bypasses credit enforcement.
        reason: Why the attempt was denied (``None`` when allowed).
        required: Cost of the operation.
        available: Balance at decision time.
    """

    allowed: bool
    profile: Profile
    privileged: bool
    required: int
    available: int
    reason: str | None = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise InsufficientCredits(
                required=self.required,
                available=self.available,
                plan=self.profile.plan,
            )


class AdmissionController:
    """Credit pre-check and settlement.

    Args:
        profiles: Profile store holding balances and roles.
        privileged_roles: Roles that bypass the credit check.
        recharge: Dispatcher for auto-recharge triggers (optional).
    """

    def __init__(
        self,
        profiles: ProfileStore,
        privileged_roles: list[str],
        recharge: RechargeDispatcher | None = None,
    ) -> None:
        self._profiles = profiles
        self._privileged_roles = set(privileged_roles)
        self._recharge = recharge

    def is_privileged(self, profile: Profile) -> bool:
        return profile.role in self._privileged_roles

    async def load_profile(self, user_id: str) -> Profile:
        """Return the profile for *user_id*.

        Raises:
            ProfileNotFound: No profile exists.
        """
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound("User profile not found", user_id=user_id)
        return profile

    async def check_and_reserve(self, user_id: str, cost: int) -> AdmissionDecision:
        """Decide whether *user_id* may run an operation costing *cost*.

        Nothing is deducted here; see :meth:`settle`.
        """
        profile = await self.load_profile(user_id)
        return self.decide(profile, cost)

    def decide(self, profile: Profile, cost: int) -> AdmissionDecision:
        available = profile.credits or 0
        privileged = self.is_privileged(profile)

        if privileged or available >= cost:
            return AdmissionDecision(
                allowed=True,
                profile=profile,
                privileged=privileged,
                required=cost,
                available=available,
            )

        logger.info("Denied user %s: %d credit(s) available, %d required", profile.user_id, available, cost)
        return AdmissionDecision(
            allowed=False,
            profile=profile,
            privileged=False,
            required=cost,
            available=available,
            reason="insufficient_credits",
        )

    async def settle(self, decision: AdmissionDecision) -> int:
        """Deduct the operation cost after a confirmed success.

        Privileged users are never charged; their balance is returned as is.

        Returns:
            The balance after settlement.
        """
        profile = decision.profile
        if decision.privileged:
            return profile.credits

        cost = decision.required
        try:
            new_balance = await self._profiles.decrement_credits(profile.user_id, cost)
        except NotImplementedError:
            new_balance = await self._plain_update(profile.user_id, cost)

        if new_balance is None:
            # The atomic guard refused: a concurrent attempt spent the credit.
            current = await self._profiles.get_profile(profile.user_id)
            new_balance = current.credits if current else 0
            logger.warning(
                "Decrement of %d refused for user %s (balance %d)",
                cost,
                profile.user_id,
                new_balance,
            )

        logger.info("Settled %d credit(s) for user %s; balance %d", cost, profile.user_id, new_balance)

        if self._recharge is not None:
            self._recharge.maybe_dispatch(profile, new_balance)
        return new_balance

    async def _plain_update(self, user_id: str, cost: int) -> int:
        current = await self._profiles.get_profile(user_id)
        balance = current.credits if current else 0
        new_balance = max(balance - cost, 0)
        await self._profiles.update_credits(user_id, new_balance)
        return new_balance
