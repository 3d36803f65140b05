"""Global pause gate.

Operators can stop all non-privileged generations by setting the
``generations_paused`` flag in the config store.  The flag is read on every
request with no caching, so toggling it takes effect immediately.

A failed read fails open: the system is treated as not paused, so a config
store outage does not also take generation down.
"""

from __future__ import annotations

import logging

from creatorgen.storage.base import ConfigStore

logger = logging.getLogger(__name__)

PAUSE_FLAG = "generations_paused"


class PauseGate:
    """Decide whether a request must be rejected because generation is paused.

    Args:
        config_store: Store holding the pause flag.
        privileged_roles: Roles that are never paused.
    """

    def __init__(self, config_store: ConfigStore, privileged_roles: list[str]) -> None:
        self._config_store = config_store
        self._privileged_roles = set(privileged_roles)

    async def is_paused(self, role: str | None) -> bool:
        if role in self._privileged_roles:
            return False

        try:
            return await self._config_store.get_flag(PAUSE_FLAG)
        except Exception:
            logger.exception("Could not read %s; treating generations as running", PAUSE_FLAG)
            return False
