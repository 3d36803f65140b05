"""Tests for creatorgen.core.pause_gate — the global pause flag."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from creatorgen.core.pause_gate import PAUSE_FLAG, PauseGate

PRIVILEGED = ["admin", "super_admin"]


class TestPauseGate:
    def test_not_paused_by_default(self, datastore):
        gate = PauseGate(datastore, PRIVILEGED)
        assert asyncio.run(gate.is_paused("user")) is False

    def test_paused(self, datastore):
        datastore.set_flag(PAUSE_FLAG, True)
        gate = PauseGate(datastore, PRIVILEGED)
        assert asyncio.run(gate.is_paused("user")) is True

    @pytest.mark.parametrize("role", PRIVILEGED)
    def test_privileged_never_paused(self, datastore, role: str):
        datastore.set_flag(PAUSE_FLAG, True)
        gate = PauseGate(datastore, PRIVILEGED)
        assert asyncio.run(gate.is_paused(role)) is False

    def test_privileged_does_not_read_flag(self):
        store = AsyncMock()
        asyncio.run(PauseGate(store, PRIVILEGED).is_paused("admin"))
        store.get_flag.assert_not_called()

    def test_toggle_takes_effect_immediately(self, datastore):
        """The flag is read on every call, never cached."""
        gate = PauseGate(datastore, PRIVILEGED)
        datastore.set_flag(PAUSE_FLAG, True)
        assert asyncio.run(gate.is_paused("user")) is True
        datastore.set_flag(PAUSE_FLAG, False)
        assert asyncio.run(gate.is_paused("user")) is False

    def test_read_failure_fails_open(self, caplog):
        store = AsyncMock()
        store.get_flag.side_effect = RuntimeError("config store down")

        assert asyncio.run(PauseGate(store, PRIVILEGED).is_paused("user")) is False
        assert PAUSE_FLAG in caplog.text
