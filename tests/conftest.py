"""Shared fixtures for relay tests."""

from collections.abc import Callable

import pytest

from tests.helpers.connections import RecordingConnection
from vadrelay.config import RelayConfig
from vadrelay.server.app import RelayServer


@pytest.fixture
def make_connection() -> Callable[[str], RecordingConnection]:
    """Factory for recording connections."""

    def _make(connection_id: str) -> RecordingConnection:
        return RecordingConnection(connection_id)

    return _make


@pytest.fixture
def relay_server() -> RelayServer:
    """Relay server that is not listening (for dispatch tests)."""
    config = RelayConfig.model_validate({"server": {"port": 0}, "health": {"enabled": False}})
    return RelayServer(config)
