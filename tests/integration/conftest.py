"""Integration test fixtures.

Provides a relay server listening on ephemeral localhost ports.
"""

import logging
from collections.abc import AsyncIterator

import pytest_asyncio

from vadrelay.config import RelayConfig
from vadrelay.server.app import RelayServer

logger = logging.getLogger(__name__)


@pytest_asyncio.fixture
async def running_relay() -> AsyncIterator[RelayServer]:
    """Relay server with WebSocket and health endpoints on ephemeral ports."""
    config = RelayConfig.model_validate(
        {
            "server": {"host": "127.0.0.1", "port": 0, "max_connections": 3},
            "health": {"enabled": True, "host": "127.0.0.1", "port": 0},
        }
    )
    server = RelayServer(config)
    await server.start()
    logger.info("Test relay started", extra={"port": server.port})
    try:
        yield server
    finally:
        await server.stop()
