"""Pytest fixtures for dashboard server unit tests.

Builds the real aiohttp application around a ControlHub driven by a mock
supervisor, so routes can be exercised without spawning a capture worker.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import pytest
from aiohttp import web

from capture_hub.core.api import DashboardServer
from capture_hub.core.config_manager import ServerConfig
from capture_hub.core.control_hub import ControlHub
from tests.infrastructure.mocks.hub_mocks import MockSupervisor


T = TypeVar("T")

SNAPSHOT = {"format": "jpg", "quality": 80, "captureIntervalSeconds": 15, "outputRoot": "./shots"}


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_test_app(
    supervisor: MockSupervisor,
    public_dir: Optional[Path] = None,
) -> web.Application:
    """Create the dashboard application for TestServer.

    The hub is created here so its lock belongs to the test's event loop.
    """
    hub = ControlHub(supervisor, SNAPSHOT)
    config = ServerConfig(public_dir=public_dir) if public_dir is not None else ServerConfig()
    return DashboardServer(hub, config).create_app()


@pytest.fixture
def mock_supervisor() -> MockSupervisor:
    return MockSupervisor()


@pytest.fixture
def public_dir(tmp_path) -> Path:
    """A minimal set of dashboard assets."""
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "index.html").write_text("<html><body>dashboard</body></html>")
    (directory / "app.js").write_text("console.log('dashboard');")
    return directory
