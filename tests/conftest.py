"""Shared test fixtures for the loadgate test suite."""

from __future__ import annotations

import asyncio
import socket
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Network utilities
# =============================================================================


def get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Target HTTP server handlers
# =============================================================================

USERS_BODY = b"x" * 100


async def _users_handler(request: web.Request) -> web.Response:
    """Answer 200 with a fixed 100-byte body."""
    return web.Response(body=USERS_BODY, content_type="application/json")


async def _empty_handler(request: web.Request) -> web.Response:
    """Answer 200 with an empty body."""
    return web.Response(status=200)


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.Response(body=USERS_BODY)


async def _error_handler(request: web.Request) -> web.Response:
    """Return a configurable error status (query param: ?status=500)."""
    status = int(request.query.get("status", "500"))
    return web.json_response({"error": True}, status=status)


def _create_target_app() -> web.Application:
    """Build the target app with all test routes."""
    app = web.Application()
    app.router.add_get("/api/users", _users_handler)
    app.router.add_get("/empty", _empty_handler)
    app.router.add_get("/delay", _delay_handler)
    app.router.add_get("/error", _error_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def target_server() -> AsyncIterator[str]:
    """Aiohttp target server running on the test's event loop.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    app = _create_target_app()
    port = get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def sync_target_server() -> Iterator[str]:
    """Target server running in a background thread for sync tests.

    Needed wherever the code under test calls ``asyncio.run`` and so
    blocks the main thread.
    """
    port = get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _create_target_app()
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)


@pytest.fixture
def unused_url() -> str:
    """URL on a local port nothing listens on."""
    return f"http://127.0.0.1:{get_free_port()}/api/users"
