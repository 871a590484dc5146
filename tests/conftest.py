"""Pytest fixtures for Approval Guard tests."""

import os
from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from approval_guard.config import Config


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run live integration tests against a running approval service",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: marks tests as live integration tests (require a running approval service)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --live flag is passed."""
    if config.getoption("--live"):
        return

    skip_live = pytest.mark.skip(reason="Need --live option to run live tests")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def _as_bytes(body) -> bytes:
    return body if isinstance(body, bytes) else body.encode("utf-8")


class FakeGuardService:
    """In-process stand-in for the approval service HTTP API."""

    def __init__(self) -> None:
        self.base_url = ""
        self.created: list[dict] = []
        self.status_queries: list[str] = []
        self.stream_tokens: list[str] = []
        self.create_response: dict = {"requestId": "req-1", "status": "pending", "token": "tok-1"}
        self.create_error: Optional[tuple[int, str | bytes]] = None
        self.create_raw_body: Optional[str | bytes] = None
        self.statuses: list = []  # dicts, or raw bytes served as-is
        self.sse_status = 200
        self.sse_error_body: str | bytes = "stream unavailable"
        self.sse_chunks: list = []  # str or raw bytes

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/api/guard/request", self._create)
        app.router.add_get("/api/guard/status", self._status)
        app.router.add_get("/api/guard/wait-sse", self._stream)
        return app

    async def _create(self, request: web.Request) -> web.StreamResponse:
        self.created.append(await request.json())
        if self.create_error:
            status, body = self.create_error
            return web.Response(status=status, body=_as_bytes(body))
        if self.create_raw_body is not None:
            return web.Response(body=_as_bytes(self.create_raw_body), content_type="application/json")
        return web.json_response(self.create_response)

    async def _status(self, request: web.Request) -> web.StreamResponse:
        request_id = request.query.get("requestId", "")
        self.status_queries.append(request_id)
        if not self.statuses:
            return web.json_response({"error": "not_found"}, status=404)
        body = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(body, bytes):
            return web.Response(body=body, content_type="application/json")
        return web.json_response(body)

    async def _stream(self, request: web.Request) -> web.StreamResponse:
        self.stream_tokens.append(request.query.get("token", ""))
        if not 200 <= self.sse_status < 300:
            return web.Response(status=self.sse_status, body=_as_bytes(self.sse_error_body))
        response = web.StreamResponse(status=self.sse_status, headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in self.sse_chunks:
            await response.write(_as_bytes(chunk))
        await response.write_eof()
        return response


@pytest_asyncio.fixture
async def guard_service():
    """Run a FakeGuardService on a local port for the duration of a test."""
    service = FakeGuardService()
    server = TestServer(service.build_app())
    await server.start_server()
    service.base_url = f"http://{server.host}:{server.port}"
    yield service
    await server.close()


@pytest.fixture
def settings() -> Config:
    """Configuration isolated from the developer's environment and .env file."""
    return Config(
        _env_file=None,
        APPROVAL_GUARD_BASE_URL="http://approvals.test:3000/",
        REQUESTER_ID="alice",
        REQUESTER_SOURCE="tests",
        DEFAULT_ACTION=None,
        DISABLE_AUTO_ACTION=False,
        DEBUG_LOGGING=False,
    )


@pytest.fixture
def live_base_url() -> str:
    """Base URL of a running approval service for live tests."""
    url = os.environ.get("APPROVAL_GUARD_BASE_URL", "")
    if not url:
        pytest.skip("APPROVAL_GUARD_BASE_URL environment variable not set")
    return url
