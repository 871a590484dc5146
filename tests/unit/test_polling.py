"""Unit tests for the poll-until-terminal loop."""

from unittest.mock import AsyncMock, patch

import pytest

from approval_guard.client.exceptions import HttpError, NetworkError, WaitTimeoutError
from approval_guard.client.models import RequestStatus
from approval_guard.client.polling import wait_for_terminal


def _status(value: str) -> RequestStatus:
    return RequestStatus(request_id="req-1", status=value)


def _gateway(*results) -> AsyncMock:
    gateway = AsyncMock()
    gateway.fetch_status.side_effect = list(results)
    return gateway


class TestWaitForTerminal:
    """Tests for wait_for_terminal()."""

    @pytest.mark.asyncio
    async def test_returns_on_third_poll(self):
        """pending, pending, denied stops on the third call."""
        gateway = _gateway(_status("pending"), _status("pending"), _status("denied"))

        with patch("approval_guard.client.polling.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=60_000)

        assert result.status == "denied"
        assert gateway.fetch_status.await_count == 3
        gateway.fetch_status.assert_awaited_with("req-1")
        assert [c.args[0] for c in sleep.await_args_list] == [1.2, 1.2]

    @pytest.mark.asyncio
    async def test_returns_immediately_when_already_terminal(self):
        """No sleep happens when the first poll is terminal."""
        gateway = _gateway(_status("approved"))

        with patch("approval_guard.client.polling.asyncio.sleep", new_callable=AsyncMock) as sleep:
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=60_000)

        assert result.status == "approved"
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_terminal_unknown_status_keeps_polling(self):
        """Service-defined statuses outside the terminal set are not terminal."""
        gateway = _gateway(_status("escalated"), _status("APPROVED"), _status("expired"))

        with patch("approval_guard.client.polling.asyncio.sleep", new_callable=AsyncMock):
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=60_000)

        assert result.status == "expired"
        assert gateway.fetch_status.await_count == 3

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        """A failed poll does not abort the loop."""
        gateway = _gateway(
            NetworkError("http://x/api/guard/status", "hint"),
            HttpError(502, "bad gateway"),
            _status("approved"),
        )

        with patch("approval_guard.client.polling.asyncio.sleep", new_callable=AsyncMock):
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=60_000)

        assert result.status == "approved"
        assert gateway.fetch_status.await_count == 3

    @pytest.mark.asyncio
    async def test_times_out_with_last_status(self):
        """A request stuck in pending raises WaitTimeoutError carrying the last status."""
        gateway = AsyncMock()
        gateway.fetch_status.return_value = _status("pending")

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_for_terminal(gateway, "req-1", timeout_ms=30, interval_ms=5)

        assert exc_info.value.request_id == "req-1"
        assert exc_info.value.timeout_ms == 30
        assert exc_info.value.last_status.status == "pending"
        assert gateway.fetch_status.await_count >= 2

    @pytest.mark.asyncio
    async def test_times_out_without_any_status(self):
        """When every poll fails the timeout carries no status."""
        gateway = AsyncMock()
        gateway.fetch_status.side_effect = NetworkError("http://x", "hint")

        with pytest.raises(WaitTimeoutError) as exc_info:
            await wait_for_terminal(gateway, "req-1", timeout_ms=20, interval_ms=5)

        assert exc_info.value.last_status is None

    @pytest.mark.asyncio
    async def test_against_fake_service(self, guard_service):
        """End to end against the HTTP fake: pending twice, then denied."""
        from approval_guard.client.gateway import GuardGateway

        guard_service.statuses = [
            {"requestId": "req-1", "status": "pending"},
            {"requestId": "req-1", "status": "pending"},
            {"requestId": "req-1", "status": "denied", "denies": [{"by": "carol"}]},
        ]

        async with GuardGateway(guard_service.base_url) as gateway:
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=5_000, interval_ms=1)

        assert result.status == "denied"
        assert result.denies == [{"by": "carol"}]
        assert guard_service.status_queries == ["req-1", "req-1", "req-1"]

    @pytest.mark.asyncio
    async def test_malformed_status_bodies_are_retried(self, guard_service):
        """Mistyped decision lists and undecodable bytes are retried like any transport failure."""
        from approval_guard.client.gateway import GuardGateway

        guard_service.statuses = [
            {"requestId": "req-1", "status": "pending", "approvals": 5},
            b'{"requestId":"req-1","status":"pending\xff"}',
            {"requestId": "req-1", "status": "denied", "denies": [{"by": "carol"}]},
        ]

        async with GuardGateway(guard_service.base_url) as gateway:
            result = await wait_for_terminal(gateway, "req-1", timeout_ms=5_000, interval_ms=1)

        assert result.status == "denied"
        assert len(guard_service.status_queries) == 3
