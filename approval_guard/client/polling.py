"""Blocking wait for a request to reach a terminal status."""

import asyncio
import time
from typing import Optional

from loguru import logger

from .exceptions import GuardTransportError, WaitTimeoutError
from .gateway import GuardGateway
from .models import RequestStatus

DEFAULT_POLL_INTERVAL_MS = 1200


async def wait_for_terminal(
    gateway: GuardGateway,
    request_id: str,
    timeout_ms: int,
    interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
) -> RequestStatus:
    """
    Poll the status endpoint until the request is approved, denied or expired.

    A failed poll is logged and retried; only the overall deadline ends the loop
    early.

    Args:
        gateway: Gateway used for status reads
        request_id: Request to poll
        timeout_ms: Overall deadline in milliseconds
        interval_ms: Delay between polls in milliseconds

    Returns:
        The first terminal RequestStatus observed

    Raises:
        WaitTimeoutError: Deadline passed without a terminal status. The error
            carries the last status read, if any.
    """
    started = time.monotonic()
    last_status: Optional[RequestStatus] = None
    attempt = 0

    while True:
        attempt += 1
        try:
            status = await gateway.fetch_status(request_id)
        except GuardTransportError as e:
            logger.warning(f"Status poll {attempt} for {request_id} failed: {e}")
        else:
            last_status = status
            if status.is_terminal:
                logger.info(f"Request {request_id} reached {status.status} after {attempt} polls")
                return status
            logger.debug(f"Request {request_id} still {status.status} (poll {attempt})")

        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms >= timeout_ms:
            raise WaitTimeoutError(request_id, timeout_ms, last_status)
        await asyncio.sleep(interval_ms / 1000)
