"""Submit approval requests and track them until a decision is reached.

The orchestrator owns one gateway and one live stream tracker. A submission
can wait for the decision by polling, follow it over the event stream, or both;
the two paths are independent and each reports the first terminal state it
sees to its own consumer.
"""

import os
from typing import Optional

from loguru import logger

from approval_guard.client.exceptions import ActionRequiredError, WaitTimeoutError
from approval_guard.client.gateway import GuardGateway
from approval_guard.client.models import ApprovalRequest, RequestStatus
from approval_guard.client.polling import wait_for_terminal
from approval_guard.client.streaming import LiveStreamTracker, StateListener
from approval_guard.config import FALLBACK_ACTION, Config, config
from approval_guard.git import GitService, RepoOrigin
from approval_guard.utils.validators import slug, validate_justification


def resolve_action(
    justification: str,
    action: Optional[str] = None,
    scope: Optional[str] = None,
    default_action: Optional[str] = None,
    disable_auto: bool = False,
) -> str:
    """
    Pick the action identifier for a request.

    Priority: explicit action, ``scope_<slug>``, ``auto_<slug of justification>``,
    configured default, hardcoded fallback. With ``disable_auto`` only an
    explicit action or a scope is accepted.

    Raises:
        ActionRequiredError: Auto-derivation disabled and neither action nor scope given
    """
    explicit = (action or "").strip()
    if explicit:
        return explicit

    scope_slug = slug(scope) if scope else ""
    if scope_slug:
        return f"scope_{scope_slug}"

    if disable_auto:
        raise ActionRequiredError()

    justification_slug = slug(justification)
    if justification_slug:
        return f"auto_{justification_slug}"

    default = (default_action or "").strip()
    return default or FALLBACK_ACTION


class ApprovalOrchestrator:
    """Entry point for requesting approval of a sensitive action."""

    def __init__(
        self,
        settings: Optional[Config] = None,
        gateway: Optional[GuardGateway] = None,
        tracker: Optional[LiveStreamTracker] = None,
        git_service: Optional[GitService] = None,
        working_directory: Optional[str] = None,
    ):
        self.settings = settings or config
        timeouts = self.settings.timeouts
        self.gateway = gateway or GuardGateway(
            self.settings.base_url,
            request_timeout=timeouts.http.request,
            stream_connect_timeout=timeouts.http.stream_connect,
        )
        self.tracker = tracker or LiveStreamTracker(
            self.gateway,
            initial_backoff_ms=timeouts.stream.initial_backoff_ms,
            max_backoff_ms=timeouts.stream.max_backoff_ms,
        )
        self.git_service = git_service or GitService()
        self.working_directory = working_directory or os.getcwd()
        self._current_request_id: Optional[str] = None

    async def __aenter__(self) -> "ApprovalOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def current_request_id(self) -> Optional[str]:
        """The most recently submitted request, for correlating UI updates."""
        return self._current_request_id

    def on_state(self, listener: Optional[StateListener]) -> None:
        """Register the listener for live state events."""
        self.tracker.on_state(listener)

    async def _origin(self) -> RepoOrigin:
        return await self.git_service.get_origin(self.working_directory)

    async def build_request(
        self,
        justification: str,
        action: Optional[str] = None,
        params: Optional[dict] = None,
        scope: Optional[str] = None,
    ) -> ApprovalRequest:
        justification = validate_justification(justification)
        resolved = resolve_action(
            justification,
            action=action,
            scope=scope,
            default_action=self.settings.DEFAULT_ACTION,
            disable_auto=self.settings.DISABLE_AUTO_ACTION,
        )
        origin = await self._origin()
        return ApprovalRequest(
            action=resolved,
            justification=justification,
            params=dict(params or {}),
            origin=origin.to_dict(),
            requester=self.settings.requester,
        )

    async def submit_and_track(
        self,
        action: Optional[str] = None,
        justification: Optional[str] = None,
        params: Optional[dict] = None,
        wait: bool = True,
        scope: Optional[str] = None,
    ) -> RequestStatus:
        """
        Create an approval request and track it.

        If the service hands back a stream token, the live stream tracker is
        started in the background. With ``wait`` the call also polls until a
        terminal status, falling back to the last known status on timeout.

        Args:
            action: Explicit action identifier
            justification: Why the action is needed (at least 3 characters)
            params: Arbitrary parameters describing the action
            wait: Block until a terminal status or the wait timeout
            scope: Scope used to derive an action when none is given

        Returns:
            The terminal status, the last known status after a timeout, or the
            creation response when not waiting

        Raises:
            JustificationRequiredError: Justification missing or too short
            ActionRequiredError: No action or scope while auto-derivation is disabled
            NetworkError, HttpError, InvalidResponseError: Creation call failed
        """
        request = await self.build_request(justification, action=action, params=params, scope=scope)

        created = await self.gateway.create_request(request)
        self._current_request_id = created.request_id
        logger.info(
            f"Approval request {created.request_id} created for {request.action} "
            f"(status: {created.status})"
        )

        if created.token:
            self.tracker.start(created.request_id, created.token)

        if not wait:
            return created

        try:
            return await wait_for_terminal(
                self.gateway,
                created.request_id,
                self.settings.timeouts.polling.wait_timeout_ms,
                interval_ms=self.settings.timeouts.polling.interval_ms,
            )
        except WaitTimeoutError as e:
            logger.warning(f"{e}; returning last known status")
            return e.last_status or created

    async def request_approval(
        self,
        justification: str,
        action: Optional[str] = None,
        params: Optional[dict] = None,
        wait: bool = True,
    ) -> RequestStatus:
        """Programmatic API for other tools."""
        return await self.submit_and_track(
            action=action, justification=justification, params=params, wait=wait
        )

    async def close(self) -> None:
        await self.tracker.aclose()
        await self.gateway.close()
