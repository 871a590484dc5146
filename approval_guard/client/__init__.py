"""Approval service client: gateway, polling and live stream tracking."""

from .exceptions import (
    ActionRequiredError,
    GuardError,
    GuardTransportError,
    GuardValidationError,
    HttpError,
    InvalidResponseError,
    JustificationRequiredError,
    NetworkError,
    WaitTimeoutError,
)
from .gateway import GuardGateway
from .models import TERMINAL_STATUSES, ApprovalRequest, RequestStatus, StateEvent
from .polling import wait_for_terminal
from .streaming import LiveStreamTracker, SSEParser, StreamSession

__all__ = [
    "ActionRequiredError",
    "ApprovalRequest",
    "GuardError",
    "GuardGateway",
    "GuardTransportError",
    "GuardValidationError",
    "HttpError",
    "InvalidResponseError",
    "JustificationRequiredError",
    "LiveStreamTracker",
    "NetworkError",
    "RequestStatus",
    "SSEParser",
    "StateEvent",
    "StreamSession",
    "TERMINAL_STATUSES",
    "WaitTimeoutError",
    "wait_for_terminal",
]
