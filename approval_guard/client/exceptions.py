"""Errors raised while submitting and tracking approval requests."""

from typing import Optional


class GuardError(Exception):
    """Base class for approval guard errors."""

    pass


class GuardValidationError(GuardError):
    """Raised when a submission is rejected before reaching the service."""

    pass


class JustificationRequiredError(GuardValidationError):
    """Raised when the justification is missing or shorter than the minimum."""

    def __init__(self, min_length: int = 3):
        self.min_length = min_length
        super().__init__(f"Justification is required (at least {min_length} characters)")


class ActionRequiredError(GuardValidationError):
    """Raised when auto-derived actions are disabled and none was given."""

    def __init__(self):
        super().__init__(
            "An explicit action or scope is required when auto-derived actions are disabled"
        )


class GuardTransportError(GuardError):
    """Base class for failures talking to the approval service."""

    pass


class NetworkError(GuardTransportError):
    """Raised when the approval service cannot be reached."""

    def __init__(self, url: str, hint: str, cause: Optional[BaseException] = None):
        self.url = url
        self.hint = hint
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not reach {url}{detail}. {hint}")


class HttpError(GuardTransportError):
    """Raised when the service answers with a non-success status."""

    def __init__(self, status: int, body: str, url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"Request failed {status}: {body}")


class InvalidResponseError(GuardTransportError):
    """Raised when a success body cannot be parsed into the expected shape."""

    pass


class WaitTimeoutError(GuardError):
    """Raised when polling does not observe a terminal status in time.

    Carries the last status seen so callers can fall back to it.
    """

    def __init__(self, request_id: str, timeout_ms: int, last_status=None):
        self.request_id = request_id
        self.timeout_ms = timeout_ms
        self.last_status = last_status
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting for terminal status of {request_id}"
        )
