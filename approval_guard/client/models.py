from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import InvalidResponseError

# Statuses after which the service sends no further transitions.
# Shared by the poll loop and the live stream tracker.
TERMINAL_STATUSES: frozenset[str] = frozenset({"approved", "denied", "expired"})


def is_terminal_status(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def _optional_list(data: dict, key: str) -> list:
    """Return ``data[key]`` as a list; absent or null means empty.

    Raises:
        ValueError: The value is present but not a JSON array
    """
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return list(value)


@dataclass(frozen=True)
class ApprovalRequest:
    action: str
    justification: str
    params: dict = field(default_factory=dict)
    origin: dict = field(default_factory=dict)  # repo, branch?
    requester: dict = field(default_factory=dict)  # id, source, display

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "params": dict(self.params),
            "meta": {
                "origin": dict(self.origin),
                "requester": dict(self.requester),
                "justification": self.justification,
            },
        }


@dataclass
class RequestStatus:
    request_id: str
    status: str  # pending, approved, denied, expired, or any service-defined value
    approvals: list = field(default_factory=list)
    denies: list = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    action: Optional[str] = None
    token: Optional[str] = None  # Present only on creation responses that support streaming
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    @classmethod
    def from_dict(cls, data: Any) -> "RequestStatus":
        if not isinstance(data, dict):
            raise InvalidResponseError(f"Expected a JSON object, got {type(data).__name__}")
        request_id = data.get("requestId")
        status = data.get("status")
        if not request_id or not isinstance(status, str):
            raise InvalidResponseError(
                f"Response is missing requestId/status: {sorted(data.keys())}"
            )
        try:
            approvals = _optional_list(data, "approvals")
            denies = _optional_list(data, "denies")
        except ValueError as e:
            raise InvalidResponseError(str(e))
        return cls(
            request_id=str(request_id),
            status=status,
            approvals=approvals,
            denies=denies,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            action=data.get("action"),
            token=data.get("token") or None,
            raw=data,
        )


@dataclass
class StateEvent:
    """A status push from the live stream with its owning request attached."""

    request_id: str
    status: str
    approvers: list = field(default_factory=list)
    decided_at: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    @classmethod
    def from_payload(cls, request_id: str, payload: dict) -> "StateEvent":
        """Build an event from a decoded `state` payload.

        Raises:
            ValueError: status is not a string or approvers is not a list
        """
        status = payload.get("status")
        if not isinstance(status, str):
            raise ValueError(f"status must be a string, got {type(status).__name__}")
        decided_at = payload.get("decidedAt")
        if decided_at is not None and not isinstance(decided_at, str):
            raise ValueError(f"decidedAt must be a string, got {type(decided_at).__name__}")
        return cls(
            request_id=request_id,
            status=status,
            approvers=_optional_list(payload, "approvers"),
            decided_at=payload.get("decidedAt"),
            raw=payload,
        )
