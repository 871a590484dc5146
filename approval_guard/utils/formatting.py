"""Plain-text summaries of request status for terminal output."""

from approval_guard.client.models import RequestStatus, StateEvent


def format_status_line(status: RequestStatus) -> str:
    return f"Approval request {status.request_id} status: {status.status}"


def format_status_details(status: RequestStatus) -> str:
    """Multi-line summary mirroring what a status panel would show."""
    lines = [
        f"ID: {status.request_id}",
        f"Status: {status.status or 'unknown'}",
        f"Action: {status.action or ''}",
        f"Approvals: {len(status.approvals)} • Denies: {len(status.denies)}",
    ]
    updated = status.updated_at or status.created_at
    if updated:
        lines.append(f"Updated: {updated}")
    return "\n".join(lines)


def format_state_event(event: StateEvent) -> str:
    line = f"[{event.request_id}] {event.status}"
    if event.approvers:
        line += f" (approvers: {', '.join(str(a) for a in event.approvers)})"
    if event.decided_at:
        line += f" at {event.decided_at}"
    return line
