import re
from typing import Optional, Union

from approval_guard.client.exceptions import JustificationRequiredError

MIN_JUSTIFICATION_LENGTH = 3

SLUG_MAX_TOKENS = 5
SLUG_MAX_LENGTH = 40

_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s_-]")


def slug(text: str) -> str:
    """
    Turn free text into a short identifier-safe string.

    Lowercases, drops anything outside [a-z0-9 whitespace _ -], keeps the first
    five words joined by underscores and truncates to 40 characters.
    """
    cleaned = _SLUG_STRIP_RE.sub("", (text or "").lower()).strip()
    tokens = cleaned.split()[:SLUG_MAX_TOKENS]
    return "_".join(tokens)[:SLUG_MAX_LENGTH]


def validate_justification(justification: Optional[str]) -> str:
    """Return the trimmed justification or raise JustificationRequiredError."""
    trimmed = (justification or "").strip()
    if len(trimmed) < MIN_JUSTIFICATION_LENGTH:
        raise JustificationRequiredError(MIN_JUSTIFICATION_LENGTH)
    return trimmed


def parse_params(pairs: list[str]) -> tuple[bool, Union[dict[str, str], str]]:
    """
    Parse KEY=VALUE strings into a params mapping.

    Returns (True, params) on success, (False, error_message) on failure.
    """
    params: dict[str, str] = {}
    for i, pair in enumerate(pairs):
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep:
            return False, f"Param at index {i} is not KEY=VALUE: {pair!r}"
        if not key:
            return False, f"Param at index {i} has an empty key"
        params[key] = value
    return True, params
