"""
Typed errors for oracle calls.

Provider clients translate SDK exceptions into these classes so that
the fallback harness decides on retry policy by type, not by sniffing
error strings at every call site.
"""

import re
from typing import Any, Optional

# "Please retry in 2.5s." / "retry in 800ms"
_RETRY_IN_RE = re.compile(r"retry in\s+([\d.]+)\s*(ms|s)\b", re.IGNORECASE)
# google.rpc.RetryInfo detail: "retryDelay": "2s"
_RETRY_DELAY_RE = re.compile(r"[\"']?retryDelay[\"']?\s*:\s*[\"']([\d.]+)s[\"']")

QUOTA_MARKERS = ("quota", "resource_exhausted")


class LLMError(Exception):
    """Base error for oracle calls."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitError(LLMError):
    """Oracle signalled a rate limit or exhausted quota (HTTP 429)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        retry_after_ms: Optional[int] = None,
    ):
        super().__init__(message, status_code)
        self.retry_after_ms = retry_after_ms


class LLMExhaustedError(LLMError):
    """Every model in a fallback chain failed or was rate limited."""

    def __init__(self, message: str, last_message: Optional[str] = None):
        super().__init__(message)
        self.last_message = last_message


def parse_retry_hint_ms(payload: Any) -> Optional[int]:
    """
    Extract a retry hint from an error payload.

    Args:
        payload: Error message, response body or details (anything str()-able)

    Returns:
        Hinted delay in milliseconds, or None if the payload has no hint
    """
    if payload is None:
        return None

    text = str(payload)

    match = _RETRY_IN_RE.search(text)
    if match:
        value = float(match.group(1))
        unit = match.group(2).lower()
        return int(value if unit == "ms" else value * 1000)

    match = _RETRY_DELAY_RE.search(text)
    if match:
        return int(float(match.group(1)) * 1000)

    return None


def is_quota_error(status_code: Optional[int], text: str) -> bool:
    """Return True for 429 responses or quota / RESOURCE_EXHAUSTED bodies."""
    if status_code == 429:
        return True
    lowered = (text or "").lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)
