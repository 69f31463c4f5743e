"""
Error taxonomy for provider calls.

The provider binding fills in ProviderError.kind from the HTTP status when it
can. Everything else is classified by substring heuristics on the message,
which is fragile but matches what the upstream API actually returns.
"""

from __future__ import annotations

import enum
import math
import re


class ErrorKind(str, enum.Enum):
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"

    @property
    def transient(self) -> bool:
        return self is not ErrorKind.FATAL


class ProviderError(Exception):
    """A failed call to the generative-text provider."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        kind: ErrorKind | None = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind
        self.timed_out = timed_out


class MalformedInput(ValueError):
    """Request body does not carry a usable conversation."""


_RETRY_IN = re.compile(r"retry in (\d+\.?\d*)", re.IGNORECASE)

RATE_LIMIT_MESSAGE = "API rate limit reached. Please wait a moment and try again."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
OVERLOADED_MESSAGE = "The model is overloaded right now. Please try again in a few moments."
GENERIC_MESSAGE = "An error occurred"


def _message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or ""


def _status(exc: BaseException) -> int | None:
    return getattr(exc, "status_code", None) or getattr(exc, "status", None)


def is_rate_limited(exc: BaseException) -> bool:
    msg = _message(exc)
    return _status(exc) == 429 or "429" in msg or "quota" in msg


def is_overloaded(exc: BaseException) -> bool:
    msg = _message(exc)
    return "overloaded" in msg or "503" in msg or "UNAVAILABLE" in msg


def classify_error(exc: BaseException) -> ErrorKind:
    """Exactly one kind per failure. Rate limiting wins over overload."""
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    if is_rate_limited(exc):
        return ErrorKind.RATE_LIMITED
    if is_overloaded(exc):
        return ErrorKind.OVERLOADED
    return ErrorKind.FATAL


def retry_after_ms(message: str, max_delay_ms: int) -> int | None:
    """Provider-suggested wait ("retry in 2.5s") in ms, capped at max_delay_ms."""
    match = _RETRY_IN.search(message or "")
    if not match:
        return None
    return min(math.ceil(float(match.group(1)) * 1000), max_delay_ms)


def is_timeout(exc: BaseException) -> bool:
    return bool(getattr(exc, "timed_out", False)) or "timeout" in _message(exc).lower()


def user_message_for(exc: BaseException) -> str:
    """Stable, human-readable text for a failure. Never the raw provider body."""
    kind = classify_error(exc)
    if kind is ErrorKind.RATE_LIMITED:
        return RATE_LIMIT_MESSAGE
    if is_timeout(exc):
        return TIMEOUT_MESSAGE
    if kind is ErrorKind.OVERLOADED:
        return OVERLOADED_MESSAGE
    return GENERIC_MESSAGE
