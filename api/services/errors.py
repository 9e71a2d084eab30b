"""Error taxonomy for the GitHub-backed content store.

The remote client raises these exclusively so that callers (the retry
engine, entity operations, route handlers) never need to inspect raw
HTTP responses.
"""

import httpx


class StoreError(Exception):
    """Base class for content store failures."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class UnauthorizedError(StoreError):
    """Missing or invalid credential. Never retried."""

    code = "UNAUTHORIZED"


class ForbiddenError(StoreError):
    """Credential is valid but lacks access (403 without rate-limit headers)."""

    code = "FORBIDDEN"


class NotFoundError(StoreError):
    """The addressed file, directory, or repository does not exist."""

    code = "NOT_FOUND"


class ConflictError(StoreError):
    """Precondition hash mismatch, or a create over an existing file."""

    code = "CONFLICT"


class RateLimitedError(StoreError):
    """The remote API refused the call because a rate window is exhausted.

    ``reset_at`` is the epoch second at which the window resets, when the
    response said so.
    """

    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        status: int | None = 429,
        reset_at: int | None = None,
    ) -> None:
        super().__init__(message, status=status)
        self.reset_at = reset_at


class TransientError(StoreError):
    """5xx responses, timeouts, and transport failures."""

    code = "BAD_GATEWAY"


class InvalidInputError(StoreError, ValueError):
    """Malformed input, rejected before any remote call is made."""

    code = "VALIDATION_ERROR"


def _has_rate_limit_headers(headers: httpx.Headers) -> bool:
    return headers.get("x-ratelimit-remaining") == "0" or bool(
        headers.get("x-ratelimit-reset")
    )


def rate_limit_reset_time(headers: httpx.Headers) -> int | None:
    """Return the ``x-ratelimit-reset`` epoch second, or None if absent/garbled."""
    raw = headers.get("x-ratelimit-reset")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _response_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase


def error_from_response(response: httpx.Response, context: str = "") -> StoreError:
    """Classify a non-success response into the store error taxonomy."""
    status = response.status_code
    message = _response_message(response)
    if context:
        message = f"{context}: {message}"

    if status == 429 or (status == 403 and _has_rate_limit_headers(response.headers)):
        return RateLimitedError(
            message, status=status, reset_at=rate_limit_reset_time(response.headers)
        )
    if status == 401:
        return UnauthorizedError(message, status=status)
    if status == 403:
        return ForbiddenError(message, status=status)
    if status == 404:
        return NotFoundError(message, status=status)
    if status == 409:
        return ConflictError(message, status=status)
    if status >= 500:
        return TransientError(message, status=status)
    return StoreError(message, status=status)
