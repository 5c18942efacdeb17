"""Exception hierarchy raised by the Aqara client.

Every error carries a ``kind`` and a ``retryable`` flag so callers can tell
"fix my input", "retry later" and "platform rejected this" apart without
parsing messages.
"""

from __future__ import annotations
from typing import Optional


class AqaraError(Exception):
    """Base class for all client errors."""

    kind = "error"
    retryable = False


class ConfigError(AqaraError):
    """Invalid or missing client construction input."""

    kind = "config"


class AuthError(AqaraError):
    """Credentials or access token rejected, or no token could be issued."""

    kind = "auth"


class TransportError(AqaraError):
    """Network level failure (connect, timeout, broken connection)."""

    kind = "transport"
    retryable = True


class ApiError(AqaraError):
    """The platform rejected the request.

    Attributes:
        status: HTTP status code
        code: Aqara business code, None when the body was not an envelope
        message: platform message
        request_id: platform request id, if known
        body_snippet: redacted, truncated response body
    """

    kind = "api"

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        code: Optional[int] = None,
        request_id: Optional[str] = None,
        body_snippet: Optional[str] = None,
    ):
        self.status = status
        self.code = code
        self.message = message
        self.request_id = request_id
        self.body_snippet = body_snippet
        super().__init__(message)

    def __str__(self) -> str:
        parts = []
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.message:
            parts.append(f"message={self.message}")
        if self.request_id:
            parts.append(f"requestId={self.request_id}")
        return ", ".join(parts) or "unknown api error"

    @property
    def is_auth_rejection(self) -> bool:
        from .constants import AUTH_REJECTION_CODES

        return self.code in AUTH_REJECTION_CODES or self.status in (401, 403)


class RateLimitedError(ApiError):
    """HTTP 429 or business code 429."""

    kind = "rate_limited"
    retryable = True

    def __init__(self, message: str = "", *, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class ProtocolError(AqaraError):
    """The response did not match the envelope or result shape."""

    kind = "protocol"

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        request_id: Optional[str] = None,
        body_snippet: Optional[str] = None,
    ):
        self.detail = message
        self.status = status
        self.request_id = request_id
        self.body_snippet = body_snippet
        super().__init__(message)

    def __str__(self) -> str:
        out = self.detail
        if self.status is not None:
            out += f" (status={self.status})"
        if self.request_id:
            out += f" requestId={self.request_id}"
        if self.body_snippet:
            out += f": {self.body_snippet}"
        return out
