"""Data models for the Aqara client."""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Mapping, Optional, TypeVar

from .constants import CODE_SUCCESS, HEADER_SIGN
from .errors import ConfigError, ProtocolError

T = TypeVar("T")


@dataclass(frozen=True)
class Credentials:
    """Application identity issued by the Aqara developer console."""
    app_id: str
    key_id: str
    app_key: str = field(repr=False)

    def __post_init__(self):
        for name in ("app_id", "key_id", "app_key"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"Credentials.{name} must be a non-empty string")


@dataclass(frozen=True)
class AuthCodeGrant:
    """One-shot authorization code exchanged via ``config.auth.getToken``."""
    auth_code: str = field(repr=False)
    account: str
    account_type: int = 0


@dataclass
class Session:
    """Mutable session material, owned by the TokenManager.

    If ``access_token`` is set, ``expires_at`` is set too.
    """
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[float] = None
    open_id: Optional[str] = None

    def is_valid(self, now: float, margin: float = 0.0) -> bool:
        return (
            self.access_token is not None
            and self.expires_at is not None
            and self.expires_at - margin > now
        )

    def clear_access(self) -> None:
        self.access_token = None
        self.expires_at = None


def _positive_seconds(value: Any) -> int:
    """Validate a token lifetime: positive whole seconds, as a number or digit string."""
    if value is None or value == "":
        raise ValueError("token result has no expiresIn")
    if isinstance(value, bool):
        raise ValueError(f"expiresIn is not a number: {value!r}")
    if isinstance(value, str):
        if not value.strip().isdigit():
            raise ValueError(f"expiresIn is not a number: {value!r}")
        seconds = int(value)
    elif isinstance(value, int):
        seconds = value
    elif isinstance(value, float) and math.isfinite(value) and value.is_integer():
        seconds = int(value)
    else:
        raise ValueError(f"expiresIn is not a whole number of seconds: {value!r}")
    if seconds <= 0:
        raise ValueError(f"expiresIn must be positive, got {seconds}")
    return seconds


@dataclass(frozen=True)
class IssuedToken:
    """Result of ``config.auth.getToken`` / ``config.auth.refreshToken``."""
    access_token: str = field(repr=False)
    expires_in: int
    refresh_token: Optional[str] = field(default=None, repr=False)
    open_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IssuedToken":
        if not isinstance(data, Mapping):
            raise ValueError(f"token result must be an object, got {type(data).__name__}")
        token = data.get("accessToken")
        if not token:
            raise ValueError("token result has no accessToken")
        expires_in = _positive_seconds(data.get("expiresIn"))
        return cls(
            access_token=str(token),
            expires_in=expires_in,
            refresh_token=data.get("refreshToken") or None,
            open_id=data.get("openId") or None,
        )


@dataclass(frozen=True)
class SignedRequest:
    """A request signed for exactly one transmission."""
    method: str
    path: str
    timestamp: str
    nonce: str
    params: Dict[str, str] = field(repr=False)
    signature: str = field(repr=False)

    def headers(self) -> Dict[str, str]:
        out = dict(self.params)
        out[HEADER_SIGN] = self.signature
        return out


@dataclass
class Envelope(Generic[T]):
    """Uniform response wrapper ``{requestId, code, message, result}``."""
    request_id: str
    code: int
    message: str
    result: Optional[T] = None
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.code == CODE_SUCCESS

    @classmethod
    def from_dict(
        cls,
        data: Any,
        result_type: Optional[Callable[[Any], T]] = None,
        *,
        require_result: bool = False,
        status: Optional[int] = None,
    ) -> "Envelope[T]":
        """Decode the common fields, then overlay ``result`` with ``result_type``.

        Raises:
            ProtocolError: missing/mistyped envelope fields, a missing required
                result, or a result that ``result_type`` rejects
        """
        if not isinstance(data, Mapping):
            raise ProtocolError(f"response is not a JSON object ({type(data).__name__})", status=status)

        code = data.get("code")
        if code is None:
            raise ProtocolError("envelope has no 'code'", status=status)
        if isinstance(code, bool) or not isinstance(code, int):
            raise ProtocolError(f"envelope 'code' is not an integer: {code!r}", status=status)

        request_id = data.get("requestId", data.get("request_id"))
        if not isinstance(request_id, str):
            raise ProtocolError("envelope has no string 'requestId'", status=status)

        message = data.get("message", data.get("msg"))
        if message is None:
            message = ""
        if not isinstance(message, str):
            raise ProtocolError("envelope 'message' is not a string", status=status, request_id=request_id)

        env = cls(request_id=request_id, code=code, message=message, status=status)
        if code != CODE_SUCCESS:
            # Application error: result is ignored
            return env

        raw = data.get("result")
        if raw is None:
            if require_result:
                raise ProtocolError("successful envelope has no 'result'", status=status, request_id=request_id)
            return env

        if result_type is None:
            env.result = raw
            return env
        try:
            env.result = result_type(raw)
        except (TypeError, ValueError, KeyError, OverflowError) as e:
            raise ProtocolError(
                f"failed to decode result: {e}", status=status, request_id=request_id
            ) from e
        return env

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "requestId": self.request_id,
            "code": self.code,
            "message": self.message,
        }
        if self.result is not None:
            result = self.result
            if hasattr(result, "to_dict"):
                result = result.to_dict()
            out["result"] = result
        return out
