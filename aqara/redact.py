"""Redaction helpers for logs and error snippets."""

from __future__ import annotations
import json
from typing import Any, Mapping, Dict

from .constants import DEFAULT_BODY_SNIPPET_LEN, HEADER_SIGN

REDACTED = "[REDACTED]"

_SENSITIVE_KEYS = {
    "accesstoken", "access_token", "access-token",
    "refreshtoken", "refresh_token",
    "appkey", "app_key",
    "authcode", "auth_code",
    "password", "secret", "token",
}


def is_sensitive_key(key: str) -> bool:
    k = key.strip().lower()
    return k in _SENSITIVE_KEYS or "token" in k or "secret" in k


def redact_json(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive fields replaced."""
    if isinstance(value, Mapping):
        return {
            k: (REDACTED if is_sensitive_key(str(k)) else redact_json(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact_json(v) for v in value]
    return value


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    out = {}
    for k, v in headers.items():
        if is_sensitive_key(k):
            out[k] = REDACTED
        elif k.lower() == HEADER_SIGN.lower():
            out[k] = f"{v[:8]}..." if v else v
        else:
            out[k] = v
    return out


def snippet_from_bytes(body: bytes, max_len: int = DEFAULT_BODY_SNIPPET_LEN) -> str:
    """Redacted, truncated rendering of a response body."""
    if max_len <= 0 or not body:
        return ""
    try:
        text = json.dumps(redact_json(json.loads(body)), ensure_ascii=False)
    except ValueError:
        text = body.decode("utf-8", errors="replace")
    if len(text) > max_len:
        text = text[:max_len] + "..."
    return text
