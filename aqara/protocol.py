"""Wire protocol utilities: request signing, nonces and intent bodies."""

from __future__ import annotations
import dataclasses
import hashlib
import json
import secrets
import string
import time
import logging
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Mapping, Optional

from .constants import (
    HEADER_ACCESS_TOKEN, HEADER_APP_ID, HEADER_KEY_ID, HEADER_NONCE, HEADER_TIME,
    NONCE_LENGTH, SIGN_DELIMITER,
)
from .models import Credentials, SignedRequest

log = logging.getLogger(__name__)

_NONCE_ALPHABET = string.ascii_letters + string.digits


def generate_nonce(length: int = NONCE_LENGTH) -> str:
    """Random alphanumeric nonce, unique per request."""
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))


def timestamp_millis() -> str:
    """Current unix time in milliseconds, as the platform expects it."""
    return str(int(time.time() * 1000))


def escape_component(s: str) -> str:
    """Percent-escape the characters that structure the sign string.

    ``%`` goes first so the mapping stays injective.
    """
    return s.replace("%", "%25").replace(SIGN_DELIMITER, "%26").replace("=", "%3D")


def canonical_string(params: Mapping[str, str]) -> str:
    """Sorted ``key=value`` pairs joined by ``&``."""
    return SIGN_DELIMITER.join(
        f"{escape_component(str(k))}={escape_component(str(v))}"
        for k, v in sorted(params.items())
    )


def sign(
    params: Mapping[str, str],
    app_key: str,
    *,
    digest: Callable[[bytes], Any] = hashlib.md5,
    lowercase: bool = True,
) -> str:
    """Compute the request signature.

    Args:
        params: signed parameters (may be empty)
        app_key: shared secret appended after the parameters
        digest: hash constructor, MD5 per the Aqara contract
        lowercase: lowercase the string before hashing (Aqara contract)

    Returns:
        Hex digest string
    """
    payload = canonical_string(params) + app_key
    if lowercase:
        payload = payload.lower()
    return digest(payload.encode("utf-8")).hexdigest()


def sign_request(
    method: str,
    path: str,
    timestamp: str,
    nonce: str,
    params: Mapping[str, str],
    app_key: str,
) -> SignedRequest:
    """Sign ``params`` together with ``nonce`` and ``timestamp``.

    ``method`` and ``path`` are carried on the result; the platform's digest
    covers only the parameter set.
    """
    signed = dict(params)
    signed[HEADER_NONCE] = nonce
    signed[HEADER_TIME] = timestamp
    signature = sign(signed, app_key)
    return SignedRequest(
        method=method,
        path=path,
        timestamp=timestamp,
        nonce=nonce,
        params=signed,
        signature=signature,
    )


def signed_request_for(
    credentials: Credentials,
    intent: str,
    access_token: Optional[str] = None,
    *,
    method: str = "POST",
) -> SignedRequest:
    """Build a fresh SignedRequest (new nonce and time) for one call."""
    params: Dict[str, str] = {
        HEADER_APP_ID: credentials.app_id,
        HEADER_KEY_ID: credentials.key_id,
    }
    if access_token:
        params[HEADER_ACCESS_TOKEN] = access_token
    req = sign_request(method, intent, timestamp_millis(), generate_nonce(), params, credentials.app_key)
    log.debug(f"signed {intent} nonce={req.nonce[:6]}.. time={req.timestamp} sign={req.signature[:8]}..")
    return req


def serialize_payload(payload: Any) -> Dict[str, Any]:
    """Turn a call payload into the JSON object sent as ``data``."""
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    to_dict = getattr(payload, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    raise TypeError(f"Unsupported payload type: {type(payload).__name__}")


def encode_body(intent: str, data: Mapping[str, Any]) -> bytes:
    """Encode the ``{"intent", "data"}`` request body."""
    return json.dumps({"intent": intent, "data": data}, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header (seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, when.timestamp() - time.time())
