"""Proxy parsing for the HTTP session.

Users may give proxies in shorthand forms:
- "user:pass@host:port"
- "host:port"
- full URLs (http://..., https://..., socks5://..., socks5h://...)

Without a scheme we probe the endpoint to tell a SOCKS5 proxy from an HTTP
one. SOCKS URLs need PySocks installed (``requests[socks]``).
"""
from __future__ import annotations
import logging
import socket
from typing import Dict, Optional
from urllib.parse import quote, urlsplit

log = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "socks5", "socks5h")


def _probe_socks5(host: str, port: int, *, has_auth: bool, timeout: float) -> bool:
    # greeting: VER=5, NMETHODS, METHODS (noauth / userpass)
    methods = bytes([0x02, 0x00]) if has_auth else bytes([0x00, 0x02])
    try:
        with socket.create_connection((host, port), timeout=timeout) as s:
            s.settimeout(timeout)
            s.sendall(bytes([0x05, len(methods)]) + methods)
            resp = s.recv(2)
    except OSError as e:
        log.debug(f"SOCKS5 probe of {host}:{port} failed: {e}")
        return False
    return len(resp) == 2 and resp[0] == 0x05


def detect_proxy_scheme(host: str, port: int, *, has_auth: bool = False, timeout: float = 1.0) -> str:
    """Return 'socks5h' when the endpoint answers a SOCKS5 greeting, else 'http'."""
    if _probe_socks5(host, port, has_auth=has_auth, timeout=timeout):
        return "socks5h"
    return "http"


def normalize_proxy(raw: Optional[str], *, timeout: float = 1.0) -> Optional[str]:
    """Normalize a user-supplied proxy string to a URL with scheme.

    Returns None for empty input. Raises ValueError for unsupported schemes
    or malformed ports.
    """
    if not raw or not raw.strip():
        return None
    s = raw.strip()
    if "://" in s:
        scheme = s.split("://", 1)[0].lower()
        if scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported proxy scheme: {scheme}")
        return s

    user, passwd = None, None
    hostport = s
    if "@" in s:
        creds, hostport = s.rsplit("@", 1)
        user, _, passwd = creds.partition(":")
    if ":" not in hostport:
        return f"http://{s}"
    host, port_str = hostport.rsplit(":", 1)
    if not port_str.isdigit():
        raise ValueError(f"Invalid proxy port in {mask_proxy_for_log(s)!r}")

    scheme = detect_proxy_scheme(host, int(port_str), has_auth=user is not None, timeout=timeout)
    auth = ""
    if user is not None:
        auth = f"{quote(user, safe='')}:{quote(passwd or '', safe='')}@"
    log.info(f"Auto-detected proxy scheme: {scheme}")
    return f"{scheme}://{auth}{host}:{port_str}"


def mask_proxy_for_log(url: str) -> str:
    """Hide the password of a proxy URL: http://user:pass@h:p -> http://user:***@h:p"""
    if "://" not in url:
        if "@" not in url:
            return url
        creds, hostport = url.rsplit("@", 1)
        return f"{creds.split(':', 1)[0]}:***@{hostport}"
    u = urlsplit(url)
    if not u.username:
        return url
    hostport = u.hostname or ""
    if u.port:
        hostport = f"{hostport}:{u.port}"
    return f"{u.scheme}://{u.username}:***@{hostport}"


def to_requests_proxies(proxy_url: Optional[str]) -> Optional[Dict[str, str]]:
    if not proxy_url:
        return None
    return {"http": proxy_url, "https": proxy_url}
