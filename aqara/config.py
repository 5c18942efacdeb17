"""Client construction: builder, validated config and environment loading."""

from __future__ import annotations
import os
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Mapping, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import requests

from .constants import (
    DEFAULT_CONNECT_RETRIES, DEFAULT_CONNECT_TIMEOUT, DEFAULT_LANG, DEFAULT_READ_TIMEOUT,
    DEFAULT_REFRESH_MARGIN, TOKEN_EXPIRED_CODES,
    ENV_ACCESS_TOKEN, ENV_APP_ID, ENV_APP_KEY, ENV_BASE_URL, ENV_DEBUG_WIRE, ENV_KEY_ID,
    ENV_LANG, ENV_PROXY, ENV_REFRESH_TOKEN, ENV_REGION,
    Region,
)
from .errors import ConfigError
from .models import AuthCodeGrant, Credentials
from .proxy_utils import mask_proxy_for_log, normalize_proxy
from .version import __version__

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"aqara-open-python/{__version__}"


@dataclass(frozen=True)
class ClientConfig:
    """Validated, immutable client configuration."""
    credentials: Credentials
    base_url: str
    region: Optional[Region] = None
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    grant: Optional[AuthCodeGrant] = None
    lang: str = DEFAULT_LANG
    user_agent: str = DEFAULT_USER_AGENT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    refresh_margin: float = DEFAULT_REFRESH_MARGIN
    token_expired_codes: frozenset = TOKEN_EXPIRED_CODES
    proxy: Optional[str] = None
    verify: bool = True
    connect_retries: int = DEFAULT_CONNECT_RETRIES
    extra_headers: Dict[str, str] = field(default_factory=dict)
    debug_wire: bool = False


def normalize_base_url(url: str) -> str:
    """Strip query/fragment and trailing slash; require http(s) and a path."""
    parts = urlsplit((url or "").strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"Invalid base_url {url!r}: expected http(s)://host/path")
    path = parts.path.rstrip("/")
    if not path:
        raise ConfigError(f"Invalid base_url {url!r}: path cannot be empty")
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "y")


class ClientBuilder:
    """Fluent builder for :class:`aqara.api.AqaraAPI`.

    Credentials and a region (or base URL) are required; ``build()`` fails
    with ConfigError before any network access if either is missing.
    """

    def __init__(self):
        self._credentials: Optional[Credentials] = None
        self._region: Optional[Region] = None
        self._base_url: Optional[str] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._grant: Optional[AuthCodeGrant] = None
        self._lang = DEFAULT_LANG
        self._user_agent = DEFAULT_USER_AGENT
        self._connect_timeout = DEFAULT_CONNECT_TIMEOUT
        self._read_timeout = DEFAULT_READ_TIMEOUT
        self._refresh_margin = DEFAULT_REFRESH_MARGIN
        self._token_expired_codes = TOKEN_EXPIRED_CODES
        self._proxy: Optional[str] = None
        self._verify = True
        self._connect_retries = DEFAULT_CONNECT_RETRIES
        self._extra_headers: Dict[str, str] = {}
        self._debug_wire = _env_flag(os.getenv(ENV_DEBUG_WIRE))
        self._session: Optional[requests.Session] = None
        self._clock: Optional[Callable[[], float]] = None

    def credentials(self, app_id_or_credentials: Union[str, Credentials], key_id: Optional[str] = None,
                    app_key: Optional[str] = None) -> "ClientBuilder":
        if isinstance(app_id_or_credentials, Credentials):
            self._credentials = app_id_or_credentials
        else:
            self._credentials = Credentials(app_id_or_credentials, key_id, app_key)
        return self

    def region(self, region: Union[Region, str]) -> "ClientBuilder":
        self._region = region if isinstance(region, Region) else Region.parse(region)
        return self

    def base_url(self, url: str) -> "ClientBuilder":
        """Override the region URL (staging, proxies, tests)."""
        self._base_url = url
        return self

    def access_token(self, token: str) -> "ClientBuilder":
        """Use a fixed access token; the caller is responsible for rotation."""
        self._access_token = token
        return self

    def refresh_token(self, token: str) -> "ClientBuilder":
        self._refresh_token = token
        return self

    def auth_code(self, auth_code: str, account: str, account_type: int = 0) -> "ClientBuilder":
        self._grant = AuthCodeGrant(auth_code=auth_code, account=account, account_type=account_type)
        return self

    def lang(self, lang: str) -> "ClientBuilder":
        self._lang = lang
        return self

    def user_agent(self, user_agent: str) -> "ClientBuilder":
        self._user_agent = user_agent
        return self

    def timeouts(self, connect: float = DEFAULT_CONNECT_TIMEOUT, read: float = DEFAULT_READ_TIMEOUT) -> "ClientBuilder":
        self._connect_timeout = connect
        self._read_timeout = read
        return self

    def refresh_margin(self, seconds: float) -> "ClientBuilder":
        self._refresh_margin = seconds
        return self

    def token_expired_codes(self, codes: Iterable[int]) -> "ClientBuilder":
        self._token_expired_codes = frozenset(int(c) for c in codes)
        return self

    def proxy(self, proxy: Optional[str]) -> "ClientBuilder":
        self._proxy = proxy
        return self

    def verify(self, verify: bool) -> "ClientBuilder":
        self._verify = verify
        return self

    def connect_retries(self, retries: int) -> "ClientBuilder":
        self._connect_retries = retries
        return self

    def extra_header(self, name: str, value: str) -> "ClientBuilder":
        self._extra_headers[name] = value
        return self

    def debug_wire(self, enabled: bool = True) -> "ClientBuilder":
        self._debug_wire = enabled
        return self

    def session(self, session: requests.Session) -> "ClientBuilder":
        """Use a caller-provided requests.Session (adapters, hooks, tests)."""
        self._session = session
        return self

    def clock(self, clock: Callable[[], float]) -> "ClientBuilder":
        self._clock = clock
        return self

    def to_config(self) -> ClientConfig:
        """Validate builder state.

        Raises:
            ConfigError: missing credentials, missing region/base URL or bad values
        """
        if self._credentials is None:
            raise ConfigError("credentials are required (app_id, key_id, app_key)")
        if self._base_url:
            base_url = normalize_base_url(self._base_url)
        elif self._region is not None:
            base_url = self._region.base_url
        else:
            raise ConfigError("an endpoint is required: set region(...) or base_url(...)")

        if self._access_token is not None and not self._access_token.strip():
            raise ConfigError("access_token must be non-empty")
        if not self._lang:
            raise ConfigError("lang must be non-empty")
        if self._connect_timeout <= 0 or self._read_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self._refresh_margin < 0:
            raise ConfigError("refresh_margin cannot be negative")
        if self._connect_retries < 0:
            raise ConfigError("connect_retries cannot be negative")

        proxy = None
        if self._proxy:
            try:
                proxy = normalize_proxy(self._proxy)
            except ValueError as e:
                raise ConfigError(str(e)) from e
            log.debug(f"Using proxy: {mask_proxy_for_log(proxy)}")

        return ClientConfig(
            credentials=self._credentials,
            base_url=base_url,
            region=self._region,
            access_token=self._access_token,
            refresh_token=self._refresh_token or None,
            grant=self._grant,
            lang=self._lang,
            user_agent=self._user_agent,
            connect_timeout=float(self._connect_timeout),
            read_timeout=float(self._read_timeout),
            refresh_margin=float(self._refresh_margin),
            token_expired_codes=self._token_expired_codes,
            proxy=proxy,
            verify=self._verify,
            connect_retries=int(self._connect_retries),
            extra_headers=dict(self._extra_headers),
            debug_wire=self._debug_wire,
        )

    def build(self):
        """Validate and create the client."""
        from .api import AqaraAPI

        config = self.to_config()
        return AqaraAPI(config, session=self._session, clock=self._clock)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientBuilder":
        """Prefill a builder from AQARA_* environment variables.

        Partial credentials raise ConfigError here; a missing region is
        reported by ``build()``.
        """
        env = os.environ if environ is None else environ
        b = cls()
        app_id, key_id, app_key = env.get(ENV_APP_ID), env.get(ENV_KEY_ID), env.get(ENV_APP_KEY)
        if app_id or key_id or app_key:
            b.credentials(app_id or "", key_id or "", app_key or "")
        if env.get(ENV_REGION):
            b.region(env[ENV_REGION])
        if env.get(ENV_BASE_URL):
            b.base_url(env[ENV_BASE_URL])
        if env.get(ENV_ACCESS_TOKEN):
            b.access_token(env[ENV_ACCESS_TOKEN])
        if env.get(ENV_REFRESH_TOKEN):
            b.refresh_token(env[ENV_REFRESH_TOKEN])
        if env.get(ENV_LANG):
            b.lang(env[ENV_LANG])
        if env.get(ENV_PROXY):
            b.proxy(env[ENV_PROXY])
        if ENV_DEBUG_WIRE in env:
            b.debug_wire(_env_flag(env[ENV_DEBUG_WIRE]))
        return b
