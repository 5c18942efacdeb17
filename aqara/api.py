"""HTTP API module: the signed request dispatcher for the Aqara Open API."""

from __future__ import annotations
import json
import time
import logging
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import ClientBuilder, ClientConfig
from .constants import CODE_RATE_LIMITED, CODE_SUCCESS, HEADER_LANG, DEFAULT_TOKEN_VALIDITY
from .errors import ApiError, AuthError, ProtocolError, RateLimitedError, TransportError
from .models import Envelope, IssuedToken, Session
from .protocol import encode_body, parse_retry_after, serialize_payload, signed_request_for
from .proxy_utils import mask_proxy_for_log, to_requests_proxies
from .redact import redact_headers, redact_json, snippet_from_bytes
from .services import AuthService, DeviceService, PositionService, SceneService, VoiceService
from .tokens import TokenManager

log = logging.getLogger(__name__)

R = TypeVar("R")

_REQUEST_ID_HEADERS = ("x-request-id", "request-id", "x-correlation-id")


def default_headers(config: ClientConfig) -> Dict[str, str]:
    """Unsigned headers sent with every request."""
    return {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "User-Agent": config.user_agent,
        HEADER_LANG: config.lang,
    }


def connect_only_retry(retries: int) -> Retry:
    """urllib3 policy that retries connection establishment only.

    A request that reached the server is never resent.
    """
    return Retry(
        total=retries,
        connect=retries,
        read=0,
        redirect=0,
        status=0,
        other=0,
        backoff_factor=0.2,
        raise_on_redirect=False,
        raise_on_status=False,
    )


class AqaraAPI:
    """HTTP API client for the Aqara Open API.

    Every call goes through :meth:`execute`: token from the TokenManager,
    signed headers, ``POST {"intent", "data"}`` to the region URL, envelope
    decoding and error mapping. Safe to share between threads.

    Build instances with :meth:`builder` (or ``ClientBuilder``).
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self.base_url = config.base_url
        self._owns_session = session is None
        self.session = session or requests.Session()
        if self._owns_session:
            adapter = HTTPAdapter(max_retries=connect_only_retry(config.connect_retries))
            self.session.mount("https://", adapter)
            self.session.mount("http://", adapter)
        self.proxies = to_requests_proxies(config.proxy)
        self.timeout = (config.connect_timeout, config.read_timeout)

        self.tokens = TokenManager(
            self._issue_token,
            static_token=config.access_token,
            refresh_token=config.refresh_token,
            grant=config.grant,
            refresh_margin=config.refresh_margin,
            clock=clock or time.time,
        )
        self._services: Dict[str, Any] = {}

        log.info(
            f"Aqara client ready: {self.base_url} app_id={config.credentials.app_id} "
            f"token_mode={'static' if self.tokens.is_static else 'managed'}"
        )
        if self.proxies:
            log.debug(f"   🔀 Proxy: {mask_proxy_for_log(config.proxy)}")

    @staticmethod
    def builder() -> ClientBuilder:
        return ClientBuilder()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session:
            self.session.close()

    # ==================== Session ====================

    def set_access_token(self, access_token: str, expires_in: float = DEFAULT_TOKEN_VALIDITY,
                         refresh_token: Optional[str] = None) -> None:
        """Install a token obtained outside the client (managed mode only)."""
        self.tokens.seed(access_token, expires_in, refresh_token)

    def clear_access_token(self) -> None:
        self.tokens.clear()

    def session_snapshot(self) -> Session:
        return self.tokens.snapshot()

    # ==================== Dispatch ====================

    def execute(
        self,
        path: str,
        payload: Any = None,
        result_type: Optional[Callable[[Any], R]] = None,
        *,
        require_result: bool = False,
        with_token: bool = True,
    ) -> Envelope[R]:
        """Execute one signed intent call.

        Args:
            path: intent name, e.g. ``query.position.info``
            payload: Mapping, dataclass or object with ``to_dict()``
            result_type: converts the raw ``result`` (e.g. ``PositionPage.from_dict``)
            require_result: a successful envelope without ``result`` is a ProtocolError
            with_token: sign with the user access token

        Returns:
            Decoded envelope (``code == 0``)

        Raises:
            AuthError: no token could be obtained, or the token was rejected
                again after one re-authentication
            TransportError: network failure
            ApiError: the platform rejected the call
            ProtocolError: the response did not match the envelope/result shape
        """
        data = serialize_payload(payload)
        token = self.tokens.get_token() if with_token else None
        try:
            return self._send(path, data, token, result_type, require_result)
        except ApiError as e:
            if token is None or e.code not in self.config.token_expired_codes:
                raise
            log.warning(f"🔄 Access token rejected (code={e.code}) for {path}; re-authenticating once...")
            token = self.tokens.reauthenticate(token)

        try:
            return self._send(path, data, token, result_type, require_result)
        except ApiError as e:
            if e.code in self.config.token_expired_codes:
                log.error(f"❌ Access token rejected again for {path} after re-authentication")
                raise AuthError(f"Access token rejected after re-authentication: {e}") from e
            raise

    def _issue_token(self, intent: str, data: Mapping[str, Any]) -> IssuedToken:
        env = self._send(intent, dict(data), None, IssuedToken.from_dict, True)
        return env.result

    def _send(
        self,
        intent: str,
        data: Dict[str, Any],
        access_token: Optional[str],
        result_type: Optional[Callable[[Any], Any]],
        require_result: bool,
    ) -> Envelope:
        signed = signed_request_for(self.config.credentials, intent, access_token)
        headers = default_headers(self.config)
        headers.update(self.config.extra_headers)
        headers.update(signed.headers())
        body = encode_body(intent, data)

        log.debug(f"🌐 HTTP POST {self.base_url} intent={intent}")
        if self.config.debug_wire:
            log.debug(f"   📤 Headers: {redact_headers(headers)}")
            log.debug(f"   📤 Data: {json.dumps(redact_json(data), ensure_ascii=False)}")

        start_time = time.time()
        try:
            r = self.session.post(
                self.base_url,
                data=body,
                headers=headers,
                proxies=self.proxies,
                timeout=self.timeout,
                verify=self.config.verify,
            )
        except requests.exceptions.Timeout as e:
            log.error(f"❌ Timeout calling {intent}: {e}")
            raise TransportError(f"Timeout calling {intent}: {e}") from e
        except requests.exceptions.ProxyError as e:
            log.error(f"❌ Proxy error calling {intent}: {e}")
            raise TransportError(f"Proxy error: {e}") from e
        except requests.exceptions.ConnectionError as e:
            log.error(f"❌ Connection error calling {intent}: {e}")
            raise TransportError(f"Connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            log.error(f"❌ Request to {intent} failed: {e}")
            raise TransportError(f"Request failed: {e}") from e
        request_time = time.time() - start_time

        log.info(f"HTTP POST {intent} -> {r.status_code} ({request_time:.3f}s)")
        if self.config.debug_wire:
            log.debug(f"   📥 Response body: {snippet_from_bytes(r.content)}")

        return self._decode(r, result_type, require_result)

    def _decode(
        self,
        r: requests.Response,
        result_type: Optional[Callable[[Any], Any]],
        require_result: bool,
    ) -> Envelope:
        status = r.status_code
        ok_http = 200 <= status < 300
        header_request_id = _request_id_from_headers(r.headers)
        try:
            data = json.loads(r.content) if r.content else None
        except ValueError:
            data = None

        if data is None:
            snippet = snippet_from_bytes(r.content)
            if status == 429:
                raise RateLimitedError(
                    r.reason or "rate limited",
                    status=status,
                    retry_after=parse_retry_after(r.headers.get("Retry-After")),
                    request_id=header_request_id,
                    body_snippet=snippet,
                )
            if ok_http:
                raise ProtocolError(
                    "response body is not JSON", status=status,
                    request_id=header_request_id, body_snippet=snippet,
                )
            raise ApiError(r.reason or "", status=status, request_id=header_request_id, body_snippet=snippet)

        if not ok_http:
            try:
                env = Envelope.from_dict(data, status=status)
            except ProtocolError:
                raise ApiError(
                    r.reason or "", status=status, request_id=header_request_id,
                    body_snippet=snippet_from_bytes(r.content),
                ) from None
            raise self._api_error(env, r)

        try:
            env = Envelope.from_dict(data, result_type, require_result=require_result, status=status)
        except ProtocolError as e:
            e.body_snippet = snippet_from_bytes(r.content)
            e.request_id = e.request_id or header_request_id
            raise
        if env.code != CODE_SUCCESS:
            raise self._api_error(env, r)
        return env

    def _api_error(self, env: Envelope, r: requests.Response) -> ApiError:
        snippet = snippet_from_bytes(r.content)
        if env.code == CODE_RATE_LIMITED or r.status_code == 429:
            return RateLimitedError(
                env.message,
                status=r.status_code,
                code=env.code,
                request_id=env.request_id,
                body_snippet=snippet,
                retry_after=parse_retry_after(r.headers.get("Retry-After")),
            )
        log.warning(f"⚠️ API error code={env.code} message={env.message!r} requestId={env.request_id}")
        return ApiError(
            env.message,
            status=r.status_code,
            code=env.code,
            request_id=env.request_id,
            body_snippet=snippet,
        )

    # ==================== Resources ====================

    def _service(self, name: str, factory):
        svc = self._services.get(name)
        if svc is None:
            svc = self._services.setdefault(name, factory(self))
        return svc

    @property
    def auth(self):
        return self._service("auth", AuthService)

    @property
    def positions(self):
        return self._service("positions", PositionService)

    @property
    def devices(self):
        return self._service("devices", DeviceService)

    @property
    def scenes(self):
        return self._service("scenes", SceneService)

    @property
    def voice(self):
        return self._service("voice", VoiceService)


def _request_id_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    for name in _REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return None
