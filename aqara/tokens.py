"""Access-token lifecycle.

The TokenManager owns the Session. States:

    empty -> refreshing -> valid -> expired -> refreshing -> ...

Refreshes are single-flight: concurrent callers that find the session
empty or expired wait for the one in-flight issuance and share its outcome.
The issuance call itself runs outside the lock.
"""

from __future__ import annotations
import dataclasses
import logging
import threading
import time
from typing import Callable, Mapping, Any, Optional

from .constants import (
    DEFAULT_REFRESH_MARGIN, DEFAULT_TOKEN_VALIDITY,
    INTENT_GET_TOKEN, INTENT_REFRESH_TOKEN,
)
from .errors import AuthError, ConfigError
from .models import AuthCodeGrant, IssuedToken, Session

log = logging.getLogger(__name__)

# (intent, data) -> IssuedToken, signed without an access token
IssueFn = Callable[[str, Mapping[str, Any]], IssuedToken]


class TokenManager:
    """Serves valid access tokens, refreshing them on demand.

    Args:
        issue: performs a token-issuance call
        static_token: fixed access token; disables the managed lifecycle
        refresh_token: refresh token used for issuance
        grant: one-shot authorization code used when no refresh token exists
        refresh_margin: tokens expiring within this many seconds count as expired
        clock: time source (seconds)
    """

    def __init__(
        self,
        issue: Optional[IssueFn] = None,
        *,
        static_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        grant: Optional[AuthCodeGrant] = None,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        self._issue = issue
        self._static_token = static_token
        self._grant = grant
        self._margin = float(refresh_margin)
        self._clock = clock
        self._session = Session(refresh_token=refresh_token)
        self._cond = threading.Condition()
        self._refreshing = False
        self._generation = 0
        self._failure: Optional[BaseException] = None
        self.issue_count = 0

    @property
    def is_static(self) -> bool:
        return self._static_token is not None

    def state(self) -> str:
        if self.is_static:
            return "static"
        with self._cond:
            if self._refreshing:
                return "refreshing"
            if self._session.access_token is None:
                return "empty"
            if self._session.is_valid(self._clock(), self._margin):
                return "valid"
            return "expired"

    def snapshot(self) -> Session:
        with self._cond:
            return dataclasses.replace(self._session)

    def get_token(self) -> str:
        """Return a valid access token, refreshing if needed.

        Raises:
            AuthError: no token could be issued
        """
        if self._static_token is not None:
            return self._static_token
        return self._acquire(stale=None)

    def reauthenticate(self, stale_token: Optional[str]) -> str:
        """Replace a token the platform rejected.

        If another caller already replaced ``stale_token``, the current token
        is returned without issuing again.
        """
        if self._static_token is not None:
            raise AuthError("Static access token was rejected by the platform; supply a new token")
        return self._acquire(stale=stale_token)

    def seed(self, access_token: str, expires_in: float = DEFAULT_TOKEN_VALIDITY,
             refresh_token: Optional[str] = None) -> None:
        """Install session material obtained outside the client."""
        if self.is_static:
            raise ConfigError("Client uses a static access token; session cannot be seeded")
        if not access_token:
            raise ConfigError("access_token must be non-empty")
        with self._cond:
            self._session.access_token = access_token
            self._session.expires_at = self._clock() + float(expires_in)
            if refresh_token:
                self._session.refresh_token = refresh_token
        log.info("Session seeded with external access token")

    def clear(self) -> None:
        with self._cond:
            self._session.clear_access()

    def _acquire(self, stale: Optional[str]) -> str:
        with self._cond:
            while True:
                current = self._session.access_token
                if self._session.is_valid(self._clock(), self._margin) and (stale is None or current != stale):
                    return current
                if not self._refreshing:
                    break
                gen = self._generation
                self._cond.wait_for(lambda: self._generation != gen)
                if self._failure is not None:
                    raise AuthError(f"Token refresh failed: {self._failure}") from self._failure
                # the refresh we waited on replaced any stale token
                stale = None
            if stale is not None and current == stale:
                self._session.clear_access()
            self._refreshing = True
            refresh_token = self._session.refresh_token
            grant = self._grant

        try:
            issued = self._run_issuance(refresh_token, grant)
        except BaseException as e:
            with self._cond:
                self._session.clear_access()
                self._failure = e
                self._refreshing = False
                self._generation += 1
                self._cond.notify_all()
            log.error(f"❌ Access token issuance failed: {e}")
            if isinstance(e, AuthError):
                raise
            if isinstance(e, Exception):
                raise AuthError(f"Token refresh failed: {e}") from e
            raise

        with self._cond:
            self._session.access_token = issued.access_token
            self._session.expires_at = self._clock() + issued.expires_in
            if issued.refresh_token:
                self._session.refresh_token = issued.refresh_token
            if issued.open_id:
                self._session.open_id = issued.open_id
            if refresh_token is None and grant is not None:
                self._grant = None
            self._failure = None
            self._refreshing = False
            self._generation += 1
            self._cond.notify_all()
        log.info(f"🔄 Access token issued (expires in {issued.expires_in}s)")
        return issued.access_token

    def _run_issuance(self, refresh_token: Optional[str], grant: Optional[AuthCodeGrant]) -> IssuedToken:
        if self._issue is None:
            raise AuthError("Token manager is not bound to a dispatcher")
        if refresh_token:
            log.debug("Refreshing access token via refresh token")
            self.issue_count += 1
            return self._issue(INTENT_REFRESH_TOKEN, {"refreshToken": refresh_token})
        if grant is not None:
            log.debug(f"Exchanging authorization code for account {grant.account}")
            self.issue_count += 1
            return self._issue(INTENT_GET_TOKEN, {
                "authCode": grant.auth_code,
                "account": grant.account,
                "accountType": grant.account_type,
            })
        raise AuthError(
            "No access token available: configure a refresh token, an authorization code "
            "or a static access token"
        )
