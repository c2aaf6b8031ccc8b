"""
BioCyc session material.

BioCyc's web services need a logged-in cookie jar. A session is valid for an
hour after login and is treated as unusable once it is within five minutes of
expiring. Lookup order: process memory, shared store, fresh login. Concurrent
callers in one process wait on a single login.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

import httpx

from genehub.errors import AuthError
from genehub.store import Store, StoreUnavailable

log = logging.getLogger("genehub.sessions")

SESSION_ID = "biocyc"
SESSION_TTL_S = 3600
SESSION_MARGIN_S = 300
LOGIN_TIMEOUT_S = 30.0
DEFAULT_LOGIN_URL = "https://websvc.biocyc.org/credentials/login/"


@dataclass
class AuthSession:
    cookies: str
    expires_at: float

    def usable(self, now: float) -> bool:
        return bool(self.cookies) and self.expires_at - SESSION_MARGIN_S > now


def _cookie_pairs(response: httpx.Response) -> List[str]:
    pairs: List[str] = []
    for r in list(response.history) + [response]:
        for raw in r.headers.get_list("set-cookie"):
            pair = raw.split(";", 1)[0].strip()
            if pair:
                pairs.append(pair)
    return pairs


class BiocycSessionManager:
    def __init__(
        self,
        http: httpx.AsyncClient,
        store: Store,
        *,
        email: Optional[str],
        password: Optional[str],
        login_url: str = DEFAULT_LOGIN_URL,
        clock: Callable[[], float] = time.time,
    ):
        self._http = http
        self._store = store
        self._email = email
        self._password = password
        self._login_url = login_url
        self._clock = clock
        self._session: Optional[AuthSession] = None
        self._lock = asyncio.Lock()
        self.logins = 0

    @property
    def configured(self) -> bool:
        return bool(self._email and self._password)

    async def get_session(self) -> AuthSession:
        if self._session is not None and self._session.usable(self._clock()):
            return self._session
        async with self._lock:
            # another caller may have logged in while we waited
            now = self._clock()
            if self._session is not None and self._session.usable(now):
                return self._session

            stored = await self._load()
            if stored is not None and stored.usable(now):
                self._session = stored
                return stored

            session = await self._login()
            self._session = session
            await self._save(session)
            return session

    async def cookies(self) -> str:
        return (await self.get_session()).cookies

    async def invalidate(self) -> None:
        """Forget the current session; the next call logs in again."""
        self._session = None
        try:
            await self._store.session_delete(SESSION_ID)
        except StoreUnavailable as e:
            log.debug("session delete skipped (%s)", e)

    async def _load(self) -> Optional[AuthSession]:
        try:
            record = await self._store.session_get(SESSION_ID)
        except StoreUnavailable as e:
            log.debug("session store unavailable (%s)", e)
            return None
        if not record:
            return None
        try:
            return AuthSession(cookies=str(record["cookies"]), expires_at=float(record["expires_at"]))
        except (KeyError, TypeError, ValueError):
            log.warning("Ignoring malformed stored BioCyc session")
            return None

    async def _save(self, session: AuthSession) -> None:
        try:
            await self._store.session_put(SESSION_ID, asdict(session))
        except StoreUnavailable as e:
            log.debug("session kept in memory only (%s)", e)

    async def _login(self) -> AuthSession:
        if not self.configured:
            raise AuthError("BioCyc credentials not configured (set BIOCYC_EMAIL and BIOCYC_PASSWORD)")

        log.info("Logging in to BioCyc")
        try:
            r = await self._http.post(
                self._login_url,
                data={"email": self._email, "password": self._password},
                follow_redirects=True,
                timeout=LOGIN_TIMEOUT_S,
            )
        except httpx.HTTPError as e:
            raise AuthError("BioCyc authentication failed", details=str(e) or e.__class__.__name__) from e
        self.logins += 1

        if not r.is_success:
            raise AuthError(f"BioCyc authentication failed: {r.status_code}")

        pairs = _cookie_pairs(r)
        if not pairs:
            raise AuthError("BioCyc login succeeded but no cookies returned")

        return AuthSession(cookies="; ".join(pairs), expires_at=self._clock() + SESSION_TTL_S)
