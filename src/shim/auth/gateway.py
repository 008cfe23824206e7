# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Optional
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from shim.auth.cookies import COOKIE_NAME, CookieCodec
from shim.auth.credentials import CredentialStore
from shim.auth.sessions import Fingerprint, Session, SessionStore
from shim.logging_config import get_logger

logger = get_logger(__name__)


def fingerprint_from_request(request: Request, *, trust_proxy: bool = False) -> Fingerprint:
    ip = ""
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "")
        ip = forwarded.split(",")[0].strip()
    if not ip and request.client is not None:
        ip = request.client.host or ""
    return Fingerprint(ip=ip, user_agent=request.headers.get("user-agent", ""))


def safe_redirect_target(target: Optional[str], default: str) -> str:
    """Only local absolute paths are followed after login."""
    t = (target or "").strip()
    if not t.startswith("/") or t.startswith("//") or t.startswith("/\\"):
        return default
    return t


def original_url(request: Request) -> str:
    url = request.url.path
    if request.url.query:
        url += "?" + request.url.query
    return url


class AuthGateway:
    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionStore,
        cookies: CookieCodec,
        *,
        login_path: str = "/login/",
        trust_proxy: bool = False,
    ) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.cookies = cookies
        self.login_path = login_path
        self.trust_proxy = trust_proxy

    def fingerprint(self, request: Request) -> Fingerprint:
        return fingerprint_from_request(request, trust_proxy=self.trust_proxy)

    def _current(self, request: Request) -> tuple[Optional[str], Optional[Session]]:
        """Return (id, session) when the cookie maps to a live session bound to this client."""
        sid = self.cookies.session_id_from(request)
        sess = self.sessions.lookup(sid)
        if sess is None:
            return sid, None
        if sess.fingerprint != self.fingerprint(request):
            logger.warning("Fingerprint mismatch for session %s...", sid[:8])
            return None, None
        if sess.is_expired(self.sessions.now()):
            return sid, None
        return sid, sess

    def get_session_from_request(self, request: Request, response: Optional[Response] = None) -> Optional[Session]:
        """Logged-in session for this request, or None.

        When resolution fails and ``response`` is given, the client cookie is
        expired on it.
        """
        _, sess = self._current(request)
        if sess is not None and sess.logged_in:
            return sess
        if response is not None and COOKIE_NAME in request.cookies:
            self.cookies.expire(response)
        return None

    def ensure_session(self, request: Request, response: Response) -> Session:
        """Current session (anonymous or not), minting an anonymous one if needed."""
        _, sess = self._current(request)
        if sess is not None:
            return sess
        sid, sess = self.sessions.new_session(self.fingerprint(request))
        self.cookies.set(response, sid, sess)
        return sess

    def login(self, username: str, password: str, request: Request, response: Response) -> bool:
        if not self.credentials.verify_password(username, password):
            logger.info("Login did not match for user %r", username)
            return False
        previous_id, _ = self._current(request)
        sid, sess = self.sessions.login(previous_id, username, self.fingerprint(request))
        self.cookies.set(response, sid, sess)
        logger.info("User %s logged in", username)
        return True

    def logout(self, request: Request, response: Response) -> None:
        sid = self.cookies.session_id_from(request)
        if self.sessions.invalidate(sid):
            logger.info("Session %s... logged out", sid[:8])
        self.cookies.expire(response)

    def sweep(self) -> int:
        return self.sessions.sweep()

    def login_redirect(self, request: Request) -> RedirectResponse:
        target = f"{self.login_path}?redirect={quote(original_url(request), safe='')}&warn=yes"
        logger.info("Not logged in, redirecting to %s", target)
        resp = RedirectResponse(url=target, status_code=303)
        self.cookies.expire(resp)
        return resp

    def wrap(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Protect a route handler. The handler must accept a ``request`` argument."""
        if "request" not in inspect.signature(handler).parameters:
            raise TypeError(f"{handler.__name__} must take a 'request' parameter to be wrapped")
        is_async = inspect.iscoroutinefunction(handler)

        @functools.wraps(handler)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request = kwargs.get("request")
            if request is None:
                request = next(a for a in args if isinstance(a, Request))
            if self.get_session_from_request(request) is None:
                return self.login_redirect(request)
            if is_async:
                return await handler(*args, **kwargs)
            return await run_in_threadpool(handler, *args, **kwargs)

        return wrapper
