# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from email.utils import formatdate
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer
from starlette.requests import Request
from starlette.responses import Response

from shim.auth.sessions import Session

COOKIE_NAME = "sessionID"
COOKIE_PATH = "/"
SALT = "shim.session.v1"


class CookieCodec:
    """Moves session ids in and out of the ``sessionID`` cookie.

    The cookie value is the session id signed with the app secret, so a
    forged or truncated value is rejected before any store lookup.
    """

    def __init__(self, secret_key: str, *, secure: bool = False) -> None:
        self.secure = secure
        self._serializer = URLSafeSerializer(secret_key=secret_key, salt=SALT)

    def encode(self, session_id: str) -> str:
        return self._serializer.dumps(session_id)

    def decode(self, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        try:
            sid = self._serializer.loads(value)
        except BadSignature:
            return None
        if not isinstance(sid, str) or not sid:
            return None
        return sid

    def session_id_from(self, request: Request) -> Optional[str]:
        return self.decode(request.cookies.get(COOKIE_NAME))

    def set(self, response: Response, session_id: str, session: Session) -> None:
        response.set_cookie(
            COOKIE_NAME,
            self.encode(session_id),
            max_age=session.lifespan,
            expires=formatdate(session.expires_at, usegmt=True),
            path=COOKIE_PATH,
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )

    def expire(self, response: Response) -> None:
        """Overwrite the client's cookie with an already expired, empty one."""
        response.set_cookie(
            COOKIE_NAME,
            "",
            max_age=0,
            expires=formatdate(0, usegmt=True),
            path=COOKIE_PATH,
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )
