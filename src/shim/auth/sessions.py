# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Tuple

from shim.config import ANONYMOUS_LIFESPAN, AUTHENTICATED_LIFESPAN
from shim.logging_config import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


def new_token() -> str:
    """Random, URL-safe session id. Independent of any user input."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class Fingerprint:
    ip: str
    user_agent: str


@dataclass(frozen=True)
class Session:
    fingerprint: Fingerprint
    created: int
    lifespan: int
    user: str = ""

    @property
    def logged_in(self) -> bool:
        return self.user != ""

    @property
    def expires_at(self) -> int:
        return self.created + self.lifespan

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now

    def is_valid_for(self, fingerprint: Fingerprint, now: float) -> bool:
        return self.fingerprint == fingerprint and not self.is_expired(now)

    def authenticated(self, user: str, now: float, lifespan: int) -> "Session":
        return replace(self, user=user, created=int(now), lifespan=lifespan)


class SessionStore:
    """In-memory session id -> Session map. Every operation holds one lock."""

    def __init__(
        self,
        *,
        anonymous_lifespan: int = ANONYMOUS_LIFESPAN,
        authenticated_lifespan: int = AUTHENTICATED_LIFESPAN,
        clock: Clock = time.time,
        debug: bool = False,
    ) -> None:
        self.anonymous_lifespan = anonymous_lifespan
        self.authenticated_lifespan = authenticated_lifespan
        self.clock = clock
        self.debug = debug
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def now(self) -> float:
        return self.clock()

    def _insert(self, sess: Session) -> str:
        # caller holds the lock
        sid = new_token()
        while sid in self._sessions:
            sid = new_token()
        self._sessions[sid] = sess
        return sid

    def new_session(self, fingerprint: Fingerprint) -> Tuple[str, Session]:
        sess = Session(
            fingerprint=fingerprint,
            created=int(self.now()),
            lifespan=self.anonymous_lifespan,
        )
        with self._lock:
            sid = self._insert(sess)
        return sid, sess

    def lookup(self, session_id: Optional[str]) -> Optional[Session]:
        """Raw lookup. Expired but unswept entries are still returned."""
        if not session_id:
            return None
        with self._lock:
            return self._sessions.get(session_id)

    def login(self, previous_id: Optional[str], user: str, fingerprint: Fingerprint) -> Tuple[str, Session]:
        """Promote to an authenticated session under a freshly minted id.

        The previous id, if any, is dropped so a pre-login token can never
        become an authenticated one.
        """
        now = self.now()
        with self._lock:
            previous = self._sessions.pop(previous_id, None) if previous_id else None
            if previous is not None and previous.fingerprint == fingerprint:
                sess = previous.authenticated(user, now, self.authenticated_lifespan)
            else:
                sess = Session(
                    fingerprint=fingerprint,
                    created=int(now),
                    lifespan=self.authenticated_lifespan,
                    user=user,
                )
            sid = self._insert(sess)
        return sid, sess

    def invalidate(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep(self) -> int:
        """Drop every session whose creation + lifespan lies in the past."""
        now = self.now()
        with self._lock:
            expired = [sid for sid, sess in self._sessions.items() if sess.is_expired(now)]
            for sid in expired:
                del self._sessions[sid]
        if self.debug:
            for sid in expired:
                logger.debug("Session[%s...] has expired", sid[:8])
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)
