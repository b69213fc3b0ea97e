# Overview: TTL-cached view of the signed-in session for client-side flows.

"""
Session Store

One instance per client app: create it at start-up, call clear() on
logout. get() answers from cache until the TTL lapses; focus and
visibility events invalidate the cache so the next get() re-checks with
the server (the user may have signed out in another tab).
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


@dataclass(frozen=True)
class Session:
    token: str
    user: dict

    @property
    def user_id(self) -> Optional[int]:
        return self.user.get("id")


class SessionStore:
    def __init__(
        self,
        fetch_session: Callable[[], Optional[Session]],
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_session = fetch_session
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._fetched_at: Optional[float] = None

    def get(self, force: bool = False) -> Optional[Session]:
        """
        Cached session, refreshed when forced, invalidated or older than the TTL.

        A signed-out answer (None) is cached too.
        """
        with self._lock:
            if not force and self._fresh():
                return self._session
            self._session = self._fetch_session()
            self._fetched_at = self._clock()
            return self._session

    def _fresh(self) -> bool:
        return self._fetched_at is not None and (self._clock() - self._fetched_at) < self._ttl

    def invalidate(self) -> None:
        with self._lock:
            self._fetched_at = None

    def on_focus(self) -> None:
        self.invalidate()

    def on_visibility_change(self, visible: bool) -> None:
        if visible:
            self.invalidate()

    def clear(self) -> None:
        with self._lock:
            self._session = None
            self._fetched_at = None
        logger.debug("Session store cleared")


def fetcher_for(api) -> Callable[[], Optional[Session]]:
    """Build a fetch function that asks the storefront API who is signed in."""
    def fetch() -> Optional[Session]:
        user = api.me()
        if not user:
            return None
        return Session(token=api.token, user=user)
    return fetch
