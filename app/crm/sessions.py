"""
Server-side login sessions and the failed-login throttle.

Both live in ``app.extensions`` (see ``init_sessions``) so each app instance,
and each test, gets its own isolated state. The Flask cookie only carries the
opaque session token; destroying the record here invalidates the cookie even
if a client replays it.
"""
from __future__ import annotations

import secrets
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import Flask, current_app

from app.crm.utils import utcnow


@dataclass(frozen=True)
class SessionRecord:
    token: str
    user_id: int
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class SessionStore:
    def __init__(self, lifetime: timedelta, clock: Callable[[], datetime] = utcnow):
        self.lifetime = lifetime
        self._clock = clock
        self._lock = threading.Lock()
        self._records: dict[str, SessionRecord] = {}

    def create(self, user_id: int) -> SessionRecord:
        now = self._clock()
        rec = SessionRecord(
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            created_at=now,
            expires_at=now + self.lifetime,
        )
        with self._lock:
            self._records[rec.token] = rec
        return rec

    def get(self, token: str | None) -> SessionRecord | None:
        if not token:
            return None
        with self._lock:
            rec = self._records.get(token)
            if rec is None:
                return None
            if rec.is_expired(self._clock()):
                del self._records[token]
                return None
            return rec

    def destroy(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            return self._records.pop(token, None) is not None

    def destroy_user(self, user_id: int) -> int:
        with self._lock:
            tokens = [t for t, r in self._records.items() if r.user_id == user_id]
            for t in tokens:
                del self._records[t]
        return len(tokens)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            tokens = [t for t, r in self._records.items() if r.is_expired(now)]
            for t in tokens:
                del self._records[t]
        return len(tokens)

    def active_count(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for r in self._records.values() if not r.is_expired(now))

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


class LoginThrottle:
    """Counts failed logins per client IP inside a sliding window."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], datetime] = utcnow):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._attempts: dict[str, list[datetime]] = defaultdict(list)

    def _prune(self, ip: str, now: datetime) -> list[datetime]:
        cutoff = now - self.window
        kept = [t for t in self._attempts.get(ip, []) if t > cutoff]
        if kept:
            self._attempts[ip] = kept
        else:
            self._attempts.pop(ip, None)
        return kept

    def is_blocked(self, ip: str) -> bool:
        with self._lock:
            return len(self._prune(ip, self._clock())) >= self.limit

    def record_failure(self, ip: str) -> None:
        with self._lock:
            self._attempts[ip].append(self._clock())

    def reset(self, ip: str) -> None:
        with self._lock:
            self._attempts.pop(ip, None)

    def purge(self) -> int:
        now = self._clock()
        with self._lock:
            before = len(self._attempts)
            for ip in list(self._attempts):
                self._prune(ip, now)
            return before - len(self._attempts)


def init_sessions(app: Flask) -> None:
    app.extensions["crm_sessions"] = SessionStore(
        lifetime=timedelta(hours=int(app.config["SESSION_LIFETIME_HOURS"])),
    )
    app.extensions["crm_login_throttle"] = LoginThrottle(
        limit=int(app.config["LOGIN_RATE_LIMIT"]),
        window_seconds=int(app.config["LOGIN_RATE_WINDOW"]),
    )


def session_store() -> SessionStore:
    return current_app.extensions["crm_sessions"]


def login_throttle() -> LoginThrottle:
    return current_app.extensions["crm_login_throttle"]
