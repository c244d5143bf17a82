from __future__ import annotations
import logging
import threading
import time
from typing import Dict, List, Optional, Tuple
from flask_jwt_extended import create_access_token
from freightdesk import get_db
from freightdesk.constants.permissions import role_permissions
from freightdesk.models.user import User

logger = logging.getLogger(__name__)


def build_claims(user: User) -> dict:
    return {
        'role': user.role,
        'ver': user.token_version or 0,
        'perms': role_permissions(user.role),
    }


def issue_token(user: User) -> str:
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    return create_access_token(identity=str(user.id), additional_claims=build_claims(user))


def is_token_revoked(jwt_payload: dict) -> bool:
    """Tokens die with their user: missing, soft-deleted, inactive, or token_version moved on."""
    sub = jwt_payload.get('sub')
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        return True
    user = get_db().get(User, user_id)
    if user is None or user.deleted_at is not None or not user.is_active:
        return True
    return jwt_payload.get('ver', 0) != (user.token_version or 0)


class LoginRateLimiter:
    """Sliding window of failed attempts per key, followed by a lockout of one window.

    In-process only; each worker keeps its own counters.
    """

    def __init__(self, max_attempts: int = 5, window_seconds: int = 900, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._locked_until: Dict[str, float] = {}
        self._lock = threading.Lock()

    def configure(self, max_attempts: int, window_seconds: int):
        with self._lock:
            self.max_attempts = max_attempts
            self.window_seconds = window_seconds

    def check(self, key: str) -> Tuple[bool, int]:
        """Return (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            until = self._locked_until.get(key)
            if until is not None:
                if now < until:
                    return False, int(until - now) + 1
                del self._locked_until[key]
                self._attempts.pop(key, None)
            return True, 0

    def record_failure(self, key: str) -> bool:
        """Record a failed attempt; True when this failure triggered a lockout."""
        now = self._clock()
        with self._lock:
            self._sweep(now)
            recent = [t for t in self._attempts.get(key, []) if now - t < self.window_seconds]
            recent.append(now)
            self._attempts[key] = recent
            if len(recent) >= self.max_attempts:
                self._locked_until[key] = now + self.window_seconds
                logger.warning('login locked for %s after %d failed attempts', key, len(recent))
                return True
            return False

    def _sweep(self, now: float):
        # caller holds self._lock
        for k, until in list(self._locked_until.items()):
            if now >= until:
                del self._locked_until[k]
                self._attempts.pop(k, None)
        for k, stamps in list(self._attempts.items()):
            if k not in self._locked_until and (not stamps or now - stamps[-1] >= self.window_seconds):
                del self._attempts[k]

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._attempts.clear()
                self._locked_until.clear()
            else:
                self._attempts.pop(key, None)
                self._locked_until.pop(key, None)


login_limiter = LoginRateLimiter()


def limiter_key(email: str, ip: Optional[str]) -> str:
    return f'{(email or "").strip().lower()}|{ip or "unknown"}'
