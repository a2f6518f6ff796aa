"""
Persisted rate limiting for SecureBlog.

Counters live in the sessions directory as JSON files keyed by a hash of
the identifier, so every worker process sees the same window. Saves
replace the file in one step but reads and writes are not locked
together: two concurrent requests for the same identifier can both be
admitted. That weaker consistency is accepted.
"""

import time
import hashlib
import logging
from pathlib import Path
from typing import Callable, List, Optional

from secureblog.exceptions import RateLimitError
from secureblog.filestore import read_json, remove_file, write_json
from secureblog.security_log import SecurityLog

# Configure logging
logger = logging.getLogger(__name__)


def _digest(identifier: str) -> str:
    return hashlib.sha256(identifier.encode('utf-8')).hexdigest()


class RateLimiter:
    """
    Sliding-window request counter.

    Example:
        >>> limiter = RateLimiter(Path("data/sessions"))
        >>> limiter.allow("login_203.0.113.9", 10, 600)
        True
    """

    def __init__(
        self,
        storage_dir: Path,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage_dir = Path(storage_dir)
        self.security_log = security_log
        self.clock = clock

    def _path(self, identifier: str) -> Path:
        return self.storage_dir / f"ratelimit_{_digest(identifier)}.json"

    def _recent(self, identifier: str, window_seconds: int, now: float) -> List[float]:
        stored = read_json(self._path(identifier), default=[])
        if not isinstance(stored, list):
            stored = []
        return [ts for ts in stored if isinstance(ts, (int, float)) and now - ts < window_seconds]

    def allow(self, identifier: str, max_attempts: int, window_seconds: int, context=None) -> bool:
        """
        Record one request for ``identifier`` if the window has room.

        Args:
            identifier: Opaque key, e.g. "login_<ip>" or "upload_<user>"
            max_attempts: Requests admitted inside the window
            window_seconds: Length of the trailing window
            context: Request context used for the security log

        Returns:
            bool: True if admitted, False if the window is full
        """
        now = self.clock()
        attempts = self._recent(identifier, window_seconds, now)

        if len(attempts) >= max_attempts:
            logger.warning(f"Rate limit exceeded ({max_attempts}/{window_seconds}s)")
            if self.security_log:
                self.security_log.log_event("Rate limit exceeded", identifier, context)
            return False

        attempts.append(now)
        write_json(self._path(identifier), attempts)
        return True

    def check(self, identifier: str, max_attempts: int, window_seconds: int, context=None, message: Optional[str] = None) -> None:
        """
        Like :meth:`allow` but raises when the window is full.

        Raises:
            RateLimitError: If the request is not admitted
        """
        if not self.allow(identifier, max_attempts, window_seconds, context):
            minutes = max(1, window_seconds // 60)
            raise RateLimitError(message or f"Too many requests. Please try again in {minutes} minutes.")


class LoginThrottle:
    """
    Brute-force protection keyed by username.

    Each username has a record ``{attempts, first_attempt, locked_until}``.
    Reaching ``max_attempts`` failures locks the username for
    ``lockout_time`` seconds; records older than the lockout time are
    discarded on the next check.
    """

    def __init__(
        self,
        storage_dir: Path,
        max_attempts: int = 5,
        lockout_time: int = 900,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage_dir = Path(storage_dir)
        self.max_attempts = max_attempts
        self.lockout_time = lockout_time
        self.security_log = security_log
        self.clock = clock

    def _path(self, username: str) -> Path:
        return self.storage_dir / f"login_{_digest(username)}.json"

    def is_locked(self, username: str) -> bool:
        """
        Check whether ``username`` is currently locked out.

        Expired records are removed as a side effect.
        """
        path = self._path(username)
        data = read_json(path, default=None)
        if not isinstance(data, dict):
            return False

        now = self.clock()
        if data.get("locked_until", 0) > now:
            return True

        if now - data.get("first_attempt", 0) > self.lockout_time:
            remove_file(path)

        return False

    def record_failure(self, username: str, context=None) -> int:
        """
        Count one failed login for ``username``.

        Returns:
            int: Number of failures in the current record
        """
        path = self._path(username)
        now = self.clock()
        data = read_json(path, default=None)

        if isinstance(data, dict):
            data["attempts"] = int(data.get("attempts", 0)) + 1
            if data["attempts"] >= self.max_attempts:
                data["locked_until"] = now + self.lockout_time
                logger.warning("Account locked after repeated failed logins")
                if self.security_log:
                    self.security_log.log_event(
                        "Account locked due to failed login attempts", username, context
                    )
        else:
            data = {"attempts": 1, "first_attempt": now, "locked_until": 0}

        write_json(path, data)
        return data["attempts"]

    def clear(self, username: str) -> None:
        remove_file(self._path(username))
