"""
Session lifecycle and authentication.

Sessions are explicit value objects persisted as JSON files by a
SessionStore; nothing is kept in process memory between requests.
"""

import re
import hmac
import time
import hashlib
import secrets
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from secureblog.exceptions import AuthError
from secureblog.filestore import read_json, remove_file, write_json
from secureblog.passwords import PasswordVault
from secureblog.rate_limit import LoginThrottle
from secureblog.security_log import SecurityLog
from secureblog.users import UserStore

# Configure logging
logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[a-f0-9]{64}$")


@dataclass
class RequestContext:
    """Client-identifying facts about the current request."""

    client_ip: str = "unknown"
    remote_addr: str = "unknown"
    user_agent: str = ""
    accept_language: str = ""
    is_https: bool = False
    session_id: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        raw = f"{self.user_agent}{self.client_ip}{self.accept_language}"
        return hashlib.sha256(raw.encode('utf-8')).hexdigest()


@dataclass
class Session:
    """State carried across requests for one client."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    is_new: bool = False
    destroyed: bool = False

    @property
    def username(self) -> Optional[str]:
        return self.data.get("user")

    @property
    def role(self) -> Optional[str]:
        return self.data.get("role")

    @property
    def created(self) -> float:
        return self.data.get("created", 0)


class SessionStore:
    """Persists session data as ``sess_<id>.json`` files."""

    def __init__(self, sessions_dir: Path, clock: Callable[[], float] = time.time):
        self.sessions_dir = Path(sessions_dir)
        self.clock = clock

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"sess_{session_id}.json"

    @staticmethod
    def new_id() -> str:
        return secrets.token_hex(32)

    def load(self, session_id: Optional[str]) -> Optional[dict]:
        if not session_id or not SESSION_ID_PATTERN.match(session_id):
            return None
        data = read_json(self._path(session_id), default=None)
        return data if isinstance(data, dict) else None

    def save(self, session_id: str, data: dict) -> None:
        write_json(self._path(session_id), data)

    def delete(self, session_id: str) -> None:
        remove_file(self._path(session_id))

    def purge_expired(self, lifetime: int) -> int:
        """Delete session, rate-limit and login records untouched for ``lifetime`` seconds."""
        if not self.sessions_dir.is_dir():
            return 0

        now = self.clock()
        removed = 0
        for path in self.sessions_dir.glob("*.json"):
            try:
                if now - path.stat().st_mtime > lifetime:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue

        if removed:
            logger.debug(f"Purged {removed} expired session files")
        return removed


class SessionGuard:
    """
    Starts sessions, authenticates users and detects session hijacking.

    A session is bound to the fingerprint of the client that created it.
    When a later request arrives with a different fingerprint the session
    is discarded and an anonymous one is issued in its place, without
    surfacing an error.
    """

    def __init__(
        self,
        settings,
        store: SessionStore,
        vault: PasswordVault,
        throttle: LoginThrottle,
        users: UserStore,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store
        self.vault = vault
        self.throttle = throttle
        self.users = users
        self.security_log = security_log
        self.clock = clock

    def _log(self, event: str, details: str, context) -> None:
        if self.security_log:
            self.security_log.log_event(event, details, context)

    def _new_session(self, context: RequestContext) -> Session:
        session = Session(id=self.store.new_id(), is_new=True)
        session.data["created"] = self.clock()
        session.data["fingerprint"] = context.fingerprint
        return session

    def start(self, context: RequestContext) -> Session:
        """
        Resume the session named by the request cookie or open a new one.

        Args:
            context: Facts about the current request

        Returns:
            Session: The session to use for this request
        """
        self.store.purge_expired(self.settings.session_lifetime)

        data = self.store.load(context.session_id)
        if data is None:
            return self._new_session(context)

        session = Session(id=context.session_id, data=data)

        now = self.clock()
        if "created" not in session.data:
            session.data["created"] = now
        elif now - session.created > self.settings.session_regenerate_interval:
            self.regenerate(session)
            session.data["created"] = now

        stored = session.data.get("fingerprint")
        if not stored:
            session.data["fingerprint"] = context.fingerprint
        elif not hmac.compare_digest(stored, context.fingerprint):
            logger.warning("Session fingerprint mismatch, issuing a new session")
            self._log("Session fingerprint mismatch", session.data.get("user", ""), context)
            self.store.delete(session.id)
            return self._new_session(context)

        return session

    def regenerate(self, session: Session) -> None:
        """Move the session to a fresh id and drop the old record."""
        old_id = session.id
        session.id = self.store.new_id()
        self.store.delete(old_id)
        logger.debug("Session id regenerated")

    def save(self, session: Session) -> None:
        if session.destroyed:
            return
        self.store.save(session.id, session.data)

    def is_authenticated(self, session: Session, context: RequestContext) -> bool:
        """True only for a logged-in session presented by the client that logged in."""
        if session.data.get("authenticated") is not True or not session.username:
            return False
        stored = session.data.get("fingerprint") or ""
        return hmac.compare_digest(stored, context.fingerprint)

    def _check_credentials(self, username: str, password: str) -> Optional[Dict[str, str]]:
        admin = self.settings.admin_username
        admin_hash = self.settings.admin_password_hash
        if admin and admin_hash and hmac.compare_digest(username.encode(), admin.encode()):
            if self.vault.verify(password, admin_hash):
                return {"username": admin, "role": "admin"}

        record = self.users.get_user(username)
        if record and record.get("password_hash"):
            if self.vault.verify(password, record["password_hash"]):
                return {
                    "username": record.get("username", username),
                    "role": record.get("role", "author"),
                }
        return None

    def authenticate(self, session: Session, context: RequestContext, username: str, password: str) -> Dict[str, str]:
        """
        Log ``username`` in on ``session``.

        Args:
            session: Current session, moved to a new id on success
            context: Current request context
            username: Login name
            password: Plain text password

        Returns:
            dict: ``{"username", "role"}`` of the authenticated user

        Raises:
            AuthError: If the username is locked out or the credentials are wrong
        """
        if self.throttle.is_locked(username):
            self._log("Login attempt on locked account", username, context)
            raise AuthError("Account temporarily locked due to failed login attempts")

        user = self._check_credentials(username, password)
        if user is None:
            self.throttle.record_failure(username, context)
            self._log("Failed login attempt", username, context)
            raise AuthError("Invalid credentials")

        self.throttle.clear(username)
        self.regenerate(session)

        session.data["authenticated"] = True
        session.data["user"] = user["username"]
        session.data["role"] = user["role"]
        session.data["login_time"] = self.clock()
        session.data["fingerprint"] = context.fingerprint

        logger.info(f"User logged in successfully: {user['username']}")
        self._log("Successful login", user["username"], context)
        return user

    def logout(self, session: Session, context: RequestContext) -> None:
        """Clear every piece of session state and drop the stored record."""
        if session.username:
            self._log("User logout", session.username, context)

        session.data.clear()
        session.destroyed = True
        self.store.delete(session.id)

    def unlock_post(self, session: Session, post_id: str) -> None:
        session.data.setdefault("unlocked_posts", {})[post_id] = self.clock()

    def is_post_unlocked(self, session: Session, post_id: str) -> bool:
        unlocked_at = (session.data.get("unlocked_posts") or {}).get(post_id)
        if unlocked_at is None:
            return False
        return self.clock() - unlocked_at <= self.settings.post_password_ttl

    def cookie_params(self, context: RequestContext) -> Dict[str, Any]:
        """Attributes for the session cookie; no expiry, lifetime is server side."""
        return {
            "key": self.settings.session_name,
            "path": "/",
            "httponly": True,
            "samesite": "strict",
            "secure": context.is_https,
        }
