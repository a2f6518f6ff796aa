"""CSRF token issuance and verification."""

import hmac
import time
import secrets
import logging
from typing import Callable, Optional

from secureblog.security_log import SecurityLog

# Configure logging
logger = logging.getLogger(__name__)

# Token scope that stays valid for several uploads from one page load
UPLOAD_FORM = "image_upload"


class CsrfGuard:
    """
    Per-form CSRF tokens stored in the session.

    Tokens live under ``session.data["csrf_tokens"][form_name]`` as
    ``{"token": ..., "time": ...}``. A verified token is consumed, except
    for the upload scope which stays usable until it expires.
    """

    def __init__(
        self,
        token_length: int = 32,
        lifetime: int = 172800,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.token_length = token_length
        self.lifetime = lifetime
        self.security_log = security_log
        self.clock = clock

    def _log(self, event: str, form_name: str, context) -> None:
        logger.warning(f"{event}: {form_name}")
        if self.security_log:
            self.security_log.log_event(event, form_name, context)

    def generate(self, session, form_name: str = "default") -> str:
        """
        Issue a fresh token for ``form_name``, replacing any previous one.

        Args:
            session: Session the token is bound to
            form_name: Form scope

        Returns:
            str: Hex-encoded token
        """
        token = secrets.token_hex(self.token_length)
        session.data.setdefault("csrf_tokens", {})[form_name] = {
            "token": token,
            "time": self.clock(),
        }
        return token

    def verify(self, session, token: Optional[str], form_name: str = "default", context=None) -> bool:
        """
        Check ``token`` against the one stored for ``form_name``.

        Args:
            session: Session holding the stored token
            token: Token sent by the client
            form_name: Form scope the token must belong to
            context: Request context used for the security log

        Returns:
            bool: True if the token is valid
        """
        tokens = session.data.get("csrf_tokens") or {}
        stored = tokens.get(form_name)
        if not stored:
            self._log("CSRF token missing", form_name, context)
            return False

        if self.clock() - stored.get("time", 0) > self.lifetime:
            del tokens[form_name]
            self._log("CSRF token expired", form_name, context)
            return False

        if not isinstance(token, str) or not hmac.compare_digest(
            stored.get("token", "").encode(), token.encode()
        ):
            self._log("CSRF token mismatch", form_name, context)
            return False

        if form_name != UPLOAD_FORM:
            del tokens[form_name]
        return True
