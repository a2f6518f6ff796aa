"""Daily security event log."""

import time
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

# Configure logging
logger = logging.getLogger(__name__)


class SecurityLog:
    """
    Appends security events to ``logs/security_YYYY-MM-DD.log``.

    Each line carries the client IP and user agent of the request that
    triggered the event. Events are also forwarded to the module logger.
    """

    def __init__(self, logs_dir: Path, clock: Callable[[], float] = time.time):
        self.logs_dir = Path(logs_dir)
        self.clock = clock
        self._date: Optional[str] = None
        self._handler: Optional[logging.FileHandler] = None

    def _handler_for(self, day: str) -> logging.FileHandler:
        if self._handler is not None and self._date == day:
            return self._handler

        if self._handler is not None:
            self._handler.close()

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(self.logs_dir / f"security_{day}.log", encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        self._handler = handler
        self._date = day
        return handler

    def log_event(
        self,
        event: str,
        details: str = "",
        context=None,
    ) -> None:
        """
        Record a security event.

        Args:
            event: Short event name, e.g. "Failed login attempt"
            details: Free-form detail (username, form name, filename)
            context: RequestContext of the triggering request, if any
        """
        client_ip = getattr(context, "client_ip", None)
        user_agent = getattr(context, "user_agent", None)
        now = datetime.fromtimestamp(self.clock())
        handler = self._handler_for(now.strftime("%Y-%m-%d"))

        entry = (
            f"[{now.strftime('%Y-%m-%d %H:%M:%S')}] IP: {client_ip or 'unknown'} | "
            f"Event: {event} | Details: {details} | User-Agent: {user_agent or 'unknown'}"
        )
        handler.handle(logging.makeLogRecord({"msg": entry, "levelno": logging.INFO, "levelname": "INFO"}))
        logger.info(f"Security event: {event} ({details})")

    def close(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None
            self._date = None
