"""File-based user records."""

import re
import time
import logging
from pathlib import Path
from typing import Callable, List, Optional

from secureblog.exceptions import NotFoundError, ValidationError
from secureblog.filestore import read_json, remove_file, write_json
from secureblog.passwords import PasswordVault
from secureblog.security_log import SecurityLog

# Configure logging
logger = logging.getLogger(__name__)

VALID_ROLES = ("admin", "editor", "author")


def safe_username(username: str) -> str:
    """Reduce a username to the characters allowed in record filenames."""
    return re.sub(r"[^a-zA-Z0-9_-]", "", str(username or ""))


class UserStore:
    """One JSON file per user: ``{username, password_hash, role, created_at}``."""

    def __init__(
        self,
        users_dir: Path,
        vault: PasswordVault,
        password_min_length: int = 12,
        primary_admin: Optional[str] = None,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.users_dir = Path(users_dir)
        self.vault = vault
        self.password_min_length = password_min_length
        self.primary_admin = primary_admin
        self.security_log = security_log
        self.clock = clock

    def _path(self, username: str) -> Optional[Path]:
        name = safe_username(username)
        if not name:
            return None
        return self.users_dir / f"{name}.json"

    def _log(self, event: str, username: str) -> None:
        if self.security_log:
            self.security_log.log_event(event, username)

    def user_exists(self, username: str) -> bool:
        path = self._path(username)
        return path is not None and path.is_file()

    def get_user(self, username: str) -> Optional[dict]:
        """Return the full user record, hash included, or None."""
        path = self._path(username)
        if path is None:
            return None
        data = read_json(path, default=None)
        return data if isinstance(data, dict) else None

    def list_users(self) -> List[dict]:
        """All users without their password hashes, sorted by username."""
        users = []
        for path in sorted(self.users_dir.glob("*.json")):
            data = self.get_user(path.stem)
            if data:
                data.pop("password_hash", None)
                users.append(data)
        return users

    def _validate_password(self, password: str) -> None:
        if len(password) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters long."
            )

    def _validate_role(self, role: str) -> None:
        if role not in VALID_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(VALID_ROLES)}.")

    def add_user(self, username: str, password: str, role: str) -> dict:
        """
        Create a user record.

        Args:
            username: Login name, reduced to [A-Za-z0-9_-]
            password: Plain text password
            role: One of VALID_ROLES

        Returns:
            dict: The stored record without its password hash

        Raises:
            ValidationError: If a field is missing or invalid, or the user exists
        """
        if not username or not password or not role:
            raise ValidationError("Username, password, and role are required.")

        path = self._path(username)
        if path is None:
            raise ValidationError("Invalid username format.")

        self._validate_password(password)
        self._validate_role(role)
        if path.exists():
            raise ValidationError("User already exists.")

        record = {
            "username": safe_username(username),
            "password_hash": self.vault.hash(password),
            "role": role,
            "created_at": int(self.clock()),
        }
        write_json(path, record)

        logger.info(f"User created: {record['username']}")
        self._log("User created", record["username"])
        return {key: value for key, value in record.items() if key != "password_hash"}

    def update_user(self, username: str, password: Optional[str] = None, role: Optional[str] = None) -> dict:
        """
        Change a user's password and/or role.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: If the new password or role is invalid
        """
        record = self.get_user(username)
        if record is None:
            raise NotFoundError("User not found.")

        if password:
            self._validate_password(password)
            record["password_hash"] = self.vault.hash(password)

        if role:
            self._validate_role(role)
            record["role"] = role

        write_json(self._path(username), record)

        logger.info(f"User updated: {record.get('username')}")
        self._log("User updated", record.get("username", ""))
        return {key: value for key, value in record.items() if key != "password_hash"}

    def delete_user(self, username: str) -> None:
        """
        Remove a user record.

        Raises:
            ValidationError: If ``username`` is the configured primary administrator
            NotFoundError: If the user does not exist
        """
        if self.primary_admin and safe_username(username) == safe_username(self.primary_admin):
            raise ValidationError("Cannot delete the primary administrator.")

        path = self._path(username)
        if path is None or not remove_file(path):
            raise NotFoundError("User not found.")

        logger.info(f"User deleted: {username}")
        self._log("User deleted", username)
