"""Password hashing and verification."""

import logging
from passlib.context import CryptContext
from passlib.hash import argon2

# Configure logging
logger = logging.getLogger(__name__)

# Bcrypt has a maximum password length of 72 bytes
BCRYPT_MAX_BYTES = 72


def _truncate_for_bcrypt(password: str) -> str:
    password_bytes = password.encode('utf-8')[:BCRYPT_MAX_BYTES]
    return password_bytes.decode('utf-8', errors='ignore')


class PasswordVault:
    """
    Memory-hard password hashing.

    Argon2 is the default scheme. When no argon2 backend is installed the
    vault falls back to bcrypt. Verification always goes through the
    matching passlib handler, so hashes created under either scheme keep
    verifying after a backend change.
    """

    def __init__(
        self,
        memory_cost: int = 65536,
        time_cost: int = 4,
        parallelism: int = 1,
        bcrypt_rounds: int = 12,
    ):
        self.default_scheme = "argon2" if argon2.has_backend() else "bcrypt"
        if self.default_scheme != "argon2":
            logger.warning("Argon2 backend unavailable, falling back to bcrypt")

        self._context = CryptContext(
            schemes=["argon2", "bcrypt"],
            default=self.default_scheme,
            argon2__memory_cost=memory_cost,
            argon2__rounds=time_cost,
            argon2__parallelism=parallelism,
            bcrypt__rounds=bcrypt_rounds,
        )

    @classmethod
    def from_settings(cls, settings) -> "PasswordVault":
        return cls(
            memory_cost=settings.argon2_memory_cost,
            time_cost=settings.argon2_time_cost,
            parallelism=settings.argon2_parallelism,
            bcrypt_rounds=settings.bcrypt_rounds,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password with the default scheme.

        Args:
            password: Plain text password

        Returns:
            str: Encoded hash, including scheme and cost parameters
        """
        logger.debug("Hashing password")
        if self.default_scheme == "bcrypt":
            password = _truncate_for_bcrypt(password)
        return self._context.hash(password)

    def verify(self, password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            password: Plain text password
            hashed_password: Hash to verify against

        Returns:
            bool: True if password matches, False otherwise (including
            hashes that cannot be identified)
        """
        logger.debug("Verifying password")
        if not password or not hashed_password:
            return False

        scheme = self._context.identify(hashed_password)
        if scheme is None:
            logger.warning("Password hash format not recognised")
            return False
        if scheme == "bcrypt":
            password = _truncate_for_bcrypt(password)

        return self._context.verify(password, hashed_password)

    def needs_rehash(self, hashed_password: str) -> bool:
        """Whether ``hashed_password`` was produced with outdated parameters."""
        return self._context.needs_update(hashed_password)
