"""
Password hashing with bcrypt.

The work factor is fixed at module level; callers never choose it per call.
Tests build a hasher with a lower cost to keep the suite fast.
"""

import logging

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt work factor (~250ms per hash on commodity hardware)
BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of the secret.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way salted password hashing and verification."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """
        Hash a plain text password.

        Raises:
            ValueError: If the password is empty or longer than 72 bytes
        """
        if not password:
            raise ValueError("Password cannot be empty")
        secret = password.encode("utf-8")
        if len(secret) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password cannot exceed {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=self._rounds)).decode("ascii")

    def verify(self, password: str, password_hash: str) -> bool:
        """
        Check a plain text password against a stored hash.

        Returns False for a mismatch and for any malformed input; never raises.
        """
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            logger.warning("Password verification against a malformed hash")
            return False
