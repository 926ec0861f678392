"""bcrypt-backed password hashing and verification."""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12

# bcrypt only consumes the first 72 bytes; bcrypt>=5 raises instead of truncating.
MAX_PASSWORD_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


class BcryptVerifier:
    """Compare submitted passwords against stored bcrypt hashes."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Return ``True`` when ``password`` matches ``password_hash``.

        Passwords longer than 72 bytes are truncated, matching hashes written
        by bcryptjs. Raises ``ValueError`` when the stored hash is malformed;
        callers decide how to treat that.
        """
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
