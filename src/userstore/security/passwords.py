"""
Credential hashing and verification.

Argon2 through passlib: one-way, per-hash random salt, tunable time cost. The
plaintext is never stored, returned or logged; only the hash leaves this module.
"""
import logging

from passlib.context import CryptContext

from userstore.exceptions import UnauthorizedError, InternalError

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 3


class PasswordHasher:
    """
    Wraps a passlib CryptContext.

    `rounds` is the argon2 time cost (work factor). Raising it later makes
    `needs_rehash()` report older hashes so callers can upgrade them on login.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        if rounds <= 0:
            raise ValueError("rounds must be a positive integer")
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__rounds=rounds,
            argon2__min_rounds=rounds,
        )

    @classmethod
    def from_settings(cls, settings) -> "PasswordHasher":
        return cls(rounds=settings.PASSWORD_HASH_ROUNDS)

    def hash(self, plain: str) -> str:
        return self._context.hash(plain)

    def verify(self, plain: str, hashed: str) -> None:
        """
        Check `plain` against the stored `hashed` value (constant-time compare).

        Raises:
            UnauthorizedError: the password does not match
            InternalError: the stored value is not a hash this context can read
        """
        try:
            matched = self._context.verify(plain, hashed)
        except (ValueError, TypeError) as exc:
            # passlib's UnknownHashError is a ValueError
            logger.error("passwords.malformed_hash", extra={"error_type": type(exc).__name__})
            raise InternalError("Stored credential is not a valid hash", cause=exc) from exc

        if not matched:
            logger.info("passwords.mismatch")
            raise UnauthorizedError("Password does not match", fields=["password"])

    def is_hash(self, value: str | None) -> bool:
        return bool(value) and self._context.identify(value) is not None

    def needs_rehash(self, hashed: str) -> bool:
        return self._context.needs_update(hashed)
