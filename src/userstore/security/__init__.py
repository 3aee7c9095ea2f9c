from .passwords import PasswordHasher, DEFAULT_ROUNDS

__all__ = ["PasswordHasher", "DEFAULT_ROUNDS"]
