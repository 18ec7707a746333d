import hmac
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

_pwd_hasher = PasswordHasher()


def is_hashed(stored: Optional[str]) -> bool:
    return isinstance(stored, str) and stored.startswith("$argon2")


def hash_password(password: str) -> str:
    return _pwd_hasher.hash(password)


def verify_password(plain: str, stored: Optional[str]) -> bool:
    """
    Check ``plain`` against a stored password.

    Records written before hashing was introduced hold the password as
    plain text; those still verify so the caller can re-hash them.
    """
    if not plain or not stored:
        return False
    if is_hashed(stored):
        try:
            return _pwd_hasher.verify(stored, plain)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False
    return hmac.compare_digest(plain.encode("utf-8"), stored.encode("utf-8"))


def needs_rehash(stored: str) -> bool:
    return not is_hashed(stored) or _pwd_hasher.check_needs_rehash(stored)
