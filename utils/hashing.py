import hashlib

from passlib.context import CryptContext

# Passwords and reset codes share one slow hash so an offline guess costs the same for both
bcrypt_context = CryptContext(schemes=['bcrypt'], deprecated='auto')

_DUMMY_HASH: str | None = None


def get_password_hash(password: str) -> str:
    # Bcrypt has a 72-byte limit, truncate if necessary
    return bcrypt_context.hash(password[:72])


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt_context.verify(plain_password[:72], hashed_password)


def burn_hash_check(plain: str) -> None:
    """Run a bcrypt comparison against a throwaway hash.

    Keeps response time the same whether or not a user or code was found.
    """
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = bcrypt_context.hash("not-a-real-secret")
    bcrypt_context.verify(plain[:72], _DUMMY_HASH)


def hash_token(token: str) -> str:
    """SHA-256 digest used to store long random tokens (refresh JWTs, verification tokens)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
