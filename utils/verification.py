import secrets
from datetime import datetime, timezone, timedelta

RESET_CODE_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_reset_code() -> str:
    # secrets, not random: the code is a bearer credential for 15 minutes
    return f"{secrets.randbelow(10 ** RESET_CODE_LENGTH):0{RESET_CODE_LENGTH}d}"


def generate_verification_token() -> str:
    """256 random bits as 64 hex characters."""
    return secrets.token_hex(32)


def get_code_expiry_time(minutes: int = 15) -> datetime:
    return utcnow() + timedelta(minutes=minutes)
