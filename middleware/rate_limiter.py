from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from jose import jwt, JWTError
from core.config import settings


def get_user_id(request: Request):
    """Throttle key: access-token subject when present, client address otherwise."""
    header = request.headers.get("Authorization")
    if header and header.startswith("Bearer "):
        try:
            payload = jwt.decode(header[len("Bearer "):], settings.JWT_ACCESS_SECRET,
                                 algorithms=[settings.ALGORITHM])
            user_id = payload.get("sub")
            if user_id:
                return f"user:{user_id}"
        except JWTError:
            pass

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_id,
    default_limits=["200/hour"],
    enabled=settings.ENV != "testing"
)
