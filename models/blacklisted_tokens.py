from core.database import Base
from sqlalchemy import Column, DateTime, Integer, String

from utils.verification import utcnow


class BlacklistedToken(Base):
    """
    Revoked refresh tokens.

    Consulted on every refresh so a structurally valid, unexpired token stops
    working the moment it is revoked. Entries are swept after 7 days.
    """
    __tablename__ = "blacklisted_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    blacklisted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
