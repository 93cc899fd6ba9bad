from core.database import Base
from sqlalchemy import Column, DateTime, Index, Integer, String, ForeignKey

from utils.verification import utcnow

ATTEMPT_SEND = "send"
ATTEMPT_VERIFY = "verify"


class VerificationAttempt(Base):
    """Audit row per verification email sent or token redeemed; also backs the resend limit."""
    __tablename__ = "verification_attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    attempt_type = Column(String(16), nullable=False)
    ip_address = Column(String(64), nullable=True)
    attempted_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_verification_attempts_window", "user_id", "attempt_type", "attempted_at"),
    )
