from core.database import Base
from sqlalchemy import Column, DateTime, Integer, String, ForeignKey
from models.mixins import CreatedAtMixin


class EmailVerification(Base, CreatedAtMixin):
    """Pending email verification token; one per user, replaced on resend."""
    __tablename__ = "email_verifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
