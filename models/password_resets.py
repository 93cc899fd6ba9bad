from core.database import Base
from sqlalchemy import Column, Boolean, DateTime, Index, Integer, String, ForeignKey
from models.mixins import CreatedAtMixin


class PasswordReset(Base, CreatedAtMixin):
    """
    Six-digit password reset codes, stored as bcrypt hashes.

    Issuing a new code marks every older unused code of the user as used, so
    at most one code per user can be redeemed at any time. created_at also
    feeds the reset-request rate limit.
    """
    __tablename__ = "password_resets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    code_hash = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("ix_password_resets_user_created", "user_id", "created_at"),
    )
