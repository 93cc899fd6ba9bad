from core.database import Base
from sqlalchemy import Column, Boolean, DateTime, String, Integer, ForeignKey
from sqlalchemy.orm import relationship
from models.mixins import CreatedAtMixin


class RefreshToken(Base, CreatedAtMixin):
    """
    Issued refresh tokens.

    A row exists from login/registration until logout, revocation or the
    hourly sweep after expiry. Only the SHA-256 of the JWT is stored.
    """
    __tablename__ = "refresh_tokens"

    #pk
    id = Column(Integer, primary_key=True, index=True)

    #fk
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    #relationships
    user = relationship("User", back_populates="refresh_tokens")

    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    # "remember me" tokens live 30 days instead of 7
    persistent = Column(Boolean, default=False, nullable=False)
