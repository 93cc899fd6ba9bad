from core.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey
from models.mixins import CreatedAtMixin


class LoginSession(Base, CreatedAtMixin):
    """Login audit trail. Not consulted for authorization."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
