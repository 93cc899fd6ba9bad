from sqlalchemy import Column, DateTime

from utils.verification import utcnow


class CreatedAtMixin:
    # Python-side default so rate-limit windows compare like-for-like UTC values on every backend
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
