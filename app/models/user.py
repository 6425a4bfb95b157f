# =====================================================
# FILE: app/models/user.py
# Package owners (account management lives outside this service)
# =====================================================

from sqlalchemy import Column, String, Boolean, DateTime, Integer

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    language = Column(String(10), default="en")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    @property
    def full_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        if self.first_name:
            return self.first_name
        return self.email.split('@')[0] if self.email else "Unknown User"
