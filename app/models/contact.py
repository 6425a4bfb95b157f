# =====================================================
# FILE: app/models/contact.py
# Owner-scoped contacts (reassignment / receiver targets)
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class Contact(Base):
    __tablename__ = "contacts"
    # An owner cannot hold two contacts with the same email
    __table_args__ = (UniqueConstraint("owner_id", "email", name="uq_contact_owner_email"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50))
    title = Column(String(100))
    language = Column(String(10), default="en")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
