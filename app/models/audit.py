# =====================================================
# FILE: app/models/audit.py
# Append-only audit trail of participant actions
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text, JSON

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id"), index=True)
    participant_id = Column(String(64))
    actor_name = Column(String(255))
    actor_email = Column(String(255))
    action_type = Column(String(100), nullable=False)
    action_details = Column(JSON)
    ip_address = Column(String(45))
    user_agent = Column(Text)
    created_at = Column(DateTime, default=utcnow)
