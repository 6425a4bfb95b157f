# =====================================================
# FILE: app/models/otp.py
# Short-lived one-time passcode records
# =====================================================

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, UniqueConstraint

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class OTPRecord(Base):
    """
    At most one live code per (field, participant).
    Only a hash of the code is stored.
    """

    __tablename__ = "otp_records"
    __table_args__ = (UniqueConstraint("field_id", "participant_id", name="uq_otp_field_participant"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="CASCADE"), nullable=False, index=True)
    field_id = Column(String(64), nullable=False)
    participant_id = Column(String(64), nullable=False)
    method = Column(String(20), nullable=False)
    code_hash = Column(String(64), nullable=False)
    channel_value = Column(String(255), nullable=False)
    attempt_count = Column(Integer, default=0, nullable=False)
    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
