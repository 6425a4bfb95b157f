# =====================================================
# FILE: app/models/package.py
# Signable package, its fields, participants and history
# =====================================================

from enum import Enum

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Float,
    ForeignKey, Text, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.utils.datetime_helpers import utcnow


class PackageStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    COMPLETED = "Completed"
    REJECTED = "Rejected"
    REVOKED = "Revoked"
    ARCHIVED = "Archived"
    EXPIRED = "Expired"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    DATE = "date"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DROPDOWN = "dropdown"
    SIGNATURE = "signature"


class ParticipantRole(str, Enum):
    SIGNER = "Signer"
    APPROVER = "Approver"
    FORM_FILLER = "FormFiller"
    RECEIVER = "Receiver"


class SignatureMethod(str, Enum):
    EMAIL_OTP = "Email OTP"
    SMS_OTP = "SMS OTP"


# Method recorded for Approver / FormFiller completions
FORM_SUBMISSION_METHOD = "Form Submission"


class Package(Base):
    """
    The signable unit: document reference, fields, participants and status.

    Rows are never deleted by the participant workflow; archival is a status.
    """

    __tablename__ = "packages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    file_url = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=PackageStatus.DRAFT.value)

    # Options
    allow_reassign = Column(Boolean, default=True, nullable=False)
    allow_download_unsigned = Column(Boolean, default=True, nullable=False)
    allow_receivers_to_add = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=True)

    # Rejection details (present iff status == Rejected)
    rejection_reason = Column(Text)
    rejected_at = Column(DateTime)
    rejected_by = Column(JSON)
    rejected_ip = Column(String(45))

    # Revocation details
    revocation_reason = Column(Text)
    revoked_at = Column(DateTime)
    revoked_ip = Column(String(45))

    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User")
    fields = relationship(
        "PackageField",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="PackageField.id",
    )
    receivers = relationship(
        "PackageReceiver",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="PackageReceiver.id",
    )
    reassignment_history = relationship(
        "ReassignmentHistory",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="ReassignmentHistory.id",
    )
    receiver_history = relationship(
        "ReceiverHistory",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="ReceiverHistory.id",
    )

    @property
    def rejection_details(self):
        if self.status != PackageStatus.REJECTED.value:
            return None
        return {
            "reason": self.rejection_reason,
            "rejectedAt": self.rejected_at,
            "rejectedBy": self.rejected_by,
            "rejectedIP": self.rejected_ip,
        }

    def assignments(self):
        """All field assignments of the package, in field order"""
        return [user for field in self.fields for user in field.assigned_users]


class PackageField(Base):
    __tablename__ = "package_fields"
    __table_args__ = (UniqueConstraint("package_id", "field_id", name="uq_package_field"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)
    field_id = Column(String(64), nullable=False)
    type = Column(String(20), nullable=False)
    page = Column(Integer, nullable=False, default=1)
    x = Column(Float, nullable=False, default=0)
    y = Column(Float, nullable=False, default=0)
    width = Column(Float, nullable=False, default=0)
    height = Column(Float, nullable=False, default=0)
    required = Column(Boolean, default=False, nullable=False)
    label = Column(String(255), nullable=False, default="")
    placeholder = Column(String(255), default="")
    options = Column(JSON)
    value = Column(JSON)

    package = relationship("Package", back_populates="fields")
    assigned_users = relationship(
        "AssignedUser",
        back_populates="field",
        cascade="all, delete-orphan",
        order_by="AssignedUser.id",
    )

    @property
    def is_signature(self) -> bool:
        return self.type == FieldType.SIGNATURE.value

    def assignment_for(self, participant_id: str):
        for user in self.assigned_users:
            if user.participant_id == participant_id:
                return user
        return None


class AssignedUser(Base):
    """A participant bound to one field with a role"""

    __tablename__ = "assigned_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    field_pk = Column(Integer, ForeignKey("package_fields.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(String(64), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=False)
    contact_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50))
    role = Column(String(20), nullable=False)
    signature_methods = Column(JSON, default=list)

    signed = Column(Boolean, default=False, nullable=False)
    signed_at = Column(DateTime)
    signed_method = Column(String(30))
    signed_ip = Column(String(45))
    signed_otp_reference = Column(String(20))

    field = relationship("PackageField", back_populates="assigned_users")
    contact = relationship("Contact")


class PackageReceiver(Base):
    """Record-only participant: sees the package, has no obligations"""

    __tablename__ = "package_receivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)
    participant_id = Column(String(64), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=False)
    contact_name = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False)
    added_at = Column(DateTime, default=utcnow)

    package = relationship("Package", back_populates="receivers")


class ReassignmentHistory(Base):
    __tablename__ = "reassignment_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)
    reassigned_from = Column(JSON, nullable=False)
    reassigned_to = Column(JSON, nullable=False)
    reassigned_by = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    fields_reassigned = Column(Integer, default=0)
    reassigned_at = Column(DateTime, default=utcnow)
    reassigned_ip = Column(String(45))

    package = relationship("Package", back_populates="reassignment_history")


class ReceiverHistory(Base):
    __tablename__ = "receiver_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    package_id = Column(Integer, ForeignKey("packages.id", ondelete="CASCADE"), nullable=False)
    added_by = Column(JSON, nullable=False)
    new_receiver = Column(JSON, nullable=False)
    added_at = Column(DateTime, default=utcnow)
    added_ip = Column(String(45))

    package = relationship("Package", back_populates="receiver_history")
