# =====================================================
# FILE: app/models/__init__.py
# =====================================================

from app.core.database import Base

from app.models.user import User
from app.models.contact import Contact
from app.models.package import (
    Package,
    PackageField,
    AssignedUser,
    PackageReceiver,
    ReassignmentHistory,
    ReceiverHistory,
    PackageStatus,
    FieldType,
    ParticipantRole,
    SignatureMethod,
)
from app.models.otp import OTPRecord
from app.models.audit import AuditLog

__all__ = [
    # Core
    "Base",

    # Owners & contacts
    "User",
    "Contact",

    # Packages
    "Package",
    "PackageField",
    "AssignedUser",
    "PackageReceiver",
    "ReassignmentHistory",
    "ReceiverHistory",
    "PackageStatus",
    "FieldType",
    "ParticipantRole",
    "SignatureMethod",

    # Verification & audit
    "OTPRecord",
    "AuditLog",
]
