# =====================================================
# FILE: app/services/package_repository.py
# Query helpers over the SQLAlchemy session
# =====================================================

from dataclasses import dataclass, field
from typing import List, Optional, Set

from sqlalchemy import delete, func
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFoundError
from app.models.contact import Contact
from app.models.otp import OTPRecord
from app.models.package import Package, PackageField, ParticipantRole
from app.models.user import User


@dataclass
class ParticipantRef:
    """One participant of a package, resolved from its assignments or receiver row"""

    participant_id: str
    contact_id: int
    name: str
    email: str
    phone: Optional[str] = None
    language: str = "en"
    roles: Set[str] = field(default_factory=set)
    is_receiver: bool = False

    @property
    def role(self) -> str:
        for role in (
            ParticipantRole.SIGNER.value,
            ParticipantRole.APPROVER.value,
            ParticipantRole.FORM_FILLER.value,
        ):
            if role in self.roles:
                return role
        return ParticipantRole.RECEIVER.value

    def snapshot(self) -> dict:
        return {
            "participantId": self.participant_id,
            "contactId": self.contact_id,
            "name": self.name,
            "email": self.email,
        }


class PackageRepository:
    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------
    # Packages
    # -------------------------------------------------

    def get_package(self, package_id: int, for_update: bool = False) -> Package:
        """
        Load a package with its fields, assignments and receivers.
        `for_update` takes the per-package row lock used by every mutation.
        """
        query = (
            self.db.query(Package)
            .options(
                selectinload(Package.fields).selectinload(PackageField.assigned_users),
                selectinload(Package.receivers),
            )
            .filter(Package.id == package_id)
        )
        if for_update:
            query = query.with_for_update(of=Package)
        package = query.first()
        if not package:
            raise NotFoundError(f"Package {package_id} not found", "Package not found.")
        return package

    def list_overdue_package_ids(self, now, status: str) -> List[int]:
        rows = (
            self.db.query(Package.id)
            .filter(Package.status == status, Package.expires_at.isnot(None), Package.expires_at <= now)
            .all()
        )
        return [row.id for row in rows]

    # -------------------------------------------------
    # Participants
    # -------------------------------------------------

    def participants(self, package: Package) -> List[ParticipantRef]:
        """Every participant in first-appearance order, receivers last"""
        refs = {}
        for assignment in package.assignments():
            ref = refs.get(assignment.participant_id)
            if ref is None:
                contact = assignment.contact
                ref = ParticipantRef(
                    participant_id=assignment.participant_id,
                    contact_id=assignment.contact_id,
                    name=assignment.contact_name,
                    email=assignment.contact_email,
                    phone=assignment.contact_phone,
                    language=(contact.language if contact and contact.language else "en"),
                )
                refs[assignment.participant_id] = ref
            ref.roles.add(assignment.role)

        for receiver in package.receivers:
            if receiver.participant_id in refs:
                refs[receiver.participant_id].is_receiver = True
                continue
            contact = self.db.get(Contact, receiver.contact_id)
            refs[receiver.participant_id] = ParticipantRef(
                participant_id=receiver.participant_id,
                contact_id=receiver.contact_id,
                name=receiver.contact_name,
                email=receiver.contact_email,
                phone=contact.phone if contact else None,
                language=(contact.language if contact and contact.language else "en"),
                roles={ParticipantRole.RECEIVER.value},
                is_receiver=True,
            )
        return list(refs.values())

    def find_participant(self, package: Package, participant_id: str) -> ParticipantRef:
        for ref in self.participants(package):
            if ref.participant_id == participant_id:
                return ref
        raise NotFoundError(
            f"Participant {participant_id} not found in package {package.id}",
            "Participant not found in this package.",
        )

    def participant_contact_ids(self, package: Package) -> Set[int]:
        return {ref.contact_id for ref in self.participants(package)}

    def participant_emails(self, package: Package) -> Set[str]:
        return {ref.email.lower() for ref in self.participants(package) if ref.email}

    # -------------------------------------------------
    # Contacts / owners
    # -------------------------------------------------

    def get_owned_contact(self, owner_id: int, contact_id: int) -> Contact:
        contact = (
            self.db.query(Contact)
            .filter(Contact.id == contact_id, Contact.owner_id == owner_id)
            .first()
        )
        if not contact:
            raise NotFoundError(
                f"Contact {contact_id} not found for owner {owner_id}",
                "Contact not found or not accessible.",
            )
        return contact

    def list_owner_contacts(self, owner_id: int) -> List[Contact]:
        return (
            self.db.query(Contact)
            .filter(Contact.owner_id == owner_id)
            .order_by(Contact.first_name.asc(), Contact.last_name.asc())
            .all()
        )

    def find_owner_contact_by_email(self, owner_id: int, email: str) -> Optional[Contact]:
        return (
            self.db.query(Contact)
            .filter(Contact.owner_id == owner_id, func.lower(Contact.email) == email.lower())
            .first()
        )

    def is_registered_user_email(self, email: str) -> bool:
        return (
            self.db.query(User.id).filter(func.lower(User.email) == email.lower()).first()
            is not None
        )

    # -------------------------------------------------
    # OTP records
    # -------------------------------------------------

    def get_otp(self, field_id: str, participant_id: str) -> Optional[OTPRecord]:
        return (
            self.db.query(OTPRecord)
            .filter(OTPRecord.field_id == field_id, OTPRecord.participant_id == participant_id)
            .first()
        )

    def delete_otp(self, field_id: str, participant_id: str) -> int:
        result = self.db.execute(
            delete(OTPRecord)
            .where(OTPRecord.field_id == field_id, OTPRecord.participant_id == participant_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def consume_otp(self, record_id: int) -> bool:
        """Atomic check-and-delete; True only for the single caller that removed the row"""
        result = self.db.execute(
            delete(OTPRecord)
            .where(OTPRecord.id == record_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def purge_expired_otps(self, now) -> int:
        result = self.db.execute(
            delete(OTPRecord)
            .where(OTPRecord.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

