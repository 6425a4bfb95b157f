# =====================================================
# FILE: app/services/reassignment_service.py
# Reassignment Engine: transfer of outstanding work, extra receivers
# =====================================================

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, ValidationError
from app.core.permissions import Permission, has_permission
from app.models.contact import Contact
from app.models.package import (
    Package,
    PackageReceiver,
    PackageStatus,
    ReassignmentHistory,
    ReceiverHistory,
)
from app.services.audit_service import AuditActionType, AuditService
from app.services.completion_service import outstanding_assignments
from app.services.package_repository import PackageRepository, ParticipantRef
from app.services.package_state_service import PackageStateService
from app.utils.channel_validation import is_valid_email, is_valid_phone

logger = logging.getLogger(__name__)


def contact_snapshot(contact: Contact) -> dict:
    return {
        "contactId": contact.id,
        "name": contact.full_name,
        "email": contact.email,
    }


def can_participant_reassign(package: Package, participant_id: str) -> Dict:
    """
    Pure eligibility check.

    Returns {eligible, reason, pendingFields}; `reason` is set only when
    not eligible.
    """
    pending = [f.field_id for f, _ in outstanding_assignments(package, participant_id)]

    if package.status != PackageStatus.SENT.value:
        return {"eligible": False, "reason": f"Document is {package.status.lower()}", "pendingFields": pending}
    if not package.allow_reassign:
        return {"eligible": False, "reason": "Reassignment is not allowed for this document", "pendingFields": pending}
    if not pending:
        return {"eligible": False, "reason": "You have no pending fields to reassign", "pendingFields": pending}
    return {"eligible": True, "reason": None, "pendingFields": pending}


class ReassignmentService:
    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.repo = PackageRepository(db)
        self.notifier = notifier

    def _require_eligible(self, package: Package, participant: ParticipantRef) -> None:
        if not has_permission(participant.roles, Permission.PARTICIPANT_REASSIGN):
            raise AuthorizationError(
                f"Receiver {participant.participant_id} cannot reassign",
                "Receivers cannot reassign this document.",
            )
        eligibility = can_participant_reassign(package, participant.participant_id)
        if not eligibility["eligible"]:
            raise ValidationError(
                f"Participant {participant.participant_id} not eligible: {eligibility['reason']}",
                eligibility["reason"],
            )

    def _require_new_contact(self, package: Package, new_contact_id: int) -> Contact:
        contact = self.repo.get_owned_contact(package.owner_id, new_contact_id)
        if contact.id in self.repo.participant_contact_ids(package):
            raise ValidationError(
                f"Contact {contact.id} already participates in package {package.id}",
                "This contact is already a participant in this document.",
            )
        if contact.email and contact.email.lower() in self.repo.participant_emails(package):
            raise ValidationError(
                f"Email {contact.email} already participates in package {package.id}",
                "This contact is already a participant in this document.",
            )
        return contact

    # -------------------------------------------------
    # Contacts
    # -------------------------------------------------

    def list_reassignment_contacts(self, package_id: int, participant_id: str) -> List[dict]:
        """Owner's contacts that are not yet part of the package"""
        package = self.repo.get_package(package_id)
        self.repo.find_participant(package, participant_id)

        taken_ids = self.repo.participant_contact_ids(package)
        taken_emails = self.repo.participant_emails(package)
        contacts = []
        for contact in self.repo.list_owner_contacts(package.owner_id):
            if contact.id in taken_ids or (contact.email or "").lower() in taken_emails:
                continue
            contacts.append({
                "id": contact.id,
                "firstName": contact.first_name,
                "lastName": contact.last_name,
                "fullName": contact.full_name,
                "email": contact.email,
                "phone": contact.phone,
                "title": contact.title,
            })
        return contacts

    def register_reassignment_contact(self, package_id: int, participant_id: str, data: dict) -> Contact:
        email = (data.get("email") or "").strip().lower()
        first_name = (data.get("first_name") or "").strip()
        last_name = (data.get("last_name") or "").strip()
        phone = (data.get("phone") or "").strip() or None

        if not email or not first_name or not last_name:
            raise ValidationError("Email, first name and last name are required.")
        if not is_valid_email(email):
            raise ValidationError(f"Invalid email: {email!r}", "Please provide a valid email address.")
        if phone and not is_valid_phone(phone):
            raise ValidationError(f"Invalid phone: {phone!r}", "Invalid phone number format.")

        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant = self.repo.find_participant(package, participant_id)
            self._require_eligible(package, participant)

            if self.repo.is_registered_user_email(email):
                raise ValidationError(
                    f"{email} belongs to a registered user",
                    "This email belongs to a registered user and cannot be added as a contact.",
                )
            if self.repo.find_owner_contact_by_email(package.owner_id, email):
                raise ValidationError(
                    f"Contact {email} already exists for owner {package.owner_id}",
                    "A contact with this email already exists.",
                )

            contact = Contact(
                owner_id=package.owner_id,
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                title=(data.get("title") or "").strip() or None,
                language=(data.get("language") or "en"),
            )
            self.db.add(contact)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f" Contact {contact.id} registered by participant {participant_id} for owner {package.owner_id}")
        return contact

    # -------------------------------------------------
    # Reassign
    # -------------------------------------------------

    async def perform_reassignment(
        self,
        package_id: int,
        participant_id: str,
        new_contact_id: int,
        reason: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Reassignment reason is required.")

        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant = self.repo.find_participant(package, participant_id)
            self._require_eligible(package, participant)
            contact = self._require_new_contact(package, new_contact_id)

            new_participant_id = str(uuid.uuid4())
            moved = []
            # Completed assignments stay with the original participant
            for field, assignment in outstanding_assignments(package, participant_id):
                assignment.participant_id = new_participant_id
                assignment.contact_id = contact.id
                assignment.contact_name = contact.full_name
                assignment.contact_email = contact.email
                assignment.contact_phone = contact.phone
                assignment.contact = contact
                moved.append(field.field_id)

            history = ReassignmentHistory(
                package_id=package.id,
                reassigned_from=participant.snapshot(),
                reassigned_to={**contact_snapshot(contact), "participantId": new_participant_id},
                reassigned_by=participant.snapshot(),
                reason=reason,
                fields_reassigned=len(moved),
                reassigned_ip=ip_address,
            )
            package.reassignment_history.append(history)

            AuditService(self.db).log_action(
                action_type=AuditActionType.PARTICIPANT_REASSIGNED,
                package_id=package.id,
                participant_id=participant_id,
                action_details={
                    "newParticipantId": new_participant_id,
                    "newContactId": contact.id,
                    "fieldIds": moved,
                    "reason": reason,
                },
                ip_address=ip_address,
                user_agent=user_agent,
                actor_name=participant.name,
                actor_email=participant.email,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"🔁 Package {package_id}: {len(moved)} field(s) reassigned from {participant_id} to {new_participant_id}"
        )

        if self.notifier:
            await self.notifier.participant_reassigned(package, participant, contact, new_participant_id, reason)

        return {
            "package": package,
            "newParticipantId": new_participant_id,
            "fieldsReassigned": len(moved),
        }

    # -------------------------------------------------
    # Receivers
    # -------------------------------------------------

    async def add_receiver_by_participant(
        self,
        package_id: int,
        participant_id: str,
        new_contact_id: int,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        """Allowed even when the caller's own work is complete"""
        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant = self.repo.find_participant(package, participant_id)
            if not has_permission(participant.roles, Permission.RECEIVER_ADD):
                raise AuthorizationError(
                    f"Participant {participant_id} may not add receivers",
                    "You are not allowed to add receivers to this document.",
                )

            if not package.allow_receivers_to_add:
                raise AuthorizationError(
                    f"Package {package.id} does not allow participants to add receivers",
                    "Adding receivers is not allowed for this document.",
                )
            contact = self._require_new_contact(package, new_contact_id)

            receiver = PackageReceiver(
                participant_id=str(uuid.uuid4()),
                contact_id=contact.id,
                contact_name=contact.full_name,
                contact_email=contact.email,
            )
            package.receivers.append(receiver)
            package.receiver_history.append(ReceiverHistory(
                added_by=participant.snapshot(),
                new_receiver={**contact_snapshot(contact), "participantId": receiver.participant_id},
                added_ip=ip_address,
            ))

            AuditService(self.db).log_action(
                action_type=AuditActionType.RECEIVER_ADDED,
                package_id=package.id,
                participant_id=participant_id,
                action_details={
                    "receiverParticipantId": receiver.participant_id,
                    "contactId": contact.id,
                },
                ip_address=ip_address,
                user_agent=user_agent,
                actor_name=participant.name,
                actor_email=participant.email,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f" Receiver {contact.email} added to package {package_id} by {participant_id}")

        if self.notifier:
            await self.notifier.receiver_added(package, participant, contact, receiver.participant_id)

        return {
            "package": package,
            "receiverParticipantId": receiver.participant_id,
        }
