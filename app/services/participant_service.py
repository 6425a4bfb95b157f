# =====================================================
# FILE: app/services/participant_service.py
# Participant workflow: view, field submission, rejection, download
# =====================================================

import logging
import re
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PackageFinalizedError,
    ValidationError,
)
from app.core.permissions import Permission, get_all_permissions, has_permission
from app.models.package import (
    FORM_SUBMISSION_METHOD,
    FieldType,
    Package,
    PackageStatus,
    ParticipantRole,
)
from app.services.audit_service import AuditActionType, AuditService
from app.services.completion_service import (
    evaluate_participant,
    is_assignment_complete,
    is_value_present,
    package_progress_percent,
    participant_status,
)
from app.services.file_store import FileStore
from app.services.package_repository import PackageRepository, ParticipantRef
from app.services.package_state_service import PackageStateService
from app.services.reassignment_service import can_participant_reassign
from app.utils.channel_validation import mask_email
from app.utils.datetime_helpers import format_datetime_to_iso, utcnow

logger = logging.getLogger(__name__)


# =====================================================
# FLOW STEPS (server-owned, rendered by the client as-is)
# =====================================================

class SigningStep(str, Enum):
    NOT_REQUIRED = "not_required"
    AWAITING_FIELDS = "awaiting_fields"
    AWAITING_SIGNATURE = "awaiting_signature"
    COMPLETED = "completed"
    CLOSED = "closed"


class ReassignStep(str, Enum):
    UNAVAILABLE = "unavailable"
    AVAILABLE = "available"


class AddReceiverStep(str, Enum):
    UNAVAILABLE = "unavailable"
    AVAILABLE = "available"


def signing_step_for(package: Package, participant: ParticipantRef) -> SigningStep:
    pairs = [
        (field, field.assignment_for(participant.participant_id))
        for field in package.fields
        if field.assignment_for(participant.participant_id) is not None
    ]
    if not pairs:
        return SigningStep.NOT_REQUIRED
    if evaluate_participant(package, participant.participant_id).completed:
        return SigningStep.COMPLETED
    if package.status != PackageStatus.SENT.value:
        return SigningStep.CLOSED

    open_required = [f for f, a in pairs if f.required and not is_assignment_complete(f, a)]
    if any(not f.is_signature for f in open_required):
        return SigningStep.AWAITING_FIELDS
    return SigningStep.AWAITING_SIGNATURE


def download_filename(package: Package, today=None) -> str:
    """<sanitized name>_<status>_<YYYY-MM-DD>.pdf"""
    today = today or utcnow().date()
    safe_name = re.sub(r"[^A-Za-z0-9_-]+", "_", package.name or "").strip("_") or "document"
    return f"{safe_name}_{package.status}_{today.isoformat()}.pdf"


class ParticipantService:
    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.repo = PackageRepository(db)
        self.notifier = notifier

    # -------------------------------------------------
    # View
    # -------------------------------------------------

    def get_package_for_participant(self, package_id: int, participant_id: str) -> Dict[str, Any]:
        package = self.repo.get_package(package_id)
        participant = self.repo.find_participant(package, participant_id)
        PackageStateService.ensure_readable(package)

        fields = []
        for field in package.fields:
            mine = field.assignment_for(participant_id)
            fields.append({
                "id": field.field_id,
                "type": field.type,
                "page": field.page,
                "x": field.x,
                "y": field.y,
                "width": field.width,
                "height": field.height,
                "required": field.required,
                "label": field.label,
                "placeholder": field.placeholder,
                "options": field.options,
                # Values of other participants' fields are not disclosed
                "value": field.value if mine is not None else None,
                "assignedToMe": mine is not None,
                "myRole": mine.role if mine else None,
                "signatureMethods": (mine.signature_methods or []) if mine else [],
                "signed": bool(mine.signed) if mine else False,
                "completed": is_assignment_complete(field, mine) if mine else False,
            })

        participants = [
            {
                "participantId": ref.participant_id,
                "name": ref.name,
                "email": mask_email(ref.email) if ref.participant_id != participant_id else ref.email,
                "role": ref.role,
                "status": participant_status(package, ref.participant_id),
            }
            for ref in self.repo.participants(package)
        ]

        progress = evaluate_participant(package, participant_id)
        eligibility = can_participant_reassign(package, participant_id)
        if not has_permission(participant.roles, Permission.PARTICIPANT_REASSIGN):
            eligibility = {**eligibility, "eligible": False, "reason": "Receivers cannot reassign this document"}

        history = [
            {
                "from": entry.reassigned_from,
                "to": entry.reassigned_to,
                "reason": entry.reason,
                "fieldsReassigned": entry.fields_reassigned,
                "reassignedAt": format_datetime_to_iso(entry.reassigned_at),
            }
            for entry in package.reassignment_history
            if (entry.reassigned_by or {}).get("participantId") == participant_id
            or (entry.reassigned_to or {}).get("participantId") == participant_id
        ]

        active = package.status == PackageStatus.SENT.value
        rejection = package.rejection_details
        if rejection:
            rejection = {**rejection, "rejectedAt": format_datetime_to_iso(rejection["rejectedAt"])}

        return {
            "package": {
                "id": package.id,
                "name": package.name,
                "fileUrl": package.file_url,
                "status": package.status,
                "options": {
                    "allowReassign": package.allow_reassign,
                    "allowDownloadUnsigned": package.allow_download_unsigned,
                    "allowReceiversToAdd": package.allow_receivers_to_add,
                },
                "expiresAt": format_datetime_to_iso(package.expires_at),
                "createdAt": format_datetime_to_iso(package.created_at),
                "completedAt": format_datetime_to_iso(package.completed_at),
                "progressPercent": package_progress_percent(package),
                "rejectionDetails": rejection,
            },
            "fields": fields,
            "participants": participants,
            "currentUser": {
                "participantId": participant.participant_id,
                "contactId": participant.contact_id,
                "name": participant.name,
                "email": participant.email,
                "phone": participant.phone,
                "role": participant.role,
                "status": participant_status(package, participant_id),
                "progress": progress.to_dict(),
                "allowedActions": get_all_permissions(participant.roles),
            },
            "reassignment": {
                "eligible": eligibility["eligible"],
                "reason": eligibility["reason"],
                "pendingFields": eligibility["pendingFields"],
                "history": history,
            },
            "flow": {
                "signingStep": signing_step_for(package, participant).value,
                "reassignStep": (ReassignStep.AVAILABLE if eligibility["eligible"] else ReassignStep.UNAVAILABLE).value,
                "addReceiverStep": (
                    AddReceiverStep.AVAILABLE
                    if active
                    and package.allow_receivers_to_add
                    and has_permission(participant.roles, Permission.RECEIVER_ADD)
                    else AddReceiverStep.UNAVAILABLE
                ).value,
            },
            "canDownload": self._can_download(package),
        }

    # -------------------------------------------------
    # Field submission
    # -------------------------------------------------

    @staticmethod
    def _validate_value(field, value) -> None:
        if field.type == FieldType.CHECKBOX.value:
            if value is not None and not isinstance(value, bool):
                raise ValidationError(f"Field {field.field_id} expects true/false", f"\"{field.label}\" must be checked or unchecked.")
            return
        if value is not None and not isinstance(value, (str, int, float)):
            raise ValidationError(f"Field {field.field_id} got {type(value).__name__}", f"Invalid value for \"{field.label}\".")
        if field.type in (FieldType.RADIO.value, FieldType.DROPDOWN.value) and field.options and is_value_present(value):
            if value not in field.options:
                raise ValidationError(
                    f"Value {value!r} not in options of field {field.field_id}",
                    f"Please choose one of the available options for \"{field.label}\".",
                )

    async def submit_fields(
        self,
        package_id: int,
        participant_id: str,
        field_values: Dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not field_values:
            raise ValidationError("No field values submitted.", "Please fill in at least one field.")

        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant = self.repo.find_participant(package, participant_id)
            if not has_permission(participant.roles, Permission.FIELD_SUBMIT):
                raise AuthorizationError(
                    f"Receiver {participant_id} cannot submit fields",
                    "Receivers cannot fill in fields.",
                )

            by_id = {field.field_id: field for field in package.fields}

            # Validate everything before writing anything
            targets = []
            for field_id, value in field_values.items():
                field = by_id.get(field_id)
                if field is None:
                    raise NotFoundError(f"Field {field_id} not found in package {package_id}", "Field not found.")
                if field.is_signature:
                    raise ValidationError(
                        f"Signature field {field_id} submitted as a value",
                        "Signature fields must be signed through verification.",
                    )
                assignment = field.assignment_for(participant_id)
                if assignment is None:
                    raise AuthorizationError(
                        f"Participant {participant_id} is not assigned to field {field_id}",
                        "You are not assigned to one or more of these fields.",
                    )
                self._validate_value(field, value)
                targets.append((field, assignment, value))

            now = utcnow()
            for field, assignment, value in targets:
                field.value = value.strip() if isinstance(value, str) else value

                form_completion = (
                    (assignment.role == ParticipantRole.APPROVER.value and field.type == FieldType.CHECKBOX.value)
                    or (assignment.role == ParticipantRole.FORM_FILLER.value and field.required)
                )
                if form_completion:
                    done = is_value_present(field.value)
                    assignment.signed = done
                    assignment.signed_at = now if done else None
                    assignment.signed_method = FORM_SUBMISSION_METHOD if done else None
                    assignment.signed_ip = ip_address if done else None

            AuditService(self.db).log_action(
                action_type=AuditActionType.FIELDS_SUBMITTED,
                package_id=package.id,
                participant_id=participant_id,
                action_details={"fieldIds": [f.field_id for f, _, _ in targets]},
                ip_address=ip_address,
                user_agent=user_agent,
                actor_name=participant.name,
                actor_email=participant.email,
            )

            completed = PackageStateService.complete_if_done(self.db, package, ip_address)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f" Package {package_id}: {len(targets)} field(s) submitted by {participant_id}")

        if self.notifier:
            if completed:
                await self.notifier.package_completed(package)
            else:
                await self.notifier.participant_acted(package, participant, "submitted")

        return {
            "updatedFields": [f.field_id for f, _, _ in targets],
            "progress": evaluate_participant(package, participant_id).to_dict(),
            "packageStatus": package.status,
            "packageCompleted": completed,
        }

    # -------------------------------------------------
    # Rejection
    # -------------------------------------------------

    async def reject_package(
        self,
        package_id: int,
        participant_id: str,
        reason: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Package:
        """Irreversible: the package moves to Rejected for every participant"""
        try:
            package = self.repo.get_package(package_id, for_update=True)
            participant = self.repo.find_participant(package, participant_id)
            if not has_permission(participant.roles, Permission.PACKAGE_REJECT):
                raise AuthorizationError(
                    f"Receiver {participant_id} attempted to reject package {package_id}",
                    "Receivers cannot reject this document.",
                )
            PackageStateService.ensure_active(self.db, package)
            if evaluate_participant(package, participant_id).completed:
                raise AuthorizationError(
                    f"Participant {participant_id} already completed their tasks in package {package_id}",
                    "You have already completed your part of this document and can no longer reject it.",
                )

            reason = (reason or "").strip()
            if not reason:
                raise ValidationError("Rejection reason is required.", "Please provide a reason for rejecting.")
            if len(reason) > settings.REJECTION_REASON_MAX_LENGTH:
                raise ValidationError(
                    f"Rejection reason has {len(reason)} characters",
                    f"Rejection reason cannot exceed {settings.REJECTION_REASON_MAX_LENGTH} characters.",
                )

            rejected_by = {
                "contactId": participant.contact_id,
                "name": participant.name,
                "email": participant.email,
            }
            moved = PackageStateService.transition(
                self.db, package, PackageStatus.REJECTED.value,
                rejection_reason=reason,
                rejected_at=utcnow(),
                rejected_by=rejected_by,
                rejected_ip=ip_address,
            )
            if not moved:
                raise PackageFinalizedError(
                    f"Package {package_id} changed status during rejection",
                    "This document was modified by someone else. Please reload.",
                )

            AuditService(self.db).log_action(
                action_type=AuditActionType.PACKAGE_REJECTED,
                package_id=package.id,
                participant_id=participant_id,
                action_details={"reason": reason},
                ip_address=ip_address,
                user_agent=user_agent,
                actor_name=participant.name,
                actor_email=participant.email,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"❌ Package {package_id} rejected by {participant_id}")

        if self.notifier:
            await self.notifier.package_rejected(package, participant, reason)

        return package

    # -------------------------------------------------
    # Download
    # -------------------------------------------------

    @staticmethod
    def _can_download(package: Package) -> bool:
        return package.status in PackageStateService.FINALIZED_STATUSES or bool(package.allow_download_unsigned)

    def download_package_for_participant(
        self,
        package_id: int,
        participant_id: str,
        file_store: FileStore,
    ) -> Tuple[bytes, str]:
        package = self.repo.get_package(package_id)
        participant = self.repo.find_participant(package, participant_id)
        PackageStateService.ensure_readable(package)
        if not has_permission(participant.roles, Permission.PACKAGE_DOWNLOAD):
            raise AuthorizationError(
                f"Participant {participant_id} may not download package {package_id}",
                "You are not allowed to download this document.",
            )

        if not self._can_download(package):
            raise AuthorizationError(
                f"Download of unsigned package {package_id} is disabled",
                "This document can be downloaded once it has been completed.",
            )

        content = file_store.read(package.file_url)
        filename = download_filename(package)
        logger.info(f" Package {package_id} downloaded by {participant_id} as {filename}")
        return content, filename
