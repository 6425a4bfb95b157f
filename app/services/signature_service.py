# =====================================================
# FILE: app/services/signature_service.py
# Signature Verification Protocol (Email OTP / SMS OTP)
# =====================================================

import hashlib
import logging
import secrets
import string
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.email import build_email_html
from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    ServiceUnavailableError,
    SigningWorkflowError,
    ValidationError,
)
from app.core.permissions import Permission, has_permission
from app.models.otp import OTPRecord
from app.models.package import Package, PackageField, ParticipantRole, SignatureMethod
from app.services.audit_service import AuditActionType, AuditService
from app.services.completion_service import outstanding_assignments
from app.services.otp_gateway import OtpGateway
from app.services.package_repository import PackageRepository, ParticipantRef
from app.services.package_state_service import PackageStateService
from app.services.template_store import MessageType, TemplateStore, render_template
from app.utils.channel_validation import (
    is_valid_email,
    is_valid_phone,
    mask_email,
    mask_phone,
    normalize_phone,
)
from app.utils.datetime_helpers import format_datetime_to_iso, utcnow

logger = logging.getLogger(__name__)


def generate_otp(length: int) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def hash_otp(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def mask_otp(code: str) -> str:
    """Reference stored with a signature, never the code itself"""
    return "*" * max(len(code) - 2, 0) + code[-2:]


def find_field(package: Package, field_id: str) -> PackageField:
    for field in package.fields:
        if field.field_id == field_id:
            return field
    raise NotFoundError(f"Field {field_id} not found in package {package.id}", "Field not found.")


class SignatureService:
    """
    Two-step signature authentication: send_otp issues a code over the
    participant's channel, verify_otp consumes it and stamps the signature.

    Both channels share the same protocol; only the template and the
    gateway differ.
    """

    def __init__(self, db: Session, templates: TemplateStore, notifier=None):
        self.db = db
        self.repo = PackageRepository(db)
        self.templates = templates
        self.notifier = notifier

    # -------------------------------------------------
    # Shared preconditions
    # -------------------------------------------------

    def _load_signer(self, package: Package, participant_id: str, field_id: str, method: SignatureMethod):
        participant = self.repo.find_participant(package, participant_id)
        field = find_field(package, field_id)

        if not field.is_signature:
            raise ValidationError(
                f"Field {field_id} is of type {field.type}, not signature",
                "Only signature fields require verification.",
            )

        assignment = field.assignment_for(participant_id)
        if assignment is None:
            raise AuthorizationError(
                f"Participant {participant_id} is not assigned to field {field_id}",
                "You are not assigned to this field.",
            )
        if not has_permission([assignment.role], Permission.SIGNATURE_SIGN):
            raise AuthorizationError(
                f"Participant {participant_id} has role {assignment.role} on field {field_id}",
                "Only signers can sign this field.",
            )
        if method.value not in (assignment.signature_methods or []):
            raise ValidationError(
                f"{method.value} is not enabled for field {field_id}",
                f"{method.value} verification is not enabled for this field.",
            )
        return participant, field, assignment

    def _check_channel(self, method: SignatureMethod, channel_value: str, assignment) -> str:
        """Validate the requested channel value against the assignment; returns the canonical value"""
        if method == SignatureMethod.EMAIL_OTP:
            if not is_valid_email(channel_value):
                raise ValidationError(f"Invalid email: {channel_value!r}", "Please provide a valid email address.")
            email = channel_value.strip().lower()
            if email != (assignment.contact_email or "").strip().lower():
                raise ValidationError(
                    "Email does not match the assigned participant",
                    "This email address does not match the one assigned to you.",
                )
            return email

        if not channel_value or not channel_value.strip():
            raise ValidationError("Phone number is required.", "Please provide a phone number.")
        if not assignment.contact_phone:
            raise ValidationError(
                f"Assignment {assignment.id} has no phone number",
                "No phone number is registered for you on this document.",
            )
        phone = normalize_phone(channel_value, settings.DEFAULT_COUNTRY_CODE)
        if not is_valid_phone(phone):
            raise ValidationError(f"Invalid phone number: {channel_value!r}", "Invalid phone number format.")
        if phone != normalize_phone(assignment.contact_phone, settings.DEFAULT_COUNTRY_CODE):
            raise ValidationError(
                "Phone does not match the assigned participant",
                "This phone number does not match the one assigned to you.",
            )
        return phone

    def _render(self, method: SignatureMethod, participant: ParticipantRef, package: Package, code: str):
        values = {
            "recipient_name": participant.name,
            "document_name": package.name,
            "otp": code,
        }
        if method == SignatureMethod.SMS_OTP:
            content = self.templates.get_content(MessageType.SIGNATURE_OTP_SMS, participant.language)
            return None, render_template(content["message"], **values)

        content = self.templates.get_content(MessageType.SIGNATURE_OTP_EMAIL, participant.language)
        rendered = {key: render_template(value, **values) for key, value in content.items()}
        return rendered["subject"], build_email_html(rendered, highlight=code)

    # -------------------------------------------------
    # send
    # -------------------------------------------------

    async def send_otp(
        self,
        package_id: int,
        participant_id: str,
        field_id: str,
        channel_value: str,
        method: SignatureMethod,
        gateway: OtpGateway,
    ) -> dict:
        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant, field, assignment = self._load_signer(package, participant_id, field_id, method)
            if assignment.signed:
                raise ValidationError(
                    f"Field {field_id} already signed by {participant_id}",
                    "You have already signed this field.",
                )
            target = self._check_channel(method, channel_value, assignment)

            # A new send always invalidates the previous code
            self.repo.delete_otp(field_id, participant_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        code = generate_otp(settings.OTP_LENGTH)
        subject, message = self._render(method, participant, package, code)

        try:
            result = await gateway.send(target, message, subject=subject)
        except SigningWorkflowError as e:
            logger.error(f"{method.value} dispatch failed for participant {participant_id}: {e.error}")
            raise
        except Exception as e:
            logger.error(f"{method.value} dispatch failed for participant {participant_id}: {str(e)}")
            raise ServiceUnavailableError(f"OTP dispatch failed: {e}") from e

        try:
            # Stored only once the gateway accepted the message
            self.repo.delete_otp(field_id, participant_id)
            now = utcnow()
            self.db.add(OTPRecord(
                package_id=package_id,
                field_id=field_id,
                participant_id=participant_id,
                method=method.value,
                code_hash=hash_otp(code),
                channel_value=target,
                attempt_count=0,
                issued_at=now,
                expires_at=now + timedelta(seconds=settings.OTP_TTL_SECONDS),
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        masked = mask_phone(result.recipient) if method == SignatureMethod.SMS_OTP else mask_email(target)
        logger.info(f" {method.value} sent for field {field_id} to participant {participant_id}")
        return {
            "sent": True,
            "method": method.value,
            "expiresIn": settings.OTP_TTL_SECONDS,
            "recipient": masked,
        }

    # -------------------------------------------------
    # verify
    # -------------------------------------------------

    async def verify_otp(
        self,
        package_id: int,
        participant_id: str,
        field_id: str,
        code: str,
        method: SignatureMethod,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        code = (code or "").strip()
        if not code:
            raise ValidationError("OTP code is required.", "Please enter the verification code.")

        try:
            package = self.repo.get_package(package_id, for_update=True)
            PackageStateService.ensure_active(self.db, package)
            participant, field, assignment = self._load_signer(package, participant_id, field_id, method)

            record = self.repo.get_otp(field_id, participant_id)
            if record is None or record.method != method.value:
                raise OtpExpiredError(f"No active code for field {field_id} / participant {participant_id}")

            if record.expires_at <= utcnow():
                self.db.delete(record)
                self.db.commit()
                raise OtpExpiredError(f"Code for field {field_id} expired at {record.expires_at}")

            if not secrets.compare_digest(record.code_hash, hash_otp(code)):
                record.attempt_count += 1
                remaining = max(settings.OTP_MAX_ATTEMPTS - record.attempt_count, 0)
                if remaining == 0:
                    self.db.delete(record)
                    self.db.commit()
                    raise OtpMismatchError(
                        f"Attempts exhausted for field {field_id}",
                        attempts_remaining=0,
                        message="Too many incorrect attempts. Please request a new code.",
                    )
                self.db.commit()
                raise OtpMismatchError(
                    f"Incorrect code for field {field_id} ({record.attempt_count} attempts)",
                    attempts_remaining=remaining,
                )

            channel_value = record.channel_value
            if not self.repo.consume_otp(record.id):
                raise OtpExpiredError(f"Code for field {field_id} was already used")
            self.db.expunge(record)

            signed_at = utcnow()
            reference = mask_otp(code)
            signature_value = {
                "signedBy": participant.name,
                "date": format_datetime_to_iso(signed_at),
                "method": method.value,
                "otpCode": reference,
            }
            if method == SignatureMethod.EMAIL_OTP:
                signature_value["email"] = channel_value
            else:
                signature_value["phone"] = channel_value

            # One verification covers all of the participant's open signature fields
            signed_fields = []
            for open_field, open_assignment in outstanding_assignments(package, participant_id):
                if not open_field.is_signature or open_assignment.role != ParticipantRole.SIGNER.value:
                    continue
                open_field.value = dict(signature_value)
                open_assignment.signed = True
                open_assignment.signed_at = signed_at
                open_assignment.signed_method = method.value
                open_assignment.signed_ip = ip_address
                open_assignment.signed_otp_reference = reference
                signed_fields.append(open_field.field_id)

            if field.field_id not in signed_fields and not assignment.signed:
                field.value = dict(signature_value)
                assignment.signed = True
                assignment.signed_at = signed_at
                assignment.signed_method = method.value
                assignment.signed_ip = ip_address
                assignment.signed_otp_reference = reference
                signed_fields.append(field.field_id)

            AuditService(self.db).log_action(
                action_type=AuditActionType.SIGNATURE_COMPLETED,
                package_id=package.id,
                participant_id=participant_id,
                action_details={
                    "fieldIds": signed_fields,
                    "method": method.value,
                    "channel": mask_email(channel_value) if method == SignatureMethod.EMAIL_OTP else mask_phone(channel_value),
                },
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

        logger.info(f"✅ Signature completed on package {package_id} by {participant_id} ({len(signed_fields)} field(s))")

        if self.notifier:
            if completed:
                await self.notifier.package_completed(package)
            else:
                await self.notifier.participant_acted(package, participant, "signed")

        return {
            "verified": True,
            "signedFields": signed_fields,
            "signatureValue": signature_value,
            "packageStatus": package.status,
            "packageCompleted": completed,
        }
