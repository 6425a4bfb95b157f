# =====================================================
# FILE: app/api/api_v1/participants/router.py
# Participant Signing Workflow API Routes
# =====================================================

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.core.database import get_db
from app.core.dependencies import (
    get_client_ip,
    get_email_gateway,
    get_file_store,
    get_notifier,
    get_sms_gateway,
    get_template_store,
    get_user_agent,
)
from app.core.responses import success_response
from app.models.package import SignatureMethod
from app.services.file_store import FileStore
from app.services.notification_service import NotificationService
from app.services.otp_gateway import OtpGateway
from app.services.participant_service import ParticipantService
from app.services.reassignment_service import ReassignmentService, can_participant_reassign
from app.services.signature_service import SignatureService
from app.services.template_store import TemplateStore
from app.utils.datetime_helpers import format_datetime_to_iso
from app.api.api_v1.participants.schemas import (
    AddReceiverRequest,
    ReassignRequest,
    RegisterContactRequest,
    RejectRequest,
    SendEmailOtpRequest,
    SendSmsOtpRequest,
    SubmitFieldsRequest,
    VerifyOtpRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =====================================================
# VIEW
# =====================================================

@router.get("/{package_id}/{participant_id}")
async def get_package_for_participant(
    package_id: int,
    participant_id: str,
    db: Session = Depends(get_db),
):
    """Package as seen by one participant"""
    data = ParticipantService(db).get_package_for_participant(package_id, participant_id)
    return success_response(data, "Package retrieved successfully")


# =====================================================
# FIELD SUBMISSION
# =====================================================

@router.post("/{package_id}/{participant_id}/submit-fields")
async def submit_fields(
    package_id: int,
    participant_id: str,
    body: SubmitFieldsRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    data = await ParticipantService(db, notifier).submit_fields(
        package_id, participant_id, body.field_values, client_ip, user_agent
    )
    return success_response(data, "Fields submitted successfully")


# =====================================================
# EMAIL OTP
# =====================================================

@router.post("/{package_id}/{participant_id}/send-otp")
async def send_email_otp(
    package_id: int,
    participant_id: str,
    body: SendEmailOtpRequest,
    db: Session = Depends(get_db),
    gateway: OtpGateway = Depends(get_email_gateway),
    templates: TemplateStore = Depends(get_template_store),
):
    data = await SignatureService(db, templates).send_otp(
        package_id, participant_id, body.field_id, body.email, SignatureMethod.EMAIL_OTP, gateway
    )
    return success_response(data, "Verification code sent to your email")


@router.post("/{package_id}/{participant_id}/verify-otp")
async def verify_email_otp(
    package_id: int,
    participant_id: str,
    body: VerifyOtpRequest,
    db: Session = Depends(get_db),
    templates: TemplateStore = Depends(get_template_store),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    data = await SignatureService(db, templates, notifier).verify_otp(
        package_id, participant_id, body.field_id, body.otp, SignatureMethod.EMAIL_OTP, client_ip, user_agent
    )
    return success_response(data, "Signature completed successfully")


# =====================================================
# SMS OTP
# =====================================================

@router.post("/{package_id}/{participant_id}/send-sms-otp")
async def send_sms_otp(
    package_id: int,
    participant_id: str,
    body: SendSmsOtpRequest,
    db: Session = Depends(get_db),
    gateway: OtpGateway = Depends(get_sms_gateway),
    templates: TemplateStore = Depends(get_template_store),
):
    data = await SignatureService(db, templates).send_otp(
        package_id, participant_id, body.field_id, body.phone, SignatureMethod.SMS_OTP, gateway
    )
    return success_response(data, "Verification code sent by SMS")


@router.post("/{package_id}/{participant_id}/verify-sms-otp")
async def verify_sms_otp(
    package_id: int,
    participant_id: str,
    body: VerifyOtpRequest,
    db: Session = Depends(get_db),
    templates: TemplateStore = Depends(get_template_store),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    data = await SignatureService(db, templates, notifier).verify_otp(
        package_id, participant_id, body.field_id, body.otp, SignatureMethod.SMS_OTP, client_ip, user_agent
    )
    return success_response(data, "Signature completed successfully")


# =====================================================
# REJECTION
# =====================================================

@router.post("/{package_id}/{participant_id}/reject")
async def reject_package(
    package_id: int,
    participant_id: str,
    body: RejectRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    package = await ParticipantService(db, notifier).reject_package(
        package_id, participant_id, body.reason, client_ip, user_agent
    )
    details = package.rejection_details
    if details:
        details = {**details, "rejectedAt": format_datetime_to_iso(details["rejectedAt"])}
    return success_response(
        {
            "packageId": package.id,
            "status": package.status,
            "rejectionDetails": details,
        },
        "Document rejected",
    )


# =====================================================
# REASSIGNMENT
# =====================================================

@router.get("/{package_id}/{participant_id}/reassignment/eligibility")
async def get_reassignment_eligibility(
    package_id: int,
    participant_id: str,
    db: Session = Depends(get_db),
):
    service = ReassignmentService(db)
    package = service.repo.get_package(package_id)
    service.repo.find_participant(package, participant_id)
    return success_response(can_participant_reassign(package, participant_id))


@router.get("/{package_id}/{participant_id}/reassignment/contacts")
async def list_reassignment_contacts(
    package_id: int,
    participant_id: str,
    db: Session = Depends(get_db),
):
    contacts = ReassignmentService(db).list_reassignment_contacts(package_id, participant_id)
    return success_response({"contacts": contacts}, f"Found {len(contacts)} contacts")


@router.post("/{package_id}/{participant_id}/reassignment/register-contact")
async def register_reassignment_contact(
    package_id: int,
    participant_id: str,
    body: RegisterContactRequest,
    db: Session = Depends(get_db),
):
    contact = ReassignmentService(db).register_reassignment_contact(
        package_id, participant_id, body.model_dump()
    )
    return success_response(
        {
            "id": contact.id,
            "firstName": contact.first_name,
            "lastName": contact.last_name,
            "email": contact.email,
            "phone": contact.phone,
        },
        "Contact registered successfully",
        status_code=201,
    )


@router.post("/{package_id}/{participant_id}/reassignment/perform")
async def perform_reassignment(
    package_id: int,
    participant_id: str,
    body: ReassignRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    result = await ReassignmentService(db, notifier).perform_reassignment(
        package_id, participant_id, body.new_contact_id, body.reason, client_ip, user_agent
    )
    return success_response(
        {
            "packageId": result["package"].id,
            "status": result["package"].status,
            "newParticipantId": result["newParticipantId"],
            "fieldsReassigned": result["fieldsReassigned"],
        },
        "Participant reassigned successfully",
    )


@router.post("/{package_id}/{participant_id}/add-receiver")
async def add_receiver(
    package_id: int,
    participant_id: str,
    body: AddReceiverRequest,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent),
):
    result = await ReassignmentService(db, notifier).add_receiver_by_participant(
        package_id, participant_id, body.new_contact_id, client_ip, user_agent
    )
    return success_response(
        {
            "packageId": result["package"].id,
            "receiverParticipantId": result["receiverParticipantId"],
        },
        "Receiver added successfully",
    )


# =====================================================
# DOWNLOAD
# =====================================================

@router.get("/{package_id}/{participant_id}/download")
async def download_package(
    package_id: int,
    participant_id: str,
    db: Session = Depends(get_db),
    file_store: FileStore = Depends(get_file_store),
):
    content, filename = ParticipantService(db).download_package_for_participant(
        package_id, participant_id, file_store
    )
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
