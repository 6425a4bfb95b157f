# =====================================================
# FILE: app/core/dependencies.py
# FastAPI dependencies for collaborators (overridable in tests)
# =====================================================

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.middleware.request_context_middleware import get_client_ip as resolve_client_ip
from app.models.package import SignatureMethod
from app.services.file_store import FileStore, LocalFileStore
from app.services.notification_service import NotificationService
from app.services.otp_gateway import EmailGateway, OtpGateway, SimulatedGateway, SmsGateway
from app.services.package_repository import PackageRepository
from app.services.template_store import InMemoryTemplateStore, TemplateStore


@lru_cache()
def _sms_gateway() -> SmsGateway:
    return SmsGateway(
        api_token=settings.SMS_API_TOKEN,
        base_url=settings.SMS_API_BASE_URL,
        originator=settings.SMS_ORIGINATOR,
        default_country_code=settings.DEFAULT_COUNTRY_CODE,
        route=settings.SMS_ROUTE,
        timeout=settings.OTP_GATEWAY_TIMEOUT_SECONDS,
    )


def get_sms_gateway() -> OtpGateway:
    if settings.OTP_DELIVERY_SIMULATE:
        return SimulatedGateway(SignatureMethod.SMS_OTP)
    return _sms_gateway()


def get_email_gateway() -> OtpGateway:
    if settings.OTP_DELIVERY_SIMULATE:
        return SimulatedGateway(SignatureMethod.EMAIL_OTP)
    return EmailGateway()


@lru_cache()
def get_template_store() -> TemplateStore:
    return InMemoryTemplateStore(settings.SUPPORTED_LANGUAGES)


@lru_cache()
def get_file_store() -> FileStore:
    return LocalFileStore(settings.FILE_STORAGE_DIR)


def get_package_repository(db: Session = Depends(get_db)) -> PackageRepository:
    return PackageRepository(db)


def get_notifier(
    repo: PackageRepository = Depends(get_package_repository),
    gateway: OtpGateway = Depends(get_email_gateway),
    templates: TemplateStore = Depends(get_template_store),
) -> NotificationService:
    return NotificationService(gateway, templates, repo)


def get_client_ip(request: Request) -> str:
    ip = getattr(request.state, "client_ip", None)
    return ip or resolve_client_ip(request)


def get_user_agent(request: Request) -> Optional[str]:
    agent = getattr(request.state, "user_agent", None)
    return agent or request.headers.get("user-agent")
