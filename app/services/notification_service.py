# =====================================================
# FILE: app/services/notification_service.py
# Workflow Email Notifications (best effort, sent after commit)
# =====================================================

import logging
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.email import build_email_html
from app.models.contact import Contact
from app.models.package import Package
from app.services.completion_service import ParticipantStatus, participant_status
from app.services.otp_gateway import OtpGateway
from app.services.package_repository import PackageRepository, ParticipantRef
from app.services.template_store import MessageType, TemplateStore, render_template

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Sends workflow emails through the email gateway. A failed notification
    is logged and reported as False, it never undoes the committed action.
    """

    def __init__(self, gateway: OtpGateway, templates: TemplateStore, repo: PackageRepository):
        self.gateway = gateway
        self.templates = templates
        self.repo = repo

    @staticmethod
    def action_link(package: Package, participant_id: Optional[str] = None) -> str:
        base = settings.CLIENT_URL.rstrip("/")
        if participant_id:
            return f"{base}/packages/participant/{package.id}/{participant_id}"
        return f"{base}/packages/{package.id}"

    async def _send(
        self,
        message_type: str,
        recipient_email: str,
        language: Optional[str],
        values: Dict[str, str],
    ) -> bool:
        try:
            content = self.templates.get_content(message_type, language)
            rendered = {key: render_template(value, **values) for key, value in content.items()}
            await self.gateway.send(
                recipient_email,
                build_email_html(rendered),
                subject=rendered.get("subject"),
            )
            logger.info(f" Notification '{message_type}' sent to {recipient_email}")
            return True
        except Exception as e:
            logger.error(f" Notification '{message_type}' to {recipient_email} failed: {str(e)}")
            return False

    def _owner_recipient(self, package: Package) -> Optional[Dict[str, str]]:
        owner = package.owner
        if not owner or not owner.email:
            return None
        return {"email": owner.email, "name": owner.full_name, "language": owner.language}

    # -------------------------------------------------
    # Events
    # -------------------------------------------------

    async def package_completed(self, package: Package) -> List[bool]:
        """All participants and the owner receive the completion notice"""
        owner = self._owner_recipient(package)
        sender_name = owner["name"] if owner else settings.MAIL_FROM_NAME

        results = []
        for ref in self.repo.participants(package):
            results.append(await self._send(
                MessageType.DOCUMENT_COMPLETED,
                ref.email,
                ref.language,
                {
                    "recipient_name": ref.name,
                    "document_name": package.name,
                    "sender_name": sender_name,
                    "action_link": self.action_link(package, ref.participant_id),
                },
            ))
        if owner:
            results.append(await self._send(
                MessageType.DOCUMENT_COMPLETED,
                owner["email"],
                owner["language"],
                {
                    "recipient_name": owner["name"],
                    "document_name": package.name,
                    "sender_name": sender_name,
                    "action_link": self.action_link(package),
                },
            ))
        return results

    async def package_rejected(self, package: Package, actor: ParticipantRef, reason: str) -> List[bool]:
        owner = self._owner_recipient(package)
        if not owner:
            logger.warning(f"Package {package.id} has no owner email; rejection notice skipped")
            return []
        return [await self._send(
            MessageType.PACKAGE_REJECTED,
            owner["email"],
            owner["language"],
            {
                "recipient_name": owner["name"],
                "document_name": package.name,
                "actor_name": actor.name,
                "reason": reason,
            },
        )]

    async def participant_reassigned(
        self,
        package: Package,
        actor: ParticipantRef,
        contact: Contact,
        new_participant_id: str,
        reason: str,
    ) -> List[bool]:
        results = [await self._send(
            MessageType.PARTICIPANT_REASSIGNED,
            contact.email,
            contact.language,
            {
                "recipient_name": contact.full_name,
                "document_name": package.name,
                "actor_name": actor.name,
                "reason": reason,
                "action_link": self.action_link(package, new_participant_id),
            },
        )]
        owner = self._owner_recipient(package)
        if owner:
            results.append(await self._send(
                MessageType.REASSIGNMENT_RECORDED,
                owner["email"],
                owner["language"],
                {
                    "recipient_name": owner["name"],
                    "document_name": package.name,
                    "actor_name": actor.name,
                    "new_participant_name": contact.full_name,
                    "reason": reason,
                    "action_link": self.action_link(package),
                },
            ))
        return results

    async def receiver_added(
        self,
        package: Package,
        actor: ParticipantRef,
        contact: Contact,
        receiver_participant_id: str,
    ) -> List[bool]:
        return [await self._send(
            MessageType.RECEIVER_ADDED,
            contact.email,
            contact.language,
            {
                "recipient_name": contact.full_name,
                "document_name": package.name,
                "actor_name": actor.name,
                "action_link": self.action_link(package, receiver_participant_id),
            },
        )]

    async def participant_acted(self, package: Package, actor: ParticipantRef, action: str) -> List[bool]:
        """Progress update to the owner after an action that left the package open"""
        owner = self._owner_recipient(package)
        if not owner:
            return []

        completed, pending = [], []
        for ref in self.repo.participants(package):
            status = participant_status(package, ref.participant_id)
            if status == ParticipantStatus.COMPLETED:
                completed.append(ref.name)
            elif status == ParticipantStatus.PENDING:
                pending.append(ref.name)

        return [await self._send(
            MessageType.PARTICIPANT_ACTION,
            owner["email"],
            owner["language"],
            {
                "recipient_name": owner["name"],
                "document_name": package.name,
                "actor_name": actor.name,
                "action": action,
                "completed_names": ", ".join(completed) or "none",
                "pending_names": ", ".join(pending) or "none",
                "action_link": self.action_link(package),
            },
        )]
