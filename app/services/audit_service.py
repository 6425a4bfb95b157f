# =====================================================
# FILE: app/services/audit_service.py
# Service Layer for the Package Audit Trail
# =====================================================

from sqlalchemy.orm import Session
from typing import Optional, Dict, Any, List
import logging

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


class AuditActionType:
    FIELDS_SUBMITTED = "fields_submitted"
    SIGNATURE_COMPLETED = "signature_completed"
    PACKAGE_REJECTED = "package_rejected"
    PARTICIPANT_REASSIGNED = "participant_reassigned"
    RECEIVER_ADDED = "receiver_added"
    PACKAGE_REVOKED = "package_revoked"
    PACKAGE_COMPLETED = "package_completed"
    PACKAGE_EXPIRED = "package_expired"


class AuditService:
    """
    Append-only audit trail.

    Entries join the caller's transaction; nothing is committed here so an
    entry and the mutation it describes are persisted together.
    """

    def __init__(self, db: Session):
        self.db = db

    def log_action(
        self,
        action_type: str,
        package_id: int,
        participant_id: Optional[str] = None,
        action_details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        actor_name: Optional[str] = None,
        actor_email: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(
            package_id=package_id,
            participant_id=participant_id,
            actor_name=actor_name,
            actor_email=actor_email,
            action_type=action_type,
            action_details=action_details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)

        logger.info(f" Audit log queued: {action_type} on package {package_id} by {participant_id or 'system'}")
        return entry

    def list_for_package(self, package_id: int, limit: Optional[int] = None) -> List[AuditLog]:
        query = (
            self.db.query(AuditLog)
            .filter(AuditLog.package_id == package_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()
