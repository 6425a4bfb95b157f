# =====================================================
# FILE: app/services/package_state_service.py
# Package State Machine: transitions, guards and completion
# =====================================================

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy import update
from typing import Optional
import logging

from app.core.config import settings
from app.core.exceptions import PackageFinalizedError, ValidationError
from app.models.package import Package, PackageStatus
from app.services.audit_service import AuditService, AuditActionType
from app.services.completion_service import is_package_complete
from app.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class PackageStateService:
    """
    Owns every status change of a package.

    Draft -> Sent -> {Completed, Rejected, Revoked, Expired} -> Archived
    """

    # Valid status transitions
    STATUS_TRANSITIONS = {
        PackageStatus.DRAFT.value: [PackageStatus.SENT.value, PackageStatus.REVOKED.value],
        PackageStatus.SENT.value: [
            PackageStatus.COMPLETED.value,
            PackageStatus.REJECTED.value,
            PackageStatus.REVOKED.value,
            PackageStatus.EXPIRED.value,
        ],
        PackageStatus.COMPLETED.value: [PackageStatus.ARCHIVED.value],
        PackageStatus.REJECTED.value: [PackageStatus.ARCHIVED.value],
        PackageStatus.REVOKED.value: [PackageStatus.ARCHIVED.value],
        PackageStatus.EXPIRED.value: [PackageStatus.ARCHIVED.value],
        PackageStatus.ARCHIVED.value: [],
    }

    # Statuses in which a participant may still open the package
    READABLE_STATUSES = (
        PackageStatus.SENT.value,
        PackageStatus.COMPLETED.value,
        PackageStatus.REJECTED.value,
        PackageStatus.REVOKED.value,
        PackageStatus.EXPIRED.value,
    )

    FINALIZED_STATUSES = (
        PackageStatus.COMPLETED.value,
        PackageStatus.REJECTED.value,
    )

    @staticmethod
    def validate_status_transition(current_status: str, new_status: str) -> bool:
        """Check if status transition is valid"""
        allowed = PackageStateService.STATUS_TRANSITIONS.get(current_status, [])
        return new_status in allowed

    @staticmethod
    def is_overdue(package: Package) -> bool:
        return package.expires_at is not None and package.expires_at <= utcnow()

    @staticmethod
    def _compare_and_set(db: Session, package: Package, expected: str, new_status: str, **values) -> bool:
        """
        UPDATE packages SET status=:new WHERE id=:id AND status=:expected

        Returns False when another writer moved the package first.
        """
        result = db.execute(
            update(Package)
            .where(Package.id == package.id, Package.status == expected)
            .values(status=new_status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        # Keep the in-memory instance in step with the row
        set_committed_value(package, "status", new_status)
        for key, value in values.items():
            set_committed_value(package, key, value)
        return True

    @staticmethod
    def transition(db: Session, package: Package, new_status: str, **values) -> bool:
        current = package.status
        if not PackageStateService.validate_status_transition(current, new_status):
            raise PackageFinalizedError(
                f"Illegal package transition {current} -> {new_status}",
                f"This document cannot be moved from {current} to {new_status}.",
            )
        moved = PackageStateService._compare_and_set(db, package, current, new_status, **values)
        if moved:
            logger.info(f"Package {package.id}: {current} -> {new_status}")
        return moved

    @staticmethod
    def ensure_active(db: Session, package: Package) -> None:
        """
        Guard for every participant mutation. Overdue packages are moved to
        Expired here before the mutation is refused.
        """
        if package.status == PackageStatus.SENT.value and PackageStateService.is_overdue(package):
            PackageStateService.expire(db, package)
            db.commit()

        if package.status != PackageStatus.SENT.value:
            raise PackageFinalizedError(
                f"Package {package.id} is {package.status}",
                f"This document has been {package.status.lower()} and can no longer be modified.",
            )

    @staticmethod
    def ensure_readable(package: Package) -> None:
        if package.status not in PackageStateService.READABLE_STATUSES:
            raise PackageFinalizedError(
                f"Package {package.id} is {package.status}",
                "This document is not available.",
            )

    @staticmethod
    def complete_if_done(
        db: Session,
        package: Package,
        ip_address: Optional[str] = None,
    ) -> bool:
        """
        Move Sent -> Completed once every participant is done.
        Idempotent: an already Completed package is left alone.
        """
        if package.status != PackageStatus.SENT.value:
            return False
        if not is_package_complete(package):
            return False

        moved = PackageStateService._compare_and_set(
            db, package,
            PackageStatus.SENT.value, PackageStatus.COMPLETED.value,
            completed_at=utcnow(),
        )
        if moved:
            AuditService(db).log_action(
                action_type=AuditActionType.PACKAGE_COMPLETED,
                package_id=package.id,
                action_details={"completedAt": package.completed_at.isoformat()},
                ip_address=ip_address,
            )
            logger.info(f"🎉 Package {package.id} completed by all participants")
        return moved

    @staticmethod
    def expire(db: Session, package: Package) -> bool:
        moved = PackageStateService.transition(db, package, PackageStatus.EXPIRED.value)
        if moved:
            AuditService(db).log_action(
                action_type=AuditActionType.PACKAGE_EXPIRED,
                package_id=package.id,
                action_details={
                    "expiresAt": package.expires_at.isoformat() if package.expires_at else None
                },
            )
        return moved

    @staticmethod
    def revoke(
        db: Session,
        package: Package,
        reason: str,
        ip_address: Optional[str] = None,
    ) -> Package:
        """Owner withdraws the package before it finishes"""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Revocation reason is required.")
        if len(reason) > settings.REJECTION_REASON_MAX_LENGTH:
            raise ValidationError(
                f"Revocation reason cannot exceed {settings.REJECTION_REASON_MAX_LENGTH} characters."
            )

        try:
            moved = PackageStateService.transition(
                db, package, PackageStatus.REVOKED.value,
                revocation_reason=reason,
                revoked_at=utcnow(),
                revoked_ip=ip_address,
            )
            if not moved:
                raise PackageFinalizedError(
                    f"Package {package.id} changed status during revocation",
                    "This document was modified by someone else. Please reload.",
                )
            AuditService(db).log_action(
                action_type=AuditActionType.PACKAGE_REVOKED,
                package_id=package.id,
                action_details={"reason": reason},
                ip_address=ip_address,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Package {package.id} revoked by owner")
        return package

    @staticmethod
    def archive(db: Session, package: Package) -> Package:
        try:
            if not PackageStateService.transition(db, package, PackageStatus.ARCHIVED.value):
                raise PackageFinalizedError(
                    f"Package {package.id} changed status during archival",
                    "This document was modified by someone else. Please reload.",
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return package
