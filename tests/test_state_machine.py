from datetime import timedelta

import pytest
from sqlalchemy import text

from app.core.exceptions import PackageFinalizedError, ValidationError
from app.models.audit import AuditLog
from app.models.package import PackageStatus
from app.services.audit_service import AuditActionType, AuditService
from app.services.package_state_service import PackageStateService
from app.utils.datetime_helpers import utcnow


def _signed_package(factory, owner, alice, status=PackageStatus.SENT.value):
    package = factory.package(owner, status=status)
    field = factory.field(package, "sig", assignees=[(alice, "p-alice", "Signer")])
    field.assigned_users[0].signed = True
    factory.db.commit()
    return factory.reload(package.id)


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("Draft", "Sent", True),
        ("Sent", "Completed", True),
        ("Sent", "Rejected", True),
        ("Sent", "Expired", True),
        ("Completed", "Archived", True),
        ("Completed", "Sent", False),
        ("Rejected", "Completed", False),
        ("Archived", "Sent", False),
        ("Draft", "Completed", False),
    ],
)
def test_transition_table(current, new, allowed):
    assert PackageStateService.validate_status_transition(current, new) is allowed


def test_complete_if_done_is_idempotent(db, factory, owner, alice):
    package = _signed_package(factory, owner, alice)

    assert PackageStateService.complete_if_done(db, package) is True
    db.commit()
    assert PackageStateService.complete_if_done(db, package) is False
    db.commit()

    package = factory.reload(package.id)
    assert package.status == PackageStatus.COMPLETED.value
    assert package.completed_at is not None
    completions = db.query(AuditLog).filter(AuditLog.action_type == AuditActionType.PACKAGE_COMPLETED).count()
    assert completions == 1


def test_compare_and_set_loses_to_concurrent_writer(db, factory, owner, alice):
    package = _signed_package(factory, owner, alice)
    # Another writer rejected the package after we loaded it
    db.execute(
        text("UPDATE packages SET status = 'Rejected' WHERE id = :id"),
        {"id": package.id},
    )
    assert PackageStateService.complete_if_done(db, package) is False


@pytest.mark.parametrize("status", ["Completed", "Rejected", "Revoked", "Archived", "Draft"])
def test_ensure_active_refuses_non_sent(db, factory, owner, status):
    package = factory.package(owner, status=status)
    with pytest.raises(PackageFinalizedError):
        PackageStateService.ensure_active(db, package)


def test_overdue_package_expires_on_access(db, factory, owner):
    package = factory.package(owner, expires_at=utcnow() - timedelta(minutes=1))

    with pytest.raises(PackageFinalizedError):
        PackageStateService.ensure_active(db, package)

    assert factory.reload(package.id).status == PackageStatus.EXPIRED.value
    assert db.query(AuditLog).filter(AuditLog.action_type == AuditActionType.PACKAGE_EXPIRED).count() == 1


def test_revoke_records_reason(db, factory, owner):
    package = factory.package(owner)
    PackageStateService.revoke(db, package, "Sent to the wrong people", "10.0.0.1")

    package = factory.reload(package.id)
    assert package.status == PackageStatus.REVOKED.value
    assert package.revocation_reason == "Sent to the wrong people"
    assert package.revoked_ip == "10.0.0.1"


def test_revoke_requires_reason(db, factory, owner):
    package = factory.package(owner)
    with pytest.raises(ValidationError):
        PackageStateService.revoke(db, package, "  ")


def test_archive_only_from_terminal_states(db, factory, owner):
    package = factory.package(owner, status=PackageStatus.COMPLETED.value)
    PackageStateService.archive(db, package)
    assert factory.reload(package.id).status == PackageStatus.ARCHIVED.value

    active = factory.package(owner)
    with pytest.raises(PackageFinalizedError):
        PackageStateService.archive(db, active)


def test_audit_trail_lists_entries_in_order(db, factory, owner):
    package = factory.package(owner)
    PackageStateService.revoke(db, package, "Duplicate", "10.0.0.1")
    PackageStateService.archive(db, package)

    entries = AuditService(db).list_for_package(package.id)
    assert [e.action_type for e in entries] == [AuditActionType.PACKAGE_REVOKED]
    assert entries[0].action_details["reason"] == "Duplicate"
    assert AuditService(db).list_for_package(package.id + 1) == []
