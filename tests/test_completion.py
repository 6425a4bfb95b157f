from app.models.package import AssignedUser, Package, PackageField
from app.services.completion_service import (
    ParticipantStatus,
    evaluate_participant,
    is_package_complete,
    is_value_present,
    package_progress_percent,
    participant_status,
)


def _field(field_id, type="text", required=True, value=None, assignees=()):
    field = PackageField(field_id=field_id, type=type, required=required, label=field_id, value=value)
    for participant_id, role, signed in assignees:
        field.assigned_users.append(AssignedUser(
            participant_id=participant_id,
            contact_id=1,
            contact_name=participant_id,
            contact_email=f"{participant_id}@example.com",
            role=role,
            signed=signed,
        ))
    return field


def _package(*fields):
    return Package(name="Doc", file_url="doc.pdf", status="Sent", fields=list(fields))


def test_value_presence_rules():
    assert is_value_present("x")
    assert is_value_present(0)
    assert is_value_present(True)
    assert not is_value_present(None)
    assert not is_value_present("   ")
    assert not is_value_present(False)
    assert not is_value_present([])


def test_signature_field_complete_only_when_assignment_signed():
    package = _package(_field("sig", type="signature", assignees=[("p1", "Signer", False)]))
    assert not evaluate_participant(package, "p1").completed

    package.fields[0].assigned_users[0].signed = True
    assert evaluate_participant(package, "p1").completed


def test_only_required_fields_block_completion():
    package = _package(
        _field("name", value="Alice", assignees=[("p1", "FormFiller", False)]),
        _field("notes", required=False, assignees=[("p1", "FormFiller", False)]),
    )
    progress = evaluate_participant(package, "p1")
    assert progress.completed
    assert progress.required_total == 1
    assert progress.progress_percent == 50


def test_unticked_checkbox_does_not_count():
    package = _package(_field("agree", type="checkbox", value=False, assignees=[("p1", "Approver", False)]))
    assert not evaluate_participant(package, "p1").completed


def test_package_complete_requires_every_participant():
    package = _package(
        _field("sig_a", type="signature", assignees=[("p1", "Signer", True)]),
        _field("sig_b", type="signature", assignees=[("p2", "Signer", False)]),
    )
    assert not is_package_complete(package)

    package.fields[1].assigned_users[0].signed = True
    assert is_package_complete(package)
    assert package_progress_percent(package) == 100


def test_package_without_assignments_is_never_complete():
    assert not is_package_complete(_package(_field("orphan")))


def test_participant_status_values():
    package = _package(
        _field("sig", type="signature", assignees=[("p1", "Signer", True)]),
        _field("name", assignees=[("p2", "FormFiller", False)]),
    )
    assert participant_status(package, "p1") == ParticipantStatus.COMPLETED
    assert participant_status(package, "p2") == ParticipantStatus.PENDING
    assert participant_status(package, "receiver") == ParticipantStatus.NOT_APPLICABLE
