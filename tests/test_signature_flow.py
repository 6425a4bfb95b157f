from datetime import timedelta

import pytest

from app.core.exceptions import AuthConfigError, RateLimitedError
from app.models.audit import AuditLog
from app.models.otp import OTPRecord
from app.models.package import PackageStatus
from app.services.audit_service import AuditActionType
from app.utils.datetime_helpers import utcnow

from tests.conftest import FIXED_OTP

BASE = "/packages/participant"


def _url(package, participant_id, action):
    return f"{BASE}/{package.id}/{participant_id}/{action}"


@pytest.fixture
def single_signer(factory, owner, alice):
    package = factory.package(owner)
    factory.field(package, "sig", assignees=[(alice, "p-alice", "Signer")])
    return package


@pytest.fixture
def two_signers(factory, owner, alice, bob):
    package = factory.package(owner)
    factory.field(package, "sig_alice", assignees=[(alice, "p-alice", "Signer")])
    factory.field(package, "sig_bob", assignees=[(bob, "p-bob", "Signer")])
    return package


def test_email_otp_completes_after_wrong_attempt(client, factory, single_signer, email_gateway):
    r = client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "ALICE@example.com"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data == {"sent": True, "method": "Email OTP", "expiresIn": 60, "recipient": "al***@example.com"}
    assert email_gateway.sent[0]["recipient"] == "alice@example.com"
    assert email_gateway.sent[0]["subject"] == "Your Signature Verification Code"
    assert FIXED_OTP in email_gateway.sent[0]["message"]

    r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": "000000"})
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["kind"] == "otp_mismatch"
    assert body["attemptsRemaining"] == 4

    r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": FIXED_OTP})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["packageCompleted"] is True
    assert data["signedFields"] == ["sig"]

    package = factory.reload(single_signer.id)
    assert package.status == PackageStatus.COMPLETED.value
    field = package.fields[0]
    assert field.value["method"] == "Email OTP"
    assert field.value["email"] == "alice@example.com"
    assert field.value["signedBy"] == "Alice Signer"
    assert field.value["otpCode"] == "****56"
    assignment = field.assigned_users[0]
    assert assignment.signed is True
    assert assignment.signed_ip == "testclient"

    # Completion notices went to the participant and the owner
    subjects = [m["subject"] for m in email_gateway.sent[1:]]
    assert subjects == ["Document Completed: Service Agreement"] * 2


def test_code_is_single_use(client, db, two_signers):
    client.post(_url(two_signers, "p-alice", "send-otp"), json={"fieldId": "sig_alice", "email": "alice@example.com"})

    first = client.post(_url(two_signers, "p-alice", "verify-otp"), json={"fieldId": "sig_alice", "otp": FIXED_OTP})
    assert first.status_code == 200
    assert first.json()["data"]["packageStatus"] == PackageStatus.SENT.value

    second = client.post(_url(two_signers, "p-alice", "verify-otp"), json={"fieldId": "sig_alice", "otp": FIXED_OTP})
    assert second.status_code == 410
    assert second.json()["kind"] == "otp_expired"

    signatures = db.query(AuditLog).filter(AuditLog.action_type == AuditActionType.SIGNATURE_COMPLETED).count()
    assert signatures == 1


def test_owner_gets_progress_update_while_others_are_pending(client, two_signers, email_gateway):
    client.post(_url(two_signers, "p-alice", "send-otp"), json={"fieldId": "sig_alice", "email": "alice@example.com"})
    r = client.post(_url(two_signers, "p-alice", "verify-otp"), json={"fieldId": "sig_alice", "otp": FIXED_OTP})
    assert r.json()["data"]["packageCompleted"] is False

    update = email_gateway.sent[-1]
    assert update["recipient"] == "owner@example.com"
    assert update["subject"] == "Progress Update on: Service Agreement"
    assert "Alice Signer has signed their part" in update["message"]
    assert "Completed: Alice Signer. Pending: Bob Approver." in update["message"]


def test_attempts_are_capped(client, db, single_signer):
    client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "alice@example.com"})

    remaining = []
    for _ in range(5):
        r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": "999999"})
        assert r.status_code == 400
        remaining.append(r.json()["attemptsRemaining"])
    assert remaining == [4, 3, 2, 1, 0]
    assert db.query(OTPRecord).count() == 0

    r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": FIXED_OTP})
    assert r.status_code == 410


def test_expired_code_is_rejected_and_removed(client, db, single_signer):
    client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "alice@example.com"})
    record = db.query(OTPRecord).one()
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": FIXED_OTP})
    assert r.status_code == 410
    assert db.query(OTPRecord).count() == 0


def test_new_send_replaces_previous_code(client, db, single_signer, email_gateway):
    for _ in range(2):
        r = client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "alice@example.com"})
        assert r.status_code == 200
    assert len(email_gateway.sent) == 2
    assert db.query(OTPRecord).count() == 1


def test_malformed_email_fails_request_validation(client, single_signer, email_gateway):
    r = client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "alice@example..com"})
    assert r.status_code == 400
    assert r.json()["kind"] == "validation_error"
    assert email_gateway.sent == []


def test_email_must_match_assignment(client, db, single_signer, email_gateway):
    r = client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "mallory@example.com"})
    assert r.status_code == 400
    assert r.json()["kind"] == "validation_error"
    assert email_gateway.sent == []
    assert db.query(OTPRecord).count() == 0


def test_sms_otp_uses_normalized_number(client, factory, single_signer, sms_gateway):
    r = client.post(_url(single_signer, "p-alice", "send-sms-otp"), json={"fieldId": "sig", "phone": "0499123456"})
    assert r.status_code == 200
    assert r.json()["data"]["recipient"] == "********3456"
    assert sms_gateway.sent[0]["recipient"] == "+92499123456"
    assert FIXED_OTP in sms_gateway.sent[0]["message"]
    assert sms_gateway.sent[0]["subject"] is None

    r = client.post(_url(single_signer, "p-alice", "verify-sms-otp"), json={"fieldId": "sig", "otp": FIXED_OTP})
    assert r.status_code == 200

    field = factory.reload(single_signer.id).fields[0]
    assert field.value["method"] == "SMS OTP"
    assert field.value["phone"] == "+92499123456"


def test_sms_code_cannot_be_verified_as_email(client, single_signer):
    client.post(_url(single_signer, "p-alice", "send-sms-otp"), json={"fieldId": "sig", "phone": "+92499123456"})
    r = client.post(_url(single_signer, "p-alice", "verify-otp"), json={"fieldId": "sig", "otp": FIXED_OTP})
    assert r.status_code == 410


@pytest.mark.parametrize(
    "error,status,retryable",
    [
        (RateLimitedError("429 from gateway"), 429, True),
        (AuthConfigError("401 from gateway"), 503, False),
    ],
)
def test_gateway_failure_discards_previous_code(client, db, single_signer, sms_gateway, error, status, retryable):
    client.post(_url(single_signer, "p-alice", "send-sms-otp"), json={"fieldId": "sig", "phone": "0499123456"})
    assert db.query(OTPRecord).count() == 1

    sms_gateway.fail_with = error
    r = client.post(_url(single_signer, "p-alice", "send-sms-otp"), json={"fieldId": "sig", "phone": "0499123456"})
    assert r.status_code == status
    assert r.json()["retryable"] is retryable
    assert db.query(OTPRecord).count() == 0


def test_only_signers_may_request_codes(client, factory, owner, bob):
    package = factory.package(owner)
    factory.field(package, "approve", type="checkbox", assignees=[(bob, "p-bob", "Approver")])
    factory.field(package, "sig", assignees=[(bob, "p-bob", "Approver")])

    r = client.post(_url(package, "p-bob", "send-otp"), json={"fieldId": "sig", "email": "bob@example.com"})
    assert r.status_code == 403

    r = client.post(_url(package, "p-bob", "send-otp"), json={"fieldId": "approve", "email": "bob@example.com"})
    assert r.status_code == 400


def test_unknown_participant_and_field(client, single_signer):
    r = client.post(_url(single_signer, "nobody", "send-otp"), json={"fieldId": "sig", "email": "alice@example.com"})
    assert r.status_code == 404

    r = client.post(_url(single_signer, "p-alice", "send-otp"), json={"fieldId": "nope", "email": "alice@example.com"})
    assert r.status_code == 404


def test_one_verification_signs_every_open_signature_field(client, factory, owner, alice):
    package = factory.package(owner)
    factory.field(package, "sig_page1", assignees=[(alice, "p-alice", "Signer")])
    factory.field(package, "sig_page2", assignees=[(alice, "p-alice", "Signer")])

    client.post(_url(package, "p-alice", "send-otp"), json={"fieldId": "sig_page2", "email": "alice@example.com"})
    r = client.post(_url(package, "p-alice", "verify-otp"), json={"fieldId": "sig_page2", "otp": FIXED_OTP})

    assert sorted(r.json()["data"]["signedFields"]) == ["sig_page1", "sig_page2"]
    assert factory.reload(package.id).status == PackageStatus.COMPLETED.value


@pytest.mark.parametrize("order", [("alice", "bob"), ("bob", "alice")])
def test_two_signers_complete_in_either_order(client, factory, two_signers, order):
    people = {
        "alice": ("p-alice", "sig_alice", "alice@example.com"),
        "bob": ("p-bob", "sig_bob", "bob@example.com"),
    }
    statuses = []
    for name in order:
        participant_id, field_id, email = people[name]
        client.post(_url(two_signers, participant_id, "send-otp"), json={"fieldId": field_id, "email": email})
        r = client.post(_url(two_signers, participant_id, "verify-otp"), json={"fieldId": field_id, "otp": FIXED_OTP})
        assert r.status_code == 200
        statuses.append(r.json()["data"]["packageStatus"])

    assert statuses == [PackageStatus.SENT.value, PackageStatus.COMPLETED.value]
    assert factory.reload(two_signers.id).status == PackageStatus.COMPLETED.value


def test_no_codes_on_finalized_package(client, factory, owner, alice):
    package = factory.package(owner, status=PackageStatus.COMPLETED.value)
    factory.field(package, "sig", assignees=[(alice, "p-alice", "Signer")])

    r = client.post(_url(package, "p-alice", "send-otp"), json={"fieldId": "sig", "email": "alice@example.com"})
    assert r.status_code == 409
    assert r.json()["kind"] == "package_finalized"
