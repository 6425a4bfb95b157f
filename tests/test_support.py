import pytest
from fastapi import APIRouter

from app.api.api_v1.participants import router as participants_router
from app.core.exceptions import NotFoundError
from app.core.permissions import Permission, get_all_permissions, has_permission
from app.middleware.request_context_middleware import normalize_ip
from app.main import app
from app.services.file_store import LocalFileStore


def test_receivers_are_record_only():
    assert has_permission(["Receiver"], Permission.PACKAGE_VIEW)
    assert not has_permission(["Receiver"], Permission.PACKAGE_REJECT)
    assert not has_permission(["Receiver"], Permission.PARTICIPANT_REASSIGN)
    assert not has_permission([], Permission.PACKAGE_VIEW)


def test_roles_combine():
    assert has_permission(["Approver", "Signer"], Permission.SIGNATURE_SIGN)
    assert not has_permission(["Approver", "FormFiller"], Permission.SIGNATURE_SIGN)
    assert "signature.sign" in get_all_permissions(["Receiver", "Signer"])


@pytest.mark.parametrize(
    "raw,expected",
    [("::ffff:10.1.2.3", "10.1.2.3"), (" 10.0.0.1 ", "10.0.0.1"), ("2001:db8::1", "2001:db8::1")],
)
def test_normalize_ip(raw, expected):
    assert normalize_ip(raw) == expected


def test_local_file_store(tmp_path):
    (tmp_path / "packages").mkdir()
    (tmp_path / "packages" / "doc.pdf").write_bytes(b"%PDF")
    store = LocalFileStore(str(tmp_path))

    assert store.read("packages/doc.pdf") == b"%PDF"
    assert store.read("https://files.example.com/packages/doc.pdf") == b"%PDF"

    with pytest.raises(NotFoundError):
        store.read("packages/missing.pdf")
    with pytest.raises(NotFoundError):
        store.read("../outside.pdf")


def test_everyone_may_add_receivers():
    for role in ("Signer", "Approver", "FormFiller", "Receiver"):
        assert has_permission([role], Permission.RECEIVER_ADD)
        assert has_permission([role], Permission.PACKAGE_DOWNLOAD)


def test_participant_routes_are_mounted_under_prefix():
    assert isinstance(participants_router, APIRouter)
    paths = {route.path for route in app.routes}
    assert "/packages/participant/{package_id}/{participant_id}" in paths
    assert "/packages/participant/{package_id}/{participant_id}/reject" in paths
