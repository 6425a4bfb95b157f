import uuid
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.dependencies import get_email_gateway, get_file_store, get_sms_gateway
from app.core.exceptions import NotFoundError, SigningWorkflowError
from app.main import app
from app.models.contact import Contact
from app.models.package import (
    AssignedUser,
    Package,
    PackageField,
    PackageReceiver,
    PackageStatus,
    SignatureMethod,
)
from app.models.user import User
from app.services.file_store import FileStore
from app.services.otp_gateway import GatewayResult, OtpGateway
from app.services.template_store import InMemoryTemplateStore


FIXED_OTP = "123456"
BOTH_METHODS = [SignatureMethod.EMAIL_OTP.value, SignatureMethod.SMS_OTP.value]

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


class RecordingGateway(OtpGateway):
    """Keeps every message instead of delivering it; `fail_with` simulates gateway faults"""

    def __init__(self, method: SignatureMethod):
        self.method = method
        self.sent: List[dict] = []
        self.fail_with: Optional[SigningWorkflowError] = None

    async def send(self, recipient, message, subject=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"recipient": recipient, "message": message, "subject": subject})
        return GatewayResult(success=True, recipient=recipient, message_id=f"msg-{len(self.sent)}")


class MemoryFileStore(FileStore):
    def __init__(self):
        self.files = {}

    def read(self, file_url):
        if file_url not in self.files:
            raise NotFoundError(f"File not found: {file_url}", "Document file not found.")
        return self.files[file_url]


class Factory:
    """Seeds owners, contacts and packages"""

    def __init__(self, db):
        self.db = db

    def owner(self, email="owner@example.com", first_name="Olivia", last_name="Owner"):
        user = User(email=email, first_name=first_name, last_name=last_name)
        self.db.add(user)
        self.db.commit()
        return user

    def contact(self, owner, first_name, last_name, email, phone=None, language="en"):
        contact = Contact(
            owner_id=owner.id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            language=language,
        )
        self.db.add(contact)
        self.db.commit()
        return contact

    def package(self, owner, name="Service Agreement", status=PackageStatus.SENT.value, **options):
        package = Package(
            owner_id=owner.id,
            name=name,
            file_url="packages/service-agreement.pdf",
            status=status,
            **options,
        )
        self.db.add(package)
        self.db.commit()
        return package

    def field(
        self,
        package,
        field_id,
        type="signature",
        required=True,
        assignees=(),
        label=None,
        options=None,
        value=None,
    ):
        """`assignees` is a sequence of (contact, participant_id, role) tuples"""
        field = PackageField(
            package_id=package.id,
            field_id=field_id,
            type=type,
            required=required,
            label=label or field_id.replace("_", " ").title(),
            options=options,
            value=value,
        )
        for contact, participant_id, role in assignees:
            field.assigned_users.append(AssignedUser(
                participant_id=participant_id,
                contact_id=contact.id,
                contact_name=contact.full_name,
                contact_email=contact.email,
                contact_phone=contact.phone,
                role=role,
                signature_methods=list(BOTH_METHODS) if type == "signature" else [],
            ))
        self.db.add(field)
        self.db.commit()
        return field

    def receiver(self, package, contact, participant_id=None):
        receiver = PackageReceiver(
            package_id=package.id,
            participant_id=participant_id or str(uuid.uuid4()),
            contact_id=contact.id,
            contact_name=contact.full_name,
            contact_email=contact.email,
        )
        self.db.add(receiver)
        self.db.commit()
        return receiver

    def reload(self, package_id):
        self.db.expire_all()
        return self.db.get(Package, package_id)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def templates():
    return InMemoryTemplateStore(["en", "es", "fr", "de", "it", "el"])


@pytest.fixture
def email_gateway():
    return RecordingGateway(SignatureMethod.EMAIL_OTP)


@pytest.fixture
def sms_gateway():
    return RecordingGateway(SignatureMethod.SMS_OTP)


@pytest.fixture
def file_store():
    return MemoryFileStore()


@pytest.fixture(autouse=True)
def fixed_otp(monkeypatch):
    monkeypatch.setattr("app.services.signature_service.generate_otp", lambda length: FIXED_OTP)
    return FIXED_OTP


@pytest.fixture
def client(db, email_gateway, sms_gateway, file_store):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_gateway] = lambda: email_gateway
    app.dependency_overrides[get_sms_gateway] = lambda: sms_gateway
    app.dependency_overrides[get_file_store] = lambda: file_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def owner(factory):
    return factory.owner()


@pytest.fixture
def alice(factory, owner):
    return factory.contact(owner, "Alice", "Signer", "alice@example.com", phone="0499123456")


@pytest.fixture
def bob(factory, owner):
    return factory.contact(owner, "Bob", "Approver", "bob@example.com", phone="+31612345678")


@pytest.fixture
def carol(factory, owner):
    return factory.contact(owner, "Carol", "Delegate", "carol@example.com")
