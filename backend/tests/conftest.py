import os
import tempfile

# Settings are read once and cached, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret"
os.environ["CERT_SIGNING_SECRET"] = "test-signing-secret"
os.environ["APP_BASE_URL"] = "http://testserver"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "certrbac-test-logs")

import pytest
from fastapi.testclient import TestClient

from certrbac.database import Base, SessionLocal, engine, get_db, init_db
from certrbac.main import app
from certrbac.models.audit import AuditLog
from certrbac.models.user import User
from certrbac.rbac import Role
from certrbac.services.audit_service import AuditService
from certrbac.services.token_service import TokenService
from certrbac.utils.passwords import hash_password

PASSWORD = "Passw0rd!"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def db():
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def factory(role: Role = Role.HOLDER, email: str | None = None, **fields) -> User:
        user = User(
            full_name=fields.pop("full_name", f"{role.value.title()} User"),
            email=email or f"{role.value}@test.com",
            password_hash=PASSWORD_HASH,
            role=role.value,
            is_active=fields.pop("is_active", True),
            login_attempts=0,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return factory


@pytest.fixture
def super_admin(make_user):
    return make_user(Role.SUPER_ADMIN)


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def issuer(make_user):
    return make_user(Role.ISSUER, organization="Test University", department="Registry")


@pytest.fixture
def verifier(make_user):
    return make_user(Role.VERIFIER)


@pytest.fixture
def holder(make_user):
    return make_user(Role.HOLDER, full_name="Holly Holder", national_id="NID-0001")


@pytest.fixture
def tokens():
    return TokenService.from_settings()


@pytest.fixture
def auth(tokens):
    """Authorization header for a user."""
    def header(user: User) -> dict:
        return {"Authorization": f"Bearer {tokens.create_access_token(user)}"}
    return header


@pytest.fixture
def audit_entries(db):
    def query(action: str | None = None) -> list[AuditLog]:
        db.expire_all()
        q = db.query(AuditLog)
        if action:
            q = q.filter(AuditLog.action == action)
        return q.order_by(AuditLog.id.asc()).all()
    return query


@pytest.fixture
def failing_audit_store(monkeypatch):
    def broken_session():
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(AuditService, "session_factory", broken_session)


@pytest.fixture
def password():
    return PASSWORD
