from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from certrbac.database import Base
from certrbac.models.audit import AuditAction, AuditLog, AuditSeverity
from certrbac.rbac import Role
from certrbac.services.audit_service import AuditService, RequestMeta
from certrbac.utils.timeutil import utcnow


def test_log_records_actor_snapshot(db, make_user):
    actor = make_user(Role.ISSUER)
    entry = AuditService.log(
        AuditAction.CERT_CREATE,
        actor=actor,
        resource="certificate",
        resource_id="cert-1",
        meta=RequestMeta(ip_address="10.0.0.1", user_agent="pytest", method="POST", path="/api/certificates"),
        details={"when": utcnow()},
    )
    actor.role = Role.ADMIN.value
    db.commit()

    stored = db.get(AuditLog, entry.id)
    assert stored.performed_by == actor.id
    assert stored.performed_by_role == "issuer"
    assert stored.performed_by_email == "issuer@test.com"
    assert stored.ip_address == "10.0.0.1"
    assert stored.request_path == "/api/certificates"
    assert stored.severity == AuditSeverity.INFO.value
    assert isinstance(stored.details["when"], str)


def test_entries_are_hash_chained(db):
    first = AuditService.log(AuditAction.AUTH_LOGIN, actor_email="a@test.com")
    second = AuditService.log(AuditAction.AUTH_LOGOUT, actor_email="a@test.com")

    assert first.previous_hash == ""
    assert second.previous_hash == first.payload_hash
    assert AuditService.verify_chain(db) == {"valid": True, "total_entries": 2, "broken_at": None}


def test_tampering_is_detected(db):
    AuditService.log(AuditAction.AUTH_LOGIN, actor_email="a@test.com")
    target = AuditService.log(AuditAction.CERT_REVOKE, severity=AuditSeverity.CRITICAL, details={"reason": "fraud"})
    AuditService.log(AuditAction.AUTH_LOGOUT, actor_email="a@test.com")

    db.query(AuditLog).filter(AuditLog.id == target.id).update({"details": {"reason": "typo"}})
    db.commit()
    db.expire_all()

    result = AuditService.verify_chain(db)
    assert result["valid"] is False
    assert result["broken_at"] == target.id


def test_store_failure_is_swallowed(db, failing_audit_store):
    assert AuditService.log(AuditAction.AUTH_LOGIN, actor_email="a@test.com") is None
    assert db.query(AuditLog).count() == 0


def test_chain_continues_after_failed_write(db, monkeypatch):
    first = AuditService.log(AuditAction.AUTH_LOGIN, actor_email="a@test.com")

    def broken_session():
        raise RuntimeError("down")

    monkeypatch.setattr(AuditService, "session_factory", broken_session)
    assert AuditService.log(AuditAction.AUTH_LOGOUT) is None
    monkeypatch.undo()

    third = AuditService.log(AuditAction.AUTH_LOGIN, actor_email="a@test.com")
    assert third.previous_hash == first.payload_hash
    assert AuditService.verify_chain(db)["valid"] is True


def test_concurrent_writers_keep_chain_intact(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'audit.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    monkeypatch.setattr(AuditService, "session_factory", factory)

    def writer(n):
        return [AuditService.log(AuditAction.AUTH_LOGIN, actor_email=f"w{n}@test.com") for _ in range(10)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        written = [entry for batch in pool.map(writer, range(8)) for entry in batch]

    assert None not in written
    session = factory()
    try:
        assert AuditService.verify_chain(session) == {"valid": True, "total_entries": 80, "broken_at": None}
        assert len({e.previous_hash for e in session.query(AuditLog).all()}) == 80
    finally:
        session.close()
        engine.dispose()


def test_search_filters_and_security_events(db, make_user):
    actor = make_user(Role.ADMIN)
    AuditService.log(AuditAction.AUTH_LOGIN, actor=actor)
    AuditService.log(AuditAction.USER_ROLE_ASSIGN, severity=AuditSeverity.WARNING, actor=actor, resource="user")
    AuditService.log(AuditAction.SECURITY_UNAUTHORIZED, success=False)
    AuditService.log(AuditAction.CERT_VIEW, actor=actor, resource="certificate")

    logs, total = AuditService.search(db, user_id=actor.id)
    assert total == 3
    assert [e.action for e in logs][0] == "certificate.view"

    _, total = AuditService.search(db, resource="user")
    assert total == 1
    _, total = AuditService.search(db, start=utcnow() + timedelta(minutes=1))
    assert total == 0

    logs, total = AuditService.search(db, page=2, limit=3)
    assert total == 4 and len(logs) == 1

    events, total = AuditService.security_events(db)
    assert total == 2
    assert {e.action for e in events} == {"user.role_assign", "security.unauthorized"}
