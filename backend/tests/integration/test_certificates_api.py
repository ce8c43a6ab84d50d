from datetime import timedelta

import pytest

from certrbac.config import get_settings
from certrbac.models.certificate import Certificate
from certrbac.services.certificate_service import build_certificate
from certrbac.utils.timeutil import utcnow


def certificate_payload(**overrides):
    payload = {
        "title": "Advanced Cryptography",
        "type": "professional",
        "holder_email": "holder@test.com",
        "skills": ["hmac", "sha-256"],
        "tags": [" Security ", "CRYPTO"],
        "score": 91.5,
        "grade": "A",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def issued(client, issuer, holder, auth):
    response = client.post("/api/certificates", json=certificate_payload(), headers=auth(issuer))
    assert response.status_code == 201
    return response.json()["certificate"]


@pytest.fixture
def pending(db, issuer, holder):
    certificate = build_certificate(
        title="Pending Award",
        type="achievement",
        holder_id=holder.id,
        holder_name=holder.full_name,
        issued_by=issuer.id,
        issuer_name=issuer.full_name,
        issuing_organization="Test University",
        base_url=get_settings().APP_BASE_URL,
    )
    db.add(certificate)
    db.commit()
    db.refresh(certificate)
    return certificate


def test_issuer_creates_signed_active_certificate(issued, holder, issuer, db, audit_entries):
    assert issued["status"] == "active"
    assert issued["holder_id"] == holder.id
    assert issued["holder_name"] == "Holly Holder"
    assert issued["issuing_organization"] == "Test University"
    assert issued["issuing_department"] == "Registry"
    assert issued["tags"] == ["security", "crypto"]
    assert issued["signed_at"] is not None
    assert issued["qr_code"].startswith("data:image/png;base64,")
    assert issued["verification_url"].endswith(issued["verification_token"])
    assert "digital_signature" not in issued

    stored = db.get(Certificate, issued["id"])
    assert len(stored.digital_signature) == 64

    [entry] = audit_entries("certificate.create")
    assert entry.performed_by == issuer.id
    assert entry.details["signed"] is True
    assert entry.details["certificateId"] == issued["certificate_id"]


def test_holder_cannot_create(client, holder, auth, audit_entries):
    response = client.post("/api/certificates", json=certificate_payload(), headers=auth(holder))
    assert response.status_code == 403
    assert response.json()["requiredPermission"] == "certificate:create"
    assert len(audit_entries("security.forbidden")) == 1
    assert audit_entries("certificate.create") == []


def test_holder_resolution_errors(client, issuer, holder, auth):
    response = client.post(
        "/api/certificates", json=certificate_payload(holder_email="nobody@test.com"), headers=auth(issuer),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "HOLDER_NOT_FOUND"

    payload = certificate_payload()
    del payload["holder_email"]
    response = client.post("/api/certificates", json=payload, headers=auth(issuer))
    assert response.status_code == 400
    assert response.json()["code"] == "HOLDER_REQUIRED"

    response = client.post(
        "/api/certificates", json=certificate_payload(holder_email=None, holder_id=holder.id), headers=auth(issuer),
    )
    assert response.status_code == 201


@pytest.mark.parametrize("overrides", [
    {"score": 150},
    {"type": "honorary"},
    {"title": "x" * 201},
])
def test_create_validation(client, issuer, holder, auth, overrides):
    response = client.post("/api/certificates", json=certificate_payload(**overrides), headers=auth(issuer))
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_issuing_organization_required(client, admin, holder, auth):
    response = client.post("/api/certificates", json=certificate_payload(), headers=auth(admin))
    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "issuing_organization"

    response = client.post(
        "/api/certificates",
        json=certificate_payload(issuing_organization="Ministry of Education"),
        headers=auth(admin),
    )
    assert response.status_code == 201


def test_sign_pending_certificate(client, pending, issuer, auth, audit_entries):
    response = client.post(f"/api/certificates/{pending.id}/sign", headers=auth(issuer))
    assert response.status_code == 200
    assert response.json()["certificate"]["status"] == "active"

    response = client.post(f"/api/certificates/{pending.id}/sign", headers=auth(issuer))
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATUS"
    assert len(audit_entries("certificate.sign")) == 1


def test_pending_certificate_does_not_verify(client, pending):
    response = client.get(f"/api/verify/{pending.verification_token}")
    assert response.status_code == 200
    assert response.json()["result"] == "invalid"


def test_revoke_twice(client, issued, issuer, auth, audit_entries, db):
    url = f"/api/certificates/{issued['id']}/revoke"
    response = client.put(url, json={"reason": "policy violation"}, headers=auth(issuer))
    assert response.status_code == 200
    certificate = response.json()["certificate"]
    assert certificate["status"] == "revoked"
    assert certificate["revocation_reason"] == "policy violation"
    assert certificate["revoked_by"] == issuer.id
    assert certificate["revoked_at"] is not None

    response = client.put(url, json={"reason": "again"}, headers=auth(issuer))
    assert response.status_code == 400
    assert response.json()["code"] == "ALREADY_REVOKED"

    db.expire_all()
    assert db.get(Certificate, issued["id"]).revocation_reason == "policy violation"

    [entry] = audit_entries("certificate.revoke")
    assert entry.severity == "critical"
    assert entry.changes == {"before": {"status": "active"}, "after": {"status": "revoked"}}


def test_revoke_without_reason(client, issued, issuer, auth):
    response = client.put(f"/api/certificates/{issued['id']}/revoke", headers=auth(issuer))
    assert response.status_code == 200
    assert response.json()["certificate"]["revocation_reason"] == "No reason provided"


def test_revoke_reason_too_long(client, issued, issuer, auth):
    response = client.put(
        f"/api/certificates/{issued['id']}/revoke", json={"reason": "r" * 501}, headers=auth(issuer),
    )
    assert response.status_code == 422


def test_verifier_cannot_revoke(client, issued, verifier, auth):
    response = client.put(f"/api/certificates/{issued['id']}/revoke", json={}, headers=auth(verifier))
    assert response.status_code == 403
    assert response.json()["code"] == "PERMISSION_DENIED"


def test_missing_certificate(client, issuer, auth):
    response = client.get("/api/certificates/nope", headers=auth(issuer))
    assert response.status_code == 404
    assert response.json()["code"] == "CERT_NOT_FOUND"


def test_holder_sees_only_own_certificates(client, issued, issuer, holder, make_user, auth, audit_entries):
    other = make_user(email="other@test.com")
    client.post(
        "/api/certificates", json=certificate_payload(holder_email="other@test.com"), headers=auth(issuer),
    )

    response = client.get("/api/certificates", headers=auth(holder))
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["certificates"][0]["id"] == issued["id"]

    assert client.get("/api/certificates", headers=auth(issuer)).json()["pagination"]["total"] == 2

    assert client.get(f"/api/certificates/{issued['id']}", headers=auth(holder)).status_code == 200
    response = client.get(f"/api/certificates/{issued['id']}", headers=auth(other))
    assert response.status_code == 403
    assert response.json()["code"] == "OWNERSHIP_REQUIRED"

    [denied] = audit_entries("certificate.access_denied")
    assert denied.severity == "warning"
    assert denied.performed_by == other.id
    assert len(audit_entries("certificate.view")) == 1


def test_list_filters(client, issued, issuer, auth):
    headers = auth(issuer)
    assert client.get("/api/certificates", params={"status": "revoked"}, headers=headers).json()["certificates"] == []
    assert client.get("/api/certificates", params={"type": "professional"}, headers=headers).json()["pagination"]["total"] == 1
    assert client.get("/api/certificates", params={"search": "Cryptography"}, headers=headers).json()["pagination"]["total"] == 1


def test_export_by_holder_and_exporter_only(client, issued, holder, issuer, verifier, auth, audit_entries):
    response = client.get(f"/api/certificates/{issued['id']}/export", headers=auth(holder))
    assert response.status_code == 200
    export = response.json()["export"]
    assert export["holder"]["email"] == "holder@test.com"
    assert export["verification"]["checksum"] == issued["checksum"]
    assert "digital_signature" not in export["verification"]

    assert client.get(f"/api/certificates/{issued['id']}/export", headers=auth(issuer)).status_code == 200

    response = client.get(f"/api/certificates/{issued['id']}/export", headers=auth(verifier))
    assert response.status_code == 403
    assert len(audit_entries("certificate.export")) == 2


def test_expire_sweep(client, issuer, holder, auth, audit_entries):
    past = (utcnow() - timedelta(days=1)).isoformat()
    future = (utcnow() + timedelta(days=30)).isoformat()
    expired = client.post("/api/certificates", json=certificate_payload(expires_at=past), headers=auth(issuer)).json()
    current = client.post("/api/certificates", json=certificate_payload(expires_at=future), headers=auth(issuer)).json()

    response = client.post("/api/certificates/expire", headers=auth(issuer))
    assert response.status_code == 200
    assert response.json()["expired"] == 1

    headers = auth(issuer)
    assert client.get(f"/api/certificates/{expired['certificate']['id']}", headers=headers).json()["certificate"]["status"] == "expired"
    assert client.get(f"/api/certificates/{current['certificate']['id']}", headers=headers).json()["certificate"]["status"] == "active"

    assert client.post("/api/certificates/expire", headers=headers).json()["expired"] == 0
    assert [e.details["expired"] for e in audit_entries("certificate.expire_sweep")] == [1, 0]


def test_certificate_stats(client, issued, issuer, holder, auth):
    stats = client.get("/api/certificates/stats", headers=auth(issuer)).json()["stats"]
    assert stats["summary"]["total"] == 1
    assert stats["summary"]["active"] == 1
    assert stats["by_type"] == {"professional": 1}

    holder_stats = client.get("/api/certificates/stats", headers=auth(holder)).json()["stats"]
    assert holder_stats["summary"]["total"] == 1


def test_failing_audit_store_does_not_fail_operations(client, issuer, holder, auth, failing_audit_store, db):
    response = client.post("/api/certificates", json=certificate_payload(), headers=auth(issuer))
    assert response.status_code == 201
    certificate_id = response.json()["certificate"]["id"]

    response = client.put(f"/api/certificates/{certificate_id}/revoke", json={"reason": "test"}, headers=auth(issuer))
    assert response.status_code == 200
    assert response.json()["certificate"]["status"] == "revoked"

    response = client.get("/api/users", headers=auth(holder))
    assert response.status_code == 403
