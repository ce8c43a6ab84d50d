from certrbac.models.certificate import Certificate, CertificateVerification


def test_end_to_end_issue_verify_revoke(client, issuer, auth, db, audit_entries):
    response = client.post("/api/auth/register", json={
        "full_name": "Harper Holder",
        "email": "h@test.com",
        "password": "Pw12345!",
    })
    assert response.status_code == 201

    response = client.post("/api/auth/login", json={"email": "h@test.com", "password": "Pw12345!"})
    assert response.status_code == 200
    holder_id = response.json()["user"]["id"]

    response = client.post("/api/certificates", json={
        "title": "Data Protection Officer",
        "type": "professional",
        "holder_email": "h@test.com",
    }, headers=auth(issuer))
    assert response.status_code == 201
    certificate = response.json()["certificate"]
    assert certificate["status"] == "active"
    assert certificate["holder_id"] == holder_id
    assert db.get(Certificate, certificate["id"]).digital_signature

    token = certificate["verification_token"]
    response = client.get(f"/api/verify/{token}")
    assert response.status_code == 200
    body = response.json()
    assert body["result"] == "valid"
    assert body["is_valid"] is True
    assert body["certificate"]["certificate_id"] == certificate["certificate_id"]
    assert "digital_signature" not in body["certificate"]
    assert "checksum" not in body["certificate"]

    response = client.put(
        f"/api/certificates/{certificate['id']}/revoke",
        json={"reason": "policy violation"},
        headers=auth(issuer),
    )
    assert response.status_code == 200

    response = client.get(f"/api/verify/{token}")
    body = response.json()
    assert body["result"] == "revoked"
    assert body["is_valid"] is False
    assert "policy violation" in body["message"]

    verifications = audit_entries("certificate.verify")
    assert [e.success for e in verifications] == [True, False]
    assert [e.details["result"] for e in verifications] == ["valid", "revoked"]


def test_unknown_token(client, audit_entries):
    response = client.get("/api/verify/" + "0" * 64)
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "CERT_NOT_FOUND"
    assert body["result"] == "invalid"

    [entry] = audit_entries("certificate.verify_failed")
    assert entry.severity == "warning"
    assert entry.details["tokenPrefix"] == "00000000"


def test_every_attempt_is_recorded(client, issuer, holder, verifier, auth, db):
    certificate = client.post("/api/certificates", json={
        "title": "First Aid",
        "type": "medical",
        "holder_id": holder.id,
    }, headers=auth(issuer)).json()["certificate"]
    token = certificate["verification_token"]

    client.get(f"/api/verify/{token}")
    client.post(f"/api/verify/{token}", headers=auth(verifier))
    client.get(f"/api/verify/{token}", headers={"Authorization": "Bearer expired-or-garbage"})

    db.expire_all()
    rows = (
        db.query(CertificateVerification)
        .filter(CertificateVerification.certificate_pk == certificate["id"])
        .order_by(CertificateVerification.id)
        .all()
    )
    assert [r.verified_by for r in rows] == [None, verifier.id, None]
    assert {r.result for r in rows} == {"valid"}

    detail = client.get(f"/api/certificates/{certificate['id']}", headers=auth(issuer)).json()["certificate"]
    assert len(detail["verification_history"]) == 3


def test_tampered_certificate_fails_verification(client, issuer, holder, auth, db):
    certificate = client.post("/api/certificates", json={
        "title": "Original Title",
        "type": "training",
        "holder_id": holder.id,
    }, headers=auth(issuer)).json()["certificate"]

    stored = db.get(Certificate, certificate["id"])
    stored.title = "Forged Title"
    db.commit()

    body = client.get(f"/api/verify/{certificate['verification_token']}").json()
    assert body["result"] == "invalid"
    assert "tampered" in body["message"]


def test_public_endpoints(client, db):
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["database"] == "connected"

    info = client.get("/api/rbac/info").json()
    roles = {r["role"]: r for r in info["roles"]}
    assert set(roles) == {"super_admin", "admin", "issuer", "verifier", "holder"}
    assert roles["holder"]["permissions"] == [
        "certificate:read:own", "certificate:verify", "user:read:own", "user:update:own",
    ]
    assert info["hierarchy"][0] == "holder"
