from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from jose import jwt

from certrbac.errors import TokenExpired, TokenInvalid, TokenTypeInvalid
from certrbac.services.token_service import TokenService, extract_bearer_token

USER = SimpleNamespace(id="user-1", email="issuer@test.com", role="issuer")


def make_service(**overrides) -> TokenService:
    options = dict(access_secret="access-secret", refresh_secret="refresh-secret")
    options.update(overrides)
    return TokenService(**options)


def test_access_token_claims():
    service = make_service()
    claims = service.verify_access_token(service.create_access_token(USER))
    assert claims["sub"] == "user-1"
    assert claims["email"] == "issuer@test.com"
    assert claims["role"] == "issuer"
    assert claims["type"] == "access"
    assert claims["iss"] == "certificate-rbac-system"


def test_token_pair_shape():
    pair = make_service(access_ttl=timedelta(minutes=15)).create_token_pair(USER)
    assert pair.token_type == "bearer"
    assert pair.expires_in == 900
    assert pair.access_token != pair.refresh_token


def test_refresh_tokens_are_unique():
    service = make_service()
    first = service.verify_refresh_token(service.create_refresh_token(USER))
    second = service.verify_refresh_token(service.create_refresh_token(USER))
    assert first["jti"] != second["jti"]


def test_expired_token():
    service = make_service(access_ttl=timedelta(seconds=-5))
    with pytest.raises(TokenExpired):
        service.verify_access_token(service.create_access_token(USER))


def test_wrong_secret_is_invalid():
    token = make_service().create_access_token(USER)
    with pytest.raises(TokenInvalid):
        make_service(access_secret="other-secret").verify_access_token(token)


def test_garbage_token_is_invalid():
    with pytest.raises(TokenInvalid):
        make_service().verify_access_token("not-a-jwt")


def test_refresh_token_rejected_as_access_token():
    with pytest.raises(TokenInvalid):
        service = make_service()
        service.verify_access_token(service.create_refresh_token(USER))


def test_type_mismatch_with_shared_secret_and_audience():
    service = make_service(refresh_secret="access-secret", refresh_audience="certificate-rbac-users")
    with pytest.raises(TokenTypeInvalid):
        service.verify_access_token(service.create_refresh_token(USER))


def test_missing_subject_is_invalid():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {
            "type": "access",
            "iss": "certificate-rbac-system",
            "aud": "certificate-rbac-users",
            "iat": now,
            "exp": now + timedelta(minutes=5),
        },
        "access-secret",
        algorithm="HS256",
    )
    with pytest.raises(TokenInvalid):
        make_service().verify_access_token(token)


def test_wrong_audience_is_invalid():
    token = make_service(audience="someone-else").create_access_token(USER)
    with pytest.raises(TokenInvalid):
        make_service().verify_access_token(token)


@pytest.mark.parametrize("header, expected", [
    ("Bearer abc.def", "abc.def"),
    ("Bearer   ", None),
    ("Basic abc", None),
    ("", None),
    (None, None),
])
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected
