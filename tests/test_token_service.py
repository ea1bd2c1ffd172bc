from datetime import datetime, timedelta, timezone

import jwt

from app.application.services.token_service import TokenService

SECRET = "test-secret-key-with-enough-length-for-hs256"


def make_service(**kwargs):
    return TokenService(secret_key=SECRET, issuer="TenantVerificationSystem", audience="TenantUsers", **kwargs)


def test_issue_then_validate_returns_claims():
    svc = make_service()
    token = svc.issue("account-1", "01712345678", "Tenant")

    claims = svc.validate(token)

    assert claims is not None
    assert claims.subject_id == "account-1"
    assert claims.phone == "01712345678"
    assert claims.role == "Tenant"
    assert claims.expires_at - claims.issued_at == timedelta(minutes=60)


def test_each_token_has_fresh_jti():
    svc = make_service()
    first = jwt.decode(svc.issue("a", "p", "Tenant"), options={"verify_signature": False})
    second = jwt.decode(svc.issue("a", "p", "Tenant"), options={"verify_signature": False})
    assert first["jti"] != second["jti"]
    assert first["iss"] == "TenantVerificationSystem"
    assert first["aud"] == "TenantUsers"


def test_expired_token_is_rejected():
    past = datetime.now(timezone.utc) - timedelta(minutes=61)
    issuer = make_service(clock=lambda: past)
    token = issuer.issue("account-1", "01712345678", "Tenant")

    assert make_service().validate(token) is None


def test_wrong_audience_issuer_or_secret_is_rejected():
    token = make_service().issue("account-1", "01712345678", "Tenant")

    assert TokenService(secret_key=SECRET, issuer="TenantVerificationSystem", audience="Landlords").validate(token) is None
    assert TokenService(secret_key=SECRET, issuer="Someone", audience="TenantUsers").validate(token) is None
    assert TokenService(secret_key="another-secret-key-with-enough-length", issuer="TenantVerificationSystem", audience="TenantUsers").validate(token) is None


def test_garbage_and_tampered_tokens_are_rejected():
    svc = make_service()
    token = svc.issue("account-1", "01712345678", "Tenant")
    header, payload, signature = token.split(".")

    assert svc.validate("not-a-token") is None
    assert svc.validate(f"{header}.{payload}.{signature[::-1]}") is None


def test_token_missing_jti_is_rejected():
    now = datetime.now(timezone.utc)
    token = jwt.encode(
        {"sub": "a", "iat": now, "exp": now + timedelta(minutes=5), "iss": "TenantVerificationSystem", "aud": "TenantUsers"},
        SECRET,
        algorithm="HS256",
    )
    assert make_service().validate(token) is None


def test_expires_in_follows_configuration():
    assert make_service(expire_minutes=15).expires_in == 900
