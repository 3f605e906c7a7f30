"""
Integration tests for registration, /auth/me, logout and token handling.
"""
from marketplace.db.models.enums import UserRole, UserStatus
from marketplace.db.models.notification import Notification
from marketplace.db.models.user import User
from marketplace.services.identity_provider import IdentityProviderError


def test_register_creates_provider_and_local_user(client, db, identity_client):
    response = client.post("/auth/register", json={
        "email": "Ana@Example.com",
        "password": "s3cret-passw0rd",
        "first_name": "Ana",
        "last_name": "Souza",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "ana@example.com"
    assert body["name"] == "Ana Souza"
    assert body["role"] == "USER"
    assert body["status"] == "PENDING"
    assert identity_client.created == ["ana@example.com"]

    user = db.query(User).filter(User.email == "ana@example.com").one()
    assert user.external_id == "user_1"
    assert db.query(Notification).one().template == "welcome"


def test_register_duplicate_email_returns_409(client, make_user, identity_client):
    make_user(email="taken@example.com")

    response = client.post("/auth/register", json={
        "email": "taken@example.com", "password": "s3cret-passw0rd", "first_name": "T",
    })

    assert response.status_code == 409
    assert identity_client.created == []


def test_register_existing_provider_account_returns_409(client, identity_client):
    identity_client.error = IdentityProviderError(
        "That email address is taken.", status_code=422,
        errors=[{"code": "form_identifier_exists", "message": "That email address is taken."}],
    )

    response = client.post("/auth/register", json={
        "email": "new@example.com", "password": "s3cret-passw0rd", "first_name": "N",
    })

    assert response.status_code == 409


def test_register_weak_password_rejected_by_provider(client, identity_client):
    identity_client.error = IdentityProviderError(
        "Password has been found in an online data breach.", status_code=422,
        errors=[{"code": "form_password_pwned", "message": "Password has been found in an online data breach.",
                 "meta": {"param_name": "password"}}],
    )

    response = client.post("/auth/register", json={
        "email": "new@example.com", "password": "password123", "first_name": "N",
    })

    assert response.status_code == 400
    assert response.json()["errors"] == [
        {"field": "password", "message": "Password has been found in an online data breach."}
    ]


def test_register_validation_error_shape(client):
    response = client.post("/auth/register", json={"email": "not-an-email", "password": "short", "first_name": "A"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation error"
    fields = {err["field"] for err in body["errors"]}
    assert {"email", "password"} <= fields


def test_me_requires_token(client):
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["message"] == "Authentication token missing"


def test_me_returns_current_user(client, make_user):
    user, headers = make_user(role=UserRole.EDITOR)

    response = client.get("/auth/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["id"] == user.id
    assert response.json()["role"] == "EDITOR"


def test_failed_verification_reason_is_reported(client):
    response = client.get("/auth/me", headers={"Authorization": "Bearer expired_abc"})

    assert response.status_code == 401
    assert response.json()["message"] == "Authentication failed: expired"


def test_inactive_user_is_rejected(client, make_user):
    _, headers = make_user(status=UserStatus.INACTIVE)

    response = client.get("/auth/me", headers=headers)

    assert response.status_code == 401
    assert response.json()["message"] == "User inactive"


def test_first_sign_in_creates_local_user(client, db, verifier):
    verifier.profiles["ext_new"] = {"email": "fresh@example.com", "name": "Fresh Person"}

    response = client.get("/auth/me", headers={"Authorization": "Bearer tok_ext_new"})

    assert response.status_code == 200
    assert response.json()["email"] == "fresh@example.com"
    assert db.query(User).filter(User.external_id == "ext_new").one().name == "Fresh Person"


def test_logout_revokes_token(client, make_user, revocations):
    _, headers = make_user()

    response = client.post("/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = client.get("/auth/me", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "Token revoked"


def test_update_profile(client, make_user):
    _, headers = make_user()

    response = client.patch("/users/me", json={"name": "New Name"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["name"] == "New Name"


def test_audit_record_written_for_state_change(client, make_user, caplog):
    user, headers = make_user()

    with caplog.at_level("INFO", logger="marketplace.audit"):
        client.patch("/users/me", json={"name": "Audited"}, headers=headers)

    records = [r.getMessage() for r in caplog.records if r.name == "marketplace.audit"]
    assert len(records) == 1
    assert "action=USER_UPDATE_PROFILE" in records[0]
    assert f"user_id={user.id}" in records[0]


def test_rate_limit_returns_429(client, monkeypatch):
    from marketplace.core import config

    monkeypatch.setattr(config, "RATE_LIMIT_MAX_REQUESTS", 2)
    payload = {"email": "not-an-email", "password": "x", "first_name": "A"}

    statuses = [client.post("/auth/register", json=payload).status_code for _ in range(3)]

    assert statuses[-1] == 429
