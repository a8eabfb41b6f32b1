import pytest

import routes.auth
from conftest import PASSWORD
from extensions import db
from models import AuditLog, User


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(recipient, user_name, reset_link, expires_minutes):
        sent.append({"to": recipient, "name": user_name, "link": reset_link, "minutes": expires_minutes})

    monkeypatch.setattr(routes.auth, "send_password_reset_email", fake_send)
    return sent


def test_register_then_login(client, fetch):
    res = client.post(
        "/api/auth/register",
        json={"name": "Sipho Ndlovu", "email": "Sipho@Example.com", "password": PASSWORD},
    )
    assert res.status_code == 201
    body = res.get_json()
    assert body["user"]["email"] == "sipho@example.com"
    assert body["user"]["role"] == "user"
    assert body["token"]

    res = client.post("/api/auth/login", json={"email": "sipho@example.com", "password": PASSWORD})
    assert res.status_code == 200
    token = res.get_json()["token"]

    res = client.get("/api/verify-token", headers={"Authorization": f"Bearer {token}"})
    assert res.get_json()["valid"] is True
    assert res.get_json()["user"]["name"] == "Sipho Ndlovu"

    actions = fetch(lambda: [entry.action_type for entry in AuditLog.query.order_by(AuditLog.id).all()])
    assert actions == ["REGISTER", "LOGIN"]


def test_register_as_stakeholder_starts_pending(client):
    res = client.post(
        "/api/auth/register",
        json={
            "name": "Nomsa",
            "email": "nomsa@ngo.org.za",
            "password": PASSWORD,
            "role": "stakeholder",
            "company_name": "Youth Works NPC",
        },
    )
    user = res.get_json()["user"]
    assert user["role"] == "stakeholder"
    assert user["verification_status"] == "pending"
    assert user["company_name"] == "Youth Works NPC"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"name": "A", "email": "a@example.com", "password": "short1"}, "Password must be at least 8 characters long."),
        ({"name": "A", "email": "a@example.com", "password": "lettersonly"}, "Include at least one digit."),
        ({"name": "A", "email": "a@example.com", "password": PASSWORD, "role": "admin"}, "role: Role must be user or stakeholder"),
        ({"name": "A", "email": "not-an-email", "password": PASSWORD}, None),
    ],
)
def test_register_validation(client, payload, message):
    res = client.post("/api/auth/register", json=payload)
    assert res.status_code == 400
    if message:
        assert res.get_json()["message"] == message


def test_duplicate_email_is_rejected(client, make_user):
    user = make_user()
    res = client.post("/api/auth/register", json={"name": "Again", "email": user.email.upper(), "password": PASSWORD})
    assert res.status_code == 400
    assert res.get_json()["message"] == "email: Email already registered"


def test_bad_credentials(client, make_user, fetch):
    user = make_user()
    res = client.post("/api/auth/login", json={"email": user.email, "password": "Wrong-pass1"})
    assert res.status_code == 401
    assert res.get_json()["message"] == "Invalid credentials"

    res = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert res.status_code == 401
    assert fetch(lambda: AuditLog.query.filter_by(action_type="LOGIN_FAILED").count()) == 2


def test_invalid_bearer_token(client):
    res = client.get("/api/verify-token", headers={"Authorization": "Bearer not.a.jwt"})
    assert res.status_code == 401
    assert client.get("/api/verify-token").status_code == 401


def test_suspended_account_is_refused_with_reason(client, make_user):
    admin = make_user("admin")
    user = make_user()

    res = client.patch(f"/api/admin/users/{user.id}/suspend", json={"reason": "Spam listings"}, headers=admin.headers)
    assert res.status_code == 200

    res = client.get("/api/users/me", headers=user.headers)
    assert res.status_code == 403
    assert res.get_json() == {"message": "Account is suspended", "reason": "Spam listings"}

    res = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})
    assert res.status_code == 403
    assert res.get_json()["reason"] == "Spam listings"

    client.patch(f"/api/admin/users/{user.id}/activate", headers=admin.headers)
    assert client.get("/api/users/me", headers=user.headers).status_code == 200


def test_deactivated_account_is_refused(client, make_user, fetch):
    user = make_user()

    def deactivate():
        record = db.session.get(User, user.id)
        record.is_active = False
        db.session.commit()

    fetch(deactivate)
    res = client.get("/api/verify-token", headers=user.headers)
    assert res.status_code == 403
    assert res.get_json() == {"message": "Account is deactivated"}


def test_admin_cannot_suspend_self(client, make_user):
    admin = make_user("admin")
    res = client.patch(f"/api/admin/users/{admin.id}/suspend", json={}, headers=admin.headers)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Cannot suspend your own account"


def test_password_reset_flow(client, make_user, outbox):
    user = make_user()

    res = client.post("/api/auth/forgot-password", json={"email": user.email})
    assert res.status_code == 200
    assert len(outbox) == 1
    assert outbox[0]["to"] == user.email
    assert outbox[0]["minutes"] == 10
    token = outbox[0]["link"].rsplit("/", 1)[-1]

    res = client.post(f"/api/auth/reset-password/{token}", json={"password": "N3wPassword"})
    assert res.status_code == 200

    res = client.post(f"/api/auth/reset-password/{token}", json={"password": "An0therOne"})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Invalid or expired reset token"

    assert client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login", json={"email": user.email, "password": "N3wPassword"}).status_code == 200


def test_only_newest_reset_link_works(client, make_user, outbox):
    user = make_user()
    client.post("/api/auth/forgot-password", json={"email": user.email})
    client.post("/api/auth/forgot-password", json={"email": user.email})
    old_token, new_token = (entry["link"].rsplit("/", 1)[-1] for entry in outbox)

    assert client.post(f"/api/auth/reset-password/{old_token}", json={"password": "N3wPassword"}).status_code == 400
    assert client.post(f"/api/auth/reset-password/{new_token}", json={"password": "N3wPassword"}).status_code == 200


def test_forgot_password_does_not_reveal_accounts(client, outbox):
    res = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert res.status_code == 200
    assert res.get_json()["message"] == routes.auth.RESET_REQUESTED_MESSAGE
    assert outbox == []


def test_forgot_password_reports_mail_failure(client, make_user):
    user = make_user()
    res = client.post("/api/auth/forgot-password", json={"email": user.email})
    assert res.status_code == 503
    assert res.get_json()["message"] == "Failed to send email. Please try again later."


def test_upgrade_to_stakeholder(client, make_user):
    user = make_user()
    res = client.post("/api/auth/upgrade-to-stakeholder", json={}, headers=user.headers)
    assert res.status_code == 400

    res = client.post(
        "/api/auth/upgrade-to-stakeholder", json={"company_name": "Kasi Coders"}, headers=user.headers
    )
    assert res.status_code == 200
    assert res.get_json()["user"]["role"] == "stakeholder"
    assert res.get_json()["user"]["verification_status"] == "pending"

    res = client.post(
        "/api/auth/upgrade-to-stakeholder", json={"company_name": "Kasi Coders"}, headers=user.headers
    )
    assert res.status_code == 409
    assert res.get_json()["message"] == "Account is already a stakeholder"

    admin = make_user("admin")
    res = client.post("/api/auth/upgrade-to-stakeholder", json={"company_name": "HQ"}, headers=admin.headers)
    assert res.status_code == 409
    assert res.get_json()["message"] == "Admins already have stakeholder capabilities"


def test_health_probe(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.get_json() == {"status": "OK", "database": "ok"}
