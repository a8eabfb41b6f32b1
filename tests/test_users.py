from conftest import PASSWORD

from extensions import db
from models import Application, User


def test_profile_update_touches_only_supplied_fields(client, make_user):
    user = make_user(name="Lerato", location="Mthatha")

    res = client.put(
        "/api/users/me",
        json={"education_level": "tvet", "skills": ["Excel", "", "Welding"], "role": "admin"},
        headers=user.headers,
    )
    assert res.status_code == 200
    profile = res.get_json()
    assert profile["education_level"] == "tvet"
    assert profile["skills"] == ["Excel", "Welding"]
    assert profile["location"] == "Mthatha"
    assert profile["name"] == "Lerato"
    assert profile["role"] == "user"

    res = client.put("/api/users/me", json={"education_level": "phd"}, headers=user.headers)
    assert res.status_code == 400


def test_me_stamps_last_login(client, make_user):
    user = make_user()
    profile = client.get("/api/users/me", headers=user.headers).get_json()
    assert profile["last_login_at"] is not None
    assert profile["preferences"]["job_alerts"] is True


def test_preferences_merge(client, make_user):
    user = make_user()
    res = client.put(
        "/api/users/me/preferences",
        json={"sms_notifications": True, "preferred_categories": ["bursary", "career"]},
        headers=user.headers,
    )
    preferences = res.get_json()["preferences"]
    assert preferences["sms_notifications"] is True
    assert preferences["email_notifications"] is True
    assert preferences["preferred_categories"] == ["bursary", "career"]

    res = client.put("/api/users/me/preferences", json={"preferred_categories": ["lottery"]}, headers=user.headers)
    assert res.status_code == 400


def test_change_password(client, make_user):
    user = make_user()
    res = client.put(
        "/api/users/me/password",
        json={"current_password": "nope-1234", "new_password": "Fresh1234"},
        headers=user.headers,
    )
    assert res.status_code == 400
    assert res.get_json()["message"] == "Current password is incorrect"

    res = client.put(
        "/api/users/me/password",
        json={"current_password": PASSWORD, "new_password": "Fresh1234"},
        headers=user.headers,
    )
    assert res.status_code == 200
    assert client.post("/api/auth/login", json={"email": user.email, "password": "Fresh1234"}).status_code == 200


def test_my_listings_and_applications(client, make_user, make_opportunity):
    owner = make_user("stakeholder")
    draft = make_opportunity(owner, status="pending")
    live = make_opportunity(owner)

    mine = client.get("/api/users/me/opportunities", headers=owner.headers).get_json()
    assert {item["id"] for item in mine} == {draft, live}

    client.post(f"/api/opportunities/{live}/apply", json={}, headers=owner.headers)
    applications = client.get("/api/users/me/applications", headers=owner.headers).get_json()
    assert [item["opportunity_id"] for item in applications] == [live]


def test_delete_own_account(client, make_user, make_opportunity, fetch):
    owner = make_user("stakeholder")
    applicant = make_user()
    opportunity_id = make_opportunity(owner)
    client.post(f"/api/opportunities/{opportunity_id}/apply", json={}, headers=applicant.headers)

    res = client.delete("/api/users/me", headers=applicant.headers)
    assert res.status_code == 200
    assert fetch(lambda: db.session.get(User, applicant.id)) is None
    assert fetch(lambda: Application.query.count()) == 0

    assert client.get("/api/users/me", headers=applicant.headers).status_code == 401
