from extensions import db
from models import Opportunity, User


def test_admin_routes_require_admin_role(client, make_user):
    stakeholder = make_user("stakeholder")
    res = client.get("/api/admin/stats", headers=stakeholder.headers)
    assert res.status_code == 403
    assert res.get_json()["message"] == "Access denied. Admin privileges required."
    assert client.get("/api/admin/stats").status_code == 401


def test_stats_shape(client, make_user, make_opportunity):
    admin = make_user("admin")
    owner = make_user("stakeholder")
    make_opportunity(owner)
    make_opportunity(owner, status="pending", category="learnership")

    stats = client.get("/api/admin/stats", headers=admin.headers).get_json()
    assert stats["total_users"] == 2
    assert stats["total_opportunities"] == 2
    assert stats["pending_approvals"] == 1
    assert stats["active_reports"] == 0
    assert {"name": "admin", "value": 1} in stats["users_by_role"]
    assert {"name": "learnership", "value": 1} in stats["opportunities_by_category"]
    assert {"name": "pending", "value": 1} in stats["opportunities_by_status"]


def test_user_search_and_detail(client, make_user):
    admin = make_user("admin")
    target = make_user(name="Ayanda Mthembu")
    make_user(name="Someone Else")

    res = client.get("/api/admin/users", query_string={"search": "ayanda"}, headers=admin.headers)
    assert [item["id"] for item in res.get_json()["users"]] == [target.id]

    res = client.get("/api/admin/users", query_string={"role": "admin"}, headers=admin.headers)
    assert [item["id"] for item in res.get_json()["users"]] == [admin.id]

    detail = client.get(f"/api/admin/users/{target.id}", headers=admin.headers).get_json()
    assert detail["user"]["name"] == "Ayanda Mthembu"
    assert detail["applications"] == []
    assert detail["saved_count"] == 0


def test_role_changes(client, make_user):
    admin = make_user("admin")
    user = make_user()

    res = client.patch(f"/api/admin/users/{admin.id}/role", json={"role": "user"}, headers=admin.headers)
    assert res.status_code == 400
    assert res.get_json()["message"] == "Cannot change your own role"

    res = client.patch(f"/api/admin/users/{user.id}/role", json={"role": "superuser"}, headers=admin.headers)
    assert res.status_code == 400

    res = client.patch(f"/api/admin/users/{user.id}/role", json={"role": "stakeholder"}, headers=admin.headers)
    assert res.get_json()["message"] == "User role updated to stakeholder"

    res = client.patch(
        f"/api/admin/users/{user.id}/verification", json={"verification_status": "verified"}, headers=admin.headers
    )
    assert res.get_json()["message"] == "Stakeholder approved"


def test_verification_only_for_stakeholders(client, make_user):
    admin = make_user("admin")
    user = make_user()
    res = client.patch(
        f"/api/admin/users/{user.id}/verification", json={"verification_status": "verified"}, headers=admin.headers
    )
    assert res.status_code == 400
    assert res.get_json()["message"] == "Verification status can only be set for stakeholder accounts"


def test_admin_cannot_delete_another_admin(client, make_user, fetch):
    admin = make_user("admin")
    other_admin = make_user("admin")

    res = client.delete(f"/api/admin/users/{other_admin.id}", headers=admin.headers)
    assert res.status_code == 403
    assert res.get_json()["message"] == "Cannot delete admin users"
    assert fetch(lambda: db.session.get(User, other_admin.id)) is not None

    assert client.delete(f"/api/admin/users/{admin.id}", headers=admin.headers).status_code == 200
    assert fetch(lambda: db.session.get(User, admin.id)) is None


def test_deleting_user_keeps_their_listings(client, make_user, make_opportunity, fetch):
    admin = make_user("admin")
    owner = make_user("stakeholder")
    opportunity_id = make_opportunity(owner)

    assert client.delete(f"/api/admin/users/{owner.id}", headers=admin.headers).status_code == 200
    listing = fetch(lambda: db.session.get(Opportunity, opportunity_id))
    assert listing is not None
    assert listing.created_by_id is None


def test_admin_listing_and_flags(client, make_user, make_opportunity):
    admin = make_user("admin")
    owner = make_user("stakeholder")
    pending = make_opportunity(owner, status="pending", title="Waiting Room")
    make_opportunity(owner, title="Already Live")

    res = client.get("/api/admin/opportunities", query_string={"status": "pending"}, headers=admin.headers)
    assert [item["id"] for item in res.get_json()["opportunities"]] == [pending]

    res = client.patch(
        f"/api/admin/opportunities/{pending}",
        json={"status": "approved", "featured": True},
        headers=admin.headers,
    )
    assert res.status_code == 200
    updated = res.get_json()["opportunity"]
    assert updated["status"] == "approved"
    assert updated["featured"] is True

    res = client.patch(f"/api/admin/opportunities/{pending}", json={"status": "archived"}, headers=admin.headers)
    assert res.status_code == 400


def test_admin_application_listing(client, make_user, make_opportunity):
    admin = make_user("admin")
    owner = make_user("stakeholder")
    applicant = make_user()
    opportunity_id = make_opportunity(owner)
    client.post(f"/api/opportunities/{opportunity_id}/apply", json={}, headers=applicant.headers)

    body = client.get("/api/admin/applications", headers=admin.headers).get_json()
    assert body["total"] == 1
    assert body["applications"][0]["applicant"]["id"] == applicant.id

    body = client.get("/api/admin/applications", query_string={"status": "approved"}, headers=admin.headers).get_json()
    assert body["total"] == 0
