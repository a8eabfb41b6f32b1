import hashlib
import hmac
import json

import pytest

from extensions import db
from models import Opportunity, User, WhatsAppSubmission
from utils.errors import ConflictError
from utils.whatsapp_intake import approve_submission, categorize_message, extract_content, sender_allowed


def webhook_body(*messages, sender_name="Thandi"):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "waba-1",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "27400000000", "phone_number_id": "pn-1"},
                            "contacts": [{"profile": {"name": sender_name}, "wa_id": "27821234567"}],
                            "messages": list(messages),
                        },
                    }
                ],
            }
        ],
    }


def text_message(message_id, body, sender="27821234567"):
    return {"from": sender, "id": message_id, "timestamp": "1735725600", "type": "text", "text": {"body": body}}


@pytest.fixture
def submit(client):
    def _submit(*messages):
        res = client.post("/api/whatsapp/webhook", json=webhook_body(*messages))
        assert res.status_code == 200
        return res.get_json()["stored"]

    return _submit


@pytest.fixture
def first_submission(fetch):
    def _first():
        return fetch(lambda: WhatsAppSubmission.query.order_by(WhatsAppSubmission.created_at).first().id)

    return _first


@pytest.mark.parametrize(
    "content, category",
    [
        ("Sasol bursary applications are open", "bursary"),
        ("We are hiring two interns for our internship", "career"),
        ("Paid learnership for electricians", "learnership"),
        ("NYDA grant for young entrepreneurs", "business"),
        ("Business funding available", "bursary"),
        ("Community clean-up this Saturday", "general"),
        (None, "general"),
    ],
)
def test_categorize_message_first_group_wins(content, category):
    assert categorize_message(content) == category


def test_extract_content_by_message_type():
    assert extract_content({"type": "text", "text": {"body": "Hello"}}) == ("text", "Hello", None)
    assert extract_content({"type": "image", "image": {"id": "m-1", "caption": "Poster"}}) == ("image", "Poster", "m-1")
    assert extract_content({"type": "document", "document": {"id": "m-2", "filename": "cv.pdf"}}) == (
        "document",
        "cv.pdf",
        "m-2",
    )
    assert extract_content({"type": "audio", "audio": {"id": "m-3"}}) == ("audio", "Audio received", "m-3")
    assert extract_content({"type": "sticker"}) == ("unknown", "Unsupported message type: sticker", None)


def test_sender_allow_list():
    assert sender_allowed("27820000000", [])
    assert sender_allowed("27820000000", ["27820000000"])
    assert not sender_allowed("27829999999", ["27820000000"])
    assert not sender_allowed(None, ["27820000000"])


def test_verification_handshake(client):
    res = client.get(
        "/api/whatsapp/webhook",
        query_string={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
    )
    assert res.status_code == 200
    assert res.get_data(as_text=True) == "1158201444"

    res = client.get(
        "/api/whatsapp/webhook",
        query_string={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1158201444"},
    )
    assert res.status_code == 403
    assert res.get_json()["message"] == "Webhook verification failed"


def test_signature_required_when_secret_configured(app, client, fetch):
    app.config["WHATSAPP_APP_SECRET"] = "app-secret"
    raw = json.dumps(webhook_body(text_message("wamid.signed", "Bursary for nursing students"))).encode("utf-8")

    res = client.post("/api/whatsapp/webhook", data=raw, content_type="application/json")
    assert res.status_code == 403

    res = client.post(
        "/api/whatsapp/webhook",
        data=raw,
        content_type="application/json",
        headers={"X-Hub-Signature-256": "sha256=" + "0" * 64},
    )
    assert res.status_code == 403

    signature = "sha256=" + hmac.new(b"app-secret", raw, hashlib.sha256).hexdigest()
    res = client.post(
        "/api/whatsapp/webhook",
        data=raw,
        content_type="application/json",
        headers={"X-Hub-Signature-256": signature},
    )
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok", "stored": 1}
    assert fetch(lambda: WhatsAppSubmission.query.count()) == 1


def test_redelivered_message_is_stored_once(submit, fetch):
    message = text_message("wamid.dup", "Learnership at the municipality")
    assert submit(message) == 1
    assert submit(message) == 0

    stored = fetch(lambda: WhatsAppSubmission.query.all())
    assert len(stored) == 1
    assert stored[0].category == "learnership"
    assert stored[0].status == "pending"
    assert stored[0].sender_name == "Thandi"


def test_unrelated_webhook_objects_are_ignored(client):
    res = client.post("/api/whatsapp/webhook", json={"object": "page", "entry": []})
    assert res.get_json() == {"status": "ok", "stored": 0}


def test_queue_is_admin_only(client, make_user):
    user = make_user("stakeholder")
    assert client.get("/api/whatsapp/submissions").status_code == 401
    assert client.get("/api/whatsapp/submissions", headers=user.headers).status_code == 403


def test_approve_creates_exactly_one_opportunity(client, make_user, submit, first_submission, fetch):
    admin = make_user("admin")
    submit(text_message("wamid.approve", "Bursary for engineering students, apply before month end"))
    submission_id = first_submission()

    res = client.put(
        f"/api/whatsapp/submissions/{submission_id}/parse",
        json={
            "parsed_data": {
                "title": "Engineering Bursary",
                "organization": "Amathole Water",
                "requirements": ["Matric maths", ""],
                "deadline": "2030-01-31",
            }
        },
        headers=admin.headers,
    )
    assert res.status_code == 200
    assert res.get_json()["parsed_data"]["requirements"] == ["Matric maths"]

    res = client.post(f"/api/whatsapp/submissions/{submission_id}/approve", json={"notes": "Checked"}, headers=admin.headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["submission"]["status"] == "approved"
    assert body["submission"]["opportunity_id"] == body["opportunity"]["id"]
    assert body["opportunity"]["title"] == "Engineering Bursary"
    assert body["opportunity"]["category"] == "bursary"
    assert body["opportunity"]["status"] == "approved"
    assert body["opportunity"]["contact_phone"] == "27821234567"

    res = client.post(f"/api/whatsapp/submissions/{submission_id}/approve", json={}, headers=admin.headers)
    assert res.status_code == 409
    res = client.post(f"/api/whatsapp/submissions/{submission_id}/reject", json={}, headers=admin.headers)
    assert res.status_code == 409
    res = client.put(
        f"/api/whatsapp/submissions/{submission_id}/parse",
        json={"parsed_data": {"title": "Too late"}},
        headers=admin.headers,
    )
    assert res.status_code == 409

    assert fetch(lambda: Opportunity.query.filter_by(source="whatsapp").count()) == 1


def test_general_submission_needs_category_to_approve(client, make_user, submit, first_submission, fetch):
    admin = make_user("admin")
    submit(text_message("wamid.general", "Soccer tournament this weekend"))
    submission_id = first_submission()

    res = client.post(f"/api/whatsapp/submissions/{submission_id}/approve", json={}, headers=admin.headers)
    assert res.status_code == 400
    assert fetch(lambda: db.session.get(WhatsAppSubmission, submission_id).status) == "pending"

    res = client.post(
        f"/api/whatsapp/submissions/{submission_id}/approve", json={"category": "event"}, headers=admin.headers
    )
    assert res.status_code == 200
    opportunity = res.get_json()["opportunity"]
    assert opportunity["category"] == "event"
    assert opportunity["title"] == "Opportunity from Thandi"
    assert opportunity["description"] == "Soccer tournament this weekend"


def test_reject_and_stats(client, make_user, submit, fetch):
    admin = make_user("admin")
    submit(
        text_message("wamid.1", "Bursary at Walter Sisulu University"),
        text_message("wamid.2", "Vacancy for a cashier"),
        text_message("wamid.3", "Another bursary opening"),
    )
    rejected_id = fetch(lambda: WhatsAppSubmission.query.filter_by(message_id="wamid.2").one().id)

    res = client.post(f"/api/whatsapp/submissions/{rejected_id}/reject", json={"notes": "Duplicate"}, headers=admin.headers)
    assert res.get_json()["submission"]["status"] == "rejected"
    assert res.get_json()["submission"]["review_notes"] == "Duplicate"

    stats = client.get("/api/whatsapp/submissions/stats/overview", headers=admin.headers).get_json()
    assert stats["by_status"] == {"pending": 2, "rejected": 1}
    assert stats["pending_by_category"] == {"bursary": 2}

    listing = client.get(
        "/api/whatsapp/submissions", query_string={"status": "pending"}, headers=admin.headers
    ).get_json()
    assert listing["total"] == 2
    assert {item["category"] for item in listing["submissions"]} == {"bursary"}

    res = client.get("/api/whatsapp/submissions", query_string={"status": "lost"}, headers=admin.headers)
    assert res.status_code == 400

    assert client.delete(f"/api/whatsapp/submissions/{rejected_id}", headers=admin.headers).status_code == 200
    assert client.get(f"/api/whatsapp/submissions/{rejected_id}", headers=admin.headers).status_code == 404


def test_approve_loses_to_concurrent_reject(app, make_user, submit, first_submission, fetch):
    admin = make_user("admin")
    submit(text_message("wamid.race", "Sasol bursary applications are open"))
    submission_id = first_submission()

    with app.app_context():
        stale = db.session.get(WhatsAppSubmission, submission_id)
        reviewer = db.session.get(User, admin.id)
        WhatsAppSubmission.query.filter(WhatsAppSubmission.id == submission_id).update(
            {WhatsAppSubmission.status: "rejected"}, synchronize_session=False
        )
        assert stale.status == "pending"

        with pytest.raises(ConflictError) as excinfo:
            approve_submission(stale, reviewer)
        assert excinfo.value.message == "Submission already processed"

    assert fetch(lambda: Opportunity.query.count()) == 0
    assert fetch(lambda: WhatsAppSubmission.query.filter_by(opportunity_id=None).count()) == 1
