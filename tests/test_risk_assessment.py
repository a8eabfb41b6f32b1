import json

import pytest

from utils import risk_assessment
from utils.errors import DependencyError
from utils.risk_assessment import (
    FallbackRiskAssessor,
    ListingText,
    RemoteRiskAssessor,
    RuleBasedRiskAssessor,
    risk_level_for,
    score_listing,
)

SCAM = ListingText(
    title="SUPER JOB OPPORTUNITY",
    description="Make money fast! processing fee required.",
    organization="a",
)


class StubClient:
    model = "stub-model"

    def __init__(self, reply=None, error=None, available=True):
        self.reply = reply
        self.error = error
        self.available = available
        self.calls = 0

    def complete(self, system_prompt, messages, max_tokens=500, temperature=0.7):
        self.calls += 1
        if self.error:
            raise self.error
        return self.reply


def test_scam_listing_scores_high():
    result = score_listing(SCAM)

    assert result.risk_score == 90
    assert result.risk_level == "HIGH"
    assert 'Suspicious keyword detected: "processing fee"' in result.flags
    assert 'Suspicious keyword detected: "make money fast"' in result.flags
    assert "Missing or incomplete organization name" in result.flags
    assert "No valid contact information provided" in result.flags
    assert "Title in ALL CAPS (aggressive marketing)" in result.flags
    assert risk_assessment.PAYMENT_WARNING in result.recommendations
    assert result.used_ai is False


def test_scoring_is_deterministic():
    assert score_listing(SCAM).to_dict() == score_listing(SCAM).to_dict()


def test_score_is_capped_at_100():
    listing = ListingText(
        title="EASY MONEY WORK FROM HOME",
        description="easy money, work from home, no experience needed, guaranteed income, act now, bitcoin",
    )
    result = score_listing(listing)
    assert result.risk_score == 100
    assert result.risk_level == "HIGH"


def test_clean_listing_has_no_flags():
    listing = ListingText(
        title="Graduate Engineering Bursary",
        description="Full-cost bursary for engineering students at accredited South African universities. "
        "Covers tuition, accommodation and books for the duration of the degree.",
        organization="Eastern Cape Development Trust",
        contact_email="bursaries@ecdt.org.za",
    )
    result = score_listing(listing)
    assert result.risk_score == 0
    assert result.risk_level == "LOW"
    assert result.flags == [risk_assessment.NO_FLAGS]
    assert result.recommendations == [risk_assessment.STANDARD_RECOMMENDATION]


def test_personal_email_domain_is_flagged():
    listing = ListingText(
        title="Retail Internship",
        description="x" * 150,
        organization="Corner Store Holdings",
        contact_email="owner@gmail.com",
    )
    result = score_listing(listing)
    assert result.risk_score == 10
    assert result.flags == ["Using personal email instead of company domain"]
    assert risk_assessment.EMAIL_RECOMMENDATION in result.recommendations


@pytest.mark.parametrize("score, level", [(0, "LOW"), (24, "LOW"), (25, "MEDIUM"), (49, "MEDIUM"), (50, "HIGH")])
def test_risk_level_thresholds(score, level):
    assert risk_level_for(score) == level


def test_fallback_uses_rules_when_remote_fails(app):
    client = StubClient(error=DependencyError("Completion service timed out"))
    assessor = FallbackRiskAssessor(RemoteRiskAssessor(client), RuleBasedRiskAssessor())

    with app.app_context():
        payload = assessor.assess(SCAM).to_dict()

    assert client.calls == 1
    assert payload["risk_score"] == 90
    assert payload["used_ai"] is False
    assert payload["error"] == "AI analysis unavailable, using rule-based detection"


def test_fallback_on_unparseable_remote_output(app):
    client = StubClient(reply="I think it is fine")
    assessor = FallbackRiskAssessor(RemoteRiskAssessor(client), RuleBasedRiskAssessor())

    with app.app_context():
        result = assessor.assess(SCAM)

    assert result.risk_score == 90
    assert result.used_ai is False


def test_remote_result_is_clamped(app):
    reply = "```json\n" + json.dumps(
        {"riskLevel": "high", "riskScore": 140, "flags": ["Upfront fee"], "analysis": "Scam", "recommendations": []}
    ) + "\n```"
    assessor = FallbackRiskAssessor(RemoteRiskAssessor(StubClient(reply=reply)), RuleBasedRiskAssessor())

    with app.app_context():
        result = assessor.assess(SCAM)

    assert result.used_ai is True
    assert result.model == "stub-model"
    assert result.risk_level == "HIGH"
    assert result.risk_score == 100
    assert result.recommendations == [risk_assessment.STANDARD_RECOMMENDATION]


def test_unavailable_remote_is_never_called(app):
    client = StubClient(available=False)
    assessor = FallbackRiskAssessor(RemoteRiskAssessor(client), RuleBasedRiskAssessor())

    with app.app_context():
        result = assessor.assess(SCAM)

    assert client.calls == 0
    assert "error" not in result.to_dict()


def test_fraud_check_route_without_ai_key(client, make_user, make_opportunity):
    admin = make_user("admin")
    opportunity_id = make_opportunity(
        admin,
        title="SUPER JOB OPPORTUNITY",
        description="Make money fast! processing fee required.",
        organization="a",
        contact_email=None,
    )

    res = client.post(f"/api/admin/opportunities/{opportunity_id}/fraud-check", headers=admin.headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["opportunity_id"] == opportunity_id
    assert body["risk_level"] == "HIGH"
    assert body["risk_score"] == 90
    assert body["used_ai"] is False


def test_fraud_check_is_admin_only(client, make_user, make_opportunity):
    owner = make_user("stakeholder")
    opportunity_id = make_opportunity(owner)
    res = client.post(f"/api/admin/opportunities/{opportunity_id}/fraud-check", headers=owner.headers)
    assert res.status_code == 403
