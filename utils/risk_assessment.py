"""Fraud/risk scoring for opportunity listings.

The rule-based assessor is a deterministic table of (predicate, points, flag)
rules evaluated independently and summed. A remote assessor asks the
completion service for the same result shape; :class:`FallbackRiskAssessor`
picks the remote one when it is configured and drops to the rules whenever
it fails, times out, or returns output that does not parse.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from flask import current_app

from utils.completion_client import CompletionClient, get_completion_client, safe_json_loads
from utils.errors import DependencyError

SCAM_KEYWORDS: tuple[str, ...] = (
    "easy money",
    "work from home",
    "no experience needed",
    "guaranteed income",
    "make money fast",
    "limited time",
    "act now",
    "urgent",
    "western union",
    "money transfer",
    "processing fee",
    "registration fee",
    "application fee",
    "training fee",
    "deposit required",
    "pay upfront",
    "bitcoin",
    "cryptocurrency",
)

UNREALISTIC_PHRASES: tuple[str, ...] = (
    "high salary",
    "earn thousands",
    "luxury",
    "millionaire",
    "get rich",
)

PERSONAL_EMAIL_DOMAINS: tuple[str, ...] = ("gmail.com", "yahoo.com", "hotmail.com", "outlook.com")

RISK_LEVELS: tuple[str, ...] = ("LOW", "MEDIUM", "HIGH")

NO_FLAGS = "No obvious red flags detected"
STANDARD_RECOMMENDATION = "Standard verification: Check organization background and credentials"
BASE_RECOMMENDATIONS: tuple[str, ...] = (
    "Verify organization legitimacy through official channels",
    "Check if organization has official website and social media presence",
    "Contact organization directly using publicly listed contact information",
)
PAYMENT_WARNING = "WARNING: Legitimate opportunities never require upfront payment"
EMAIL_RECOMMENDATION = "Verify the contact email matches the organization's official domain"

SYSTEM_PROMPT = (
    "You are an expert fraud detection analyst specializing in identifying job scams, fake opportunities, "
    "and fraudulent postings. Analyze opportunities for South African youth and provide detailed, "
    "actionable fraud risk assessments."
)


@dataclass(frozen=True)
class ListingText:
    """The textual fields of an opportunity that the heuristic reads."""

    title: str = ""
    description: str = ""
    organization: str = ""
    requirements: tuple[str, ...] = ()
    contact_email: str = ""
    contact_phone: str = ""
    apply_url: str = ""
    category: str = ""
    location: str = ""
    deadline: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ListingText":
        requirements = data.get("requirements") or ()
        if isinstance(requirements, str):
            requirements = (requirements,)
        deadline = data.get("deadline")
        return cls(
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            organization=str(data.get("organization") or ""),
            requirements=tuple(str(item) for item in requirements if item),
            contact_email=str(data.get("contact_email") or ""),
            contact_phone=str(data.get("contact_phone") or ""),
            apply_url=str(data.get("apply_url") or ""),
            category=str(data.get("category") or ""),
            location=str(data.get("location") or ""),
            deadline=deadline.isoformat() if hasattr(deadline, "isoformat") else str(deadline or ""),
        )

    @classmethod
    def from_opportunity(cls, opportunity) -> "ListingText":
        return cls.from_mapping(
            {
                "title": opportunity.title,
                "description": opportunity.description,
                "organization": opportunity.organization,
                "requirements": opportunity.requirements,
                "contact_email": opportunity.contact_email,
                "contact_phone": opportunity.contact_phone,
                "apply_url": opportunity.apply_url,
                "category": opportunity.category,
                "location": opportunity.location,
                "deadline": opportunity.deadline,
            }
        )

    @property
    def searchable(self) -> str:
        return f"{self.title} {self.description} {' '.join(self.requirements)}".lower()

    @property
    def email_domain(self) -> str:
        _, _, domain = self.contact_email.partition("@")
        return domain.strip().lower()


@dataclass
class RiskResult:
    risk_level: str
    risk_score: int
    flags: List[str]
    analysis: str
    recommendations: List[str]
    used_ai: bool = False
    model: Optional[str] = None
    notes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "flags": list(self.flags),
            "analysis": self.analysis,
            "recommendations": list(self.recommendations),
            "used_ai": self.used_ai,
        }
        if self.model:
            payload["model"] = self.model
        payload.update(self.notes)
        return payload


@dataclass(frozen=True)
class Rule:
    predicate: Callable[[ListingText], bool]
    points: int
    flag: str


def _keyword_rule(keyword: str, template: str) -> Rule:
    return Rule(lambda listing: keyword in listing.searchable, 15, template.format(keyword=keyword))


RULES: tuple[Rule, ...] = (
    *(_keyword_rule(keyword, 'Suspicious keyword detected: "{keyword}"') for keyword in SCAM_KEYWORDS),
    Rule(lambda listing: len(listing.organization) < 3, 20, "Missing or incomplete organization name"),
    Rule(
        lambda listing: not (listing.contact_email or listing.contact_phone or listing.apply_url),
        25,
        "No valid contact information provided",
    ),
    Rule(
        lambda listing: bool(listing.contact_email) and listing.email_domain in PERSONAL_EMAIL_DOMAINS,
        10,
        "Using personal email instead of company domain",
    ),
    Rule(lambda listing: 0 < len(listing.description) < 100, 10, "Very short or vague description"),
    Rule(
        lambda listing: listing.title == listing.title.upper() and len(listing.title) > 10,
        5,
        "Title in ALL CAPS (aggressive marketing)",
    ),
    *(_keyword_rule(phrase, 'Unrealistic promise detected: "{keyword}"') for phrase in UNREALISTIC_PHRASES),
)


def risk_level_for(score: int) -> str:
    if score >= 50:
        return "HIGH"
    if score >= 25:
        return "MEDIUM"
    return "LOW"


def _recommendations_for(score: int, flags: List[str]) -> List[str]:
    recommendations: List[str] = []
    if score > 0:
        recommendations.extend(BASE_RECOMMENDATIONS)
    if any("fee" in flag or "payment" in flag for flag in flags):
        recommendations.append(PAYMENT_WARNING)
    if any("email" in flag for flag in flags):
        recommendations.append(EMAIL_RECOMMENDATION)
    return recommendations or [STANDARD_RECOMMENDATION]


def score_listing(listing: ListingText) -> RiskResult:
    """Pure scoring function; identical input always yields identical output."""
    flags: List[str] = []
    score = 0
    for rule in RULES:
        if rule.predicate(listing):
            flags.append(rule.flag)
            score += rule.points
    score = min(score, 100)
    if flags:
        analysis = f"Found {len(flags)} potential concern(s). Manual verification recommended."
    else:
        analysis = "No obvious fraud indicators detected. Appears legitimate but always verify independently."
    return RiskResult(
        risk_level=risk_level_for(score),
        risk_score=score,
        flags=flags or [NO_FLAGS],
        analysis=analysis,
        recommendations=_recommendations_for(score, flags),
    )


class RiskAssessor:
    def assess(self, listing: ListingText) -> RiskResult:  # pragma: no cover - interface
        raise NotImplementedError


class RuleBasedRiskAssessor(RiskAssessor):
    def assess(self, listing: ListingText) -> RiskResult:
        return score_listing(listing)


class RemoteRiskAssessor(RiskAssessor):
    """Ask the completion service for an assessment in the shared result shape."""

    def __init__(self, client: CompletionClient) -> None:
        self.client = client

    @property
    def available(self) -> bool:
        return self.client.available

    @staticmethod
    def build_prompt(listing: ListingText) -> str:
        lines = [
            "Analyze this job/opportunity posting for potential fraud or scam indicators.",
            "",
            f"Title: {listing.title}",
            f"Organization: {listing.organization or 'N/A'}",
            f"Category: {listing.category or 'N/A'}",
            f"Description: {listing.description}",
            f"Requirements: {', '.join(listing.requirements) or 'N/A'}",
            f"Application Link: {listing.apply_url or 'N/A'}",
            f"Contact Email: {listing.contact_email or 'N/A'}",
            f"Contact Phone: {listing.contact_phone or 'N/A'}",
            f"Location: {listing.location or 'N/A'}",
            f"Deadline: {listing.deadline or 'N/A'}",
            "",
            "Look for unrealistic promises, upfront fees, poor grammar, vague descriptions, suspicious contact "
            "details, missing organization details, pressure tactics and the lack of a legitimate application process.",
            "",
            "Respond with JSON only:",
            '{"riskLevel": "LOW|MEDIUM|HIGH", "riskScore": 0-100, "flags": ["..."], '
            '"analysis": "...", "recommendations": ["..."]}',
        ]
        return "\n".join(lines)

    def assess(self, listing: ListingText) -> RiskResult:
        raw = self.client.complete(
            SYSTEM_PROMPT,
            [{"role": "user", "content": self.build_prompt(listing)}],
            max_tokens=800,
            temperature=0.3,
        )
        payload = safe_json_loads(raw)

        level = str(payload.get("riskLevel") or payload.get("risk_level") or "").upper()
        if level not in RISK_LEVELS:
            raise DependencyError("Completion service returned an unknown risk level")
        try:
            score = int(payload.get("riskScore", payload.get("risk_score")))
        except (TypeError, ValueError) as exc:
            raise DependencyError("Completion service returned a non-numeric risk score") from exc

        flags = [str(item) for item in payload.get("flags") or [] if item]
        recommendations = [str(item) for item in payload.get("recommendations") or [] if item]
        return RiskResult(
            risk_level=level,
            risk_score=max(0, min(score, 100)),
            flags=flags or [NO_FLAGS],
            analysis=str(payload.get("analysis") or ""),
            recommendations=recommendations or [STANDARD_RECOMMENDATION],
            used_ai=True,
            model=self.client.model,
        )


class FallbackRiskAssessor(RiskAssessor):
    def __init__(self, primary: RemoteRiskAssessor, fallback: RiskAssessor) -> None:
        self.primary = primary
        self.fallback = fallback

    def assess(self, listing: ListingText) -> RiskResult:
        if not self.primary.available:
            return self.fallback.assess(listing)
        try:
            return self.primary.assess(listing)
        except DependencyError as exc:
            current_app.logger.warning("Remote risk assessment unavailable; using rules", extra={"error": exc.message})
            result = self.fallback.assess(listing)
            result.notes["error"] = "AI analysis unavailable, using rule-based detection"
            return result


def default_assessor() -> RiskAssessor:
    client = get_completion_client()
    return FallbackRiskAssessor(RemoteRiskAssessor(client), RuleBasedRiskAssessor())


def assess_opportunity(opportunity) -> Dict[str, Any]:
    return default_assessor().assess(ListingText.from_opportunity(opportunity)).to_dict()
