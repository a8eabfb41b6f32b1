"""WhatsApp moderation queue: webhook ingestion and admin promotion to opportunities.

Inbound messages arrive as Cloud API webhook payloads. Each message becomes a
``pending`` :class:`WhatsAppSubmission`; an admin later edits its parsed
fields and either approves it (creating exactly one opportunity) or rejects
it. The approve/reject claim is a conditional UPDATE on ``status = 'pending'``
so a double click cannot promote a submission twice.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import requests
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import OPPORTUNITY_CATEGORIES, Opportunity, User, WhatsAppSubmission
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.payloads import DATETIME_FORMATS

# Declaration order is the tie-break: the first group with a hit wins.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("bursary", ("bursary", "bursaries", "scholarship", "nsfas", "funding", "study", "university", "college")),
    ("career", ("job", "jobs", "career", "employment", "position", "vacancy", "hiring", "recruit", "work")),
    ("learnership", ("learnership", "apprentice", "internship", "training", "learner")),
    ("business", ("business", "entrepreneur", "startup", "grant", "nyda", "seda", "funding")),
)

MEDIA_PLACEHOLDERS = {
    "image": "Image received",
    "video": "Video received",
    "document": "Document received",
    "audio": "Audio received",
}

PARSED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "organization",
    "contact_email",
    "contact_phone",
    "website",
    "location",
    "requirements",
    "deadline",
    "amount",
)

ALREADY_PROCESSED = "Submission already processed"


def categorize_message(content: Optional[str]) -> str:
    text = (content or "").lower()
    for category, words in CATEGORY_KEYWORDS:
        if any(word in text for word in words):
            return category
    return "general"


def extract_content(message: Dict[str, Any]) -> Tuple[str, str, Optional[str]]:
    """Return ``(message_type, content, media_id)`` for one webhook message."""
    message_type = str(message.get("type") or "unknown")
    if message_type == "text":
        body = (message.get("text") or {}).get("body") or ""
        return "text", body, None
    if message_type in MEDIA_PLACEHOLDERS:
        media = message.get(message_type) or {}
        content = media.get("caption") or media.get("filename") or MEDIA_PLACEHOLDERS[message_type]
        return message_type, content, media.get("id")
    stored_type = message_type if message_type in ("location", "contacts") else "unknown"
    return stored_type, f"Unsupported message type: {message_type}", None


def _message_time(raw: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.utcnow()


def iter_messages(payload: Dict[str, Any]) -> Iterator[Tuple[Dict[str, Any], Dict[str, Any]]]:
    """Yield ``(message, value)`` pairs from a business-account webhook body."""
    if not isinstance(payload, dict) or payload.get("object") != "whatsapp_business_account":
        return
    for entry in payload.get("entry") or []:
        for change in (entry or {}).get("changes") or []:
            if (change or {}).get("field") != "messages":
                continue
            value = change.get("value") or {}
            for message in value.get("messages") or []:
                if isinstance(message, dict):
                    yield message, value


def sender_allowed(sender: Optional[str], allowed: Iterable[str]) -> bool:
    allowed = [item for item in allowed or [] if item]
    if not allowed:
        return True
    return bool(sender) and sender in allowed


def _sender_name(value: Dict[str, Any]) -> str:
    contacts = value.get("contacts") or []
    if contacts and isinstance(contacts[0], dict):
        return (contacts[0].get("profile") or {}).get("name") or "Unknown"
    return "Unknown"


def store_message(message: Dict[str, Any], value: Dict[str, Any]) -> Optional[WhatsAppSubmission]:
    """Persist one message as a pending submission; a repeated message id is skipped."""
    message_id = message.get("id")
    sender = message.get("from")
    if not message_id or not sender:
        current_app.logger.warning("WhatsApp message missing id or sender; skipped")
        return None
    if WhatsAppSubmission.query.filter_by(message_id=message_id).first():
        current_app.logger.info("Duplicate WhatsApp delivery ignored", extra={"message_id": message_id})
        return None

    message_type, content, media_id = extract_content(message)
    metadata = value.get("metadata") or {}
    submission = WhatsAppSubmission(
        message_id=message_id,
        sender_phone=sender,
        sender_name=_sender_name(value),
        message_type=message_type,
        message_content=content,
        media_url=media_id,
        category=categorize_message(content),
        status="pending",
        message_timestamp=_message_time(message.get("timestamp")),
        message_metadata={
            "phone_number_id": metadata.get("phone_number_id"),
            "display_phone_number": metadata.get("display_phone_number"),
        },
    )
    db.session.add(submission)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent redelivery of the same message id.
        db.session.rollback()
        current_app.logger.info("Duplicate WhatsApp delivery ignored", extra={"message_id": message_id})
        return None

    current_app.logger.info(
        "WhatsApp submission stored",
        extra={
            "submission_id": submission.id,
            "message_type": message_type,
            "category": submission.category,
            "preview": content[:50],
        },
    )
    return submission


def mark_message_read(message_id: str, phone_number_id: Optional[str]) -> bool:
    """Acknowledge a message through the Graph API; failures are logged only."""
    token = current_app.config.get("WHATSAPP_ACCESS_TOKEN")
    if not token or not phone_number_id:
        return False
    url = f"{current_app.config['WHATSAPP_GRAPH_URL'].rstrip('/')}/{phone_number_id}/messages"
    try:
        response = requests.post(
            url,
            json={"messaging_product": "whatsapp", "status": "read", "message_id": message_id},
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=float(current_app.config.get("WHATSAPP_TIMEOUT_SECONDS", 10)),
        )
    except requests.RequestException as exc:
        current_app.logger.warning("Mark-as-read failed", extra={"message_id": message_id, "error": str(exc)})
        return False
    if not response.ok:
        current_app.logger.warning(
            "Mark-as-read rejected", extra={"message_id": message_id, "status": response.status_code}
        )
        return False
    return True


def ingest_webhook(payload: Dict[str, Any]) -> List[WhatsAppSubmission]:
    allowed = current_app.config.get("WHATSAPP_ALLOWED_SENDERS") or []
    stored: List[WhatsAppSubmission] = []
    for message, value in iter_messages(payload):
        if not sender_allowed(message.get("from"), allowed):
            current_app.logger.info("WhatsApp sender not on allow-list", extra={"message_id": message.get("id")})
            continue
        submission = store_message(message, value)
        if submission is None:
            continue
        stored.append(submission)
        mark_message_read(submission.message_id, (value.get("metadata") or {}).get("phone_number_id"))
    return stored


def get_submission(submission_id: str) -> WhatsAppSubmission:
    submission = db.session.get(WhatsAppSubmission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


def submission_query(status: Optional[str] = None, category: Optional[str] = None):
    query = WhatsAppSubmission.query
    if status:
        query = query.filter(WhatsAppSubmission.status == status)
    if category:
        query = query.filter(WhatsAppSubmission.category == category)
    return query.order_by(WhatsAppSubmission.created_at.desc(), WhatsAppSubmission.id)


def update_parsed_data(submission: WhatsAppSubmission, data: Dict[str, Any]) -> WhatsAppSubmission:
    if submission.status != "pending":
        raise ConflictError(ALREADY_PROCESSED)
    parsed = dict(submission.parsed_data or {})
    for key in PARSED_FIELDS:
        if key not in data:
            continue
        if data[key] in (None, "", []):
            parsed.pop(key, None)
        else:
            parsed[key] = data[key]
    submission.parsed_data = parsed
    db.session.commit()
    return submission


def _parse_deadline(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    if isinstance(raw, datetime):
        return raw
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(str(raw), fmt)
        except ValueError:
            continue
    raise ValidationError("parsed_data.deadline is not a valid date")


def opportunity_fields(submission: WhatsAppSubmission, category: str) -> Dict[str, Any]:
    """Parsed fields first, then the submission's own fields."""
    parsed = submission.parsed_data or {}
    requirements = parsed.get("requirements") or []
    if isinstance(requirements, str):
        requirements = [requirements]
    deadline = _parse_deadline(parsed.get("deadline"))
    return {
        "title": parsed.get("title") or f"Opportunity from {submission.sender_name}",
        "description": parsed.get("description") or submission.message_content or "",
        "category": category,
        "organization": parsed.get("organization") or submission.sender_name,
        "contact_email": parsed.get("contact_email"),
        "contact_phone": parsed.get("contact_phone") or submission.sender_phone,
        "website": parsed.get("website"),
        "location": parsed.get("location") or current_app.config.get("WHATSAPP_DEFAULT_LOCATION"),
        "requirements": list(requirements),
        "deadline": deadline,
        "closing_date": deadline,
        "amount": parsed.get("amount"),
    }


def _claim(submission: WhatsAppSubmission, values: Dict[Any, Any]) -> None:
    claimed = WhatsAppSubmission.query.filter(
        WhatsAppSubmission.id == submission.id,
        WhatsAppSubmission.status == "pending",
    ).update(values, synchronize_session=False)
    if claimed != 1:
        db.session.rollback()
        raise ConflictError(ALREADY_PROCESSED)


def approve_submission(
    submission: WhatsAppSubmission,
    admin: User,
    notes: Optional[str] = None,
    category: Optional[str] = None,
) -> Opportunity:
    """pending -> approved, creating exactly one approved opportunity."""
    target = category or submission.category
    if target not in OPPORTUNITY_CATEGORIES:
        raise ValidationError(f"Choose an opportunity category: {', '.join(OPPORTUNITY_CATEGORIES)}")
    if submission.status != "pending":
        raise ConflictError(ALREADY_PROCESSED)
    fields = opportunity_fields(submission, target)

    _claim(
        submission,
        {
            WhatsAppSubmission.status: "approved",
            WhatsAppSubmission.reviewed_by_id: admin.id,
            WhatsAppSubmission.reviewed_at: datetime.utcnow(),
            WhatsAppSubmission.review_notes: notes or "",
        },
    )
    opportunity = Opportunity(source="whatsapp", status="approved", created_by_id=admin.id, **fields)
    db.session.add(opportunity)
    db.session.flush()
    WhatsAppSubmission.query.filter(WhatsAppSubmission.id == submission.id).update(
        {WhatsAppSubmission.opportunity_id: opportunity.id}, synchronize_session=False
    )
    db.session.commit()
    db.session.refresh(submission)

    current_app.logger.info(
        "WhatsApp submission approved",
        extra={"submission_id": submission.id, "opportunity_id": opportunity.id, "admin_id": admin.id},
    )
    return opportunity


def reject_submission(submission: WhatsAppSubmission, admin: User, notes: Optional[str] = None) -> WhatsAppSubmission:
    _claim(
        submission,
        {
            WhatsAppSubmission.status: "rejected",
            WhatsAppSubmission.reviewed_by_id: admin.id,
            WhatsAppSubmission.reviewed_at: datetime.utcnow(),
            WhatsAppSubmission.review_notes: notes or "",
        },
    )
    db.session.commit()
    db.session.refresh(submission)
    current_app.logger.info("WhatsApp submission rejected", extra={"submission_id": submission.id, "admin_id": admin.id})
    return submission


def delete_submission(submission: WhatsAppSubmission) -> None:
    db.session.delete(submission)
    db.session.commit()


def submission_stats() -> Dict[str, Dict[str, int]]:
    by_status = dict(
        db.session.query(WhatsAppSubmission.status, func.count(WhatsAppSubmission.id))
        .group_by(WhatsAppSubmission.status)
        .all()
    )
    pending_by_category = dict(
        db.session.query(WhatsAppSubmission.category, func.count(WhatsAppSubmission.id))
        .filter(WhatsAppSubmission.status == "pending")
        .group_by(WhatsAppSubmission.category)
        .all()
    )
    return {"by_status": by_status, "pending_by_category": pending_by_category}
