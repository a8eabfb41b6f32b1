"""Application lifecycle: submit, edit while pending, withdraw, and owner review."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import REVIEW_STATUSES, Application, Opportunity, User
from utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from utils.policy import require_moderation

APPLICANT_FIELDS: tuple[str, ...] = ("cover_letter", "resume", "documents", "answers")

DUPLICATE_MESSAGE = "You have already applied to this opportunity"


def _clean_entries(entries: Optional[list]) -> list:
    cleaned = []
    for entry in entries or []:
        if isinstance(entry, dict):
            entry = {k: v for k, v in entry.items() if v is not None}
            if entry:
                cleaned.append(entry)
    return cleaned


def _apply_applicant_fields(application: Application, data: Dict[str, Any]) -> None:
    for key in APPLICANT_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key in ("documents", "answers"):
            value = _clean_entries(value)
        setattr(application, key, value)


def get_application(application_id: str) -> Application:
    application = db.session.get(Application, application_id)
    if not application:
        raise NotFoundError("Application not found")
    return application


def get_owned_application(application_id: str, user: User) -> Application:
    application = get_application(application_id)
    if application.user_id != user.id:
        raise AuthorizationError("Not authorized")
    return application


def has_live_application(user_id: str, opportunity_id: str) -> bool:
    return (
        Application.query.filter(
            Application.user_id == user_id,
            Application.opportunity_id == opportunity_id,
            Application.status != "withdrawn",
        ).count()
        > 0
    )


def submit_application(opportunity_id: Optional[str], applicant: User, data: Dict[str, Any]) -> Application:
    """Create a pending application and count it against the opportunity.

    A withdrawn application does not block a new one. The pre-check gives a
    clean message; the partial unique index settles races.
    """
    if not opportunity_id:
        raise ValidationError("Opportunity is required")
    opportunity = db.session.get(Opportunity, opportunity_id)
    if not opportunity:
        raise NotFoundError("Opportunity not found")
    if not opportunity.is_publicly_visible:
        raise ValidationError("This opportunity is not available for applications")
    if has_live_application(applicant.id, opportunity.id):
        raise ConflictError(DUPLICATE_MESSAGE)

    application = Application(user_id=applicant.id, opportunity_id=opportunity.id, status="pending")
    _apply_applicant_fields(application, data)
    db.session.add(application)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(DUPLICATE_MESSAGE) from exc

    Opportunity.query.filter(Opportunity.id == opportunity.id).update(
        {Opportunity.application_count: Opportunity.application_count + 1}, synchronize_session=False
    )
    db.session.commit()
    current_app.logger.info(
        "Application submitted",
        extra={"application_id": application.id, "opportunity_id": opportunity.id, "applicant_id": applicant.id},
    )
    return application


def edit_application(application: Application, applicant: User, data: Dict[str, Any]) -> Application:
    if application.user_id != applicant.id:
        raise AuthorizationError("Not authorized")
    if application.status != "pending":
        raise ConflictError("Cannot update application after it has been reviewed")
    _apply_applicant_fields(application, data)
    db.session.commit()
    return application


def withdraw_application(application: Application, applicant: User) -> Application:
    """Any state -> withdrawn, applicant only; the row is kept as history."""
    if application.user_id != applicant.id:
        raise AuthorizationError("Not authorized")
    application.status = "withdrawn"
    db.session.commit()
    current_app.logger.info("Application withdrawn", extra={"application_id": application.id, "applicant_id": applicant.id})
    return application


def _require_reviewer(application: Application, reviewer: User) -> None:
    # Orphaned applications (opportunity deleted) are reviewable by admins only.
    require_moderation(reviewer, application, "Access denied")


def review_application(application: Application, reviewer: User, status: str, notes: Optional[str] = None) -> Application:
    """Opportunity owner or admin sets a review status; re-review is allowed."""
    _require_reviewer(application, reviewer)
    if status not in REVIEW_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(REVIEW_STATUSES)}")
    application.status = status
    if notes:
        application.notes = notes
    application.reviewed_by_id = reviewer.id
    application.reviewed_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(
        "Application reviewed",
        extra={"application_id": application.id, "reviewer_id": reviewer.id, "review_status": status},
    )
    return application


def annotate_application(application: Application, reviewer: User, notes: Optional[str]) -> Application:
    _require_reviewer(application, reviewer)
    application.notes = notes
    db.session.commit()
    return application
