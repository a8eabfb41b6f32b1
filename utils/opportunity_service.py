"""Opportunity lifecycle: creation, moderation transitions, visibility, and counters."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import String, cast, or_

from extensions import db
from models import Application, Opportunity, User, WhatsAppSubmission, saved_opportunities
from utils.errors import ConflictError, NotFoundError, ValidationError
from utils.policy import is_admin, require_moderation

DEFAULT_REJECTION_REASON = "No reason provided"

# Columns a client may write; status, ownership and counters only move through lifecycle calls.
EDITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "category",
    "subcategory",
    "organization",
    "contact_email",
    "contact_phone",
    "website",
    "apply_url",
    "allow_internal_application",
    "application_questions",
    "required_documents",
    "location",
    "eligibility",
    "requirements",
    "deadline",
    "closing_date",
    "start_date",
    "end_date",
    "amount",
    "funding_type",
    "employment_type",
    "salary",
    "experience",
    "image_url",
    "attachments",
    "tags",
    "keywords",
)

LIST_FIELDS = {
    "application_questions",
    "required_documents",
    "requirements",
    "attachments",
    "tags",
    "keywords",
}

SORTABLE_COLUMNS = {
    "created_at": Opportunity.created_at,
    "updated_at": Opportunity.updated_at,
    "closing_date": Opportunity.closing_date,
    "deadline": Opportunity.deadline,
    "views": Opportunity.views,
    "application_count": Opportunity.application_count,
    "title": Opportunity.title,
}

# Transitions permitted by the moderation state machine.
APPROVABLE_FROM: tuple[str, ...] = ("pending", "rejected")
REJECTABLE_FROM: tuple[str, ...] = ("pending", "approved")


def _apply_editable(opportunity: Opportunity, data: Dict[str, Any]) -> None:
    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key in LIST_FIELDS:
            value = [item for item in (value or []) if item not in (None, "", {})]
        if key == "allow_internal_application":
            value = bool(value)
        setattr(opportunity, key, value)


def create_opportunity(data: Dict[str, Any], creator: User, source: str = "portal") -> Opportunity:
    """Persist a new listing; admins publish immediately, everyone else waits for review."""
    if not data.get("title") or not data.get("description") or not data.get("category"):
        raise ValidationError("Title, description and category are required")

    opportunity = Opportunity(source=source, created_by_id=creator.id)
    _apply_editable(opportunity, data)
    opportunity.status = "approved" if is_admin(creator) else "pending"
    if is_admin(creator):
        opportunity.featured = bool(data.get("featured", False))
        opportunity.urgent = bool(data.get("urgent", False))
    db.session.add(opportunity)
    db.session.commit()

    current_app.logger.info(
        "Opportunity created",
        extra={
            "opportunity_id": opportunity.id,
            "creator_id": creator.id,
            "status": opportunity.status,
            "source": source,
        },
    )
    return opportunity


def get_opportunity(opportunity_id: str) -> Opportunity:
    opportunity = db.session.get(Opportunity, opportunity_id)
    if not opportunity:
        raise NotFoundError("Opportunity not found")
    return opportunity


def record_view(opportunity_id: str) -> None:
    """Bump the view counter in SQL so concurrent reads never lose increments."""
    Opportunity.query.filter(Opportunity.id == opportunity_id).update(
        {Opportunity.views: Opportunity.views + 1}, synchronize_session=False
    )
    db.session.commit()


def search_filter(term: str):
    like = f"%{term}%"
    return or_(
        Opportunity.title.ilike(like),
        Opportunity.description.ilike(like),
        Opportunity.organization.ilike(like),
        cast(Opportunity.tags, String).ilike(like),
    )


def apply_sort(query, sort_by: Optional[str], sort_order: Optional[str]):
    column = SORTABLE_COLUMNS.get((sort_by or "created_at").strip(), Opportunity.created_at)
    ordered = column.asc() if (sort_order or "desc").lower() == "asc" else column.desc()
    return query.order_by(ordered, Opportunity.id)


def build_listing_query(filters: Dict[str, Any], viewer: Optional[User] = None):
    """Public listing query; creators (and admins) see every status of the creator's own posts."""
    created_by = filters.get("created_by")
    if created_by and viewer is not None and (is_admin(viewer) or getattr(viewer, "id", None) == created_by):
        query = Opportunity.query.filter(Opportunity.created_by_id == created_by)
    else:
        query = Opportunity.public_query()
        if created_by:
            query = query.filter(Opportunity.created_by_id == created_by)

    category = filters.get("category")
    if category and category != "all":
        query = query.filter(Opportunity.category == category)
    if filters.get("subcategory"):
        query = query.filter(Opportunity.subcategory == filters["subcategory"])
    if filters.get("location"):
        query = query.filter(Opportunity.location.ilike(f"%{filters['location']}%"))
    if filters.get("featured"):
        query = query.filter(Opportunity.featured.is_(True))
    if filters.get("search"):
        # Combined with the visibility filter, never in place of it.
        query = query.filter(search_filter(filters["search"]))
    return apply_sort(query, filters.get("sort_by"), filters.get("sort_order"))


def update_opportunity(opportunity: Opportunity, data: Dict[str, Any], actor: User) -> Opportunity:
    require_moderation(actor, opportunity, "Not authorized to edit this opportunity")
    _apply_editable(opportunity, data)
    opportunity.updated_by_id = actor.id
    db.session.commit()
    current_app.logger.info(
        "Opportunity updated",
        extra={"opportunity_id": opportunity.id, "actor_id": actor.id, "fields": sorted(data.keys())},
    )
    return opportunity


def set_flags(opportunity: Opportunity, actor: User, featured: Optional[bool] = None, urgent: Optional[bool] = None) -> Opportunity:
    if featured is not None:
        opportunity.featured = bool(featured)
    if urgent is not None:
        opportunity.urgent = bool(urgent)
    opportunity.updated_by_id = actor.id
    db.session.commit()
    return opportunity


def _transition(opportunity: Opportunity, allowed_from: tuple[str, ...], values: Dict[str, Any], target: str) -> Opportunity:
    claimed = (
        Opportunity.query.filter(Opportunity.id == opportunity.id, Opportunity.status.in_(allowed_from))
        .update(values, synchronize_session=False)
    )
    if claimed != 1:
        db.session.rollback()
        db.session.refresh(opportunity)
        raise ConflictError(f"Opportunity is already {opportunity.status}; cannot move to {target}")
    db.session.commit()
    db.session.refresh(opportunity)
    return opportunity


def approve_opportunity(opportunity: Opportunity, admin: User) -> Opportunity:
    """pending|rejected -> approved, clearing any previous rejection reason."""
    _transition(
        opportunity,
        APPROVABLE_FROM,
        {
            Opportunity.status: "approved",
            Opportunity.rejection_reason: None,
            Opportunity.updated_by_id: admin.id,
            Opportunity.updated_at: datetime.utcnow(),
        },
        "approved",
    )
    current_app.logger.info("Opportunity approved", extra={"opportunity_id": opportunity.id, "admin_id": admin.id})
    return opportunity


def reject_opportunity(opportunity: Opportunity, admin: User, reason: Optional[str] = None) -> Opportunity:
    """pending|approved -> rejected; the reason is never left empty."""
    _transition(
        opportunity,
        REJECTABLE_FROM,
        {
            Opportunity.status: "rejected",
            Opportunity.rejection_reason: (reason or "").strip() or DEFAULT_REJECTION_REASON,
            Opportunity.updated_by_id: admin.id,
            Opportunity.updated_at: datetime.utcnow(),
        },
        "rejected",
    )
    current_app.logger.info("Opportunity rejected", extra={"opportunity_id": opportunity.id, "admin_id": admin.id})
    return opportunity


def change_status(opportunity: Opportunity, admin: User, status: str, reason: Optional[str] = None) -> Opportunity:
    if status == "approved":
        return approve_opportunity(opportunity, admin)
    if status == "rejected":
        return reject_opportunity(opportunity, admin, reason)
    raise ValidationError("Status can only be changed to approved or rejected")


def delete_opportunity(opportunity: Opportunity, actor: User) -> None:
    """Hard delete; applications and submissions keep their rows with the reference cleared."""
    require_moderation(actor, opportunity, "Not authorized to delete this opportunity")
    opportunity_id = opportunity.id
    Application.query.filter(Application.opportunity_id == opportunity_id).update(
        {Application.opportunity_id: None}, synchronize_session=False
    )
    WhatsAppSubmission.query.filter(WhatsAppSubmission.opportunity_id == opportunity_id).update(
        {WhatsAppSubmission.opportunity_id: None}, synchronize_session=False
    )
    db.session.execute(saved_opportunities.delete().where(saved_opportunities.c.opportunity_id == opportunity_id))
    db.session.delete(opportunity)
    db.session.commit()
    current_app.logger.info("Opportunity deleted", extra={"opportunity_id": opportunity_id, "actor_id": actor.id})


def save_for_user(opportunity: Opportunity, user: User) -> None:
    if user.saved.filter(Opportunity.id == opportunity.id).count():
        raise ConflictError("Opportunity already saved")
    db.session.execute(saved_opportunities.insert().values(user_id=user.id, opportunity_id=opportunity.id, saved_at=datetime.utcnow()))
    db.session.commit()


def unsave_for_user(opportunity: Opportunity, user: User) -> None:
    db.session.execute(
        saved_opportunities.delete().where(
            saved_opportunities.c.user_id == user.id,
            saved_opportunities.c.opportunity_id == opportunity.id,
        )
    )
    db.session.commit()
