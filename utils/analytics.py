"""Dashboard aggregates for admins and stakeholders."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import func

from extensions import db
from models import Application, Opportunity, Report, User


def _grouped(column, *criteria) -> List[Dict[str, Any]]:
    query = db.session.query(column, func.count()).filter(*criteria).group_by(column).order_by(column)
    return [{"name": key, "value": count} for key, count in query.all()]


def admin_stats(now: datetime | None = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    return {
        "total_users": User.query.count(),
        "total_opportunities": Opportunity.query.count(),
        "pending_approvals": Opportunity.query.filter(Opportunity.status == "pending").count(),
        "active_reports": Report.query.filter(Report.status.in_(("pending", "under-review"))).count(),
        "recent_applications": Application.query.filter(Application.created_at >= now - timedelta(days=30)).count(),
        "users_by_role": _grouped(User.role),
        "opportunities_by_category": _grouped(Opportunity.category),
        "opportunities_by_status": _grouped(Opportunity.status),
    }


def stakeholder_analytics(owner: User, now: datetime | None = None) -> Dict[str, Any]:
    """Totals over the owner's listings and the applications they received."""
    now = now or datetime.utcnow()
    opportunities = (
        Opportunity.query.filter(Opportunity.created_by_id == owner.id)
        .order_by(Opportunity.created_at.desc(), Opportunity.id)
        .all()
    )
    owned_ids = [opp.id for opp in opportunities]

    status_counts: Dict[str, int] = {}
    recent = 0
    if owned_ids:
        status_counts = dict(
            db.session.query(Application.status, func.count(Application.id))
            .filter(Application.opportunity_id.in_(owned_ids))
            .group_by(Application.status)
            .all()
        )
        recent = Application.query.filter(
            Application.opportunity_id.in_(owned_ids),
            Application.created_at >= now - timedelta(days=7),
        ).count()

    return {
        "total_opportunities": len(opportunities),
        "active_opportunities": sum(1 for opp in opportunities if opp.status == "approved"),
        "total_applications": sum(status_counts.values()),
        "pending_applications": status_counts.get("pending", 0),
        "approved_applications": status_counts.get("approved", 0),
        "rejected_applications": status_counts.get("rejected", 0),
        "total_views": sum(opp.views or 0 for opp in opportunities),
        "status_breakdown": status_counts,
        "opportunity_breakdown": [
            {
                "id": opp.id,
                "title": opp.title,
                "applications": opp.application_count,
                "views": opp.views,
                "status": opp.status,
            }
            for opp in opportunities
        ],
        "recent_applications": recent,
    }
