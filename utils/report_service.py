"""Abuse reports: user submission and admin triage."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app

from extensions import db
from models import REPORT_REASONS, REPORT_TYPES, Report, User
from utils.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

OPEN_STATUSES: tuple[str, ...] = ("pending", "under-review")


def submit_report(reporter: User, data: Dict[str, Any]) -> Report:
    required = ("report_type", "reported_item_id", "reason", "description")
    if any(not data.get(key) for key in required):
        raise ValidationError("Report type, reported item, reason, and description are required")
    if data["report_type"] not in REPORT_TYPES:
        raise ValidationError(f"Report type must be one of: {', '.join(REPORT_TYPES)}")
    if data["reason"] not in REPORT_REASONS:
        raise ValidationError(f"Reason must be one of: {', '.join(REPORT_REASONS)}")

    report = Report(
        reported_by_id=reporter.id,
        report_type=data["report_type"],
        reported_item_id=str(data["reported_item_id"]),
        reason=data["reason"],
        description=data["description"],
        status="pending",
    )
    db.session.add(report)
    db.session.commit()
    current_app.logger.info(
        "Report submitted",
        extra={"report_id": report.id, "report_type": report.report_type, "reporter_id": reporter.id},
    )
    return report


def get_report(report_id: str) -> Report:
    report = db.session.get(Report, report_id)
    if not report:
        raise NotFoundError("Report not found")
    return report


def get_own_report(report_id: str, user: User) -> Report:
    report = get_report(report_id)
    if report.reported_by_id != user.id:
        raise AuthorizationError("Not authorized")
    return report


def report_query(status: Optional[str] = None):
    query = Report.query
    if status and status != "all":
        query = query.filter(Report.status == status)
    return query.order_by(Report.created_at.desc(), Report.id)


def _close(report: Report, values: Dict[Any, Any], target: str) -> Report:
    claimed = Report.query.filter(Report.id == report.id, Report.status.in_(OPEN_STATUSES)).update(
        values, synchronize_session=False
    )
    if claimed != 1:
        db.session.rollback()
        db.session.refresh(report)
        raise ConflictError(f"Report is already {report.status}; cannot mark it {target}")
    db.session.commit()
    db.session.refresh(report)
    return report


def mark_under_review(report: Report, admin: User) -> Report:
    claimed = Report.query.filter(Report.id == report.id, Report.status == "pending").update(
        {Report.status: "under-review"}, synchronize_session=False
    )
    if claimed != 1:
        db.session.rollback()
        db.session.refresh(report)
        raise ConflictError(f"Report is already {report.status}")
    db.session.commit()
    db.session.refresh(report)
    return report


def resolve_report(report: Report, admin: User, resolution: Optional[str], action_taken: Optional[str]) -> Report:
    _close(
        report,
        {
            Report.status: "resolved",
            Report.resolved_by_id: admin.id,
            Report.resolved_at: datetime.utcnow(),
            Report.resolution: resolution,
            Report.action_taken: action_taken,
        },
        "resolved",
    )
    current_app.logger.info("Report resolved", extra={"report_id": report.id, "admin_id": admin.id})
    return report


def dismiss_report(report: Report, admin: User, resolution: Optional[str]) -> Report:
    _close(
        report,
        {
            Report.status: "dismissed",
            Report.resolved_by_id: admin.id,
            Report.resolved_at: datetime.utcnow(),
            Report.resolution: resolution,
        },
        "dismissed",
    )
    current_app.logger.info("Report dismissed", extra={"report_id": report.id, "admin_id": admin.id})
    return report
