"""Admin moderation surface: stats, users, opportunities, reports, applications."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import or_
from wtforms import BooleanField, StringField, TextAreaField
from wtforms.validators import AnyOf, Length, Optional

from extensions import db
from models import OPPORTUNITY_STATUSES, Application, Opportunity, User
from utils.account_service import activate_user, change_role, delete_user, set_verification, suspend_user
from utils.analytics import admin_stats
from utils.decorators import roles_required
from utils.errors import NotFoundError
from utils.opportunity_service import (
    approve_opportunity,
    change_status,
    create_opportunity,
    delete_opportunity,
    get_opportunity,
    reject_opportunity,
    set_flags,
    update_opportunity,
)
from utils.payloads import ApiForm, bind_form, json_body, paginate
from utils.report_service import dismiss_report, get_report, mark_under_review, report_query, resolve_report
from utils.risk_assessment import assess_opportunity
from .opportunities import OpportunityForm

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


class SuspendForm(ApiForm):
    reason = StringField(validators=[Optional(), Length(max=500)])


class RoleForm(ApiForm):
    role = StringField()


class VerificationForm(ApiForm):
    verification_status = StringField()


class OpportunityPatchForm(ApiForm):
    status = StringField(validators=[Optional(), AnyOf(OPPORTUNITY_STATUSES)])
    rejection_reason = StringField(validators=[Optional(), Length(max=500)])
    featured = BooleanField()
    urgent = BooleanField()


class RejectForm(ApiForm):
    reason = StringField(validators=[Optional(), Length(max=500)])


class ResolutionForm(ApiForm):
    resolution = TextAreaField(validators=[Optional(), Length(max=5000)])
    action_taken = StringField(validators=[Optional(), Length(max=255)])


def _admin_page_size() -> int:
    return int(current_app.config.get("ADMIN_PAGE_SIZE", 50))


def _get_user(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@admin_bp.route("/stats", methods=["GET"])
@roles_required("admin")
def stats():
    return jsonify(admin_stats())


@admin_bp.route("/users", methods=["GET"])
@roles_required("admin")
def list_users():
    query = User.query
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    role = request.args.get("role")
    if role and role != "all":
        query = query.filter(User.role == role)
    query = query.order_by(User.created_at.desc(), User.id)
    return jsonify(paginate(query, "users", lambda user: user.profile_payload(), _admin_page_size()))


@admin_bp.route("/users/<string:user_id>", methods=["GET"])
@roles_required("admin")
def user_detail(user_id):
    user = _get_user(user_id)
    applications = user.applications.order_by(Application.created_at.desc()).all()
    return jsonify(
        {
            "user": user.profile_payload(),
            "applications": [application.public_payload() for application in applications],
            "saved_count": user.saved.count(),
        }
    )


@admin_bp.route("/users/<string:user_id>/suspend", methods=["PATCH"])
@roles_required("admin")
def suspend(user_id):
    data = bind_form(SuspendForm, json_body())
    user = suspend_user(_get_user(user_id), current_user, data.get("reason"))
    return jsonify({"message": "User suspended", "user": user.profile_payload()})


@admin_bp.route("/users/<string:user_id>/activate", methods=["PATCH"])
@roles_required("admin")
def activate(user_id):
    user = activate_user(_get_user(user_id), current_user)
    return jsonify({"message": "User activated", "user": user.profile_payload()})


@admin_bp.route("/users/<string:user_id>/role", methods=["PATCH"])
@roles_required("admin")
def update_role(user_id):
    data = bind_form(RoleForm, json_body())
    user = change_role(_get_user(user_id), current_user, data.get("role"))
    return jsonify({"message": f"User role updated to {user.role}", "user": user.profile_payload()})


@admin_bp.route("/users/<string:user_id>/verification", methods=["PATCH"])
@roles_required("admin")
def update_verification(user_id):
    data = bind_form(VerificationForm, json_body())
    user = set_verification(_get_user(user_id), current_user, data.get("verification_status"))
    labels = {"verified": "approved", "rejected": "rejected"}
    message = f"Stakeholder {labels.get(user.verification_status, 'status updated')}"
    return jsonify({"message": message, "user": user.profile_payload()})


@admin_bp.route("/users/<string:user_id>", methods=["DELETE"])
@roles_required("admin")
def remove_user(user_id):
    delete_user(_get_user(user_id), current_user)
    return jsonify({"message": "User deleted successfully"})


@admin_bp.route("/opportunities", methods=["GET"])
@roles_required("admin")
def list_opportunities():
    query = Opportunity.query
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Opportunity.title.ilike(like), Opportunity.organization.ilike(like)))
    for key in ("status", "category"):
        value = request.args.get(key)
        if value and value != "all":
            query = query.filter(getattr(Opportunity, key) == value)
    query = query.order_by(Opportunity.created_at.desc(), Opportunity.id)
    return jsonify(paginate(query, "opportunities", lambda opp: opp.public_payload(), _admin_page_size()))


@admin_bp.route("/opportunities/<string:opportunity_id>", methods=["GET"])
@roles_required("admin")
def opportunity_detail(opportunity_id):
    return jsonify(get_opportunity(opportunity_id).public_payload())


@admin_bp.route("/opportunities", methods=["POST"])
@roles_required("admin")
def create():
    data = bind_form(OpportunityForm, json_body())
    opportunity = create_opportunity(data, current_user)
    return jsonify({"message": "Opportunity created", "opportunity": opportunity.public_payload()}), 201


@admin_bp.route("/opportunities/<string:opportunity_id>", methods=["PUT"])
@roles_required("admin")
def update(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    data = bind_form(OpportunityForm, json_body(), partial=True)
    update_opportunity(opportunity, data, current_user)
    if "featured" in data or "urgent" in data:
        set_flags(opportunity, current_user, data.get("featured"), data.get("urgent"))
    return jsonify({"message": "Opportunity updated", "opportunity": opportunity.public_payload()})


@admin_bp.route("/opportunities/<string:opportunity_id>", methods=["PATCH"])
@roles_required("admin")
def patch(opportunity_id):
    """Status moves go through the moderation transitions; flags are set directly."""
    opportunity = get_opportunity(opportunity_id)
    data = bind_form(OpportunityPatchForm, json_body(), partial=True)
    if data.get("status") and data["status"] != opportunity.status:
        change_status(opportunity, current_user, data["status"], data.get("rejection_reason"))
    if "featured" in data or "urgent" in data:
        set_flags(opportunity, current_user, data.get("featured"), data.get("urgent"))
    return jsonify({"message": "Opportunity updated", "opportunity": opportunity.public_payload()})


@admin_bp.route("/opportunities/<string:opportunity_id>/approve", methods=["POST"])
@roles_required("admin")
def approve(opportunity_id):
    opportunity = approve_opportunity(get_opportunity(opportunity_id), current_user)
    return jsonify({"message": "Opportunity approved", "opportunity": opportunity.public_payload()})


@admin_bp.route("/opportunities/<string:opportunity_id>/reject", methods=["POST"])
@roles_required("admin")
def reject(opportunity_id):
    data = bind_form(RejectForm, json_body())
    opportunity = reject_opportunity(get_opportunity(opportunity_id), current_user, data.get("reason"))
    return jsonify({"message": "Opportunity rejected", "opportunity": opportunity.public_payload()})


@admin_bp.route("/opportunities/<string:opportunity_id>/fraud-check", methods=["POST"])
@roles_required("admin")
def fraud_check(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    result = assess_opportunity(opportunity)
    return jsonify({"opportunity_id": opportunity.id, **result})


@admin_bp.route("/opportunities/<string:opportunity_id>", methods=["DELETE"])
@roles_required("admin")
def delete(opportunity_id):
    delete_opportunity(get_opportunity(opportunity_id), current_user)
    return jsonify({"message": "Opportunity deleted successfully"})


@admin_bp.route("/reports", methods=["GET"])
@roles_required("admin")
def list_reports():
    query = report_query(request.args.get("status"))
    return jsonify(paginate(query, "reports", lambda report: report.public_payload(), _admin_page_size()))


@admin_bp.route("/reports/<string:report_id>/review", methods=["PATCH"])
@roles_required("admin")
def review_report(report_id):
    report = mark_under_review(get_report(report_id), current_user)
    return jsonify({"message": "Report under review", "report": report.public_payload()})


@admin_bp.route("/reports/<string:report_id>/resolve", methods=["PATCH"])
@roles_required("admin")
def resolve(report_id):
    data = bind_form(ResolutionForm, json_body())
    report = resolve_report(get_report(report_id), current_user, data.get("resolution"), data.get("action_taken"))
    return jsonify({"message": "Report resolved", "report": report.public_payload()})


@admin_bp.route("/reports/<string:report_id>/dismiss", methods=["PATCH"])
@roles_required("admin")
def dismiss(report_id):
    data = bind_form(ResolutionForm, json_body())
    report = dismiss_report(get_report(report_id), current_user, data.get("resolution"))
    return jsonify({"message": "Report dismissed", "report": report.public_payload()})


@admin_bp.route("/applications", methods=["GET"])
@roles_required("admin")
def list_applications():
    query = Application.query
    status = request.args.get("status")
    if status and status != "all":
        query = query.filter(Application.status == status)
    query = query.order_by(Application.created_at.desc(), Application.id)
    return jsonify(
        paginate(
            query,
            "applications",
            lambda application: application.public_payload(include_applicant=True),
            _admin_page_size(),
        )
    )
