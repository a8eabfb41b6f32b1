"""Stakeholder workspace: own listings, received applications, and analytics."""
from flask import Blueprint, jsonify
from flask_login import current_user
from wtforms import StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Length, Optional

from models import REVIEW_STATUSES, Application, Opportunity
from utils.analytics import stakeholder_analytics
from utils.application_service import annotate_application, get_application, review_application
from utils.decorators import roles_required
from utils.opportunity_service import create_opportunity, delete_opportunity, get_opportunity, update_opportunity
from utils.payloads import ApiForm, bind_form, json_body
from utils.policy import require_moderation
from .opportunities import OpportunityForm

stakeholder_bp = Blueprint("stakeholder", __name__, url_prefix="/api/stakeholder")


class ReviewForm(ApiForm):
    status = StringField(validators=[DataRequired(), AnyOf(REVIEW_STATUSES)])
    notes = TextAreaField(validators=[Optional(), Length(max=5000)])


class NotesForm(ApiForm):
    notes = TextAreaField(validators=[Optional(), Length(max=5000)])


@stakeholder_bp.route("/opportunities", methods=["GET"])
@roles_required("stakeholder", "admin")
def my_opportunities():
    opportunities = (
        Opportunity.query.filter(Opportunity.created_by_id == current_user.id)
        .order_by(Opportunity.created_at.desc(), Opportunity.id)
        .all()
    )
    return jsonify([opportunity.public_payload() for opportunity in opportunities])


@stakeholder_bp.route("/opportunities", methods=["POST"])
@roles_required("stakeholder", "admin")
def create():
    data = bind_form(OpportunityForm, json_body())
    opportunity = create_opportunity(data, current_user)
    return (
        jsonify(
            {
                "message": "Opportunity submitted for admin approval"
                if opportunity.status == "pending"
                else "Opportunity created successfully",
                "opportunity": opportunity.public_payload(),
            }
        ),
        201,
    )


@stakeholder_bp.route("/opportunities/<string:opportunity_id>", methods=["PUT"])
@roles_required("stakeholder", "admin")
def update(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    data = bind_form(OpportunityForm, json_body(), partial=True)
    data.pop("featured", None)
    data.pop("urgent", None)
    update_opportunity(opportunity, data, current_user)
    return jsonify({"message": "Opportunity updated", "opportunity": opportunity.public_payload()})


@stakeholder_bp.route("/opportunities/<string:opportunity_id>", methods=["DELETE"])
@roles_required("stakeholder", "admin")
def delete(opportunity_id):
    delete_opportunity(get_opportunity(opportunity_id), current_user)
    return jsonify({"message": "Opportunity deleted successfully"})


@stakeholder_bp.route("/applications/<string:opportunity_id>", methods=["GET"])
@roles_required("stakeholder", "admin")
def applications_for(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    require_moderation(current_user, opportunity, "Access denied")
    applications = (
        opportunity.applications.order_by(Application.created_at.desc(), Application.id).all()
    )
    return jsonify([application.public_payload(include_applicant=True) for application in applications])


@stakeholder_bp.route("/application/<string:application_id>", methods=["GET"])
@roles_required("stakeholder", "admin")
def application_detail(application_id):
    application = get_application(application_id)
    require_moderation(current_user, application, "Access denied")
    return jsonify(application.public_payload(include_applicant=True))


@stakeholder_bp.route("/application/<string:application_id>/status", methods=["PUT"])
@roles_required("stakeholder", "admin")
def review(application_id):
    data = bind_form(ReviewForm, json_body())
    application = review_application(get_application(application_id), current_user, data["status"], data.get("notes"))
    return jsonify({"message": "Application status updated", "application": application.public_payload(include_applicant=True)})


@stakeholder_bp.route("/application/<string:application_id>/notes", methods=["POST"])
@roles_required("stakeholder", "admin")
def notes(application_id):
    data = bind_form(NotesForm, json_body())
    application = annotate_application(get_application(application_id), current_user, data.get("notes"))
    return jsonify({"message": "Notes saved", "application": application.public_payload(include_applicant=True)})


@stakeholder_bp.route("/analytics", methods=["GET"])
@roles_required("stakeholder", "admin")
def analytics():
    return jsonify(stakeholder_analytics(current_user))
