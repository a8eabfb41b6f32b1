"""Public opportunity browsing plus owner CRUD, bookmarks, and applying."""
from flask import Blueprint, jsonify, request
from flask_login import current_user
from wtforms import BooleanField, DateTimeField, FieldList, Form, FormField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Email, Length, Optional

from models import OPPORTUNITY_CATEGORIES
from utils.application_service import submit_application
from utils.decorators import auth_required
from utils.errors import NotFoundError
from utils.opportunity_service import (
    build_listing_query,
    create_opportunity,
    delete_opportunity,
    get_opportunity,
    record_view,
    save_for_user,
    unsave_for_user,
    update_opportunity,
)
from utils.payloads import DATETIME_FORMATS, ApiForm, arg_flag, bind_form, json_body, paginate
from utils.policy import can_view_opportunity
from .applications import ApplicationForm

opportunities_bp = Blueprint("opportunities", __name__, url_prefix="/api/opportunities")


class QuestionForm(Form):
    question = StringField(validators=[DataRequired(), Length(max=500)])
    type = StringField(default="text", validators=[Optional(), AnyOf(("text", "textarea", "choice", "file"))])
    required = BooleanField(default=False)
    options = FieldList(StringField(validators=[Length(max=255)]))


class RequiredDocumentForm(Form):
    name = StringField(validators=[DataRequired(), Length(max=255)])
    description = StringField(validators=[Optional(), Length(max=500)])
    required = BooleanField(default=True)


class OpportunityForm(ApiForm):
    title = StringField(validators=[DataRequired(), Length(max=255)])
    description = TextAreaField(validators=[DataRequired(), Length(max=20000)])
    category = StringField(validators=[DataRequired(), AnyOf(OPPORTUNITY_CATEGORIES)])
    subcategory = StringField(validators=[Optional(), Length(max=120)])
    organization = StringField(validators=[Optional(), Length(max=255)])
    contact_email = StringField(validators=[Optional(), Email(), Length(max=255)])
    contact_phone = StringField(validators=[Optional(), Length(max=50)])
    website = StringField(validators=[Optional(), Length(max=1024)])
    apply_url = StringField(validators=[Optional(), Length(max=1024)])
    allow_internal_application = BooleanField(default=False)
    application_questions = FieldList(FormField(QuestionForm))
    required_documents = FieldList(FormField(RequiredDocumentForm))
    location = StringField(validators=[Optional(), Length(max=255)])
    eligibility = TextAreaField(validators=[Optional(), Length(max=5000)])
    requirements = FieldList(StringField(validators=[Length(max=500)]))
    deadline = DateTimeField(format=DATETIME_FORMATS, validators=[Optional()])
    closing_date = DateTimeField(format=DATETIME_FORMATS, validators=[Optional()])
    start_date = DateTimeField(format=DATETIME_FORMATS, validators=[Optional()])
    end_date = DateTimeField(format=DATETIME_FORMATS, validators=[Optional()])
    amount = StringField(validators=[Optional(), Length(max=120)])
    funding_type = StringField(validators=[Optional(), Length(max=120)])
    employment_type = StringField(validators=[Optional(), Length(max=120)])
    salary = StringField(validators=[Optional(), Length(max=120)])
    experience = StringField(validators=[Optional(), Length(max=255)])
    image_url = StringField(validators=[Optional(), Length(max=1024)])
    attachments = FieldList(StringField(validators=[Length(max=1024)]))
    tags = FieldList(StringField(validators=[Length(max=60)]))
    keywords = FieldList(StringField(validators=[Length(max=60)]))
    featured = BooleanField(default=False)
    urgent = BooleanField(default=False)


def listing_filters() -> dict:
    return {
        "category": request.args.get("category"),
        "subcategory": request.args.get("subcategory"),
        "location": request.args.get("location"),
        "search": (request.args.get("search") or "").strip() or None,
        "featured": arg_flag("featured"),
        "created_by": request.args.get("created_by") or request.args.get("createdBy"),
        "sort_by": request.args.get("sort_by") or request.args.get("sortBy"),
        "sort_order": request.args.get("sort_order") or request.args.get("order"),
    }


@opportunities_bp.route("", methods=["GET"])
def list_opportunities():
    viewer = current_user if current_user.is_authenticated else None
    query = build_listing_query(listing_filters(), viewer)
    return jsonify(paginate(query, "opportunities", lambda opp: opp.public_payload()))


@opportunities_bp.route("/<string:opportunity_id>", methods=["GET"])
def opportunity_detail(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    if not can_view_opportunity(current_user, opportunity):
        raise NotFoundError("Opportunity not found")
    record_view(opportunity.id)
    return jsonify(opportunity.public_payload())


@opportunities_bp.route("", methods=["POST"])
@auth_required
def create():
    data = bind_form(OpportunityForm, json_body())
    opportunity = create_opportunity(data, current_user)
    message = (
        "Opportunity created successfully"
        if opportunity.status == "approved"
        else "Opportunity submitted for admin approval"
    )
    return jsonify({"message": message, "opportunity": opportunity.public_payload()}), 201


@opportunities_bp.route("/<string:opportunity_id>", methods=["PUT", "PATCH"])
@auth_required
def update(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    data = bind_form(OpportunityForm, json_body(), partial=True)
    update_opportunity(opportunity, data, current_user)
    return jsonify({"message": "Opportunity updated", "opportunity": opportunity.public_payload()})


@opportunities_bp.route("/<string:opportunity_id>", methods=["DELETE"])
@auth_required
def delete(opportunity_id):
    delete_opportunity(get_opportunity(opportunity_id), current_user)
    return jsonify({"message": "Opportunity deleted successfully"})


@opportunities_bp.route("/<string:opportunity_id>/save", methods=["POST"])
@auth_required
def save(opportunity_id):
    opportunity = get_opportunity(opportunity_id)
    if not can_view_opportunity(current_user, opportunity):
        raise NotFoundError("Opportunity not found")
    save_for_user(opportunity, current_user)
    return jsonify({"message": "Opportunity saved"})


@opportunities_bp.route("/<string:opportunity_id>/save", methods=["DELETE"])
@auth_required
def unsave(opportunity_id):
    unsave_for_user(get_opportunity(opportunity_id), current_user)
    return jsonify({"message": "Opportunity removed from saved"})


@opportunities_bp.route("/<string:opportunity_id>/apply", methods=["POST"])
@auth_required
def apply(opportunity_id):
    data = bind_form(ApplicationForm, json_body())
    data.pop("opportunity_id", None)
    application = submit_application(opportunity_id, current_user, data)
    return jsonify({"message": "Application submitted successfully", "application": application.public_payload()}), 201
