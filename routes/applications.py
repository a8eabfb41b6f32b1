"""Applicant-facing application endpoints."""
from flask import Blueprint, jsonify
from flask_login import current_user
from wtforms import FieldList, Form, FormField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from models import Application
from utils.application_service import (
    edit_application,
    get_owned_application,
    submit_application,
    withdraw_application,
)
from utils.decorators import auth_required
from utils.payloads import ApiForm, bind_form, json_body

applications_bp = Blueprint("applications", __name__, url_prefix="/api/applications")


class DocumentForm(Form):
    name = StringField(validators=[DataRequired(), Length(max=255)])
    url = StringField(validators=[DataRequired(), Length(max=1024)])
    type = StringField(validators=[Optional(), Length(max=60)])


class AnswerForm(Form):
    question = StringField(validators=[DataRequired(), Length(max=500)])
    answer = TextAreaField(validators=[Optional(), Length(max=5000)])


class ApplicationForm(ApiForm):
    opportunity_id = StringField(validators=[Optional(), Length(max=36)])
    cover_letter = TextAreaField(validators=[Optional(), Length(max=10000)])
    resume = StringField(validators=[Optional(), Length(max=1024)])
    documents = FieldList(FormField(DocumentForm))
    answers = FieldList(FormField(AnswerForm))


@applications_bp.route("/my", methods=["GET"])
@auth_required
def my_applications():
    applications = (
        Application.query.filter(Application.user_id == current_user.id)
        .order_by(Application.created_at.desc(), Application.id)
        .all()
    )
    return jsonify([application.public_payload() for application in applications])


@applications_bp.route("/<string:application_id>", methods=["GET"])
@auth_required
def application_detail(application_id):
    return jsonify(get_owned_application(application_id, current_user).public_payload())


@applications_bp.route("", methods=["POST"])
@auth_required
def create():
    data = bind_form(ApplicationForm, json_body())
    opportunity_id = data.pop("opportunity_id", None)
    application = submit_application(opportunity_id, current_user, data)
    return jsonify({"message": "Application submitted successfully", "application": application.public_payload()}), 201


@applications_bp.route("/<string:application_id>", methods=["PUT"])
@auth_required
def update(application_id):
    application = get_owned_application(application_id, current_user)
    data = bind_form(ApplicationForm, json_body(), partial=True)
    data.pop("opportunity_id", None)
    edit_application(application, current_user, data)
    return jsonify({"message": "Application updated", "application": application.public_payload()})


@applications_bp.route("/<string:application_id>", methods=["DELETE"])
@applications_bp.route("/<string:application_id>/withdraw", methods=["POST"])
@auth_required
def withdraw(application_id):
    application = get_owned_application(application_id, current_user)
    withdraw_application(application, current_user)
    return jsonify({"message": "Application withdrawn successfully", "application": application.public_payload()})
