"""Self-service profile endpoints."""
from datetime import datetime

from flask import Blueprint, jsonify
from flask_login import current_user
from wtforms import BooleanField, FieldList, PasswordField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Length, Optional

from extensions import db
from models import DEFAULT_PREFERENCES, EDUCATION_LEVELS, EMPLOYMENT_STATUSES, OPPORTUNITY_CATEGORIES, Application, Opportunity
from utils.account_service import change_password, delete_user
from utils.decorators import auth_required
from utils.payloads import ApiForm, apply_fields, bind_form, json_body

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

PROFILE_FIELDS: tuple[str, ...] = (
    "name",
    "bio",
    "location",
    "phone",
    "education_level",
    "employment_status",
    "skills",
    "interests",
)


class ProfileForm(ApiForm):
    name = StringField(validators=[DataRequired(), Length(max=150)])
    bio = TextAreaField(validators=[Optional(), Length(max=2000)])
    location = StringField(validators=[Optional(), Length(max=150)])
    phone = StringField(validators=[Optional(), Length(max=50)])
    education_level = StringField(validators=[Optional(), AnyOf(EDUCATION_LEVELS)])
    employment_status = StringField(validators=[Optional(), AnyOf(EMPLOYMENT_STATUSES)])
    skills = FieldList(StringField(validators=[Length(max=80)]))
    interests = FieldList(StringField(validators=[Length(max=80)]))


class PreferencesForm(ApiForm):
    email_notifications = BooleanField()
    sms_notifications = BooleanField()
    job_alerts = BooleanField()
    bursary_alerts = BooleanField()
    preferred_categories = FieldList(StringField(validators=[AnyOf(OPPORTUNITY_CATEGORIES)]))


class PasswordChangeForm(ApiForm):
    current_password = PasswordField(validators=[DataRequired()])
    new_password = PasswordField(validators=[DataRequired()])


@users_bp.route("/me", methods=["GET"])
@auth_required
def me():
    current_user.last_login_at = datetime.utcnow()
    db.session.commit()
    return jsonify(current_user.profile_payload())


@users_bp.route("/me", methods=["PUT", "PATCH"])
@auth_required
def update_me():
    data = bind_form(ProfileForm, json_body(), partial=True)
    for key in ("skills", "interests"):
        if key in data:
            data[key] = [item for item in data[key] or [] if item]
    apply_fields(current_user, data, PROFILE_FIELDS)
    db.session.commit()
    return jsonify(current_user.profile_payload())


@users_bp.route("/me/preferences", methods=["PUT"])
@auth_required
def update_preferences():
    data = bind_form(PreferencesForm, json_body(), partial=True)
    preferences = {**DEFAULT_PREFERENCES, **(current_user.preferences or {})}
    for key, value in data.items():
        if key == "preferred_categories":
            value = [item for item in value or [] if item]
        preferences[key] = value
    current_user.preferences = preferences
    db.session.commit()
    return jsonify(current_user.profile_payload())


@users_bp.route("/me/password", methods=["PUT"])
@auth_required
def update_password():
    data = bind_form(PasswordChangeForm, json_body())
    change_password(current_user, data["current_password"], data["new_password"])
    return jsonify({"message": "Password updated successfully"})


@users_bp.route("/me/saved", methods=["GET"])
@auth_required
def saved_opportunities():
    saved = current_user.saved.filter(Opportunity.status == "approved").order_by(Opportunity.created_at.desc()).all()
    return jsonify([opportunity.public_payload() for opportunity in saved])


@users_bp.route("/me/applications", methods=["GET"])
@auth_required
def my_applications():
    applications = (
        Application.query.filter(Application.user_id == current_user.id)
        .order_by(Application.created_at.desc(), Application.id)
        .all()
    )
    return jsonify([application.public_payload() for application in applications])


@users_bp.route("/me/opportunities", methods=["GET"])
@auth_required
def my_opportunities():
    opportunities = (
        Opportunity.query.filter(Opportunity.created_by_id == current_user.id)
        .order_by(Opportunity.created_at.desc(), Opportunity.id)
        .all()
    )
    return jsonify([opportunity.public_payload() for opportunity in opportunities])


@users_bp.route("/me", methods=["DELETE"])
@auth_required
def delete_me():
    user = current_user._get_current_object()
    delete_user(user, user)
    return jsonify({"message": "Account deleted successfully"})
