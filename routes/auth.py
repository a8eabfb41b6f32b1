"""Registration, login, stakeholder upgrade, and password recovery."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from sqlalchemy.exc import IntegrityError
from wtforms import PasswordField, StringField, TextAreaField
from wtforms.validators import AnyOf, DataRequired, Email, Length, Optional, ValidationError

from extensions import db
from models import COMPANY_SIZES, User
from utils.account_service import (
    create_password_reset_token,
    find_by_email,
    make_stakeholder,
    reset_password,
    validate_password,
)
from utils.decorators import auth_required, ensure_account_usable, log_action
from utils.email_service import EmailDeliveryError, send_password_reset_email
from utils.errors import AuthenticationError, ConflictError, DependencyError
from utils.payloads import ApiForm, bind_form, json_body
from utils.policy import can_post_as_stakeholder, is_admin
from utils.security import issue_access_token

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

RESET_REQUESTED_MESSAGE = "If an account exists for that email, a password reset link has been sent."


class CompanyFieldsMixin:
    company_name = StringField(validators=[Optional(), Length(max=255)])
    company_description = TextAreaField(validators=[Optional(), Length(max=5000)])
    company_industry = StringField(validators=[Optional(), Length(max=150)])
    company_size = StringField(validators=[Optional(), AnyOf(COMPANY_SIZES)])
    company_website = StringField(validators=[Optional(), Length(max=1024)])
    phone = StringField(validators=[Optional(), Length(max=50)])
    location = StringField(validators=[Optional(), Length(max=150)])


class RegistrationForm(CompanyFieldsMixin, ApiForm):
    name = StringField(validators=[DataRequired(), Length(max=150)])
    email = StringField(validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField(validators=[DataRequired()])
    role = StringField(validators=[Optional(), AnyOf(("user", "stakeholder"), message="Role must be user or stakeholder")])

    def validate_email(self, field):
        if find_by_email(field.data):
            raise ValidationError("Email already registered")


class LoginForm(ApiForm):
    email = StringField(validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField(validators=[DataRequired()])


class StakeholderUpgradeForm(CompanyFieldsMixin, ApiForm):
    company_name = StringField(validators=[DataRequired(), Length(max=255)])


class ForgotPasswordForm(ApiForm):
    email = StringField(validators=[DataRequired(), Email(), Length(max=255)])


class ResetPasswordForm(ApiForm):
    password = PasswordField(validators=[DataRequired()])


def _session_payload(user: User) -> dict:
    payload = user.public_payload()
    if user.role == "stakeholder":
        payload.update({"company_name": user.company_name, "verification_status": user.verification_status})
    return payload


@auth_bp.route("/register", methods=["POST"])
def register():
    data = bind_form(RegistrationForm, json_body())
    validate_password(data["password"])

    user = User(name=data["name"], email=data["email"].lower(), role="user")
    user.set_password(data["password"])
    if data.get("role") == "stakeholder":
        make_stakeholder(user, data)
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Email already registered") from exc
    log_action("REGISTER", user)
    db.session.commit()

    current_app.logger.info("User registered", extra={"user_id": user.id, "role": user.role})
    return jsonify({"token": issue_access_token(user.id), "user": _session_payload(user)}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = bind_form(LoginForm, json_body())
    user = find_by_email(data["email"])
    if not user or not user.check_password(data["password"]):
        log_action("LOGIN_FAILED", user)
        db.session.commit()
        raise AuthenticationError("Invalid credentials")

    ensure_account_usable(user)
    user.last_login_at = datetime.utcnow()
    log_action("LOGIN", user)
    db.session.commit()
    return jsonify({"token": issue_access_token(user.id), "user": _session_payload(user)})


@auth_bp.route("/upgrade-to-stakeholder", methods=["POST"])
@auth_required
def upgrade_to_stakeholder():
    data = bind_form(StakeholderUpgradeForm, json_body())
    user = current_user._get_current_object()
    if can_post_as_stakeholder(user):
        raise ConflictError(
            "Admins already have stakeholder capabilities" if is_admin(user) else "Account is already a stakeholder"
        )
    make_stakeholder(user, data)
    log_action("UPGRADE_STAKEHOLDER", user)
    db.session.commit()
    return jsonify({"message": "Successfully upgraded to stakeholder", "user": _session_payload(user)})


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    data = bind_form(ForgotPasswordForm, json_body())
    user = find_by_email(data["email"])
    if not user or not user.is_active:
        return jsonify({"message": RESET_REQUESTED_MESSAGE})

    token, _ = create_password_reset_token(user)
    log_action("PASSWORD_RESET_REQUESTED", user)
    db.session.commit()

    reset_link = f"{current_app.config['FRONTEND_URL'].rstrip('/')}/reset-password/{token}"
    try:
        send_password_reset_email(
            user.email,
            user.name,
            reset_link,
            int(current_app.config.get("PASSWORD_RESET_MINUTES", 10)),
        )
    except EmailDeliveryError as exc:
        current_app.logger.error("Password reset email failed", extra={"user_id": user.id, "error": str(exc)})
        raise DependencyError("Failed to send email. Please try again later.") from exc
    return jsonify({"message": RESET_REQUESTED_MESSAGE})


@auth_bp.route("/reset-password/<string:token>", methods=["POST"])
def reset_password_with_token(token):
    data = bind_form(ResetPasswordForm, json_body())
    user = reset_password(token, data["password"])
    log_action("PASSWORD_RESET", user)
    db.session.commit()
    return jsonify({"message": "Password reset successful. You can now login with your new password."})
