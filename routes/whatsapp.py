"""WhatsApp webhook intake and the admin moderation queue built on it."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from wtforms import FieldList, StringField, TextAreaField
from wtforms.validators import AnyOf, Email, Length, Optional

from models import OPPORTUNITY_CATEGORIES, SUBMISSION_CATEGORIES, SUBMISSION_STATUSES
from utils.decorators import roles_required
from utils.errors import AuthorizationError, ValidationError
from utils.payloads import ApiForm, bind_form, json_body, paginate
from utils.security import verify_webhook_signature
from utils.whatsapp_intake import (
    approve_submission,
    delete_submission,
    get_submission,
    ingest_webhook,
    reject_submission,
    submission_query,
    submission_stats,
    update_parsed_data,
)

whatsapp_bp = Blueprint("whatsapp", __name__, url_prefix="/api/whatsapp")


class ParsedDataForm(ApiForm):
    title = StringField(validators=[Optional(), Length(max=255)])
    description = TextAreaField(validators=[Optional(), Length(max=20000)])
    organization = StringField(validators=[Optional(), Length(max=255)])
    contact_email = StringField(validators=[Optional(), Email(), Length(max=255)])
    contact_phone = StringField(validators=[Optional(), Length(max=50)])
    website = StringField(validators=[Optional(), Length(max=1024)])
    location = StringField(validators=[Optional(), Length(max=255)])
    requirements = FieldList(StringField(validators=[Length(max=500)]))
    deadline = StringField(validators=[Optional(), Length(max=40)])
    amount = StringField(validators=[Optional(), Length(max=120)])


class DecisionForm(ApiForm):
    notes = TextAreaField(validators=[Optional(), Length(max=5000)])
    category = StringField(validators=[Optional(), AnyOf(OPPORTUNITY_CATEGORIES)])


@whatsapp_bp.route("/webhook", methods=["GET"])
def verify_webhook():
    mode = request.args.get("hub.mode")
    token = request.args.get("hub.verify_token")
    challenge = request.args.get("hub.challenge", "")
    expected = current_app.config.get("WHATSAPP_VERIFY_TOKEN")
    if mode == "subscribe" and expected and token == expected:
        current_app.logger.info("WhatsApp webhook verified")
        return current_app.response_class(challenge, status=200, mimetype="text/plain")
    current_app.logger.warning("WhatsApp webhook verification failed", extra={"mode": mode})
    raise AuthorizationError("Webhook verification failed")


@whatsapp_bp.route("/webhook", methods=["POST"])
def receive_webhook():
    raw_body = request.get_data(cache=True)
    secret = current_app.config.get("WHATSAPP_APP_SECRET")
    if secret and not verify_webhook_signature(secret, raw_body, request.headers.get("X-Hub-Signature-256")):
        current_app.logger.warning("Invalid WhatsApp webhook signature", extra={"remote_addr": request.remote_addr})
        raise AuthorizationError("Invalid signature")

    payload = request.get_json(silent=True) or {}
    stored = ingest_webhook(payload)
    current_app.logger.info("WhatsApp webhook processed", extra={"stored": len(stored)})
    return jsonify({"status": "ok", "stored": len(stored)})


@whatsapp_bp.route("/submissions", methods=["GET"])
@roles_required("admin")
def list_submissions():
    status = request.args.get("status") or None
    category = request.args.get("category") or None
    if status and status not in SUBMISSION_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(SUBMISSION_STATUSES)}")
    if category and category not in SUBMISSION_CATEGORIES:
        raise ValidationError(f"Category must be one of: {', '.join(SUBMISSION_CATEGORIES)}")
    query = submission_query(status, category)
    return jsonify(paginate(query, "submissions", lambda submission: submission.public_payload()))


@whatsapp_bp.route("/submissions/stats/overview", methods=["GET"])
@roles_required("admin")
def stats_overview():
    return jsonify(submission_stats())


@whatsapp_bp.route("/submissions/<string:submission_id>", methods=["GET"])
@roles_required("admin")
def submission_detail(submission_id):
    return jsonify(get_submission(submission_id).public_payload())


@whatsapp_bp.route("/submissions/<string:submission_id>/parse", methods=["PUT"])
@roles_required("admin")
def edit_parsed(submission_id):
    body = json_body()
    parsed = body.get("parsed_data", body.get("parsedData"))
    if not isinstance(parsed, dict):
        raise ValidationError("parsed_data must be an object")
    data = bind_form(ParsedDataForm, parsed, partial=True)
    if "requirements" in data:
        data["requirements"] = [item for item in data["requirements"] or [] if item]
    submission = update_parsed_data(get_submission(submission_id), data)
    return jsonify(submission.public_payload())


@whatsapp_bp.route("/submissions/<string:submission_id>/approve", methods=["POST"])
@roles_required("admin")
def approve(submission_id):
    data = bind_form(DecisionForm, json_body())
    submission = get_submission(submission_id)
    opportunity = approve_submission(submission, current_user, data.get("notes"), data.get("category"))
    return jsonify(
        {
            "message": "Submission approved and opportunity created",
            "submission": submission.public_payload(),
            "opportunity": opportunity.public_payload(),
        }
    )


@whatsapp_bp.route("/submissions/<string:submission_id>/reject", methods=["POST"])
@roles_required("admin")
def reject(submission_id):
    data = bind_form(DecisionForm, json_body())
    submission = reject_submission(get_submission(submission_id), current_user, data.get("notes"))
    return jsonify({"message": "Submission rejected", "submission": submission.public_payload()})


@whatsapp_bp.route("/submissions/<string:submission_id>", methods=["DELETE"])
@roles_required("admin")
def delete(submission_id):
    delete_submission(get_submission(submission_id))
    return jsonify({"message": "Submission deleted"})
