"""User-facing abuse reports."""
from flask import Blueprint, jsonify
from flask_login import current_user
from wtforms import StringField, TextAreaField
from wtforms.validators import Length, Optional

from models import Report
from utils.decorators import auth_required
from utils.markdown_formatter import clean_user_text
from utils.payloads import ApiForm, bind_form, json_body
from utils.report_service import get_own_report, submit_report

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


class ReportForm(ApiForm):
    # Enum checks live in submit_report so the message names the allowed values.
    report_type = StringField(validators=[Optional(), Length(max=20)])
    reported_item_id = StringField(validators=[Optional(), Length(max=64)])
    reason = StringField(validators=[Optional(), Length(max=30)])
    description = TextAreaField(validators=[Optional(), Length(max=5000)])


@reports_bp.route("/my", methods=["GET"])
@auth_required
def my_reports():
    reports = (
        Report.query.filter(Report.reported_by_id == current_user.id)
        .order_by(Report.created_at.desc(), Report.id)
        .all()
    )
    return jsonify([report.public_payload() for report in reports])


@reports_bp.route("", methods=["POST"])
@auth_required
def create():
    data = bind_form(ReportForm, json_body())
    data["description"] = clean_user_text(data.get("description"))
    report = submit_report(current_user, data)
    return jsonify({"message": "Report submitted successfully", "report": report.public_payload()}), 201


@reports_bp.route("/<string:report_id>", methods=["GET"])
@auth_required
def report_detail(report_id):
    return jsonify(get_own_report(report_id, current_user).public_payload())
