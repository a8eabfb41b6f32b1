"""Blueprint registry plus the health and token-check routes."""
from flask import Blueprint, current_app, jsonify
from flask_login import current_user
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.decorators import auth_required
from .admin import admin_bp
from .applications import applications_bp
from .auth import auth_bp
from .chat import chat_bp
from .forum import forum_bp
from .opportunities import opportunities_bp
from .reports import reports_bp
from .stakeholder import stakeholder_bp
from .users import users_bp
from .whatsapp import whatsapp_bp

main_bp = Blueprint("main", __name__, url_prefix="/api")


@main_bp.route("/health", methods=["GET"])
def health():
    database = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.error("Health check database probe failed", extra={"error": str(exc)})
        db.session.rollback()
        database = "unavailable"
    status = 200 if database == "ok" else 503
    return jsonify({"status": "OK" if status == 200 else "DEGRADED", "database": database}), status


@main_bp.route("/verify-token", methods=["GET"])
@auth_required
def verify_token():
    return jsonify({"valid": True, "user": current_user.public_payload()})


__all__ = [
    "main_bp",
    "auth_bp",
    "users_bp",
    "opportunities_bp",
    "applications_bp",
    "reports_bp",
    "admin_bp",
    "stakeholder_bp",
    "forum_bp",
    "chat_bp",
    "whatsapp_bp",
]
