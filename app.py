"""Flask application factory for the youth opportunities portal API."""
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException

from extensions import db, login_manager, migrate
from utils.errors import AuthenticationError, PortalError
from utils.logger import init_logging
from utils.security import apply_security_headers, bearer_token_from_request, decode_access_token


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PortalError)
    def portal_error(error: PortalError):
        if error.status_code >= 500:
            app.logger.error(
                "Request failed",
                extra={"path": request.path, "method": request.method, "error": error.message},
            )
        else:
            app.logger.info(
                "Request rejected",
                extra={"path": request.path, "method": request.method, "status": error.status_code, "error": error.message},
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        app.logger.warning(
            "HTTP error",
            extra={"path": request.path, "method": request.method, "status": error.code},
        )
        return jsonify({"message": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error: Exception):
        app.logger.exception("500 Internal Server Error", extra={"path": request.path, "method": request.method})
        db.session.rollback()
        return jsonify({"message": "Internal server error"}), 500


def ensure_default_admin(app: Flask) -> None:
    """Make sure the configured admin account exists, is active, and holds the admin role."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()
    if admin_user:
        updates = False
        if admin_user.role != "admin":
            admin_user.role = "admin"
            updates = True
        if not admin_user.is_active or admin_user.is_suspended:
            admin_user.is_active = True
            admin_user.is_suspended = False
            admin_user.suspension_reason = None
            updates = True
        if updates:
            db.session.commit()
        return

    admin_user = User(name="System Administrator", email=admin_email, role="admin", is_active=True)
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default admin created", extra={"user_id": admin_user.id})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def init_auth(app: Flask) -> None:
    """Resolve ``current_user`` from the bearer token on every request."""
    login_manager.init_app(app)
    login_manager.session_protection = None

    @login_manager.request_loader
    def load_user_from_request(req):
        from models import User  # Local import to avoid circular dependency

        token = bearer_token_from_request()
        if not token:
            g.auth_error = "No token, authorization denied"
            return None
        try:
            user_id = decode_access_token(token)
        except AuthenticationError as exc:
            g.auth_error = exc.message
            return None
        user = db.session.get(User, user_id)
        if user is None:
            g.auth_error = "User not found"
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        raise AuthenticationError(g.get("auth_error") or "No token, authorization denied")


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    app.url_map.strict_slashes = False
    app.json.sort_keys = False

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_auth(app)

    # Blueprints
    from routes import (
        admin_bp,
        applications_bp,
        auth_bp,
        chat_bp,
        forum_bp,
        main_bp,
        opportunities_bp,
        reports_bp,
        stakeholder_bp,
        users_bp,
        whatsapp_bp,
    )

    for blueprint in (
        main_bp,
        auth_bp,
        users_bp,
        opportunities_bp,
        applications_bp,
        reports_bp,
        admin_bp,
        stakeholder_bp,
        forum_bp,
        chat_bp,
        whatsapp_bp,
    ):
        app.register_blueprint(blueprint)

    # Error handlers
    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_admin(app)

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, use_reloader=False)
