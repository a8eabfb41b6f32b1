"""Authentication and role decorators for API views."""
from functools import wraps

from flask import current_app, request
from flask_login import current_user, login_required

from extensions import db
from models import AuditLog
from utils.errors import AuthorizationError


def ensure_account_usable(user) -> None:
    """Refuse deactivated or suspended accounts even with a valid token."""
    if user.is_suspended:
        raise AuthorizationError("Account is suspended", reason=user.suspension_reason)
    if not user.is_active:
        raise AuthorizationError("Account is deactivated")


def auth_required(view_func):
    @wraps(view_func)
    @login_required
    def wrapped(*args, **kwargs):
        ensure_account_usable(current_user)
        return view_func(*args, **kwargs)

    return wrapped


def roles_required(*roles):
    allowed = {r.lower() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @auth_required
        def wrapped(*args, **kwargs):
            role_name = (current_user.role or "").lower()
            if role_name in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={"user_id": current_user.id, "role": current_user.role, "path": request.path},
            )
            audit = AuditLog(
                user_id=current_user.id,
                action_type="UNAUTHORIZED_ACCESS",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent", "unknown"),
                context_entity=request.path[:120],
            )
            db.session.add(audit)
            db.session.commit()
            if allowed == {"admin"}:
                raise AuthorizationError("Access denied. Admin privileges required.")
            raise AuthorizationError("Access denied. Insufficient privileges.")

        return wrapped

    return decorator


def log_action(action: str, user=None, context: str | None = None) -> None:
    """Stage an audit entry on the session; the caller commits."""
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=(request.headers.get("User-Agent", "unknown") or "unknown")[:255],
        context_entity=(context or "")[:120] or None,
    )
    db.session.add(entry)
