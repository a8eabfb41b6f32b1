"""Capability checks shared by every blueprint that touches owned resources."""
from __future__ import annotations

from typing import Optional, Tuple

from models import Application, ForumComment, ForumPost, Opportunity, Report, User
from utils.errors import AuthorizationError


def is_admin(user: Optional[User]) -> bool:
    return bool(user is not None and getattr(user, "is_authenticated", False) and user.role == "admin")


def can_post_as_stakeholder(user: Optional[User]) -> bool:
    return bool(user is not None and getattr(user, "is_authenticated", False) and user.role in ("stakeholder", "admin"))


def _owner_id(resource) -> Optional[str]:
    if isinstance(resource, Opportunity):
        return resource.created_by_id
    if isinstance(resource, (ForumPost, ForumComment)):
        return resource.author_id
    if isinstance(resource, Report):
        return resource.reported_by_id
    if isinstance(resource, Application):
        # Applications are moderated by whoever owns the opportunity.
        return resource.opportunity.created_by_id if resource.opportunity else None
    if isinstance(resource, User):
        return resource.id
    return None


def can_moderate(user: Optional[User], resource) -> Tuple[bool, Optional[str]]:
    """Return ``(allowed, reason)`` for owner-or-admin actions on ``resource``."""
    if user is None or not getattr(user, "is_authenticated", False):
        return False, "Authentication required"
    if is_admin(user):
        return True, None
    owner_id = _owner_id(resource)
    if owner_id and owner_id == user.id:
        return True, None
    return False, "Not authorized to manage this resource"


def require_moderation(user: Optional[User], resource, message: Optional[str] = None) -> None:
    allowed, reason = can_moderate(user, resource)
    if not allowed:
        raise AuthorizationError(message or reason)


def can_view_opportunity(user: Optional[User], opportunity: Opportunity) -> bool:
    if opportunity.status == "approved":
        return True
    allowed, _ = can_moderate(user, opportunity)
    return allowed
