"""Account state changes shared by self-service and admin routes."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from extensions import db
from models import (
    ROLE_VALUES,
    VERIFICATION_STATUSES,
    Application,
    ForumComment,
    ForumPost,
    Opportunity,
    PasswordResetToken,
    Report,
    User,
    forum_comment_likes,
    forum_post_likes,
    saved_opportunities,
)
from utils.errors import AuthorizationError, ValidationError
from utils.security import generate_token, hash_value, password_meets_policy

STAKEHOLDER_FIELDS: tuple[str, ...] = (
    "company_name",
    "company_description",
    "company_industry",
    "company_size",
    "company_website",
    "phone",
    "location",
)


def find_by_email(email: Optional[str]) -> Optional[User]:
    if not email:
        return None
    return User.query.filter_by(email=email.strip().lower()).first()


def validate_password(password: Optional[str]) -> None:
    ok, reason = password_meets_policy(password or "")
    if not ok:
        raise ValidationError(reason)


def make_stakeholder(user: User, data: dict) -> None:
    """Switch to the stakeholder role; verification restarts at pending."""
    for key in STAKEHOLDER_FIELDS:
        if key in data:
            setattr(user, key, data[key])
    user.role = "stakeholder"
    user.verification_status = "pending"


def create_password_reset_token(user: User) -> tuple[str, datetime]:
    minutes = int(current_app.config.get("PASSWORD_RESET_MINUTES", 10))
    token = generate_token(32)
    expires_at = datetime.utcnow() + timedelta(minutes=minutes)
    # Only the newest link stays usable
    PasswordResetToken.query.filter_by(user_id=user.id, consumed_at=None).delete()
    db.session.add(PasswordResetToken(user_id=user.id, token_hash=hash_value(token), expires_at=expires_at))
    return token, expires_at


def reset_password(token: str, new_password: Optional[str]) -> User:
    validate_password(new_password)
    record = PasswordResetToken.query.filter_by(token_hash=hash_value(token or "")).first()
    if not record or record.is_used or record.is_expired:
        raise ValidationError("Invalid or expired reset token")
    record.consumed_at = datetime.utcnow()
    record.user.set_password(new_password)
    db.session.commit()
    return record.user


def change_password(user: User, current_password: Optional[str], new_password: Optional[str]) -> None:
    if not current_password or not new_password:
        raise ValidationError("Both current and new password are required")
    if not user.check_password(current_password):
        raise ValidationError("Current password is incorrect")
    validate_password(new_password)
    user.set_password(new_password)
    db.session.commit()


def suspend_user(target: User, admin: User, reason: Optional[str]) -> User:
    if target.id == admin.id:
        raise ValidationError("Cannot suspend your own account")
    target.is_suspended = True
    target.is_active = False
    target.suspension_reason = reason or "No reason provided"
    db.session.commit()
    current_app.logger.info("User suspended", extra={"target_id": target.id, "admin_id": admin.id})
    return target


def activate_user(target: User, admin: User) -> User:
    target.is_suspended = False
    target.is_active = True
    target.suspension_reason = None
    db.session.commit()
    current_app.logger.info("User activated", extra={"target_id": target.id, "admin_id": admin.id})
    return target


def change_role(target: User, admin: User, role: Optional[str]) -> User:
    if role not in ROLE_VALUES:
        raise ValidationError("Invalid role. Must be: user, stakeholder, or admin")
    if target.id == admin.id:
        raise ValidationError("Cannot change your own role")
    target.role = role
    db.session.commit()
    current_app.logger.info("User role changed", extra={"target_id": target.id, "admin_id": admin.id, "role": role})
    return target


def set_verification(target: User, admin: User, status: Optional[str]) -> User:
    if status not in VERIFICATION_STATUSES:
        raise ValidationError("Invalid verification status. Must be: pending, verified, or rejected")
    if target.role != "stakeholder":
        raise ValidationError("Verification status can only be set for stakeholder accounts")
    target.verification_status = status
    db.session.commit()
    return target


def delete_user(target: User, actor: User) -> None:
    """Hard delete of an account and the content only it owns.

    Admin accounts can only be removed by their owner. Listings the user
    created survive with the creator reference cleared.
    """
    if target.role == "admin" and target.id != actor.id:
        raise AuthorizationError("Cannot delete admin users")

    user_id = target.id
    own_comments = db.select(ForumComment.id).where(ForumComment.author_id == user_id)
    own_posts = db.select(ForumPost.id).where(ForumPost.author_id == user_id)
    post_comments = db.select(ForumComment.id).where(ForumComment.post_id.in_(own_posts))

    db.session.execute(
        forum_comment_likes.delete().where(
            (forum_comment_likes.c.user_id == user_id)
            | forum_comment_likes.c.comment_id.in_(own_comments)
            | forum_comment_likes.c.comment_id.in_(post_comments)
        )
    )
    db.session.execute(
        forum_post_likes.delete().where(
            (forum_post_likes.c.user_id == user_id) | forum_post_likes.c.post_id.in_(own_posts)
        )
    )
    # Replies from other users outlive the parent they answered.
    ForumComment.query.filter(ForumComment.parent_comment_id.in_(own_comments)).update(
        {ForumComment.parent_comment_id: None}, synchronize_session=False
    )
    ForumComment.query.filter(ForumComment.parent_comment_id.in_(post_comments)).update(
        {ForumComment.parent_comment_id: None}, synchronize_session=False
    )
    ForumComment.query.filter(
        (ForumComment.author_id == user_id) | ForumComment.post_id.in_(own_posts)
    ).delete(synchronize_session=False)
    ForumPost.query.filter(ForumPost.author_id == user_id).delete(synchronize_session=False)

    db.session.execute(saved_opportunities.delete().where(saved_opportunities.c.user_id == user_id))
    Application.query.filter(Application.user_id == user_id).delete(synchronize_session=False)
    Report.query.filter(Report.reported_by_id == user_id).delete(synchronize_session=False)
    Opportunity.query.filter(Opportunity.created_by_id == user_id).update(
        {Opportunity.created_by_id: None}, synchronize_session=False
    )
    Opportunity.query.filter(Opportunity.updated_by_id == user_id).update(
        {Opportunity.updated_by_id: None}, synchronize_session=False
    )
    PasswordResetToken.query.filter(PasswordResetToken.user_id == user_id).delete(synchronize_session=False)

    db.session.delete(target)
    db.session.commit()
    current_app.logger.info("User deleted", extra={"target_id": user_id, "actor_id": actor.id})
