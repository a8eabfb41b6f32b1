"""Forum posts, threaded comments with tombstone deletion, and like toggles."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import ForumComment, ForumPost, User, forum_comment_likes, forum_post_likes
from utils.errors import AuthorizationError, NotFoundError, ValidationError
from utils.policy import require_moderation

POST_SORTS = {
    "last_activity": ForumPost.last_activity,
    "created_at": ForumPost.created_at,
    "views": ForumPost.views,
    "title": ForumPost.title,
}


def get_post(post_id: str) -> ForumPost:
    post = db.session.get(ForumPost, post_id)
    if not post:
        raise NotFoundError("Post not found")
    return post


def get_comment(comment_id: str) -> ForumComment:
    comment = db.session.get(ForumComment, comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    return comment


def _order(sort: Optional[str]):
    key = (sort or "-last_activity").strip()
    descending = key.startswith("-")
    column = POST_SORTS.get(key.lstrip("-"), ForumPost.last_activity)
    return column.desc() if descending else column.asc()


def post_query(category: Optional[str] = None, search: Optional[str] = None, sort: Optional[str] = None):
    query = ForumPost.query
    if category and category != "all":
        query = query.filter(ForumPost.category == category)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(ForumPost.title.ilike(like), ForumPost.content.ilike(like)))
    return query.order_by(ForumPost.is_pinned.desc(), _order(sort), ForumPost.id)


def comment_counts(post_ids: Iterable[str]) -> Dict[str, int]:
    ids = list(post_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(ForumComment.post_id, func.count(ForumComment.id))
        .filter(ForumComment.post_id.in_(ids), ~ForumComment.is_deleted)
        .group_by(ForumComment.post_id)
        .all()
    )
    return dict(rows)


def reply_counts(comment_ids: Iterable[str]) -> Dict[str, int]:
    ids = list(comment_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(ForumComment.parent_comment_id, func.count(ForumComment.id))
        .filter(ForumComment.parent_comment_id.in_(ids), ~ForumComment.is_deleted)
        .group_by(ForumComment.parent_comment_id)
        .all()
    )
    return dict(rows)


def record_post_view(post_id: str) -> None:
    ForumPost.query.filter(ForumPost.id == post_id).update(
        {ForumPost.views: ForumPost.views + 1}, synchronize_session=False
    )
    db.session.commit()


def top_level_comments(post: ForumPost) -> List[Tuple[ForumComment, int]]:
    """Top-level comments in posting order with live reply counts.

    A tombstoned comment stays in the thread only while it still has live
    replies, so the replies keep their anchor.
    """
    comments = (
        post.comments.filter(ForumComment.parent_comment_id.is_(None))
        .order_by(ForumComment.created_at.asc(), ForumComment.id)
        .all()
    )
    counts = reply_counts(c.id for c in comments)
    return [(c, counts.get(c.id, 0)) for c in comments if not c.is_deleted or counts.get(c.id, 0)]


def replies_for(comment_id: str) -> List[ForumComment]:
    get_comment(comment_id)
    return (
        ForumComment.query.filter(
            ForumComment.parent_comment_id == comment_id,
            ~ForumComment.is_deleted,
        )
        .order_by(ForumComment.created_at.asc(), ForumComment.id)
        .all()
    )


def create_post(author: User, data: Dict[str, Any]) -> ForumPost:
    if not data.get("title") or not data.get("content") or not data.get("category"):
        raise ValidationError("Title, content, and category are required")
    post = ForumPost(
        author_id=author.id,
        title=data["title"],
        content=data["content"],
        category=data["category"],
        tags=[tag for tag in data.get("tags") or [] if tag],
    )
    db.session.add(post)
    db.session.commit()
    current_app.logger.info("Forum post created", extra={"post_id": post.id, "author_id": author.id})
    return post


def update_post(post: ForumPost, author: User, data: Dict[str, Any]) -> ForumPost:
    if post.author_id != author.id:
        raise AuthorizationError("Not authorized")
    for key in ("title", "content", "category"):
        if data.get(key):
            setattr(post, key, data[key])
    if "tags" in data and data["tags"] is not None:
        post.tags = [tag for tag in data["tags"] if tag]
    db.session.commit()
    return post


def set_post_flags(post: ForumPost, is_pinned: Optional[bool] = None, is_locked: Optional[bool] = None) -> ForumPost:
    if is_pinned is not None:
        post.is_pinned = bool(is_pinned)
    if is_locked is not None:
        post.is_locked = bool(is_locked)
    db.session.commit()
    return post


def delete_post(post: ForumPost, actor: User) -> None:
    """Hard delete of a post together with its comments and likes."""
    require_moderation(actor, post, "Not authorized")
    post_id = post.id
    comment_ids = db.select(ForumComment.id).where(ForumComment.post_id == post_id)
    db.session.execute(forum_comment_likes.delete().where(forum_comment_likes.c.comment_id.in_(comment_ids)))
    ForumComment.query.filter(ForumComment.post_id == post_id).update(
        {ForumComment.parent_comment_id: None}, synchronize_session=False
    )
    ForumComment.query.filter(ForumComment.post_id == post_id).delete(synchronize_session=False)
    db.session.execute(forum_post_likes.delete().where(forum_post_likes.c.post_id == post_id))
    db.session.delete(post)
    db.session.commit()
    current_app.logger.info("Forum post deleted", extra={"post_id": post_id, "actor_id": actor.id})


def add_comment(author: User, post_id: Optional[str], content: Optional[str], parent_id: Optional[str] = None) -> ForumComment:
    if not post_id or not content:
        raise ValidationError("Post ID and content are required")
    post = get_post(post_id)
    if post.is_locked:
        raise AuthorizationError("Post is locked for comments")
    if parent_id:
        parent = db.session.get(ForumComment, parent_id)
        if not parent or parent.post_id != post.id:
            raise ValidationError("Parent comment does not belong to this post")
        if parent.is_deleted:
            raise ValidationError("Cannot reply to a deleted comment")

    comment = ForumComment(post_id=post.id, author_id=author.id, content=content, parent_comment_id=parent_id or None)
    db.session.add(comment)
    post.last_activity = datetime.utcnow()
    db.session.commit()
    return comment


def delete_comment(comment: ForumComment, actor: User) -> ForumComment:
    """Tombstone the comment; the row stays so replies keep their parent."""
    require_moderation(actor, comment, "Not authorized")
    if not comment.is_deleted:
        comment.tombstone()
        db.session.execute(forum_comment_likes.delete().where(forum_comment_likes.c.comment_id == comment.id))
        db.session.commit()
    return comment


def _toggle(table, owner_column: str, owner_id: str, user: User) -> Tuple[bool, int]:
    owner = getattr(table.c, owner_column)
    match = (owner == owner_id) & (table.c.user_id == user.id)
    existing = db.session.execute(db.select(table.c.user_id).where(match)).first()
    if existing:
        db.session.execute(table.delete().where(match))
        liked = False
    else:
        db.session.execute(table.insert().values({owner_column: owner_id, "user_id": user.id}))
        liked = True
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent like landed first; the end state is liked either way.
        db.session.rollback()
        liked = True
    count = db.session.execute(db.select(func.count()).select_from(table).where(owner == owner_id)).scalar_one()
    return liked, count


def toggle_post_like(post: ForumPost, user: User) -> Tuple[bool, int]:
    return _toggle(forum_post_likes, "post_id", post.id, user)


def toggle_comment_like(comment: ForumComment, user: User) -> Tuple[bool, int]:
    if comment.is_deleted:
        raise ValidationError("Cannot like a deleted comment")
    return _toggle(forum_comment_likes, "comment_id", comment.id, user)
