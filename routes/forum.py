"""Community forum: posts, threaded comments, likes."""
from flask import Blueprint, jsonify, request
from flask_login import current_user
from wtforms import BooleanField, FieldList, StringField, TextAreaField
from wtforms.validators import AnyOf, Length, Optional

from models import FORUM_CATEGORIES
from utils.decorators import auth_required, roles_required
from utils.forum_service import (
    add_comment,
    comment_counts,
    create_post,
    delete_comment,
    delete_post,
    get_comment,
    get_post,
    post_query,
    record_post_view,
    replies_for,
    reply_counts,
    set_post_flags,
    toggle_comment_like,
    toggle_post_like,
    top_level_comments,
    update_post,
)
from utils.markdown_formatter import clean_user_text
from utils.payloads import ApiForm, bind_form, json_body, page_args

forum_bp = Blueprint("forum", __name__, url_prefix="/api/forum")


class PostForm(ApiForm):
    title = StringField(validators=[Optional(), Length(max=200)])
    content = TextAreaField(validators=[Optional(), Length(max=20000)])
    category = StringField(validators=[Optional(), AnyOf(FORUM_CATEGORIES)])
    tags = FieldList(StringField(validators=[Length(max=60)]))


class CommentForm(ApiForm):
    post_id = StringField(validators=[Optional(), Length(max=36)])
    content = TextAreaField(validators=[Optional(), Length(max=5000)])
    parent_comment_id = StringField(validators=[Optional(), Length(max=36)])


class PostFlagsForm(ApiForm):
    is_pinned = BooleanField()
    is_locked = BooleanField()


def _viewer():
    return current_user if current_user.is_authenticated else None


def _clean_post(data: dict) -> dict:
    for key in ("title", "content"):
        if key in data:
            data[key] = clean_user_text(data[key])
    return data


@forum_bp.route("/posts", methods=["GET"])
def list_posts():
    query = post_query(
        request.args.get("category"),
        (request.args.get("search") or "").strip() or None,
        request.args.get("sort"),
    )
    page, limit = page_args()
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    counts = comment_counts(post.id for post in pagination.items)
    viewer = _viewer()
    return jsonify(
        {
            "posts": [post.public_payload(viewer, comment_count=counts.get(post.id, 0)) for post in pagination.items],
            "total_pages": pagination.pages,
            "current_page": page,
            "total": pagination.total,
        }
    )


@forum_bp.route("/posts/<string:post_id>", methods=["GET"])
def post_detail(post_id):
    post = get_post(post_id)
    record_post_view(post.id)
    viewer = _viewer()
    comments = [comment.public_payload(viewer, reply_count=count) for comment, count in top_level_comments(post)]
    return jsonify({"post": post.public_payload(viewer), "comments": comments})


@forum_bp.route("/posts", methods=["POST"])
@auth_required
def create():
    data = _clean_post(bind_form(PostForm, json_body()))
    post = create_post(current_user, data)
    return jsonify({"message": "Post created successfully", "post": post.public_payload(current_user)}), 201


@forum_bp.route("/posts/<string:post_id>", methods=["PUT"])
@auth_required
def update(post_id):
    post = get_post(post_id)
    data = _clean_post(bind_form(PostForm, json_body(), partial=True))
    update_post(post, current_user, data)
    return jsonify({"message": "Post updated successfully", "post": post.public_payload(current_user)})


@forum_bp.route("/posts/<string:post_id>", methods=["DELETE"])
@auth_required
def delete(post_id):
    delete_post(get_post(post_id), current_user)
    return jsonify({"message": "Post deleted successfully"})


@forum_bp.route("/posts/<string:post_id>/like", methods=["POST"])
@auth_required
def like_post(post_id):
    liked, likes = toggle_post_like(get_post(post_id), current_user)
    return jsonify({"message": "Post liked" if liked else "Post unliked", "liked": liked, "likes": likes})


@forum_bp.route("/posts/<string:post_id>/moderate", methods=["PATCH"])
@roles_required("admin")
def moderate_post(post_id):
    data = bind_form(PostFlagsForm, json_body(), partial=True)
    post = set_post_flags(get_post(post_id), data.get("is_pinned"), data.get("is_locked"))
    return jsonify({"message": "Post updated successfully", "post": post.public_payload(current_user)})


@forum_bp.route("/comments", methods=["POST"])
@auth_required
def create_comment():
    data = bind_form(CommentForm, json_body())
    comment = add_comment(
        current_user,
        data.get("post_id"),
        clean_user_text(data.get("content")),
        data.get("parent_comment_id"),
    )
    return jsonify({"message": "Comment added", "comment": comment.public_payload(current_user, reply_count=0)}), 201


@forum_bp.route("/comments/<string:comment_id>/replies", methods=["GET"])
def comment_replies(comment_id):
    replies = replies_for(comment_id)
    counts = reply_counts(reply.id for reply in replies)
    viewer = _viewer()
    return jsonify([reply.public_payload(viewer, reply_count=counts.get(reply.id, 0)) for reply in replies])


@forum_bp.route("/comments/<string:comment_id>", methods=["DELETE"])
@auth_required
def remove_comment(comment_id):
    delete_comment(get_comment(comment_id), current_user)
    return jsonify({"message": "Comment deleted"})


@forum_bp.route("/comments/<string:comment_id>/like", methods=["POST"])
@auth_required
def like_comment(comment_id):
    liked, likes = toggle_comment_like(get_comment(comment_id), current_user)
    return jsonify({"message": "Comment liked" if liked else "Comment unliked", "liked": liked, "likes": likes})
