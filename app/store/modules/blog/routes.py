from __future__ import annotations

from flask import Blueprint, jsonify

from app.store import audit
from app.store.db import db_session
from app.store.errors import StoreError
from app.store.modules.blog.models import BlogPost
from app.store.modules.blog.render import render_markdown
from app.store.modules.blog.service import (
    create_post,
    delete_post,
    get_post,
    get_post_by_slug,
    list_posts,
    list_posts_by_author,
    list_posts_by_category,
    record_view,
    update_post,
)
from app.store.rbac import current_user, require_role
from app.store.utils import error_from_exception, json_body, parse_pagination, server_error

bp = Blueprint("blog", __name__)


def _listing(posts: list[BlogPost], limit: int, offset: int):
    return jsonify(
        {
            "posts": [p.to_dict(include_content=False) for p in posts],
            "count": len(posts),
            "limit": limit,
            "offset": offset,
        }
    )


def _detail(post: BlogPost):
    s = db_session()
    record_view(s, post)
    s.commit()
    data = post.to_dict()
    data["rendered_content"] = render_markdown(post.content)
    return jsonify({"post": data})


@bp.get("/", strict_slashes=False)
def posts_list():
    limit, offset = parse_pagination()
    try:
        return _listing(list_posts(db_session(), limit=limit, offset=offset), limit, offset)
    except Exception as e:
        return server_error("Failed to list blog posts", e)


@bp.get("/<int:post_id>")
def post_detail(post_id: int):
    s = db_session()
    try:
        post = get_post(s, post_id, viewer=current_user())
        return _detail(post)
    except StoreError as e:
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to load blog post", e)


@bp.get("/slug/<slug>")
def post_by_slug(slug: str):
    s = db_session()
    try:
        post = get_post_by_slug(s, slug, viewer=current_user())
        return _detail(post)
    except StoreError as e:
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to load blog post", e)


@bp.get("/category/<int:category_id>")
def posts_by_category(category_id: int):
    limit, offset = parse_pagination()
    try:
        return _listing(list_posts_by_category(db_session(), category_id, limit=limit, offset=offset), limit, offset)
    except Exception as e:
        return server_error("Failed to list blog posts", e)


@bp.get("/author/<int:author_id>")
def posts_by_author(author_id: int):
    limit, offset = parse_pagination()
    try:
        return _listing(list_posts_by_author(db_session(), author_id, limit=limit, offset=offset), limit, offset)
    except Exception as e:
        return server_error("Failed to list blog posts", e)


@bp.post("/", strict_slashes=False)
@require_role("author", "admin")
def post_create():
    s = db_session()
    user = current_user()
    try:
        post = create_post(s, json_body(), user)
        audit.record_activity(
            s, user=user, action=audit.CONTENT_CREATED, resource_type="blog_post", resource_id=post.id
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to create blog post", e)
    return jsonify({"message": "Blog post created successfully", "post": post.to_dict()}), 201


@bp.put("/<int:post_id>")
@require_role("author", "admin")
def post_update(post_id: int):
    s = db_session()
    user = current_user()
    payload = json_body()
    try:
        post = update_post(s, get_post(s, post_id, viewer=user), payload, user)
        audit.record_activity(
            s,
            user=user,
            action=audit.CONTENT_UPDATED,
            resource_type="blog_post",
            resource_id=post.id,
            details={"fields": sorted(payload.keys())},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update blog post", e)
    return jsonify({"message": "Blog post updated successfully", "post": post.to_dict()})


@bp.delete("/<int:post_id>")
@require_role("author", "admin")
def post_delete(post_id: int):
    s = db_session()
    user = current_user()
    try:
        post = get_post(s, post_id, viewer=user)
        delete_post(s, post, user)
        audit.record_activity(
            s, user=user, action=audit.CONTENT_DELETED, resource_type="blog_post", resource_id=post.id
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to delete blog post", e)
    return jsonify({"message": "Blog post deleted successfully"})
