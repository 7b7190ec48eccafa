from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.store.errors import Forbidden, NotFound, ValidationError
from app.store.modules.blog.models import BlogPost
from app.store.modules.blog.render import make_excerpt, slugify
from app.store.modules.categories.service import category_exists
from app.store.utils import parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.store.models import User

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("excerpt", "featured_image", "meta_title", "meta_description")


def _live(s: "Session") -> "Query":
    return s.query(BlogPost).filter(BlogPost.deleted_at.is_(None))


def _published(s: "Session") -> "Query":
    return _live(s).filter(BlogPost.published.is_(True))


def _newest_first(q: "Query") -> "Query":
    return q.order_by(func.coalesce(BlogPost.published_at, BlogPost.created_at).desc(), BlogPost.id.desc())


def can_manage(user: "User | None", post: BlogPost) -> bool:
    if user is None or not user.is_active:
        return False
    return user.role == "admin" or (user.role == "author" and post.author_id == user.id)


def unique_slug(s: "Session", base: str, *, exclude_id: int | None = None) -> str:
    """Appends -2, -3, ... until no other post (deleted ones included) uses the slug."""
    candidate = base
    n = 2
    while True:
        q = s.query(BlogPost.id).filter(BlogPost.slug == candidate)
        if exclude_id is not None:
            q = q.filter(BlogPost.id != exclude_id)
        if q.first() is None:
            return candidate
        candidate = f"{base}-{n}"
        n += 1


def _clean_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ValidationError("Tags must be a list")
    tags: list[str] = []
    for t in value:
        t = str(t).strip()
        if t and t not in tags:
            tags.append(t)
    return tags


def _resolve_category(s: "Session", value: Any) -> int | None:
    if value in (None, ""):
        return None
    category_id = parse_int(value)
    if category_id is None or not category_exists(s, category_id):
        raise ValidationError("Category not found")
    return category_id


def get_post(s: "Session", post_id: int, *, viewer: "User | None" = None) -> BlogPost:
    post = _live(s).filter(BlogPost.id == post_id).one_or_none()
    if post is None or (not post.published and not can_manage(viewer, post)):
        raise NotFound("Blog post not found")
    return post


def get_post_by_slug(s: "Session", slug: str, *, viewer: "User | None" = None) -> BlogPost:
    post = _live(s).filter(BlogPost.slug == slug).one_or_none()
    if post is None or (not post.published and not can_manage(viewer, post)):
        raise NotFound("Blog post not found")
    return post


def record_view(s: "Session", post: BlogPost) -> None:
    # Single UPDATE so concurrent readers don't lose increments.
    s.query(BlogPost).filter(BlogPost.id == post.id).update(
        {BlogPost.view_count: BlogPost.view_count + 1}, synchronize_session=False
    )
    s.flush()
    s.refresh(post, attribute_names=["view_count"])


def list_posts(s: "Session", *, limit: int, offset: int) -> list[BlogPost]:
    return _newest_first(_published(s)).offset(offset).limit(limit).all()


def list_posts_by_category(s: "Session", category_id: int, *, limit: int, offset: int) -> list[BlogPost]:
    q = _published(s).filter(BlogPost.category_id == category_id)
    return _newest_first(q).offset(offset).limit(limit).all()


def list_posts_by_author(s: "Session", author_id: int, *, limit: int, offset: int) -> list[BlogPost]:
    q = _published(s).filter(BlogPost.author_id == author_id)
    return _newest_first(q).offset(offset).limit(limit).all()


def create_post(s: "Session", payload: dict, author: "User") -> BlogPost:
    title = (payload.get("title") or "").strip()
    content = (payload.get("content") or "").strip()
    if not title or not content:
        raise ValidationError("Title and content are required")

    requested_slug = slugify(str(payload.get("slug") or "").strip() or title)
    published = parse_bool(payload.get("published"))
    post = BlogPost(
        title=title,
        content=content,
        slug=unique_slug(s, requested_slug),
        author_id=author.id,
        category_id=_resolve_category(s, payload.get("category_id")),
        tags=_clean_tags(payload.get("tags")),
        published=published,
        published_at=datetime.utcnow() if published else None,
        view_count=0,
    )
    for field in _TEXT_FIELDS:
        setattr(post, field, (payload.get(field) or "").strip() or None)
    if not post.excerpt:
        post.excerpt = make_excerpt(content)
    s.add(post)
    s.flush()
    logger.info("Blog post created id=%s slug=%s author_id=%s", post.id, post.slug, author.id)
    return post


def update_post(s: "Session", post: BlogPost, payload: dict, editor: "User") -> BlogPost:
    if not can_manage(editor, post):
        raise Forbidden("You can only edit your own posts")

    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if not title:
            raise ValidationError("Title is required")
        post.title = title
    if "content" in payload:
        content = (payload.get("content") or "").strip()
        if not content:
            raise ValidationError("Content is required")
        post.content = content
    if payload.get("slug"):
        post.slug = unique_slug(s, slugify(str(payload["slug"])), exclude_id=post.id)
    if "category_id" in payload:
        post.category_id = _resolve_category(s, payload.get("category_id"))
    if "tags" in payload:
        post.tags = _clean_tags(payload.get("tags"))
    for field in _TEXT_FIELDS:
        if field in payload:
            setattr(post, field, (payload.get(field) or "").strip() or None)
    if "published" in payload:
        published = parse_bool(payload.get("published"))
        if published and not post.published:
            post.published_at = datetime.utcnow()
        post.published = published

    s.flush()
    logger.info("Blog post updated id=%s by user_id=%s", post.id, editor.id)
    return post


def delete_post(s: "Session", post: BlogPost, editor: "User") -> None:
    if not can_manage(editor, post):
        raise Forbidden("You can only delete your own posts")
    post.soft_delete()
    s.flush()
    logger.info("Blog post deleted id=%s by user_id=%s", post.id, editor.id)
