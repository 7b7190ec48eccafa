from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.store.errors import Conflict, NotFound, ValidationError
from app.store.modules.categories.models import Category

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _live(s: "Session"):
    return s.query(Category).filter(Category.deleted_at.is_(None))


def _ensure_unique_name(s: "Session", name: str, *, exclude_id: int | None = None) -> None:
    q = _live(s).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise Conflict("Category with this name already exists")


def get_category(s: "Session", category_id: int) -> Category:
    c = _live(s).filter(Category.id == category_id).one_or_none()
    if c is None:
        raise NotFound("Category not found")
    return c


def category_exists(s: "Session", category_id: int) -> bool:
    return _live(s).filter(Category.id == category_id).first() is not None


def list_categories(s: "Session", *, limit: int, offset: int) -> list[Category]:
    return _live(s).order_by(Category.name.asc()).offset(offset).limit(limit).all()


def create_category(s: "Session", payload: dict) -> Category:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required")
    _ensure_unique_name(s, name)
    c = Category(name=name, description=(payload.get("description") or "").strip() or None)
    s.add(c)
    s.flush()
    logger.info("Category created id=%s name=%s", c.id, c.name)
    return c


def update_category(s: "Session", category: Category, payload: dict) -> Category:
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if name != category.name:
            _ensure_unique_name(s, name, exclude_id=category.id)
            category.name = name
    if "description" in payload:
        category.description = (payload.get("description") or "").strip() or None
    s.flush()
    logger.info("Category updated id=%s", category.id)
    return category


def delete_category(s: "Session", category: Category) -> None:
    category.soft_delete()
    s.flush()
    logger.info("Category deleted id=%s", category.id)
