from __future__ import annotations

from flask import Blueprint, jsonify

from app.store.db import db_session
from app.store.errors import StoreError
from app.store.modules.categories.service import (
    create_category,
    delete_category,
    get_category,
    list_categories,
    update_category,
)
from app.store.rbac import require_admin
from app.store.utils import error_from_exception, json_body, parse_pagination, server_error

bp = Blueprint("categories", __name__)


@bp.get("/", strict_slashes=False)
def categories_list():
    limit, offset = parse_pagination()
    try:
        s = db_session()
        items = list_categories(s, limit=limit, offset=offset)
        return jsonify(
            {"categories": [c.to_dict() for c in items], "count": len(items), "limit": limit, "offset": offset}
        )
    except Exception as e:
        return server_error("Failed to list categories", e)


@bp.get("/<int:category_id>")
def category_detail(category_id: int):
    s = db_session()
    try:
        c = get_category(s, category_id)
    except StoreError as e:
        return error_from_exception(e)
    return jsonify({"category": c.to_dict()})


@bp.post("/", strict_slashes=False)
@require_admin
def category_create():
    s = db_session()
    try:
        c = create_category(s, json_body())
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to create category", e)
    return jsonify({"category": c.to_dict()}), 201


@bp.put("/<int:category_id>")
@require_admin
def category_update(category_id: int):
    s = db_session()
    try:
        c = update_category(s, get_category(s, category_id), json_body())
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update category", e)
    return jsonify({"category": c.to_dict()})


@bp.delete("/<int:category_id>")
@require_admin
def category_delete(category_id: int):
    s = db_session()
    try:
        delete_category(s, get_category(s, category_id))
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to delete category", e)
    return jsonify({"message": "Category deleted successfully"})
