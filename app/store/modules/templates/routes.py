from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.store import audit
from app.store.db import db_session
from app.store.errors import StoreError
from app.store.models import iso
from app.store.modules.templates.models import Template
from app.store.modules.templates.service import (
    attach_file,
    create_template,
    delete_template,
    get_template,
    issue_download,
    list_templates,
    update_template,
)
from app.store.rbac import current_user, require_auth, require_role
from app.store.storage import StorageError, storage_from_config
from app.store.utils import error_from_exception, error_response, json_body, parse_int, parse_pagination, server_error

bp = Blueprint("templates", __name__)


def _listing(items: list[Template], limit: int, offset: int):
    return jsonify(
        {"templates": [t.to_dict() for t in items], "count": len(items), "limit": limit, "offset": offset}
    )


@bp.get("/", strict_slashes=False)
def templates_list():
    limit, offset = parse_pagination()
    category_id = parse_int(request.args.get("category_id"))
    search = (request.args.get("q") or "").strip() or None
    try:
        items = list_templates(db_session(), limit=limit, offset=offset, category_id=category_id, search=search)
        return _listing(items, limit, offset)
    except Exception as e:
        return server_error("Failed to list templates", e)


@bp.get("/category/<int:category_id>")
def templates_by_category(category_id: int):
    limit, offset = parse_pagination()
    try:
        items = list_templates(db_session(), limit=limit, offset=offset, category_id=category_id)
        return _listing(items, limit, offset)
    except Exception as e:
        return server_error("Failed to list templates", e)


@bp.get("/<int:template_id>")
def template_detail(template_id: int):
    try:
        t = get_template(db_session(), template_id, viewer=current_user())
    except StoreError as e:
        return error_from_exception(e)
    return jsonify({"template": t.to_dict()})


@bp.get("/<int:template_id>/variables")
def template_variables(template_id: int):
    try:
        t = get_template(db_session(), template_id, viewer=current_user())
    except StoreError as e:
        return error_from_exception(e)
    return jsonify({"variables": t.variables or {}})


@bp.post("/", strict_slashes=False)
@require_role("author", "admin")
def template_create():
    s = db_session()
    user = current_user()
    try:
        t = create_template(s, json_body(), user)
        audit.record_activity(s, user=user, action=audit.CONTENT_CREATED, resource_type="template", resource_id=t.id)
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to create template", e)
    return jsonify({"message": "Template created successfully", "template": t.to_dict()}), 201


@bp.put("/<int:template_id>")
@require_role("author", "admin")
def template_update(template_id: int):
    s = db_session()
    user = current_user()
    payload = json_body()
    try:
        t = update_template(s, get_template(s, template_id, viewer=user), payload, user)
        audit.record_activity(
            s,
            user=user,
            action=audit.CONTENT_UPDATED,
            resource_type="template",
            resource_id=t.id,
            details={"fields": sorted(payload.keys())},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update template", e)
    return jsonify({"message": "Template updated successfully", "template": t.to_dict()})


@bp.delete("/<int:template_id>")
@require_role("author", "admin")
def template_delete(template_id: int):
    s = db_session()
    user = current_user()
    try:
        t = get_template(s, template_id, viewer=user)
        delete_template(s, t, user)
        audit.record_activity(s, user=user, action=audit.CONTENT_DELETED, resource_type="template", resource_id=t.id)
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to delete template", e)
    return jsonify({"message": "Template deleted successfully"})


@bp.post("/<int:template_id>/files")
@require_role("author", "admin")
def template_upload(template_id: int):
    s = db_session()
    user = current_user()
    f = request.files.get("file")
    if not f or not f.filename:
        return error_response("File is required", 400)
    kind = (request.form.get("kind") or "file").strip().lower()
    try:
        t = get_template(s, template_id, viewer=user)
        attach_file(
            s,
            storage_from_config(current_app.config),
            t,
            kind=kind,
            filename=f.filename,
            data=f.read(),
            content_type=f.mimetype,
        )
        audit.record_activity(
            s,
            user=user,
            action=audit.CONTENT_UPDATED,
            resource_type="template",
            resource_id=t.id,
            details={"upload": kind, "filename": f.filename},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except StorageError as e:
        return server_error("Failed to store file", e)
    except Exception as e:
        return server_error("Failed to upload template file", e)
    return jsonify({"message": "File uploaded successfully", "template": t.to_dict()})


@bp.get("/<int:template_id>/download")
@require_auth
def template_download(template_id: int):
    s = db_session()
    user = current_user()
    ttl = int(current_app.config.get("DOWNLOAD_URL_TTL_SECONDS") or 3600)
    try:
        t = get_template(s, template_id, viewer=user)
        url, expires_at, order = issue_download(s, storage_from_config(current_app.config), t, user, ttl_seconds=ttl)
        audit.record_activity(
            s,
            user=user,
            action=audit.TEMPLATE_DOWNLOADED,
            resource_type="template",
            resource_id=t.id,
            details={"order_id": order.id if order else None},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to generate download link", e)
    return jsonify({"download_url": url, "expires_at": iso(expires_at), "expires_in": ttl})
