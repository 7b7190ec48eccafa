from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.store.errors import Forbidden, NotFound, ValidationError
from app.store.modules.categories.service import category_exists
from app.store.modules.orders.models import Order
from app.store.modules.templates.models import Template
from app.store.storage import Storage, StorageError, upload_bytes
from app.store.utils import parse_bool, parse_int, parse_price

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.store.models import User

logger = logging.getLogger(__name__)

FILE_KINDS = ("file", "preview", "thumbnail")
_PREVIEW_TYPES = ("image/png", "image/jpeg", "image/gif", "image/webp", "application/pdf")


def is_manager(user: "User | None") -> bool:
    return user is not None and user.is_active and user.role in ("author", "admin")


def _live(s: "Session") -> "Query":
    return s.query(Template).filter(Template.deleted_at.is_(None))


def _public(s: "Session") -> "Query":
    return _live(s).filter(Template.active.is_(True))


def validate_template_payload(s: "Session", payload: dict, *, partial: bool = False) -> dict[str, Any]:
    """
    Normalises a create/update payload. Returns only the fields that were supplied.
    """
    out: dict[str, Any] = {}

    if not partial or "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Name is required")
        out["name"] = name

    if "description" in payload:
        out["description"] = (payload.get("description") or "").strip() or None

    if not partial or "price" in payload:
        price = parse_price(payload.get("price"))
        if price is None or price < 0:
            raise ValidationError("Price must be a number greater than or equal to 0")
        out["price"] = price

    if "category_id" in payload:
        raw = payload.get("category_id")
        if raw in (None, ""):
            out["category_id"] = None
        else:
            category_id = parse_int(raw)
            if category_id is None or not category_exists(s, category_id):
                raise ValidationError("Category not found")
            out["category_id"] = category_id

    if "variables" in payload:
        variables = payload.get("variables") or {}
        if not isinstance(variables, dict):
            raise ValidationError("Variables must be an object")
        out["variables"] = variables

    for field in ("preview_url", "thumbnail_url"):
        if field in payload:
            out[field] = (payload.get(field) or "").strip() or None

    if "active" in payload:
        out["active"] = parse_bool(payload.get("active"))

    return out


def get_template(s: "Session", template_id: int, *, viewer: "User | None" = None) -> Template:
    t = _live(s).filter(Template.id == template_id).one_or_none()
    if t is None or (not t.active and not is_manager(viewer)):
        raise NotFound("Template not found")
    return t


def list_templates(
    s: "Session",
    *,
    limit: int,
    offset: int,
    category_id: int | None = None,
    search: str | None = None,
) -> list[Template]:
    q = _public(s)
    if category_id is not None:
        q = q.filter(Template.category_id == category_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Template.name.ilike(like), Template.description.ilike(like)))
    return q.order_by(Template.created_at.desc(), Template.id.desc()).offset(offset).limit(limit).all()


def create_template(s: "Session", payload: dict, user: "User") -> Template:
    fields = validate_template_payload(s, payload)
    t = Template(downloads=0, active=True, variables={}, created_by_user_id=user.id)
    for k, v in fields.items():
        setattr(t, k, v)
    s.add(t)
    s.flush()
    logger.info("Template created id=%s name=%s by user_id=%s", t.id, t.name, user.id)
    return t


def update_template(s: "Session", template: Template, payload: dict, user: "User") -> Template:
    fields = validate_template_payload(s, payload, partial=True)
    for k, v in fields.items():
        setattr(template, k, v)
    s.flush()
    logger.info("Template updated id=%s fields=%s by user_id=%s", template.id, sorted(fields), user.id)
    return template


def delete_template(s: "Session", template: Template, user: "User") -> None:
    template.soft_delete()
    s.flush()
    logger.info("Template deleted id=%s by user_id=%s", template.id, user.id)


def attach_file(
    s: "Session",
    storage: Storage,
    template: Template,
    *,
    kind: str,
    filename: str,
    data: bytes,
    content_type: str | None,
) -> Template:
    if kind not in FILE_KINDS:
        raise ValidationError(f"Invalid kind. Must be one of: {', '.join(FILE_KINDS)}")
    if not data:
        raise ValidationError("File is empty")
    if kind != "file" and (content_type or "").lower() not in _PREVIEW_TYPES:
        raise ValidationError("Preview and thumbnail must be an image or PDF")

    result = upload_bytes(
        storage,
        folder=f"templates/{template.id}/{kind}",
        filename=filename,
        data=data,
        content_type=content_type,
    )
    if kind == "file":
        old_key = template.file_key
        template.file_key = result.key
        template.file_size = result.size
        template.file_type = content_type or "application/octet-stream"
        if old_key and old_key != result.key:
            try:
                storage.delete(old_key)
            except StorageError:
                logger.warning("Could not delete replaced template file key=%s", old_key)
    elif kind == "preview":
        template.preview_url = result.url
    else:
        template.thumbnail_url = result.url
    s.flush()
    logger.info("Template %s uploaded template_id=%s key=%s", kind, template.id, result.key)
    return template


def find_completed_order(s: "Session", user: "User", template: Template) -> Order | None:
    return (
        s.query(Order)
        .filter(
            Order.user_id == user.id,
            Order.template_id == template.id,
            Order.status == "completed",
            Order.deleted_at.is_(None),
        )
        .order_by(Order.created_at.desc())
        .first()
    )


def issue_download(s: "Session", storage: Storage, template: Template, user: "User", *, ttl_seconds: int) -> tuple[str, datetime, Order | None]:
    """
    Signed URL for the template file. Buyers need a completed order; authors/admins bypass.
    Increments the download counter and marks the order delivered.
    """
    order = find_completed_order(s, user, template)
    if order is None and not is_manager(user):
        raise Forbidden("You have not purchased this template")
    if not template.file_key:
        raise NotFound("Template file not available")

    url = storage.signed_url(template.file_key, expires_in=ttl_seconds)
    expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)

    s.query(Template).filter(Template.id == template.id).update(
        {Template.downloads: Template.downloads + 1}, synchronize_session=False
    )
    if order is not None:
        order.delivery_status = "delivered"
        order.download_url = url
        order.download_expires_at = expires_at
    s.flush()
    s.refresh(template, attribute_names=["downloads"])
    logger.info("Download issued template_id=%s user_id=%s order_id=%s", template.id, user.id, order.id if order else None)
    return url, expires_at, order
