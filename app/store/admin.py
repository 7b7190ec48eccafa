from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.store import audit
from app.store.db import db_session
from app.store.errors import StoreError
from app.store.mailer import EmailError
from app.store.modules.orders.service import get_order, list_orders, refund_order
from app.store.modules.orders.stripe_client import PaymentError
from app.store.rbac import current_user, require_admin
from app.store.users import (
    activity_for,
    admin_update_user,
    dashboard,
    delete_user,
    get_user,
    list_users,
    set_role,
    suspend,
    unsuspend,
    user_stats,
)
from app.store.utils import error_from_exception, error_response, json_body, parse_pagination, server_error

bp = Blueprint("admin", __name__)


@bp.get("/users")
@require_admin
def users_list():
    limit, offset = parse_pagination()
    try:
        users, total = list_users(
            db_session(),
            search=(request.args.get("q") or "").strip() or None,
            role=(request.args.get("role") or "").strip() or None,
            status=(request.args.get("status") or "").strip() or None,
            sort=(request.args.get("sort") or "created_at").strip(),
            order=(request.args.get("order") or "desc").strip(),
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        return server_error("Failed to list users", e)
    return jsonify(
        {"users": [u.to_dict() for u in users], "count": len(users), "total": total, "limit": limit, "offset": offset}
    )


@bp.get("/users/<int:user_id>")
@require_admin
def user_detail(user_id: int):
    s = db_session()
    try:
        user = get_user(s, user_id)
        return jsonify({"user": user.to_dict(), "stats": user_stats(s, user)})
    except StoreError as e:
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to load user", e)


@bp.put("/users/<int:user_id>")
@require_admin
def user_update(user_id: int):
    s = db_session()
    admin = current_user()
    payload = json_body()
    try:
        user = get_user(s, user_id)
        if user.id == admin.id and ("role" in payload or "status" in payload):
            return error_response("Cannot change your own role or status", 400)
        changed = admin_update_user(s, user, payload)
        if changed:
            audit.record_activity(
                s, user=user, actor=admin, action=audit.USER_UPDATED, resource_type="user", resource_id=user.id,
                details={"fields": changed},
            )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update user", e)
    return jsonify({"message": "User updated successfully", "user": user.to_dict()})


@bp.put("/users/<int:user_id>/role")
@require_admin
def user_role(user_id: int):
    s = db_session()
    admin = current_user()
    role = (json_body().get("role") or "").strip()
    if not role:
        return error_response("Role is required", 400)
    try:
        user = get_user(s, user_id)
        if user.id == admin.id:
            return error_response("Cannot change your own role", 400)
        old_role = user.role
        set_role(s, user, role)
        audit.record_activity(
            s, user=user, actor=admin, action=audit.ROLE_CHANGED, resource_type="user", resource_id=user.id,
            details={"old": old_role, "new": role},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to update role", e)
    return jsonify({"message": "Role updated successfully"})


@bp.post("/users/<int:user_id>/suspend")
@require_admin
def user_suspend(user_id: int):
    s = db_session()
    admin = current_user()
    reason = (json_body().get("reason") or "").strip() or None
    try:
        user = get_user(s, user_id)
        suspend(s, user, by=admin, reason=reason)
        audit.record_activity(
            s, user=user, actor=admin, action=audit.USER_SUSPENDED, resource_type="user", resource_id=user.id,
            details={"reason": reason},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to suspend user", e)

    try:
        current_app.extensions["email_sender"].send_account_suspended(user.email, reason)
    except EmailError:
        current_app.logger.exception("Suspension email failed user_id=%s", user.id)
    return jsonify({"message": "User suspended successfully"})


@bp.post("/users/<int:user_id>/unsuspend")
@require_admin
def user_unsuspend(user_id: int):
    s = db_session()
    admin = current_user()
    try:
        user = get_user(s, user_id)
        unsuspend(s, user)
        audit.record_activity(
            s, user=user, actor=admin, action=audit.USER_UNSUSPENDED, resource_type="user", resource_id=user.id
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to unsuspend user", e)
    return jsonify({"message": "User unsuspended successfully"})


@bp.delete("/users/<int:user_id>")
@require_admin
def user_delete(user_id: int):
    s = db_session()
    admin = current_user()
    try:
        user = get_user(s, user_id)
        delete_user(s, user, by=admin)
        audit.record_activity(
            s, user=user, actor=admin, action=audit.USER_DELETED, resource_type="user", resource_id=user.id
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to delete user", e)
    return jsonify({"message": "User deleted successfully"})


@bp.get("/users/<int:user_id>/activity")
@require_admin
def user_activity(user_id: int):
    limit, offset = parse_pagination()
    s = db_session()
    try:
        user = get_user(s, user_id)
    except StoreError as e:
        return error_from_exception(e)
    entries = activity_for(s, user.id, limit=limit, offset=offset)
    return jsonify({"activity": [e.to_dict() for e in entries], "count": len(entries), "limit": limit, "offset": offset})


@bp.get("/dashboard")
@require_admin
def admin_dashboard():
    try:
        return jsonify(dashboard(db_session()))
    except Exception as e:
        return server_error("Failed to build dashboard", e)


@bp.get("/orders")
@require_admin
def orders_list():
    limit, offset = parse_pagination()
    status = (request.args.get("status") or "").strip() or None
    try:
        orders, total = list_orders(db_session(), status=status, limit=limit, offset=offset)
    except Exception as e:
        return server_error("Failed to list orders", e)
    return jsonify(
        {"orders": [o.to_dict() for o in orders], "count": len(orders), "total": total, "limit": limit, "offset": offset}
    )


@bp.post("/orders/<int:order_id>/refund")
@require_admin
def order_refund(order_id: int):
    s = db_session()
    admin = current_user()
    try:
        order = get_order(s, order_id)
    except StoreError as e:
        return error_from_exception(e)
    if order.status == "refunded":
        return jsonify({"message": "Order already refunded", "order": order.to_dict()})
    if order.status != "completed":
        return error_response("Only completed orders can be refunded", 400)
    if not order.stripe_payment_intent_id:
        return error_response("Order has no payment to refund", 400)

    try:
        refund_id = current_app.extensions["payment_client"].refund(order.stripe_payment_intent_id)
    except PaymentError as e:
        return server_error("Refund failed", e)

    try:
        refund_order(s, order)
        order.extra = {**(order.extra or {}), "refund_id": refund_id}
        audit.record_activity(
            s, user=order.user_id, actor=admin, action=audit.ORDER_REFUNDED, resource_type="order",
            resource_id=order.id, details={"refund_id": refund_id},
        )
        s.commit()
    except StoreError as e:
        s.rollback()
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to record refund", e)
    return jsonify({"message": "Order refunded successfully", "order": order.to_dict()})
