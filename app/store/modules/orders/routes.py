from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.store import audit
from app.store.db import db_session
from app.store.errors import InvalidTransition, NotFound, StoreError
from app.store.mailer import EmailError
from app.store.modules.orders.models import Order
from app.store.modules.orders.service import (
    ReconcileResult,
    create_pending_order,
    get_order_by_payment_intent,
    has_purchased,
    reconcile_session,
    transition,
)
from app.store.modules.orders.stripe_client import PaymentError, WebhookSignatureError, session_from_object
from app.store.modules.templates.service import get_template
from app.store.rbac import current_user, require_auth
from app.store.utils import error_from_exception, error_response, json_body, parse_int, server_error

bp = Blueprint("payment", __name__)

# Checkout session events -> order status ("pending" leaves the order untouched).
SESSION_EVENT_STATUS = {
    "checkout.session.async_payment_succeeded": "completed",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "failed",
}


def _payment_client():
    return current_app.extensions["payment_client"]


def _email_sender():
    return current_app.extensions["email_sender"]


def _record_order_activity(s, order: Order) -> None:
    action = {
        "completed": audit.ORDER_PLACED,
        "failed": audit.ORDER_FAILED,
        "refunded": audit.ORDER_REFUNDED,
    }.get(order.status)
    if action:
        audit.record_activity(
            s,
            user=order.user_id,
            action=action,
            resource_type="order",
            resource_id=order.id,
            details={"template_id": order.template_id, "amount": str(order.amount)},
        )


def _send_confirmation(order: Order) -> None:
    """Called after commit; a mail failure must not undo the order."""
    user = order.user
    prefs = user.preferences
    if prefs is not None and not prefs.email_notifications:
        return
    try:
        _email_sender().send_order_confirmation(user.email, order.id, order.template.name)
    except EmailError:
        current_app.logger.exception("Order confirmation email failed order_id=%s", order.id)


def _finish(s, result: ReconcileResult) -> None:
    if result.changed:
        _record_order_activity(s, result.order)
    s.commit()
    if result.changed and result.order.status == "completed":
        _send_confirmation(result.order)


@bp.post("/checkout")
@require_auth
def checkout():
    s = db_session()
    user = current_user()
    payload = json_body()
    template_id = parse_int(payload.get("template_id") or payload.get("templateId"))
    if template_id is None:
        return error_response("Template ID is required", 400)

    try:
        template = get_template(s, template_id)
    except StoreError as e:
        return error_from_exception(e)
    if has_purchased(s, user, template):
        return error_response("Template already purchased", 400)

    cfg = current_app.config
    client = _payment_client()
    success_url = cfg["STRIPE_SUCCESS_URL"]
    success_url += ("&" if "?" in success_url else "?") + "session_id={CHECKOUT_SESSION_ID}"
    metadata = {
        "user_id": str(user.id),
        "template_id": str(template.id),
        "cognito_sub": user.cognito_subject or "",
    }
    try:
        session = client.create_checkout_session(
            amount=template.price,
            product_name=template.name,
            description=template.description,
            customer_email=user.email,
            metadata=metadata,
            success_url=success_url,
            cancel_url=cfg["STRIPE_CANCEL_URL"],
        )
        order = create_pending_order(
            s,
            user=user,
            template=template,
            session_id=session.id,
            currency=client.currency,
            metadata={"request_id": getattr(g, "request_id", None)},
        )
        s.commit()
    except Exception as e:
        return server_error("Failed to create checkout session", e)

    return jsonify({"checkout_url": session.url, "session_id": session.id, "order_id": order.id})


@bp.get("/success")
def success():
    session_id = (request.args.get("session_id") or "").strip()
    if not session_id:
        return error_response("Session ID is required", 400)
    s = db_session()
    try:
        session = _payment_client().retrieve_checkout_session(session_id)
    except PaymentError as e:
        current_app.logger.warning("Checkout success lookup failed session=%s: %s", session_id, e)
        return error_response("Invalid session ID", 400)
    if not session.paid:
        return error_response("Payment not completed", 400)

    try:
        result = reconcile_session(s, session, "completed")
        _finish(s, result)
    except StoreError as e:
        s.rollback()
        current_app.logger.warning("Checkout success reconcile failed session=%s: %s", session_id, e.message)
        return error_from_exception(e)
    except Exception as e:
        return server_error("Failed to confirm payment", e)
    return jsonify({"message": "Payment successful!", "order_id": result.order.id})


@bp.get("/cancel")
def cancel():
    return jsonify({"message": "Payment canceled."})


@bp.post("/webhooks/stripe")
def stripe_webhook():
    try:
        event = _payment_client().parse_webhook(request.get_data(), request.headers.get("Stripe-Signature"))
    except WebhookSignatureError as e:
        current_app.logger.warning("Stripe webhook signature verification failed: %s", e)
        return error_response("Webhook signature verification failed", 400)

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    current_app.logger.info("Stripe webhook received id=%s type=%s", event.get("id"), event_type)

    s = db_session()
    try:
        if event_type == "checkout.session.completed" or event_type in SESSION_EVENT_STATUS:
            session = session_from_object(obj)
            if event_type == "checkout.session.completed":
                target = "completed" if session.paid else "pending"
            else:
                target = SESSION_EVENT_STATUS[event_type]
            _finish(s, reconcile_session(s, session, target))
        elif event_type == "charge.refunded":
            intent_id = obj.get("payment_intent")
            order = get_order_by_payment_intent(s, intent_id) if intent_id else None
            if order is None:
                current_app.logger.warning("Refund for unknown payment_intent=%s ignored", intent_id)
                return jsonify({"received": True, "ignored": True})
            changed = transition(order, "refunded")
            if changed:
                _record_order_activity(s, order)
            s.commit()
        else:
            current_app.logger.info("Unhandled Stripe event type: %s", event_type)
            return jsonify({"received": True, "ignored": True})
    except (NotFound, InvalidTransition) as e:
        # Events that can never apply are acknowledged, not failed.
        s.rollback()
        current_app.logger.error("Stripe webhook %s not applied: %s", event_type, e.message)
        return jsonify({"received": True, "ignored": True})
    except Exception as e:
        return server_error("Webhook processing failed", e)

    return jsonify({"received": True})
