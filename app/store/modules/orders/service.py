"""
Order lifecycle and payment reconciliation.

A checkout session maps onto exactly one order (`orders.stripe_session_id` is
unique). Every entry point (checkout success redirect, webhooks) funnels into
`reconcile_session`, which finds-or-creates that order and moves it to the
status reported by the processor. Replaying any of them is a no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.store.errors import InvalidTransition, NotFound
from app.store.models import User
from app.store.modules.orders.models import ORDER_STATUSES, Order
from app.store.modules.orders.stripe_client import CheckoutSession, from_cents
from app.store.modules.templates.models import Template
from app.store.utils import parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ("pending", "completed"),
    ("pending", "failed"),
    ("failed", "completed"),  # async payment settled after an earlier failure report
    ("completed", "refunded"),
}


@dataclass
class ReconcileResult:
    order: Order
    created: bool
    changed: bool


def transition(order: Order, new_status: str) -> bool:
    """Returns True when the status changed; same-status is a no-op."""
    if new_status not in ORDER_STATUSES:
        raise InvalidTransition(f"Unknown order status: {new_status}")
    if order.status == new_status:
        return False
    if (order.status, new_status) not in ALLOWED_TRANSITIONS:
        raise InvalidTransition(f"Cannot move order {order.id} from {order.status} to {new_status}")
    logger.info("Order %s status %s -> %s", order.id, order.status, new_status)
    order.status = new_status
    if new_status == "completed":
        order.completed_at = datetime.utcnow()
    return True


def _live(s: "Session") -> "Query":
    return s.query(Order).filter(Order.deleted_at.is_(None))


def get_order(s: "Session", order_id: int) -> Order:
    o = _live(s).filter(Order.id == order_id).one_or_none()
    if o is None:
        raise NotFound("Order not found")
    return o


def get_order_by_session(s: "Session", session_id: str) -> Order | None:
    return s.query(Order).filter(Order.stripe_session_id == session_id).one_or_none()


def get_order_by_payment_intent(s: "Session", payment_intent_id: str) -> Order | None:
    return (
        s.query(Order)
        .filter(Order.stripe_payment_intent_id == payment_intent_id)
        .order_by(Order.id.desc())
        .first()
    )


def list_user_orders(s: "Session", user: User, *, status: str | None = None, limit: int, offset: int) -> list[Order]:
    q = _live(s).filter(Order.user_id == user.id)
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()


def list_orders(s: "Session", *, status: str | None = None, limit: int, offset: int) -> tuple[list[Order], int]:
    q = _live(s)
    if status:
        q = q.filter(Order.status == status)
    total = q.count()
    return q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all(), total


def purchased_templates(s: "Session", user: User) -> list[Template]:
    return (
        s.query(Template)
        .join(Order, Order.template_id == Template.id)
        .filter(
            Order.user_id == user.id,
            Order.status == "completed",
            Order.deleted_at.is_(None),
            Template.deleted_at.is_(None),
        )
        .distinct()
        .order_by(Template.name.asc())
        .all()
    )


def has_purchased(s: "Session", user: User, template: Template) -> bool:
    q = _live(s).filter(Order.user_id == user.id, Order.template_id == template.id, Order.status == "completed")
    return q.first() is not None


def create_pending_order(
    s: "Session",
    *,
    user: User,
    template: Template,
    session_id: str,
    currency: str,
    metadata: dict | None = None,
) -> Order:
    order = Order(
        user_id=user.id,
        template_id=template.id,
        amount=template.price,
        currency=currency,
        status="pending",
        delivery_status="pending",
        stripe_session_id=session_id,
        extra=metadata or {},
    )
    s.add(order)
    s.flush()
    logger.info("Pending order created id=%s user_id=%s template_id=%s session=%s", order.id, user.id, template.id, session_id)
    return order


def _order_from_session(s: "Session", session: CheckoutSession) -> Order:
    """
    New order for a session we have no record of (e.g. created outside /checkout).
    The buyer and template come from the session metadata.
    """
    user_id = parse_int(session.metadata.get("user_id"))
    template_id = parse_int(session.metadata.get("template_id"))
    user = s.get(User, user_id) if user_id is not None else None
    if user is None or user.deleted_at is not None:
        raise NotFound(f"User not found for checkout session {session.id}")
    template = s.get(Template, template_id) if template_id is not None else None
    if template is None:
        raise NotFound(f"Template not found for checkout session {session.id}")

    order = Order(
        user_id=user.id,
        template_id=template.id,
        amount=from_cents(session.amount_total) if session.amount_total is not None else template.price,
        currency=(session.currency or "usd").lower(),
        status="pending",
        delivery_status="pending",
        stripe_session_id=session.id,
        stripe_payment_intent_id=session.payment_intent_id,
        extra={"source": "webhook"},
    )
    # A concurrent delivery of the same event hits the unique session id here;
    # the caller answers 500 and the processor's redelivery then finds the row.
    s.add(order)
    s.flush()
    logger.info("Order created from checkout session id=%s session=%s", order.id, session.id)
    return order


def reconcile_session(s: "Session", session: CheckoutSession, target_status: str) -> ReconcileResult:
    """
    Find-or-create the order bound to `session` and move it to `target_status`
    ("pending" keeps it as is).
    """
    order = get_order_by_session(s, session.id)
    created = False
    if order is None:
        order = _order_from_session(s, session)
        created = True

    if session.payment_intent_id and not order.stripe_payment_intent_id:
        order.stripe_payment_intent_id = session.payment_intent_id

    changed = False
    if target_status != "pending":
        changed = transition(order, target_status)
    s.flush()
    return ReconcileResult(order=order, created=created, changed=changed)


def refund_order(s: "Session", order: Order) -> bool:
    changed = transition(order, "refunded")
    s.flush()
    return changed


def revenue_total(s: "Session", *, since: datetime | None = None) -> Decimal:
    q = s.query(func.coalesce(func.sum(Order.amount), 0)).filter(
        Order.status == "completed", Order.deleted_at.is_(None)
    )
    if since is not None:
        q = q.filter(Order.completed_at >= since)
    return Decimal(str(q.scalar() or 0))
