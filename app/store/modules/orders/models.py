from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.store.models import Base, JSONType, SoftDeleteMixin, TimestampMixin, iso, money

if TYPE_CHECKING:
    from app.store.models import User
    from app.store.modules.templates.models import Template

ORDER_STATUSES = ("pending", "completed", "failed", "refunded")
DELIVERY_STATUSES = ("pending", "delivered", "failed")


class Order(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_user", "user_id"),
        Index("idx_orders_template", "template_id"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_payment_intent", "stripe_payment_intent_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates.id", ondelete="RESTRICT"), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, completed, failed, refunded
    delivery_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, delivered, failed

    # One order per checkout session; this is what makes webhook replays idempotent.
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    download_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    download_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # "metadata" is reserved on declarative classes.
    extra: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True, default=dict)

    user: Mapped["User"] = relationship("User", lazy="joined")
    template: Mapped["Template"] = relationship("Template", lazy="joined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "template_id": self.template_id,
            "template_name": self.template.name if self.template is not None else None,
            "amount": money(self.amount),
            "currency": self.currency,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "stripe_session_id": self.stripe_session_id,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "download_url": self.download_url,
            "download_expires_at": iso(self.download_expires_at),
            "completed_at": iso(self.completed_at),
            "metadata": self.extra or {},
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
