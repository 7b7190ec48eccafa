from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.store.models import Base, JSONType, SoftDeleteMixin, TimestampMixin, iso, money

if TYPE_CHECKING:
    from app.store.modules.categories.models import Category


class Template(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "templates"
    __table_args__ = (
        Index("idx_templates_category", "category_id"),
        Index("idx_templates_active", "active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    # Object storage key of the purchasable file; never exposed directly.
    file_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Placeholders a buyer can fill in, e.g. {"company_name": "Acme"}
    variables: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=dict)
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    category: Mapped["Category | None"] = relationship("Category", lazy="joined")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category": self.category.name if self.category is not None and not self.category.is_deleted else None,
            "price": money(self.price),
            "file_size": self.file_size,
            "file_type": self.file_type,
            "has_file": bool(self.file_key),
            "preview_url": self.preview_url,
            "thumbnail_url": self.thumbnail_url,
            "variables": self.variables or {},
            "downloads": self.downloads,
            "active": self.active,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
