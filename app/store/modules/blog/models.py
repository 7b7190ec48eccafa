from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.store.models import Base, JSONType, SoftDeleteMixin, TimestampMixin, iso

if TYPE_CHECKING:
    from app.store.models import User
    from app.store.modules.categories.models import Category


class BlogPost(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "blog_posts"
    __table_args__ = (
        Index("idx_blog_posts_author", "author_id"),
        Index("idx_blog_posts_category", "category_id"),
        Index("idx_blog_posts_published", "published", "published_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)  # markdown
    excerpt: Mapped[str | None] = mapped_column(Text, nullable=True)
    featured_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    tags: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)

    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)

    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    meta_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    author: Mapped["User"] = relationship("User", lazy="joined")
    category: Mapped["Category | None"] = relationship("Category", lazy="joined")

    def to_dict(self, *, include_content: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "featured_image": self.featured_image,
            "tags": self.tags or [],
            "author_id": self.author_id,
            "author_name": self.author.name if self.author is not None else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category is not None and not self.category.is_deleted else None,
            "published": self.published,
            "published_at": iso(self.published_at),
            "meta_title": self.meta_title,
            "meta_description": self.meta_description,
            "view_count": self.view_count,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_content:
            data["content"] = self.content
        return data
