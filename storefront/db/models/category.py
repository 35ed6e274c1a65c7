"""
Модель категории товаров.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, generate_id


class Category(Base):
    """
    Модель категории товаров.

    Attributes:
        id: Уникальный идентификатор категории
        name: Название категории
        slug: URL-friendly название, уникально среди категорий
        description: Описание категории
        image: Публичный URL изображения
        is_active: Опубликована ли категория на витрине
        products: Связь с товарами в этой категории
    """

    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(50))
    slug: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Удаление категории с товарами запрещено на уровне внешнего ключа
    products: Mapped[List["Product"]] = relationship(
        back_populates="category",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Category(id='{self.id}', slug='{self.slug}')>"
