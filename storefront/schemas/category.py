"""
Pydantic схемы категорий.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CategoryForm(BaseModel):
    """Форма создания/редактирования категории."""

    name: str = Field(..., description="Название категории")
    description: Optional[str] = Field(None, description="Описание")
    is_active: bool = Field(False, description="Опубликована на витрине")
    image_url: Optional[str] = Field(
        None, description="Текущее изображение (при редактировании)"
    )

    @field_validator("description", "image_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        if len(value) > 50:
            raise ValueError("Name too long")
        return value

    @field_validator("description")
    @classmethod
    def description_length(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 500:
            raise ValueError("Description too long")
        return value


class CategoryOut(BaseModel):
    """Категория с числом товаров."""

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool
    product_count: int = 0
    created_at: Optional[datetime] = None


class CategoryStats(BaseModel):
    """Сводка по категориям для админки."""

    total: int
    active: int
    drafts: int
    empty: int
