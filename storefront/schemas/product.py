"""
Pydantic схемы товаров: форма админки и вывод.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ProductForm(BaseModel):
    """
    Форма создания/редактирования товара.

    Значения приходят из multipart формы строками и приводятся здесь.
    Файлы изображений проверяются отдельно (см. image_service).
    """

    name: str = Field(..., description="Название товара")
    description: Optional[str] = Field(None, description="Описание (HTML)")
    price: Decimal = Field(..., description="Цена")
    compare_price: Optional[Decimal] = Field(None, description="Старая цена")
    category_id: str = Field(..., description="ID категории")
    stock: int = Field(0, description="Остаток на складе")
    sku: Optional[str] = Field(None, description="Артикул")
    is_active: bool = Field(False, description="Опубликован на витрине")
    image_urls: List[str] = Field(
        default_factory=list, description="Уже загруженные изображения (при редактировании)"
    )

    @field_validator("description", "compare_price", "sku", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("stock", mode="before")
    @classmethod
    def default_stock(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0
        return value

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Product name is required")
        return value

    @field_validator("category_id")
    @classmethod
    def category_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category is required")
        return value

    @field_validator("price")
    @classmethod
    def price_minimum(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value < 1:
            raise ValueError("Price must be at least 1")
        return value

    @field_validator("compare_price")
    @classmethod
    def compare_price_minimum(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        if value is not None and (not value.is_finite() or value < 0):
            raise ValueError("Compare price must be at least 0")
        return value

    @field_validator("stock")
    @classmethod
    def stock_minimum(cls, value: int) -> int:
        if value < 0:
            raise ValueError("Stock must be at least 0")
        return value


class ProductOut(BaseModel):
    """Схема для вывода товара."""

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    price: Decimal
    compare_price: Optional[Decimal] = None
    category_id: str
    stock: int
    sku: Optional[str] = None
    images: List[str] = []
    primary_image: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
