"""
API endpoints витрины для работы с товарами.

Отдают только опубликованные товары. Списки кэшируются в памяти
и сбрасываются при изменении товаров в админке.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.api.deps import get_record_store
from storefront.schemas.product import ProductOut
from storefront.services import products as product_service
from storefront.services.cache import ListingCache, get_listing_cache
from storefront.services.record_store import RecordStore

router = APIRouter()


@router.get("", response_model=list[ProductOut])
def list_products(
    category_id: Optional[str] = Query(None, description="Фильтр по категории"),
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Получить список опубликованных товаров.

    Args:
        category_id: Фильтр по ID категории

    Returns:
        List[ProductOut]: Товары, новые первыми
    """
    filters = {"is_active": True}
    key = "/products"
    if category_id:
        filters["category_id"] = category_id
        key = f"/products?category_id={category_id}"

    return cache.get_or_load(
        key,
        lambda: [
            ProductOut.model_validate(row).model_dump(mode="json")
            for row in product_service.list_products(store, **filters)
        ],
    )


@router.get("/{slug}", response_model=ProductOut)
def get_product(
    slug: str,
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Получить опубликованный товар по slug.

    Raises:
        HTTPException: Если товар не найден
    """

    def load():
        rows = product_service.list_products(store, slug=slug, is_active=True)
        if not rows:
            raise HTTPException(404, detail="Product not found")
        return ProductOut.model_validate(rows[0]).model_dump(mode="json")

    return cache.get_or_load(f"/products/{slug}", load)
