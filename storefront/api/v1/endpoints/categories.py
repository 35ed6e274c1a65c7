"""
API endpoints витрины для работы с категориями товаров.
"""

from fastapi import APIRouter, Depends

from storefront.api.deps import get_record_store
from storefront.schemas.category import CategoryOut
from storefront.services import categories as category_service
from storefront.services.cache import ListingCache, get_listing_cache
from storefront.services.record_store import RecordStore

router = APIRouter()


@router.get("", response_model=list[CategoryOut])
def list_categories(
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Получить список опубликованных категорий с числом товаров.

    Кэшируется до изменения категорий или товаров в админке.

    Example:
        [
            {"id": "...", "name": "T-Shirts", "slug": "t-shirts", "product_count": 3, ...}
        ]
    """
    return cache.get_or_load(
        "/categories",
        lambda: [
            category.model_dump(mode="json")
            for category in category_service.list_categories(store, active_only=True)
        ],
    )
