"""
API эндпоинты для административной панели.

Чтение доступно админу и демо-админу. Права на изменение данных
проверяют сами операции сервисов (демо-админ получает 403).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from storefront.api.deps import get_record_store, read_multipart
from storefront.core.auth import get_current_caller, require_dashboard_access
from storefront.core.errors import RecordNotFound
from storefront.core.roles import Caller
from storefront.schemas.category import CategoryOut, CategoryStats
from storefront.schemas.mutation import MutationResult
from storefront.schemas.product import ProductOut
from storefront.services import categories as category_service
from storefront.services import products as product_service
from storefront.services.cache import ListingCache, get_listing_cache
from storefront.services.record_store import Collection, RecordStore
from storefront.services.storage_service import StorageProvider, get_storage_service

router = APIRouter()


# ==================== УПРАВЛЕНИЕ ПРОДУКТАМИ ====================


@router.get("/products", response_model=dict)
def admin_list_products(
    category_id: Optional[str] = Query(None, description="Фильтр по категории"),
    is_active: Optional[bool] = Query(None, description="Фильтр по публикации"),
    page: int = Query(1, ge=1, description="Номер страницы"),
    page_size: int = Query(20, ge=1, le=100, description="Размер страницы"),
    caller: Caller = Depends(require_dashboard_access),
    store: RecordStore = Depends(get_record_store),
):
    """
    Получить список продуктов для админки с пагинацией.
    """
    filters = {}
    if category_id is not None:
        filters["category_id"] = category_id
    if is_active is not None:
        filters["is_active"] = is_active

    rows = product_service.list_products(store, **filters)
    total = len(rows)
    offset = (page - 1) * page_size

    return {
        "items": [
            ProductOut.model_validate(row).model_dump(mode="json")
            for row in rows[offset:offset + page_size]
        ],
        "meta": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": (total + page_size - 1) // page_size,
        },
    }


@router.get("/products/{product_id}", response_model=ProductOut)
def admin_get_product(
    product_id: str,
    caller: Caller = Depends(require_dashboard_access),
    store: RecordStore = Depends(get_record_store),
):
    """Получить продукт по ID."""
    product = store.get(Collection.PRODUCTS, product_id)
    if product is None:
        raise RecordNotFound(Collection.PRODUCTS.value, product_id)
    return product


@router.post("/products", response_model=MutationResult)
async def admin_create_product(
    request: Request,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    storage: StorageProvider = Depends(get_storage_service),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Создать продукт из multipart формы.

    Поля: name, description, price, compare_price, category_id, stock,
    sku, is_active и файлы images (минимум один).
    """
    fields, images = await read_multipart(request, "images")
    return product_service.create_product(caller, fields, images, store, storage, cache)


@router.put("/products/{product_id}", response_model=MutationResult)
async def admin_update_product(
    product_id: str,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    storage: StorageProvider = Depends(get_storage_service),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Обновить продукт.

    Оставляемые изображения передаются повторяющимся полем image_urls,
    новые файлы - полем images.
    """
    fields, images = await read_multipart(request, "images")
    return product_service.update_product(
        caller, product_id, fields, images, store, storage, cache
    )


@router.delete("/products/{product_id}", response_model=MutationResult)
def admin_delete_product(
    product_id: str,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    storage: StorageProvider = Depends(get_storage_service),
    cache: ListingCache = Depends(get_listing_cache),
):
    """Удалить продукт."""
    return product_service.delete_product(caller, product_id, store, storage, cache)


# ==================== УПРАВЛЕНИЕ КАТЕГОРИЯМИ ====================


@router.get("/categories", response_model=list[CategoryOut])
def admin_list_categories(
    caller: Caller = Depends(require_dashboard_access),
    store: RecordStore = Depends(get_record_store),
):
    """
    Получить список категорий для админки с подсчетом продуктов.
    """
    return category_service.list_categories(store)


@router.get("/categories/stats", response_model=CategoryStats)
def admin_category_stats(
    caller: Caller = Depends(require_dashboard_access),
    store: RecordStore = Depends(get_record_store),
):
    """Сводка: всего, опубликовано, черновики, пустые."""
    return category_service.category_stats(store)


@router.post("/categories", response_model=MutationResult)
async def admin_create_category(
    request: Request,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    storage: StorageProvider = Depends(get_storage_service),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Создать новую категорию.

    Поля: name, description, is_active и необязательный файл image.
    """
    fields, files = await read_multipart(request, "image")
    image = files[0] if files else None
    return category_service.create_category(caller, fields, image, store, storage, cache)


@router.put("/categories/{category_id}", response_model=MutationResult)
async def admin_update_category(
    category_id: str,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    storage: StorageProvider = Depends(get_storage_service),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Обновить категорию.
    """
    fields, files = await read_multipart(request, "image")
    image = files[0] if files else None
    return category_service.update_category(
        caller, category_id, fields, image, store, storage, cache
    )


@router.delete("/categories/{category_id}", response_model=MutationResult)
def admin_delete_category(
    category_id: str,
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Удалить категорию.
    """
    return category_service.delete_category(caller, category_id, store, cache)


# ==================== МАССОВЫЕ ОПЕРАЦИИ ====================


@router.post("/categories/bulk/publish-drafts", response_model=MutationResult)
def admin_publish_draft_categories(
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """Опубликовать все черновики категорий."""
    return category_service.publish_all_draft_categories(caller, store, cache)


@router.post("/categories/bulk/hide-empty", response_model=MutationResult)
def admin_hide_empty_categories(
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """Скрыть категории без товаров."""
    return category_service.hide_empty_categories(caller, store, cache)


@router.post("/categories/bulk/delete-empty", response_model=MutationResult)
def admin_delete_empty_categories(
    caller: Caller = Depends(get_current_caller),
    store: RecordStore = Depends(get_record_store),
    cache: ListingCache = Depends(get_listing_cache),
):
    """Удалить категории без товаров."""
    return category_service.delete_empty_categories(caller, store, cache)
