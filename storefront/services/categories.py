"""
Операции с категориями: создание, обновление, удаление и массовые действия.

Массовые действия над "пустыми" категориями (без товаров) сначала
читают категории с числом товаров, затем изменяют выбранные. Чтение и
изменение не объединены в транзакцию: товар, созданный между ними,
не защищает категорию от скрытия/удаления.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from storefront.core.config import settings
from storefront.core.errors import MutationError, RecordNotFound, StorageError, ValidationError
from storefront.core.roles import Caller
from storefront.core.slugs import normalize
from storefront.schemas.category import CategoryForm, CategoryOut, CategoryStats
from storefront.schemas.mutation import MutationResult
from storefront.services.cache import CacheInvalidator
from storefront.services.image_service import UploadedImage, image_service
from storefront.services.mutations import (
    MutationState,
    MutationTracker,
    allocate_slug,
    validate_form,
    write_with_slug_retry,
)
from storefront.services.record_store import Collection, RecordStore
from storefront.services.storage_service import StorageProvider

logger = logging.getLogger(__name__)

CATEGORIES_PATH = "/admin/products/categories"


def _upload_image(storage: StorageProvider, slug: str, image: UploadedImage) -> str:
    path = image_service.category_image_path(slug, image)
    try:
        return storage.upload(
            settings.CATEGORY_IMAGES_BUCKET,
            path,
            image.content,
            image_service.content_type(image),
        )
    except StorageError as e:
        raise StorageError(f"Failed to upload image: {image.filename}") from e


def _category_values(form: CategoryForm) -> Dict[str, Any]:
    return {
        "name": form.name,
        "description": form.description,
        "is_active": form.is_active,
    }


def create_category(
    caller: Caller,
    form_data: Mapping[str, Any],
    image: Optional[UploadedImage],
    store: RecordStore,
    storage: StorageProvider,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """
    Создать категорию.

    Args:
        caller: Вызывающий (должен быть админом)
        form_data: Поля формы (name, description, is_active)
        image: Необязательное изображение (до 2MB)
        store: Хранилище записей
        storage: Объектное хранилище изображений
        invalidator: Получатель сигнала инвалидации кэша

    Returns:
        MutationResult с ID и slug новой категории
    """
    with MutationTracker("create_category", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can create categories")

        tracker.advance(MutationState.VALIDATING)
        form = validate_form(CategoryForm, form_data)
        if image is not None:
            image_service.validate(image, settings.MAX_CATEGORY_IMAGE_SIZE, "image")

        tracker.advance(MutationState.SLUG_ALLOCATING)
        slug = allocate_slug(store, Collection.CATEGORIES, form.name)

        tracker.advance(MutationState.PERSISTING)
        image_url = _upload_image(storage, slug, image) if image is not None else None
        values = _category_values(form)
        values["image"] = image_url

        try:
            slug, category_id = write_with_slug_retry(
                tracker,
                store,
                Collection.CATEGORIES,
                form.name,
                slug,
                lambda candidate: store.insert(
                    Collection.CATEGORIES, {**values, "slug": candidate}
                ),
            )
        except MutationError as e:
            if image_url:
                logger.warning(f"Category image left orphaned after {e.kind}: {image_url}")
            raise

        return tracker.done(MutationResult(id=category_id, slug=slug), CATEGORIES_PATH)


def update_category(
    caller: Caller,
    category_id: str,
    form_data: Mapping[str, Any],
    image: Optional[UploadedImage],
    store: RecordStore,
    storage: StorageProvider,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """
    Обновить категорию.

    Новое изображение заменяет текущее; без него остается image_url из формы.
    """
    with MutationTracker("update_category", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can update categories")

        tracker.advance(MutationState.VALIDATING)
        current = store.get(Collection.CATEGORIES, category_id)
        if current is None:
            raise RecordNotFound(Collection.CATEGORIES.value, category_id)

        form = validate_form(CategoryForm, form_data)
        if image is not None:
            image_service.validate(image, settings.MAX_CATEGORY_IMAGE_SIZE, "image")

        tracker.advance(MutationState.SLUG_ALLOCATING)
        if normalize(form.name) == normalize(current["name"]):
            slug = current["slug"]
        else:
            slug = allocate_slug(
                store, Collection.CATEGORIES, form.name, excluding=current["slug"]
            )

        tracker.advance(MutationState.PERSISTING)
        image_url = form.image_url
        if image is not None:
            image_url = _upload_image(storage, slug, image)
        patch = _category_values(form)
        patch["image"] = image_url

        slug, _ = write_with_slug_retry(
            tracker,
            store,
            Collection.CATEGORIES,
            form.name,
            slug,
            lambda candidate: store.update(
                Collection.CATEGORIES, category_id, {**patch, "slug": candidate}
            ),
            excluding=current["slug"],
        )

        return tracker.done(MutationResult(id=category_id, slug=slug), CATEGORIES_PATH)


def delete_category(
    caller: Caller,
    category_id: str,
    store: RecordStore,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """Удалить категорию. Категорию с товарами удалить нельзя."""
    with MutationTracker("delete_category", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can delete categories")

        tracker.advance(MutationState.VALIDATING)
        if store.get(Collection.CATEGORIES, category_id) is None:
            raise RecordNotFound(Collection.CATEGORIES.value, category_id)
        products_count = len(store.query(Collection.PRODUCTS, category_id=category_id))
        if products_count > 0:
            raise ValidationError(
                "products", f"Cannot delete category with {products_count} products"
            )

        tracker.advance(MutationState.PERSISTING)
        store.delete(Collection.CATEGORIES, category_id)

        return tracker.done(MutationResult(id=category_id), CATEGORIES_PATH)


# ==================== МАССОВЫЕ ОПЕРАЦИИ ====================


def _empty_category_ids(store: RecordStore) -> List[str]:
    return [
        row["id"] for row in store.category_product_counts() if row["product_count"] == 0
    ]


def publish_all_draft_categories(
    caller: Caller,
    store: RecordStore,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """Опубликовать все неактивные категории."""
    with MutationTracker("publish_all_draft_categories", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can publish categories")
        tracker.advance(MutationState.VALIDATING)

        tracker.advance(MutationState.PERSISTING)
        draft_ids = [row["id"] for row in store.query(Collection.CATEGORIES, is_active=False)]
        count = store.update_many(Collection.CATEGORIES, draft_ids, {"is_active": True})

        return tracker.done(MutationResult(count=count), CATEGORIES_PATH)


def hide_empty_categories(
    caller: Caller,
    store: RecordStore,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """Скрыть (is_active=False) все категории без товаров."""
    with MutationTracker("hide_empty_categories", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can hide categories")
        tracker.advance(MutationState.VALIDATING)

        tracker.advance(MutationState.PERSISTING)
        empty_ids = _empty_category_ids(store)
        if empty_ids:
            store.update_many(Collection.CATEGORIES, empty_ids, {"is_active": False})

        return tracker.done(MutationResult(count=len(empty_ids)), CATEGORIES_PATH)


def delete_empty_categories(
    caller: Caller,
    store: RecordStore,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """Удалить все категории без товаров."""
    with MutationTracker("delete_empty_categories", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can delete categories")
        tracker.advance(MutationState.VALIDATING)

        tracker.advance(MutationState.PERSISTING)
        empty_ids = _empty_category_ids(store)
        if empty_ids:
            store.delete_many(Collection.CATEGORIES, empty_ids)

        return tracker.done(MutationResult(count=len(empty_ids)), CATEGORIES_PATH)


# ==================== ЧТЕНИЕ ====================


def list_categories(store: RecordStore, active_only: bool = False) -> List[CategoryOut]:
    """Категории с числом товаров, новые первыми."""
    rows = store.category_product_counts()
    if active_only:
        rows = [row for row in rows if row["is_active"]]
    return [CategoryOut(**row) for row in rows]


def category_stats(store: RecordStore) -> CategoryStats:
    rows = store.category_product_counts()
    active = sum(1 for row in rows if row["is_active"])
    return CategoryStats(
        total=len(rows),
        active=active,
        drafts=len(rows) - active,
        empty=sum(1 for row in rows if row["product_count"] == 0),
    )
