"""
Операции изменения товаров: создание, обновление, удаление.

Все операции принимают вызывающего (Caller) явно и проверяют его роль
до чтения формы. Изображения загружаются в хранилище после валидации
и выделения slug, но до записи в БД: при ошибке записи уже загруженные
файлы остаются в хранилище (пишется в лог).
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from storefront.core.config import settings
from storefront.core.errors import (
    MutationError,
    RecordNotFound,
    StorageError,
    ValidationError,
)
from storefront.core.roles import Caller
from storefront.core.slugs import normalize
from storefront.schemas.mutation import MutationResult
from storefront.schemas.product import ProductForm
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

PRODUCTS_PATH = "/admin/products"


def _ensure_category(store: RecordStore, category_id: str) -> None:
    if store.get(Collection.CATEGORIES, category_id) is None:
        raise ValidationError("category_id", "Category does not exist")


def _validate_images(images: Sequence[UploadedImage]) -> None:
    for image in images:
        image_service.validate(image, settings.MAX_IMAGE_SIZE, "images")


def _upload_images(
    storage: StorageProvider,
    slug: str,
    images: Sequence[UploadedImage],
    start_index: int = 1,
) -> List[str]:
    """Загрузить изображения товара и вернуть их публичные URL."""
    bucket = settings.PRODUCT_IMAGES_BUCKET
    urls = []
    for index, image in enumerate(images, start=start_index):
        path = image_service.product_image_path(slug, index, image)
        try:
            urls.append(
                storage.upload(bucket, path, image.content, image_service.content_type(image))
            )
        except StorageError as e:
            if urls:
                logger.warning(f"Orphaned product images after failed upload: {urls}")
            raise StorageError(f"Failed to upload image: {image.filename}") from e
    return urls


def _remove_images(storage: StorageProvider, urls: Sequence[str]) -> None:
    """Удалить файлы изображений; ошибки только логируются."""
    bucket = settings.PRODUCT_IMAGES_BUCKET
    paths = [path for path in (storage.path_from_url(bucket, url) for url in urls) if path]
    if not paths:
        return
    try:
        storage.remove(bucket, paths)
    except StorageError as e:
        logger.warning(f"Could not remove product images {paths}: {e.message}")


def _log_orphans(urls: Sequence[str], error: MutationError) -> None:
    if urls:
        logger.warning(
            f"Product images left orphaned after {error.kind}: {', '.join(urls)}"
        )


def _product_values(form: ProductForm) -> Dict[str, Any]:
    return {
        "name": form.name,
        "description": form.description,
        "price": form.price,
        "compare_price": form.compare_price,
        "category_id": form.category_id,
        "stock": form.stock,
        "sku": form.sku,
        "is_active": form.is_active,
    }


def create_product(
    caller: Caller,
    form_data: Mapping[str, Any],
    images: Sequence[UploadedImage],
    store: RecordStore,
    storage: StorageProvider,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """
    Создать товар.

    Args:
        caller: Вызывающий (должен быть админом)
        form_data: Поля формы товара
        images: Загруженные файлы (минимум один)
        store: Хранилище записей
        storage: Объектное хранилище изображений
        invalidator: Получатель сигнала инвалидации кэша

    Returns:
        MutationResult с ID и slug нового товара

    Raises:
        Unauthorized, ValidationError, SlugConflict, StorageError, PersistenceError
    """
    with MutationTracker("create_product", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can create products")

        tracker.advance(MutationState.VALIDATING)
        form = validate_form(ProductForm, form_data)
        if not images:
            raise ValidationError("images", "At least one image is required")
        _validate_images(images)
        _ensure_category(store, form.category_id)

        tracker.advance(MutationState.SLUG_ALLOCATING)
        slug = allocate_slug(store, Collection.PRODUCTS, form.name)

        tracker.advance(MutationState.PERSISTING)
        image_urls = _upload_images(storage, slug, images)
        values = _product_values(form)
        values.update(images=image_urls, primary_image=image_urls[0])

        try:
            slug, product_id = write_with_slug_retry(
                tracker,
                store,
                Collection.PRODUCTS,
                form.name,
                slug,
                lambda candidate: store.insert(
                    Collection.PRODUCTS, {**values, "slug": candidate}
                ),
            )
        except MutationError as e:
            _log_orphans(image_urls, e)
            raise

        return tracker.done(MutationResult(id=product_id, slug=slug), PRODUCTS_PATH)


def update_product(
    caller: Caller,
    product_id: str,
    form_data: Mapping[str, Any],
    images: Sequence[UploadedImage],
    store: RecordStore,
    storage: StorageProvider,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """
    Обновить товар.

    Изображения товара - это оставленные image_urls из формы плюс
    новые загруженные файлы. Хотя бы одно изображение должно остаться.
    Slug пересчитывается из названия; при неизмененном названии
    остается прежним.
    """
    with MutationTracker("update_product", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can update products")

        tracker.advance(MutationState.VALIDATING)
        current = store.get(Collection.PRODUCTS, product_id)
        if current is None:
            raise RecordNotFound(Collection.PRODUCTS.value, product_id)

        form = validate_form(ProductForm, form_data)
        kept_urls = [url for url in form.image_urls if url in (current["images"] or [])]
        if not kept_urls and not images:
            raise ValidationError("images", "At least one image is required")
        _validate_images(images)
        if form.category_id != current["category_id"]:
            _ensure_category(store, form.category_id)

        tracker.advance(MutationState.SLUG_ALLOCATING)
        if normalize(form.name) == normalize(current["name"]):
            slug = current["slug"]
        else:
            slug = allocate_slug(
                store, Collection.PRODUCTS, form.name, excluding=current["slug"]
            )

        tracker.advance(MutationState.PERSISTING)
        new_urls = _upload_images(storage, slug, images, start_index=len(kept_urls) + 1)
        image_urls = kept_urls + new_urls
        patch = _product_values(form)
        patch.update(images=image_urls, primary_image=image_urls[0])

        try:
            slug, _ = write_with_slug_retry(
                tracker,
                store,
                Collection.PRODUCTS,
                form.name,
                slug,
                lambda candidate: store.update(
                    Collection.PRODUCTS, product_id, {**patch, "slug": candidate}
                ),
                excluding=current["slug"],
            )
        except MutationError as e:
            _log_orphans(new_urls, e)
            raise

        dropped = [url for url in (current["images"] or []) if url not in image_urls]
        _remove_images(storage, dropped)

        return tracker.done(MutationResult(id=product_id, slug=slug), PRODUCTS_PATH)


def delete_product(
    caller: Caller,
    product_id: str,
    store: RecordStore,
    storage: StorageProvider,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """Удалить товар и его изображения."""
    with MutationTracker("delete_product", caller, invalidator) as tracker:
        tracker.authorize("Only admin users can delete products")

        tracker.advance(MutationState.VALIDATING)
        current = store.get(Collection.PRODUCTS, product_id)
        if current is None:
            raise RecordNotFound(Collection.PRODUCTS.value, product_id)

        tracker.advance(MutationState.PERSISTING)
        store.delete(Collection.PRODUCTS, product_id)
        _remove_images(storage, current["images"] or [])

        return tracker.done(MutationResult(id=product_id), PRODUCTS_PATH)


def list_products(store: RecordStore, **filters) -> List[Dict[str, Any]]:
    """Список товаров (админка и витрина)."""
    return store.query(Collection.PRODUCTS, **filters)
