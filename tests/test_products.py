"""
Tests for product create/update/delete operations.

Operations run against the in-memory SQLite store and a temporary
local storage directory unless a test needs to observe calls.
"""

import struct
import zlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from storefront.core.config import settings
from storefront.core.errors import (
    RecordNotFound,
    SlugConflict,
    StorageError,
    Unauthorized,
    ValidationError,
)
from storefront.core.roles import ANONYMOUS
from storefront.services import image_service as image_module
from storefront.services.image_service import UploadedImage
from storefront.services.products import (
    PRODUCTS_PATH,
    create_product,
    delete_product,
    list_products,
    update_product,
)
from storefront.services.record_store import Collection, RecordStore, SqlAlchemyRecordStore
from storefront.services.storage_service import StorageProvider


def _stored_file(storage, url):
    path = storage.path_from_url(settings.PRODUCT_IMAGES_BUCKET, url)
    return Path(storage.base_path) / settings.PRODUCT_IMAGES_BUCKET / path


def _png_declaring_size(width, height):
    """PNG header with the given dimensions and no pixel data."""

    def chunk(kind, data):
        return (
            struct.pack(">I", len(data))
            + kind
            + data
            + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)
        )

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IEND", b"")


class TestCreateProduct:
    def test_creates_product_with_images(self, admin, product_form, png_image, store, storage):
        invalidator = MagicMock()

        result = create_product(admin, product_form, [png_image], store, storage, invalidator)

        assert result.ok is True
        assert result.slug == "classic-white-t-shirt"
        product = store.get(Collection.PRODUCTS, result.id)
        assert product["name"] == "Classic White T-Shirt"
        assert product["stock"] == 10
        assert product["is_active"] is True
        assert len(product["images"]) == 1
        assert product["primary_image"] == product["images"][0]
        assert product["images"][0].startswith(
            "/static/product-images/products/classic-white-t-shirt-1-"
        )
        assert _stored_file(storage, product["images"][0]).exists()
        invalidator.revalidate.assert_called_once_with(PRODUCTS_PATH)

    def test_image_order_is_kept(self, admin, product_form, image_factory, store, storage):
        images = [
            image_factory("front.png", (1, 1, 1)),
            image_factory("back.png", (2, 2, 2)),
        ]

        result = create_product(admin, product_form, images, store, storage)

        urls = store.get(Collection.PRODUCTS, result.id)["images"]
        assert "classic-white-t-shirt-1-" in urls[0]
        assert "classic-white-t-shirt-2-" in urls[1]

    def test_same_name_gets_suffixed_slugs(self, admin, product_form, png_image, store, storage):
        slugs = [
            create_product(admin, product_form, [png_image], store, storage).slug
            for _ in range(3)
        ]
        assert slugs == [
            "classic-white-t-shirt",
            "classic-white-t-shirt-1",
            "classic-white-t-shirt-2",
        ]

    def test_demo_admin_touches_nothing(self, demo_admin):
        store = MagicMock(spec=RecordStore)
        storage = MagicMock(spec=StorageProvider)
        form = MagicMock()
        invalidator = MagicMock()
        image = MagicMock(spec=UploadedImage)

        with pytest.raises(Unauthorized) as exc_info:
            create_product(demo_admin, form, [image], store, storage, invalidator)

        assert exc_info.value.status_code == 403
        assert store.mock_calls == []
        assert storage.mock_calls == []
        assert form.mock_calls == []
        assert image.mock_calls == []
        assert invalidator.mock_calls == []

    def test_anonymous_is_rejected(self, product_form, png_image, store, storage):
        with pytest.raises(Unauthorized):
            create_product(ANONYMOUS, product_form, [png_image], store, storage)
        assert store.query(Collection.PRODUCTS) == []

    def test_images_required(self, admin, product_form, store):
        storage = MagicMock(spec=StorageProvider)
        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [], store, storage)
        assert exc_info.value.field == "images"
        storage.upload.assert_not_called()

    @pytest.mark.parametrize(
        "field, value",
        [("price", "0"), ("price", "abc"), ("stock", "-1"), ("name", "")],
    )
    def test_invalid_form_stops_before_storage(
        self, admin, product_form, png_image, store, field, value
    ):
        storage = MagicMock(spec=StorageProvider)
        product_form[field] = value

        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [png_image], store, storage)

        assert exc_info.value.field == field
        storage.upload.assert_not_called()
        assert store.query(Collection.PRODUCTS) == []

    def test_unknown_category(self, admin, product_form, png_image, store, storage):
        product_form["category_id"] = "missing"
        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [png_image], store, storage)
        assert exc_info.value.field == "category_id"

    def test_not_an_image(self, admin, product_form, store, storage):
        fake = UploadedImage("photo.png", b"definitely not a png", "image/png")
        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [fake], store, storage)
        assert exc_info.value.field == "images"

    def test_oversized_dimensions(self, admin, product_form, store):
        storage = MagicMock(spec=StorageProvider)
        bomb = UploadedImage("huge.png", _png_declaring_size(30000, 30000), "image/png")

        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [bomb], store, storage)

        assert exc_info.value.field == "images"
        storage.upload.assert_not_called()

    def test_unsupported_extension(self, admin, product_form, image_factory, store, storage):
        image = image_factory("photo.bmp", content_type="image/bmp")
        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [image], store, storage)
        assert exc_info.value.field == "images"

    def test_image_too_large(self, admin, product_form, png_image, store, storage, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_SIZE", 10)
        with pytest.raises(ValidationError) as exc_info:
            create_product(admin, product_form, [png_image], store, storage)
        assert exc_info.value.field == "images"

    def test_name_without_slug_characters(self, admin, product_form, png_image, store):
        storage = MagicMock(spec=StorageProvider)
        product_form["name"] = "!!!"
        with pytest.raises(SlugConflict):
            create_product(admin, product_form, [png_image], store, storage)
        storage.upload.assert_not_called()

    def test_storage_failure_aborts_without_row(self, admin, product_form, png_image, store):
        storage = MagicMock(spec=StorageProvider)
        storage.upload.side_effect = StorageError("bucket unavailable")
        invalidator = MagicMock()

        with pytest.raises(StorageError):
            create_product(admin, product_form, [png_image], store, storage, invalidator)

        assert store.query(Collection.PRODUCTS) == []
        invalidator.revalidate.assert_not_called()

    def test_concurrent_slug_is_retried(self, admin, product_form, png_image, db_session, storage):
        class RacingStore(SqlAlchemyRecordStore):
            raced = False

            def insert(self, collection, values):
                if not self.raced and collection == Collection.PRODUCTS:
                    # Another request commits the same slug first
                    self.raced = True
                    super().insert(collection, {**values, "sku": "OTHER"})
                return super().insert(collection, values)

        store = RacingStore(db_session)

        result = create_product(admin, product_form, [png_image], store, storage)

        assert result.slug == "classic-white-t-shirt-1"
        slugs = sorted(row["slug"] for row in store.query(Collection.PRODUCTS))
        assert slugs == ["classic-white-t-shirt", "classic-white-t-shirt-1"]


class TestUpdateProduct:
    @pytest.fixture
    def product(self, admin, product_form, png_image, store, storage):
        result = create_product(admin, product_form, [png_image], store, storage)
        return store.get(Collection.PRODUCTS, result.id)

    def test_unchanged_name_keeps_slug(self, admin, product, product_form, store, storage):
        product_form.update(price="24.50", image_urls=product["images"])

        result = update_product(admin, product["id"], product_form, [], store, storage)

        assert result.slug == product["slug"]
        updated = store.get(Collection.PRODUCTS, product["id"])
        assert str(updated["price"]) == "24.50"
        assert updated["images"] == product["images"]

    def test_unchanged_name_keeps_suffixed_slug(
        self, admin, product, product_form, png_image, store, storage
    ):
        second = create_product(admin, product_form, [png_image], store, storage)
        assert second.slug == "classic-white-t-shirt-1"
        delete_product(admin, product["id"], store, storage)
        current = store.get(Collection.PRODUCTS, second.id)
        product_form["image_urls"] = current["images"]

        result = update_product(admin, second.id, product_form, [], store, storage)

        # The base slug is free again, but an unchanged name does not move
        assert result.slug == "classic-white-t-shirt-1"

    def test_rename_allocates_new_slug(self, admin, product, product_form, store, storage):
        product_form.update(name="Vintage Tee", image_urls=product["images"])

        result = update_product(admin, product["id"], product_form, [], store, storage)

        assert result.slug == "vintage-tee"
        assert store.get(Collection.PRODUCTS, product["id"])["slug"] == "vintage-tee"

    def test_rename_to_taken_name(
        self, admin, product, product_form, png_image, store, storage
    ):
        product_form["name"] = "Vintage Tee"
        create_product(admin, product_form, [png_image], store, storage)
        product_form["image_urls"] = product["images"]

        result = update_product(admin, product["id"], product_form, [], store, storage)

        assert result.slug == "vintage-tee-1"

    def test_case_only_rename_keeps_slug(self, admin, product, product_form, store, storage):
        product_form.update(name="CLASSIC white t-shirt", image_urls=product["images"])
        result = update_product(admin, product["id"], product_form, [], store, storage)
        assert result.slug == "classic-white-t-shirt"

    def test_replace_images(
        self, admin, product, product_form, image_factory, store, storage, monkeypatch
    ):
        # New file names must not collide with the one written a moment ago
        monkeypatch.setattr(image_module.time, "time", lambda: 4102444800.0)
        old_url = product["images"][0]
        new_image = image_factory("new.png", (0, 0, 255))

        update_product(admin, product["id"], product_form, [new_image], store, storage)

        updated = store.get(Collection.PRODUCTS, product["id"])
        assert len(updated["images"]) == 1
        assert updated["images"][0] != old_url
        assert updated["primary_image"] == updated["images"][0]
        assert not _stored_file(storage, old_url).exists()
        assert _stored_file(storage, updated["images"][0]).exists()

    def test_add_image_keeps_existing_first(
        self, admin, product, product_form, image_factory, store, storage
    ):
        product_form["image_urls"] = product["images"]
        new_image = image_factory("side.png", (0, 255, 0))

        update_product(admin, product["id"], product_form, [new_image], store, storage)

        updated = store.get(Collection.PRODUCTS, product["id"])
        assert updated["images"][0] == product["images"][0]
        assert "classic-white-t-shirt-2-" in updated["images"][1]

    def test_unknown_image_urls_are_ignored(self, admin, product, product_form, store, storage):
        product_form["image_urls"] = ["https://elsewhere.example.com/x.png"]
        with pytest.raises(ValidationError) as exc_info:
            update_product(admin, product["id"], product_form, [], store, storage)
        assert exc_info.value.field == "images"

    def test_missing_product(self, admin, product_form, store, storage):
        with pytest.raises(RecordNotFound) as exc_info:
            update_product(admin, "missing", product_form, [], store, storage)
        assert exc_info.value.status_code == 404

    def test_demo_admin_touches_nothing(self, demo_admin):
        store = MagicMock(spec=RecordStore)
        storage = MagicMock(spec=StorageProvider)
        form = MagicMock()

        with pytest.raises(Unauthorized):
            update_product(demo_admin, "id", form, [], store, storage)

        assert store.mock_calls == []
        assert storage.mock_calls == []
        assert form.mock_calls == []


class TestDeleteProduct:
    def test_deletes_row_and_images(self, admin, product_form, png_image, store, storage):
        created = create_product(admin, product_form, [png_image], store, storage)
        url = store.get(Collection.PRODUCTS, created.id)["images"][0]
        invalidator = MagicMock()

        result = delete_product(admin, created.id, store, storage, invalidator)

        assert result.id == created.id
        assert store.get(Collection.PRODUCTS, created.id) is None
        assert not _stored_file(storage, url).exists()
        invalidator.revalidate.assert_called_once_with(PRODUCTS_PATH)

    def test_image_cleanup_failure_is_not_fatal(self, admin, product_form, png_image, store, storage):
        created = create_product(admin, product_form, [png_image], store, storage)
        failing = MagicMock(spec=StorageProvider)
        failing.path_from_url.side_effect = storage.path_from_url
        failing.remove.side_effect = StorageError("bucket unavailable")

        delete_product(admin, created.id, store, failing)

        assert store.get(Collection.PRODUCTS, created.id) is None
        failing.remove.assert_called_once()

    def test_missing_product(self, admin, store, storage):
        with pytest.raises(RecordNotFound):
            delete_product(admin, "missing", store, storage)

    def test_demo_admin_touches_nothing(self, demo_admin):
        store = MagicMock(spec=RecordStore)
        storage = MagicMock(spec=StorageProvider)

        with pytest.raises(Unauthorized):
            delete_product(demo_admin, "id", store, storage)

        assert store.mock_calls == []
        assert storage.mock_calls == []


class TestListProducts:
    def test_filters(self, admin, product_form, png_image, store, storage):
        create_product(admin, product_form, [png_image], store, storage)
        product_form.update(name="Hidden", is_active="false")
        create_product(admin, product_form, [png_image], store, storage)

        assert len(list_products(store)) == 2
        visible = list_products(store, is_active=True)
        assert [row["slug"] for row in visible] == ["classic-white-t-shirt"]
