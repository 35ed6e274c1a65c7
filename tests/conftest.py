"""
Shared test configuration and fixtures.

Tests run against an in-memory SQLite database and a temporary local
storage directory; nothing touches PostgreSQL or S3.
"""

import os
import tempfile
from io import BytesIO

# Settings are read at import time, so the environment is prepared first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STORAGE_TYPE"] = "local"
os.environ["STORAGE_PATH"] = tempfile.mkdtemp(prefix="storefront-test-")
os.environ["SECRET_KEY"] = "test-secret-key-with-enough-length-for-hs256"

import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from storefront.core.roles import Caller, Role
from storefront.db.database import create_db_engine
from storefront.db.models import Base
from storefront.services.cache import ListingCache
from storefront.services.image_service import UploadedImage
from storefront.services.record_store import Collection, SqlAlchemyRecordStore
from storefront.services.storage_service import LocalStorageProvider


def make_png(size=(8, 8), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    return SqlAlchemyRecordStore(db_session)


@pytest.fixture
def storage(tmp_path):
    return LocalStorageProvider(base_path=str(tmp_path / "uploads"), public_url="/static")


@pytest.fixture
def cache():
    return ListingCache(ttl=300)


@pytest.fixture
def admin():
    return Caller(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def demo_admin():
    return Caller(id="demo-1", role=Role.DEMO_ADMIN)


@pytest.fixture
def png_image():
    return UploadedImage(filename="shirt.png", content=make_png(), content_type="image/png")


@pytest.fixture
def category(store):
    """An active category to attach products to."""
    category_id = store.insert(
        Collection.CATEGORIES,
        {"name": "T-Shirts", "slug": "t-shirts", "is_active": True},
    )
    return store.get(Collection.CATEGORIES, category_id)


@pytest.fixture
def product_form(category):
    return {
        "name": "Classic White T-Shirt",
        "description": "<p>Cotton</p>",
        "price": "19.99",
        "compare_price": "",
        "category_id": category["id"],
        "stock": "10",
        "sku": "TS-001",
        "is_active": "true",
    }


@pytest.fixture
def image_factory():
    """Build valid PNG uploads with a given file name and color."""

    def _make(filename="shirt.png", color=(200, 30, 30), content_type="image/png"):
        return UploadedImage(
            filename=filename, content=make_png(color=color), content_type=content_type
        )

    return _make
