"""
Хранилище записей каталога (товары и категории).

Операции изменения данных работают через узкий интерфейс RecordStore,
а не напрямую с сессией SQLAlchemy. Это позволяет подменять хранилище
в тестах и держать всю логику последовательности шагов в сервисах.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.errors import PersistenceError, RecordNotFound, SlugConflict
from storefront.db.models import Category, Product

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    """Коллекции с собственным пространством slug'ов."""

    PRODUCTS = "products"
    CATEGORIES = "categories"


_MODELS = {
    Collection.PRODUCTS: Product,
    Collection.CATEGORIES: Category,
}

# Уникальные индексы по slug (ix_products_slug, ix_categories_slug)
_SLUG_INDEXES = {
    index.name
    for model in _MODELS.values()
    for index in model.__table__.indexes
    if index.unique and [column.name for column in index.columns] == ["slug"]
}


def _is_slug_violation(error: IntegrityError) -> bool:
    """Нарушен ли уникальный индекс по slug."""
    # psycopg2 сообщает имя нарушенного ограничения
    diag = getattr(error.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name is not None:
        return constraint_name in _SLUG_INDEXES
    # SQLite: "UNIQUE constraint failed: products.slug"
    message = str(error.orig)
    return message.startswith("UNIQUE constraint failed") and message.endswith(".slug")


class RecordStore(ABC):
    """
    Абстрактное хранилище записей.

    Все методы при ошибке хранилища поднимают PersistenceError,
    при нарушении уникальности slug - SlugConflict.
    """

    @abstractmethod
    def insert(self, collection: Collection, values: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def update(self, collection: Collection, record_id: str, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def delete(self, collection: Collection, record_id: str) -> None:
        pass

    @abstractmethod
    def get(self, collection: Collection, record_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def query(self, collection: Collection, **filters) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def update_many(
        self, collection: Collection, ids: Iterable[str], patch: Dict[str, Any]
    ) -> int:
        pass

    @abstractmethod
    def delete_many(self, collection: Collection, ids: Iterable[str]) -> int:
        pass

    @abstractmethod
    def category_product_counts(self) -> List[Dict[str, Any]]:
        pass

    def slugs_with_prefix(self, collection: Collection, prefix: str) -> Set[str]:
        """Все занятые slug'и коллекции, начинающиеся с prefix."""
        return {row["slug"] for row in self.query(collection, slug_prefix=prefix)}


class SqlAlchemyRecordStore(RecordStore):
    """
    RecordStore поверх сессии SQLAlchemy.

    Каждый изменяющий вызов фиксируется отдельной транзакцией:
    операции изменения данных не объединяются в одну транзакцию.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _model(collection: Collection):
        return _MODELS[Collection(collection)]

    @staticmethod
    def _to_dict(record) -> Dict[str, Any]:
        return {
            column.key: getattr(record, column.key)
            for column in record.__table__.columns
        }

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Уникальный индекс по slug - последний арбитр уникальности
            if _is_slug_violation(e):
                logger.warning(f"Slug unique constraint violated on {action}: {e.orig}")
                raise SlugConflict() from e
            logger.error(f"Integrity error on {action}: {e.orig}")
            raise PersistenceError(f"Failed to {action}: {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error on {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def _execute(self, action: str, stmt):
        try:
            return self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error on {action}: {e}")
            raise PersistenceError(f"Failed to {action}: {e}") from e

    def insert(self, collection: Collection, values: Dict[str, Any]) -> str:
        record = self._model(collection)(**values)
        self.db.add(record)
        self._commit(f"insert into {Collection(collection).value}")
        return record.id

    def update(self, collection: Collection, record_id: str, patch: Dict[str, Any]) -> None:
        model = self._model(collection)
        record = self.db.get(model, record_id)
        if record is None:
            raise RecordNotFound(Collection(collection).value, record_id)
        for field, value in patch.items():
            setattr(record, field, value)
        self._commit(f"update {Collection(collection).value}")

    def delete(self, collection: Collection, record_id: str) -> None:
        model = self._model(collection)
        record = self.db.get(model, record_id)
        if record is None:
            raise RecordNotFound(Collection(collection).value, record_id)
        self.db.delete(record)
        self._commit(f"delete from {Collection(collection).value}")

    def get(self, collection: Collection, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            record = self.db.get(self._model(collection), record_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch record: {e}") from e
        return self._to_dict(record) if record is not None else None

    def query(self, collection: Collection, **filters) -> List[Dict[str, Any]]:
        """
        Выборка записей коллекции.

        Поддерживаемые фильтры:
            slug: точное совпадение slug
            slug_prefix: slug начинается с префикса
            is_active: флаг публикации
            ids: список ID
            exclude_id: исключить запись с этим ID
            category_id: товары категории (только products)
        """
        model = self._model(collection)
        stmt = select(model)

        if "slug" in filters:
            stmt = stmt.where(model.slug == filters.pop("slug"))
        if "slug_prefix" in filters:
            prefix = filters.pop("slug_prefix")
            # startswith с autoescape, чтобы "_" и "%" в префиксе не были шаблоном
            stmt = stmt.where(model.slug.startswith(prefix, autoescape=True))
        if "is_active" in filters:
            stmt = stmt.where(model.is_active == bool(filters.pop("is_active")))
        if "ids" in filters:
            stmt = stmt.where(model.id.in_(list(filters.pop("ids"))))
        if "exclude_id" in filters:
            stmt = stmt.where(model.id != filters.pop("exclude_id"))
        if "category_id" in filters:
            stmt = stmt.where(Product.category_id == filters.pop("category_id"))
        if filters:
            raise ValueError(f"Unsupported filters: {', '.join(sorted(filters))}")

        try:
            records = self.db.scalars(stmt.order_by(model.created_at.desc())).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to query {Collection(collection).value}: {e}") from e
        return [self._to_dict(record) for record in records]

    def update_many(
        self, collection: Collection, ids: Iterable[str], patch: Dict[str, Any]
    ) -> int:
        model = self._model(collection)
        ids = list(ids)
        if not ids:
            return 0
        action = f"bulk update {Collection(collection).value}"
        result = self._execute(
            action,
            update(model)
            .where(model.id.in_(ids))
            .values(**patch)
            .execution_options(synchronize_session=False),
        )
        self._commit(action)
        return result.rowcount

    def delete_many(self, collection: Collection, ids: Iterable[str]) -> int:
        model = self._model(collection)
        ids = list(ids)
        if not ids:
            return 0
        action = f"bulk delete from {Collection(collection).value}"
        result = self._execute(
            action,
            delete(model)
            .where(model.id.in_(ids))
            .execution_options(synchronize_session=False),
        )
        self._commit(action)
        return result.rowcount

    def category_product_counts(self) -> List[Dict[str, Any]]:
        """Категории с числом товаров (LEFT JOIN, как и в списке админки)."""
        stmt = (
            select(Category, func.count(Product.id).label("product_count"))
            .outerjoin(Product, Product.category_id == Category.id)
            .group_by(Category.id)
            .order_by(Category.created_at.desc())
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch categories: {e}") from e

        result = []
        for category, product_count in rows:
            data = self._to_dict(category)
            data["product_count"] = product_count or 0
            result.append(data)
        return result
