"""
Последовательность шагов операций изменения данных.

Каждая операция (создание, обновление, удаление, массовые действия)
проходит состояния:

    START -> AUTHORIZING -> VALIDATING -> (SLUG_ALLOCATING) -> PERSISTING -> DONE

и может перейти в FAILED из любого состояния, кроме DONE.
MutationTracker следит за допустимостью переходов, пишет их в лог
и отправляет сигнал инвалидации кэша при успешном завершении.
"""

import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Tuple, Type, TypeVar

import pydantic
from pydantic import BaseModel

from storefront.core.config import settings
from storefront.core.errors import (
    MutationError,
    PersistenceError,
    SlugConflict,
    StorageError,
    Unauthorized,
    ValidationError,
)
from storefront.core.roles import Caller, has_read_write_access
from storefront.core.slugs import allocate_unique, normalize
from storefront.services.cache import CacheInvalidator
from storefront.services.record_store import Collection, RecordStore

logger = logging.getLogger(__name__)

FormT = TypeVar("FormT", bound=BaseModel)


class MutationState(str, Enum):
    START = "start"
    AUTHORIZING = "authorizing"
    VALIDATING = "validating"
    SLUG_ALLOCATING = "slug_allocating"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    MutationState.START: {MutationState.AUTHORIZING},
    MutationState.AUTHORIZING: {MutationState.VALIDATING},
    MutationState.VALIDATING: {MutationState.SLUG_ALLOCATING, MutationState.PERSISTING},
    MutationState.SLUG_ALLOCATING: {MutationState.PERSISTING},
    # Повторное выделение slug после конфликта уникальности в БД
    MutationState.PERSISTING: {MutationState.DONE, MutationState.SLUG_ALLOCATING},
    MutationState.DONE: set(),
    MutationState.FAILED: set(),
}


class MutationTracker:
    """
    Контекст одной операции изменения данных.

    Использование:

        with MutationTracker("create_category", caller, cache) as tracker:
            tracker.authorize("Only admin users can create categories")
            tracker.advance(MutationState.VALIDATING)
            ...
            return tracker.done(MutationResult(...), "/admin/products/categories")

    Исключения MutationError внутри блока переводят операцию в FAILED
    и пробрасываются дальше без изменений.
    """

    def __init__(
        self,
        operation: str,
        caller: Caller,
        invalidator: Optional[CacheInvalidator] = None,
    ):
        self.operation = operation
        self.caller = caller
        self.invalidator = invalidator
        self.state = MutationState.START
        self.error: Optional[MutationError] = None

    def __enter__(self) -> "MutationTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or self.state in (MutationState.DONE, MutationState.FAILED):
            return False
        if isinstance(exc, MutationError):
            self.fail(exc)
        else:
            self.state = MutationState.FAILED
            logger.exception(f"{self.operation}: unexpected error")
        return False

    def advance(self, state: MutationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"{self.operation}: illegal transition {self.state.value} -> {state.value}"
            )
        logger.debug(f"{self.operation}: {self.state.value} -> {state.value}")
        self.state = state

    def authorize(self, message: str) -> None:
        """Проверка роли: до чтения каких-либо полей формы."""
        self.advance(MutationState.AUTHORIZING)
        if not has_read_write_access(self.caller.role):
            raise Unauthorized(message)

    def fail(self, error: MutationError) -> None:
        self.state = MutationState.FAILED
        self.error = error
        level = (
            logging.ERROR
            if isinstance(error, (PersistenceError, StorageError))
            else logging.WARNING
        )
        logger.log(
            level,
            f"{self.operation} failed for caller {self.caller.id}: "
            f"{error.kind}: {error.message}",
        )

    def done(self, result: Any, path: str) -> Any:
        self.advance(MutationState.DONE)
        if self.invalidator is not None:
            self.invalidator.revalidate(path)
        logger.info(f"{self.operation} succeeded for caller {self.caller.id}")
        return result


def validate_form(model: Type[FormT], data: Mapping[str, Any]) -> FormT:
    """
    Провалидировать данные формы pydantic схемой.

    Raises:
        ValidationError: С именем первого некорректного поля
    """
    try:
        return model.model_validate(dict(data))
    except pydantic.ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "form"
        ctx_error = (error.get("ctx") or {}).get("error")
        message = str(ctx_error) if ctx_error is not None else error["msg"]
        if error["type"] == "missing":
            message = f"{field} is required"
        raise ValidationError(field, message) from e


def allocate_slug(
    store: RecordStore,
    collection: Collection,
    name: str,
    excluding: Optional[str] = None,
) -> str:
    """Прочитать занятые slug'и коллекции и выделить свободный."""
    base = normalize(name)
    existing = store.slugs_with_prefix(collection, base) if base else set()
    return allocate_unique(name, existing, excluding=excluding)


def write_with_slug_retry(
    tracker: MutationTracker,
    store: RecordStore,
    collection: Collection,
    name: str,
    slug: str,
    write: Callable[[str], Any],
    excluding: Optional[str] = None,
) -> Tuple[str, Any]:
    """
    Записать данные, перевыделяя slug при конфликте уникальности в БД.

    Проверка слагов перед записью не атомарна: две параллельные операции
    могут выбрать один и тот же slug. Уникальный индекс в БД отклоняет
    вторую запись, и slug выделяется заново по свежим данным.

    Returns:
        (slug, результат write)
    """
    attempts = settings.SLUG_ALLOCATION_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return slug, write(slug)
        except SlugConflict:
            if attempt == attempts:
                raise
            logger.warning(
                f"{tracker.operation}: slug {slug!r} taken concurrently, "
                f"retrying ({attempt}/{attempts})"
            )
            tracker.advance(MutationState.SLUG_ALLOCATING)
            slug = allocate_slug(store, collection, name, excluding=excluding)
            tracker.advance(MutationState.PERSISTING)
    raise SlugConflict()
