"""
Кэш списков витрины и сигнал инвалидации.

Публичные списки (товары, категории) кэшируются в памяти на
LISTING_CACHE_TTL секунд. Успешные операции изменения данных
вызывают revalidate(path), после чего записи кэша под этим
путем сбрасываются.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from storefront.core.config import settings

logger = logging.getLogger(__name__)


class CacheInvalidator(Protocol):
    """Получатель сигнала "данные по пути X изменились"."""

    def revalidate(self, path: str) -> None:
        ...


# Какие публичные пути зависят от путей админки
_DEPENDENT_PATHS = {
    "/admin/products": ("/products", "/categories"),
    "/admin/products/categories": ("/categories", "/products"),
}


class ListingCache:
    """
    Простое in-memory кэширование с TTL по ключу-пути.

    Число записей ограничено max_entries: при переполнении сначала
    удаляются просроченные записи, затем самые старые. Ключи строятся
    из параметров публичных запросов, поэтому без ограничения кэш
    растет от произвольных значений.
    """

    def __init__(
        self,
        ttl: int = None,
        max_entries: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = settings.LISTING_CACHE_TTL if ttl is None else ttl
        self.max_entries = (
            settings.LISTING_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        )
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        # Увеличивается при каждом revalidate
        self._generation = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store(key, value)

    def _store(self, key: str, value: Any) -> None:
        # Вызывается под self._lock
        now = self._clock()
        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            expired = [
                k for k, (stored_at, _) in self._entries.items()
                if now - stored_at >= self.ttl
            ]
            for k in expired:
                del self._entries[k]
        while self._entries and len(self._entries) >= self.max_entries:
            # dict хранит порядок вставки: первая запись - самая старая
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now, value)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Вернуть значение из кэша или загрузить его.

        Если во время загрузки был вызван revalidate, загруженное значение
        возвращается, но не кэшируется: оно могло быть прочитано до изменения.
        """
        value = self.get(key)
        if value is not None:
            return value

        with self._lock:
            generation = self._generation
        value = loader()
        with self._lock:
            if self._generation == generation:
                self._store(key, value)
            else:
                logger.debug(f"Skipped caching {key}: revalidated during load")
        return value

    def revalidate(self, path: str) -> None:
        """Сбросить записи под path и зависящие от него публичные пути."""
        prefixes = (path,) + _DEPENDENT_PATHS.get(path, ())
        if path == "/":
            prefixes = ("/",)

        with self._lock:
            self._generation += 1
            stale = [
                key
                for key in self._entries
                if any(_is_under(key, prefix) for prefix in prefixes)
            ]
            for key in stale:
                del self._entries[key]

        logger.debug(f"Revalidated {path}: dropped {len(stale)} cache entries")

    def __len__(self) -> int:
        return len(self._entries)


def _is_under(key: str, prefix: str) -> bool:
    path = key.split("?", 1)[0]
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


listing_cache = ListingCache()


def get_listing_cache() -> ListingCache:
    """Dependency: общий кэш списков витрины."""
    return listing_cache
