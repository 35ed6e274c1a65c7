"""
Подключение к базе данных каталога.

Рабочая БД - PostgreSQL. SQLite используется в тестах и для локального
запуска: для нее включаются внешние ключи (RESTRICT на products.category_id
иначе не срабатывает), а in-memory база держится на одном соединении.
"""

from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.config import settings


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Создать движок SQLAlchemy для URL.

    Args:
        url: URL базы данных (postgresql+psycopg2://... или sqlite://...)
        echo: Логировать SQL запросы

    Returns:
        Engine
    """
    db_url = make_url(url)
    if db_url.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True, echo=echo)

    options = {"connect_args": {"check_same_thread": False}, "echo": echo}
    if db_url.database in (None, "", ":memory:"):
        # Каждое новое соединение открыло бы пустую in-memory базу
        options["poolclass"] = StaticPool
    engine = create_engine(url, **options)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


engine = create_db_engine(settings.DATABASE_URL, echo=bool(settings.DEBUG))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db() -> Iterator[Session]:
    """Dependency: сессия БД на время запроса."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
