#!/usr/bin/env python3
"""
Скрипт для инициализации базы данных
"""

import logging
import sys

from sqlalchemy import inspect

from storefront.core.logging import setup_logging
from storefront.db.database import engine
from storefront.db.models import Base

logger = logging.getLogger("init_db")


def init_database() -> bool:
    """Создает все таблицы в базе данных."""
    logger.info("Initializing database...")

    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        return False

    tables = inspect(engine).get_table_names()
    logger.info(f"Tables ready ({len(tables)}): {', '.join(tables)}")
    return True


if __name__ == "__main__":
    setup_logging()
    if not init_database():
        sys.exit(1)
