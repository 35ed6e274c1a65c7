"""
Базовый класс для всех моделей SQLAlchemy.

Использует Declarative API SQLAlchemy 2.0.
"""

from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase


def generate_id() -> str:
    """Новый строковый UUID для первичного ключа."""
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Базовый класс для всех моделей.

    Наследуется от DeclarativeBase для использования нового API SQLAlchemy 2.0.
    """
    pass
