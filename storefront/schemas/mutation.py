"""
Результат операций изменения данных.
"""

from typing import Optional

from pydantic import BaseModel


class MutationResult(BaseModel):
    """
    Успешный результат операции.

    Attributes:
        ok: Всегда True (ошибки передаются исключениями)
        id: ID созданной/измененной записи
        slug: Выделенный slug (для создания и переименования)
        count: Число затронутых записей (для массовых операций)
    """

    ok: bool = True
    id: Optional[str] = None
    slug: Optional[str] = None
    count: Optional[int] = None
