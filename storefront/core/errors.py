"""
Ошибки операций изменения данных.

Каждая операция (создание, обновление, удаление, массовые действия)
завершается либо результатом, либо одним из исключений ниже.
Вид ошибки (kind) и HTTP статус используются обработчиком в main.py.
"""

from typing import Optional


class MutationError(Exception):
    """Базовая ошибка операции изменения данных."""

    kind = "MutationError"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "message": self.message}


class Unauthorized(MutationError):
    """Роль вызывающего не разрешает изменение данных."""

    kind = "Unauthorized"
    status_code = 403

    def __init__(self, message: str = "Only admin users can modify data"):
        super().__init__(message)


class ValidationError(MutationError):
    """Некорректные или отсутствующие поля формы."""

    kind = "ValidationError"
    status_code = 422

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class SlugConflict(MutationError):
    """Не удалось выделить уникальный slug для названия."""

    kind = "SlugConflict"
    status_code = 409

    def __init__(self, message: str = "Name is already taken, try a different name"):
        super().__init__(message)


class PersistenceError(MutationError):
    """Ошибка хранилища записей (БД)."""

    kind = "PersistenceError"
    status_code = 500


class RecordNotFound(PersistenceError):
    """Запись с указанным ID не найдена."""

    kind = "NotFound"
    status_code = 404

    def __init__(self, collection: str, record_id: Optional[str]):
        super().__init__(f"{collection} record {record_id} not found")
        self.collection = collection
        self.record_id = record_id


class StorageError(MutationError):
    """Ошибка объектного хранилища (загрузка/удаление файлов)."""

    kind = "StorageError"
    status_code = 502
