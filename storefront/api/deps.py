"""
Общие зависимости API: хранилище записей и разбор multipart форм.
"""

from typing import Dict, List, Tuple

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from storefront.db.database import get_db
from storefront.services.image_service import UploadedImage
from storefront.services.record_store import SqlAlchemyRecordStore


def get_record_store(db: Session = Depends(get_db)) -> SqlAlchemyRecordStore:
    """Dependency для получения хранилища записей поверх сессии БД."""
    return SqlAlchemyRecordStore(db)


async def _to_uploaded(file: UploadFile) -> UploadedImage:
    return UploadedImage(
        filename=file.filename,
        content=await file.read(),
        content_type=file.content_type,
    )


async def read_multipart(
    request: Request, file_field: str
) -> Tuple[Dict[str, object], List[UploadedImage]]:
    """
    Разобрать multipart форму админки.

    Returns:
        (текстовые поля, файлы из поля file_field)

    Note:
        Повторяющееся поле image_urls собирается в список.
        Пустые части файлов (файл не выбран) пропускаются.
    """
    form = await request.form()

    fields: Dict[str, object] = {
        key: value
        for key, value in form.multi_items()
        if isinstance(value, str) and key != "image_urls"
    }
    image_urls = [value for value in form.getlist("image_urls") if isinstance(value, str) and value]
    if image_urls:
        fields["image_urls"] = image_urls

    files = [
        await _to_uploaded(value)
        for value in form.getlist(file_field)
        if isinstance(value, UploadFile) and value.filename
    ]
    return fields, files
