"""
Сервис для работы с загружаемыми изображениями.

Обеспечивает валидацию файлов (размер, формат, содержимое)
и генерацию путей объектов в хранилище.
"""

import mimetypes
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from storefront.core.config import settings
from storefront.core.errors import ValidationError


@dataclass
class UploadedImage:
    """Файл изображения из формы."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower().lstrip(".")


class ImageService:
    """
    Валидация изображений перед загрузкой в хранилище.
    """

    # Форматы Pillow, соответствующие разрешенным расширениям
    PILLOW_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}

    def __init__(self, allowed_extensions: set = None):
        self.allowed_extensions = allowed_extensions or settings.allowed_image_extensions

    def validate(self, image: UploadedImage, max_size: int, field: str) -> None:
        """
        Проверить изображение.

        Args:
            image: Загруженный файл
            max_size: Максимальный размер в байтах
            field: Имя поля формы для сообщения об ошибке

        Raises:
            ValidationError: Если файл пустой, слишком большой или не изображение
        """
        if image.size == 0:
            raise ValidationError(field, f"Image {image.filename} is empty")

        if image.size > max_size:
            limit_mb = max_size / (1024 * 1024)
            raise ValidationError(
                field, f"Image {image.filename} must be less than {limit_mb:g}MB"
            )

        if image.extension not in self.allowed_extensions:
            raise ValidationError(
                field,
                f"Unsupported file format: .{image.extension}. "
                f"Supported: {', '.join(sorted(self.allowed_extensions))}",
            )

        try:
            with Image.open(BytesIO(image.content)) as img:
                img.verify()
                image_format = img.format
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            SyntaxError,
            ValueError,
        ):
            raise ValidationError(field, f"File {image.filename} is not a valid image")

        if image_format not in self.PILLOW_FORMATS:
            raise ValidationError(field, f"Unsupported image format: {image_format}")

    @staticmethod
    def content_type(image: UploadedImage) -> str:
        """MIME тип: из формы или по расширению."""
        if image.content_type:
            return image.content_type
        guessed, _ = mimetypes.guess_type(image.filename)
        return guessed or "application/octet-stream"

    @staticmethod
    def product_image_path(slug: str, index: int, image: UploadedImage) -> str:
        """products/<slug>-<n>-<millis>.<ext>"""
        return f"products/{slug}-{index}-{int(time.time() * 1000)}.{image.extension}"

    @staticmethod
    def category_image_path(slug: str, image: UploadedImage) -> str:
        """<slug>/<slug>-<millis>.<ext>"""
        return f"{slug}/{slug}-{int(time.time() * 1000)}.{image.extension}"


image_service = ImageService()
