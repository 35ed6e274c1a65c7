"""
Сервис для работы с объектными хранилищами файлов.

Поддерживает локальное хранилище и S3-совместимые сервисы (Amazon S3, MinIO).
Обеспечивает единый интерфейс загрузки изображений независимо от типа
хранилища. Все ошибки поднимаются как StorageError.
"""

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Iterable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront.core.config import settings
from storefront.core.errors import StorageError

logger = logging.getLogger(__name__)


class StorageProvider(ABC):
    """
    Абстрактный базовый класс для провайдеров хранилища.
    """

    @abstractmethod
    def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = None
    ) -> str:
        """Загрузить объект и вернуть его публичный URL."""

    @abstractmethod
    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        pass

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        pass

    @abstractmethod
    def path_from_url(self, bucket: str, url: str) -> Optional[str]:
        """Путь объекта внутри bucket по его публичному URL (если это наш URL)."""


class LocalStorageProvider(StorageProvider):
    """
    Локальное хранилище файлов: STORAGE_PATH/<bucket>/<path>.
    """

    def __init__(self, base_path: str = None, public_url: str = None):
        self.base_path = Path(base_path or settings.STORAGE_PATH)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL).rstrip("/")

    def _full_path(self, bucket: str, path: str) -> Path:
        full_path = (self.base_path / bucket / path).resolve()
        # Путь не должен выходить за пределы bucket
        if not full_path.is_relative_to((self.base_path / bucket).resolve()):
            raise StorageError(f"Invalid object path: {path}")
        return full_path

    def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = None
    ) -> str:
        full_path = self._full_path(bucket, path)
        if full_path.exists():
            # upsert запрещен, как и в S3 провайдере
            raise StorageError(f"Object already exists: {bucket}/{path}")
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            logger.error(f"Local storage: error saving {bucket}/{path}: {e}")
            raise StorageError(f"Failed to upload {path}: {e}") from e

        logger.info(f"Local storage: saved {bucket}/{path} ({len(data)} bytes)")
        return self.get_public_url(bucket, path)

    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        for path in paths:
            full_path = self._full_path(bucket, path)
            try:
                full_path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Local storage: error deleting {bucket}/{path}: {e}")
                raise StorageError(f"Failed to remove {path}: {e}") from e

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/{bucket}/{path.lstrip('/')}"

    def path_from_url(self, bucket: str, url: str) -> Optional[str]:
        prefix = f"{self.public_url}/{bucket}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None


class S3StorageProvider(StorageProvider):
    """
    Amazon S3 хранилище (или совместимые сервисы, например MinIO).

    Bucket'ы должны быть публичными на чтение: URL строится без подписи.
    """

    def __init__(self, endpoint_url: str = None, region: str = None, client=None):
        self.endpoint_url = (endpoint_url or settings.S3_ENDPOINT_URL).rstrip("/")
        self.region = region or settings.AWS_REGION

        config = Config(
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=10,
            read_timeout=30,
            signature_version="s3v4",  # Для MinIO
            s3={"addressing_style": "path"},
        )

        self.s3_client = client or boto3.client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            config=config,
            use_ssl=not self.endpoint_url.startswith("http://"),
        )

    def upload(
        self, bucket: str, path: str, data: bytes, content_type: str = None
    ) -> str:
        extra_args = {"CacheControl": "max-age=3600", "ContentLength": len(data)}
        if content_type:
            extra_args["ContentType"] = content_type

        try:
            self.s3_client.put_object(
                Bucket=bucket,
                Key=path,
                Body=BytesIO(data),
                IfNoneMatch="*",  # Не перезаписываем существующие объекты
                **extra_args,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 storage: error uploading {bucket}/{path}: {e}")
            raise StorageError(f"Failed to upload {path}: {e}") from e

        logger.info(f"S3 storage: uploaded {bucket}/{path} ({len(data)} bytes)")
        return self.get_public_url(bucket, path)

    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        objects = [{"Key": path} for path in paths]
        if not objects:
            return
        try:
            response = self.s3_client.delete_objects(
                Bucket=bucket, Delete={"Objects": objects, "Quiet": True}
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 storage: error deleting from {bucket}: {e}")
            raise StorageError(f"Failed to remove objects: {e}") from e

        errors = response.get("Errors") or []
        if errors:
            keys = ", ".join(error.get("Key", "?") for error in errors)
            raise StorageError(f"Failed to remove objects: {keys}")

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.endpoint_url}/{bucket}/{path.lstrip('/')}"

    def path_from_url(self, bucket: str, url: str) -> Optional[str]:
        prefix = f"{self.endpoint_url}/{bucket}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None


# ======================= Создание экземпляра провайдера =======================

_storage_service: Optional[StorageProvider] = None


def create_storage_provider(storage_type: str = None) -> StorageProvider:
    """Создать провайдер по типу хранилища из настроек."""
    storage_type = storage_type or settings.STORAGE_TYPE
    if storage_type == "s3":
        logger.info(f"Using S3 storage at {settings.S3_ENDPOINT_URL}")
        return S3StorageProvider()
    if storage_type == "local":
        logger.info(f"Using local storage at {settings.STORAGE_PATH}")
        return LocalStorageProvider()
    raise ValueError(f"Unknown STORAGE_TYPE: {storage_type}")


def get_storage_service() -> StorageProvider:
    """Dependency: общий экземпляр провайдера хранилища."""
    global _storage_service
    if _storage_service is None:
        _storage_service = create_storage_provider()
    return _storage_service
