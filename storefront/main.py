"""
Главный модуль FastAPI приложения Storefront API.

Содержит конфигурацию приложения, middleware, обработчик ошибок
операций изменения данных и роутеры.
"""

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from storefront.api.v1.routers import api_router
from storefront.core.config import settings
from storefront.core.errors import MutationError
from storefront.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Создать и настроить приложение."""
    app = FastAPI(
        title="Storefront API",
        description="API витрины и админки магазина: товары, категории, роли",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Настройка CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MutationError)
    async def mutation_error_handler(request: Request, exc: MutationError):
        """Ошибки операций -> JSON с видом ошибки и полем (для валидации)."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/healthz")
    def healthz():
        """
        Health check endpoint для мониторинга состояния приложения.

        Returns:
            dict: Статус приложения
        """
        return {"status": "ok", "service": "Storefront API", "version": "1.0.0"}

    # Подключение API роутеров
    app.include_router(api_router, prefix="/api/v1")

    # Статические файлы для локального хранилища изображений
    if settings.STORAGE_TYPE == "local" and settings.STORAGE_PUBLIC_URL.startswith("/"):
        uploads_path = Path(settings.STORAGE_PATH).resolve()
        uploads_path.mkdir(parents=True, exist_ok=True)
        app.mount(
            settings.STORAGE_PUBLIC_URL,
            StaticFiles(directory=uploads_path),
            name="static",
        )
        logger.info(f"Static files mounted at {settings.STORAGE_PUBLIC_URL} from {uploads_path}")

    return app


app = create_app()
