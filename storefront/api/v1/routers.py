"""
Основной роутер API v1.

Подключает все endpoint'ы приложения.
"""

from fastapi import APIRouter

from storefront.api.v1.endpoints import admin, auth, categories, products

# Создание основного роутера API v1
api_router = APIRouter()

# Витрина
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])

# Аутентификация, профиль и админка
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
