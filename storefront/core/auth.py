"""
Модуль аутентификации и авторизации.

Содержит функции для работы с JWT токенами, хеширования паролей
и получения текущего вызывающего. Роль пользователя декодируется
в Role один раз здесь; операции изменения данных получают Caller явно.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.roles import ANONYMOUS, Caller, has_dashboard_access
from storefront.db.database import get_db
from storefront.db.models.user import User

logger = logging.getLogger(__name__)

# Настройка хеширования паролей
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

# HTTP Bearer схема; без токена вызывающий анонимен
security = HTTPBearer(auto_error=False)


class AuthService:
    """Сервис для работы с аутентификацией."""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Проверка пароля."""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Хеширование пароля."""
        return pwd_context.hash(password)

    @staticmethod
    def create_access_token(
        data: dict, expires_delta: Optional[timedelta] = None
    ) -> str:
        """Создание JWT токена."""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Optional[dict]:
        """Проверка JWT токена."""
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        except jwt.PyJWTError as e:
            logger.debug(f"Rejected token: {e}")
            return None


def _user_from_credentials(
    credentials: Optional[HTTPAuthorizationCredentials], db: Session
) -> Optional[User]:
    if credentials is None:
        return None

    payload = AuthService.verify_token(credentials.credentials)
    if payload is None or payload.get("sub") is None:
        return None

    user = db.get(User, payload["sub"])
    if user is None or not user.is_active:
        return None
    return user


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Caller:
    """
    Текущий вызывающий.

    Роль берется из БД (а не из токена), чтобы повышение до demo_admin
    действовало без перевыпуска токена. Без валидного токена возвращается
    анонимный вызывающий: решение об отказе принимают сами операции.
    """
    user = _user_from_credentials(credentials, db)
    if user is None:
        return ANONYMOUS
    return Caller(id=user.id, role=user.role_claim)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Получение текущего пользователя из токена (обязательная аутентификация)."""
    user = _user_from_credentials(credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_dashboard_access(caller: Caller = Depends(get_current_caller)) -> Caller:
    """Доступ к админке на чтение (admin или demo_admin)."""
    if not has_dashboard_access(caller.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions"
        )
    return caller


# Экспорт сервиса
auth_service = AuthService()
