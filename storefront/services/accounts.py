"""
Операции с учетной записью: вход, профиль, повышение до demo_admin.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.auth import auth_service
from storefront.core.errors import PersistenceError, Unauthorized
from storefront.core.roles import Caller, Role, has_dashboard_access
from storefront.db.models.user import User
from storefront.schemas.auth import ProfileUpdate, UserOut
from storefront.schemas.mutation import MutationResult
from storefront.services.cache import CacheInvalidator

logger = logging.getLogger(__name__)


def user_out(user: User) -> UserOut:
    role = user.role_claim
    return UserOut(
        id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
        role=role,
        has_dashboard_access=has_dashboard_access(role),
        created_at=user.created_at,
        last_login=user.last_login,
    )


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {action}: {e}")
        raise PersistenceError(f"Failed to {action}") from e


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """
    Найти пользователя по username или email и проверить пароль.

    Вход отключенного пользователя не фиксируется; отказ формирует эндпоинт.
    """
    user = db.scalar(
        select(User).where(or_(User.username == username, User.email == username))
    )
    if user is None or not auth_service.verify_password(password, user.hashed_password):
        logger.info(f"Failed login attempt for {username!r}")
        return None

    if not user.is_active:
        logger.info(f"Login attempt for disabled user {user.id}")
        return user

    user.last_login = datetime.now(timezone.utc)
    _commit(db, "record login")
    return user


def become_demo_admin(
    caller: Caller,
    db: Session,
    invalidator: Optional[CacheInvalidator] = None,
) -> MutationResult:
    """
    Повысить текущего пользователя до demo_admin.

    Демо-админ видит админку, но не может изменять данные.
    Настоящий админ не понижается.
    """
    if not caller.is_authenticated:
        raise Unauthorized("User not authenticated")

    user = db.get(User, caller.id)
    if user is None:
        raise Unauthorized("User not authenticated")

    if user.role_claim is not Role.ADMIN:
        user.role = Role.DEMO_ADMIN.value
        _commit(db, "update role")
        logger.info(f"User {user.id} became demo admin")

    if invalidator is not None:
        invalidator.revalidate("/")
    return MutationResult(id=user.id)


def update_profile(caller: Caller, db: Session, data: ProfileUpdate) -> UserOut:
    """Обновить имя и аватар текущего пользователя."""
    if not caller.is_authenticated:
        raise Unauthorized("User not authenticated")

    user = db.get(User, caller.id)
    if user is None:
        raise Unauthorized("User not authenticated")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    _commit(db, "update profile")
    db.refresh(user)
    return user_out(user)
