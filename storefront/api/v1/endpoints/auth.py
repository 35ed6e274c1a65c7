"""
API эндпоинты аутентификации и профиля.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from storefront.core.auth import auth_service, get_current_caller, get_current_user
from storefront.core.config import settings
from storefront.core.roles import Caller
from storefront.db.database import get_db
from storefront.db.models.user import User
from storefront.schemas.auth import LoginRequest, LoginResponse, ProfileUpdate, UserOut
from storefront.schemas.mutation import MutationResult
from storefront.services import accounts
from storefront.services.cache import ListingCache, get_listing_cache

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    """
    Вход по username или email.

    Returns:
        JWT токен и информация о пользователе

    Raises:
        HTTPException: При неверных учетных данных
    """
    user = accounts.authenticate(db, login_data.username, login_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="User account is disabled"
        )

    access_token = auth_service.create_access_token(data={"sub": str(user.id)})
    return LoginResponse(
        access_token=access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=accounts.user_out(user),
    )


@router.get("/me", response_model=UserOut)
def get_profile(current_user: User = Depends(get_current_user)):
    """Профиль текущего пользователя с ролью."""
    return accounts.user_out(current_user)


@router.put("/me", response_model=UserOut)
def update_profile(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Обновить имя и аватар."""
    caller = Caller(id=current_user.id, role=current_user.role_claim)
    return accounts.update_profile(caller, db, data)


@router.post("/become-demo-admin", response_model=MutationResult)
def become_demo_admin(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    cache: ListingCache = Depends(get_listing_cache),
):
    """
    Получить роль демо-админа.

    Демо-админ может просматривать админку, но не изменять данные.
    """
    return accounts.become_demo_admin(caller, db, cache)
