"""
Pydantic схемы аутентификации и профиля.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from storefront.core.roles import Role


class LoginRequest(BaseModel):
    """Схема для входа в систему."""

    username: str = Field(..., description="Username или email")
    password: str = Field(..., description="Пароль")


class UserOut(BaseModel):
    """Схема для вывода пользователя."""

    id: str
    email: EmailStr
    username: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    role: Role = Role.NONE
    has_dashboard_access: bool = False
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class LoginResponse(BaseModel):
    """Схема ответа при входе в систему."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class ProfileUpdate(BaseModel):
    """Схема для обновления своего профиля."""

    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = None
