"""
Роли пользователей и проверка прав на изменение данных.

Роль приходит из сессии в виде строки и декодируется один раз
в Role; дальше все проверки работают только с Role.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Уровень доступа вызывающего."""

    ADMIN = "admin"
    DEMO_ADMIN = "demo_admin"
    NONE = "none"

    @classmethod
    def from_claim(cls, value: Optional[str]) -> "Role":
        """Декодировать строковый claim; все неизвестные значения -> NONE."""
        if value == cls.ADMIN.value:
            return cls.ADMIN
        if value == cls.DEMO_ADMIN.value:
            return cls.DEMO_ADMIN
        return cls.NONE


@dataclass(frozen=True)
class Caller:
    """Вызывающий операцию: ID пользователя и его роль."""

    id: Optional[str]
    role: Role = Role.NONE

    @property
    def is_authenticated(self) -> bool:
        return self.id is not None


ANONYMOUS = Caller(id=None, role=Role.NONE)


def is_admin(role: Optional[Role]) -> bool:
    return role is Role.ADMIN


def is_demo_admin(role: Optional[Role]) -> bool:
    return role is Role.DEMO_ADMIN


def has_read_write_access(role: Optional[Role]) -> bool:
    """Право на создание/изменение/удаление. Демо-админ его не имеет."""
    return is_admin(role)


def has_dashboard_access(role: Optional[Role]) -> bool:
    """Доступ к админке на чтение: админ или демо-админ."""
    return is_admin(role) or is_demo_admin(role)
