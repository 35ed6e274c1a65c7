#!/usr/bin/env python3
"""
Скрипт для создания администратора в базе данных.

Использование:
    python scripts/create_admin.py --username admin --email admin@example.com --password secret
    python scripts/create_admin.py --username demo --email demo@example.com --password secret --role demo_admin
"""

import argparse
import logging
import sys

from sqlalchemy import or_, select

from storefront.core.auth import AuthService
from storefront.core.logging import setup_logging
from storefront.core.roles import Role
from storefront.db.database import SessionLocal
from storefront.db.models.user import User

logger = logging.getLogger("create_admin")


def create_admin(username: str, email: str, password: str, role: Role) -> bool:
    """Создает пользователя с ролью или обновляет пароль и роль существующего."""
    db = SessionLocal()
    try:
        user = db.scalar(
            select(User).where(or_(User.username == username, User.email == email))
        )

        if user is not None:
            user.hashed_password = AuthService.get_password_hash(password)
            user.role = role.value
            logger.info(f"User {user.username} exists, password and role updated")
        else:
            user = User(
                username=username,
                email=email,
                hashed_password=AuthService.get_password_hash(password),
                full_name="Administrator",
                role=role.value,
                is_active=True,
            )
            db.add(user)
            logger.info(f"Created user {username} with role {role.value}")

        db.commit()
        return True

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create admin: {e}")
        return False
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--password", required=True)
    parser.add_argument(
        "--role",
        choices=[Role.ADMIN.value, Role.DEMO_ADMIN.value],
        default=Role.ADMIN.value,
    )
    args = parser.parse_args()

    setup_logging()
    if not create_admin(args.username, args.email, args.password, Role(args.role)):
        sys.exit(1)


if __name__ == "__main__":
    main()
