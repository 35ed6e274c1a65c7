"""
Генерация URL-slug для товаров и категорий.

Slug строится из названия и должен быть уникален в пределах
своей коллекции. Товары и категории имеют независимые пространства
slug'ов, поэтому набор занятых значений передает вызывающий.
"""

import re
from typing import Iterable, Optional

from storefront.core.errors import SlugConflict

# Все, кроме латинских букв, цифр, подчеркивания, пробелов и дефиса
_STRIP_RE = re.compile(r"[^a-z0-9_\s-]")
_SEPARATOR_RE = re.compile(r"[\s_-]+")

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


def normalize(name: str) -> str:
    """
    Привести название к URL-safe slug.

    Пример: "Classic White T-Shirt" -> "classic-white-t-shirt".
    Возвращает пустую строку, если в названии нет латинских букв и цифр.
    """
    value = _STRIP_RE.sub("", name.lower().strip())
    value = _SEPARATOR_RE.sub("-", value)
    return value.strip("-")


def allocate_unique(
    name: str,
    existing_slugs: Iterable[str],
    excluding: Optional[str] = None,
) -> str:
    """
    Выделить уникальный slug для названия.

    Если базовый slug свободен, он и возвращается. Иначе перебираются
    base-1, base-2, ... и возвращается первый свободный вариант.

    Args:
        name: Название записи
        existing_slugs: Занятые slug'и в коллекции
        excluding: Текущий slug самой записи (при переименовании)

    Raises:
        SlugConflict: Если название не дает непустого slug
    """
    base = normalize(name)
    if not base:
        raise SlugConflict(
            f"Name {name!r} does not produce a valid slug, try a different name"
        )

    taken = set(existing_slugs)
    if excluding is not None:
        taken.discard(excluding)

    if base not in taken:
        return base

    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"
