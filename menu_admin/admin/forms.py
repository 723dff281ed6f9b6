from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from menu_admin.menu.models import MenuItem, MenuItemUpdate


def _text(form: Mapping[str, Any], key: str, default: str) -> str:
    value = form.get(key)
    if value is None:
        return default
    return str(value).strip()


def _checkbox(form: Mapping[str, Any], key: str) -> bool:
    return str(form.get(key, "")).lower() in {"on", "true", "1", "yes"}


def _ingredients(form: Mapping[str, Any], default: list[str]) -> list[str]:
    value = form.get("ingredients")
    if value is None:
        return list(default)
    return [part.strip() for part in str(value).replace("\n", ",").split(",") if part.strip()]


def parse_edit_form(form: Mapping[str, Any], current: MenuItem) -> MenuItemUpdate:
    """Build a partial update holding only the fields the form changed.

    Locales other than ``en``/``es`` on the current item are preserved.
    """
    name = current.name.model_copy(
        update={
            "en": _text(form, "name_en", current.name.en),
            "es": _text(form, "name_es", current.name.es),
        }
    )
    description = current.description.model_copy(
        update={
            "en": _text(form, "description_en", current.description.en),
            "es": _text(form, "description_es", current.description.es),
        }
    )
    candidate = {
        "name": name,
        "description": description,
        "price": _text(form, "price", current.price),
        "category": _text(form, "category", current.category),
        "is_popular": _checkbox(form, "is_popular"),
        "is_vegetarian": _checkbox(form, "is_vegetarian"),
        "ingredients": _ingredients(form, current.ingredients),
        "image": _text(form, "image", current.image),
    }

    changed: dict[str, Any] = {}
    for field, value in candidate.items():
        existing = getattr(current, field)
        if hasattr(existing, "model_dump"):
            if value.model_dump() != existing.model_dump():
                changed[field] = value
        elif value != existing:
            changed[field] = value
    return MenuItemUpdate(**changed)
