from __future__ import annotations

from menu_admin.menu.models import MenuItem

SAMPLE_MENU_ITEMS: tuple[MenuItem, ...] = (
    MenuItem(
        id="1",
        name={"en": "Lomo Saltado", "es": "Lomo Saltado"},
        description={
            "en": "Stir-fried beef with onions, tomatoes and french fries",
            "es": "Carne de res salteada con cebollas, tomates y papas fritas",
        },
        price="$15.99",
        category="mainDish",
        is_popular=True,
        is_vegetarian=False,
        ingredients=["beef", "onions", "tomatoes", "soy sauce", "french fries"],
        image="/placeholder.svg",
    ),
    MenuItem(
        id="2",
        name={"en": "Ceviche", "es": "Ceviche"},
        description={
            "en": "Fresh fish cured in citrus juices with onions and chili peppers",
            "es": "Pescado fresco curado en jugos cítricos con cebollas y ajíes",
        },
        price="$14.99",
        category="coldDishes",
        is_popular=True,
        is_vegetarian=False,
        ingredients=["fish", "lime juice", "onions", "cilantro", "chili peppers"],
        image="/placeholder.svg",
    ),
)


def sample_menu_items() -> list[MenuItem]:
    return [item.model_copy(deep=True) for item in SAMPLE_MENU_ITEMS]
