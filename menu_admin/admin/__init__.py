from menu_admin.admin.page import AdminMenuPage, Redirect
from menu_admin.admin.registry import PageRegistry

__all__ = [
    "AdminMenuPage",
    "PageRegistry",
    "Redirect",
]
