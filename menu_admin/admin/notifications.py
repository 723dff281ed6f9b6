from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

NOTICE_SESSION_INVALID = "session_invalid"
NOTICE_SIGNED_OUT = "signed_out"

DELETE_CONFIRMATION = "¿Estás seguro de que deseas eliminar este elemento?"


class Toast(BaseModel):
    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"


def session_invalid() -> Toast:
    return Toast(
        title="Sesión no válida",
        description="Por favor, inicie sesión para acceder al panel de administración",
        variant="destructive",
    )


def development_mode() -> Toast:
    return Toast(title="Modo de desarrollo", description="Usando datos de muestra para desarrollo")


def load_failed(message: str) -> Toast:
    return Toast(title="Error al cargar elementos del menú", description=message, variant="destructive")


def update_succeeded() -> Toast:
    return Toast(title="Éxito", description="Elemento del menú actualizado correctamente")


def update_failed(message: str) -> Toast:
    return Toast(title="Error al actualizar el elemento del menú", description=message, variant="destructive")


def delete_succeeded() -> Toast:
    return Toast(title="Éxito", description="Elemento del menú eliminado correctamente")


def delete_failed(message: str) -> Toast:
    return Toast(title="Error al eliminar el elemento del menú", description=message, variant="destructive")


def signed_out() -> Toast:
    return Toast(title="Sesión cerrada", description="Ha cerrado sesión correctamente")


def coming_soon() -> Toast:
    return Toast(title="Próximamente", description="Funcionalidad en desarrollo")


def item_not_found() -> Toast:
    return Toast(
        title="Elemento no encontrado",
        description="El elemento ya no existe en el menú",
        variant="destructive",
    )


def sign_in_failed(message: str) -> Toast:
    return Toast(title="Error al iniciar sesión", description=message, variant="destructive")


_NOTICES = {
    NOTICE_SESSION_INVALID: session_invalid,
    NOTICE_SIGNED_OUT: signed_out,
}


def notice_toast(notice: str | None) -> Toast | None:
    factory = _NOTICES.get(notice or "")
    return factory() if factory else None
