from __future__ import annotations

UNAUTHORIZED_STATUSES = frozenset({401, 403})


class ExternalAPIError(RuntimeError):
    """A backend call failed, either in transport or with a non-2xx status."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
        *,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.path = path

    @property
    def unauthorized(self) -> bool:
        return self.status_code in UNAUTHORIZED_STATUSES
