from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LocalizedText(BaseModel):
    model_config = ConfigDict(extra="allow")

    en: str
    es: str


class MenuItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: LocalizedText
    description: LocalizedText
    price: str
    category: str
    is_popular: bool = Field(default=False, alias="isPopular")
    is_vegetarian: bool = Field(default=False, alias="isVegetarian")
    ingredients: list[str] = Field(default_factory=list)
    image: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def apply(self, changes: MenuItemUpdate) -> MenuItem:
        return self.model_copy(update=changes.field_values())

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class MenuItemUpdate(BaseModel):
    """Partial change set for a menu item.

    Only fields that were explicitly set are sent to the backend, so
    ``MenuItemUpdate(price="$16.99")`` patches the price and nothing else.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: LocalizedText | None = None
    description: LocalizedText | None = None
    price: str | None = None
    category: str | None = None
    is_popular: bool | None = Field(default=None, alias="isPopular")
    is_vegetarian: bool | None = Field(default=None, alias="isVegetarian")
    ingredients: list[str] | None = None
    image: str | None = None

    def is_empty(self) -> bool:
        return not self.model_fields_set

    def field_values(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class ChangeEvent(BaseModel):
    type: str
    table: str
    record: dict[str, Any] | None = None


class MenuSnapshot(BaseModel):
    items: list[MenuItem] = Field(default_factory=list)
    simulated: bool = False
