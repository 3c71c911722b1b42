"""
API request and response models for the Gatekeeper example routes.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in items/models.py, which
own the internal domain representation. Route handlers map between the two.

The auth sub-routes have their own bodies in auth/schemas.py because the
auth engine parses requests itself.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from items.models import Item

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ItemCreate(BaseModel):
    """Request body for POST /api/items."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)


class ItemUpdate(BaseModel):
    """Request body for PUT /api/items/{item_id}. At least one field is required."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def require_a_field(self) -> "ItemUpdate":
        if self.name is None and self.description is None:
            raise ValueError("Provide at least one of name or description")
        return self


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ItemResponse(BaseModel):
    """An item as returned inside the envelope's data field."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    description: Optional[str] = None
    created_at: str = Field(serialization_alias="createdAt")
    updated_at: str = Field(serialization_alias="updatedAt")

    @classmethod
    def from_item(cls, item: Item) -> "ItemResponse":
        return cls(
            id=item.id,
            name=item.name,
            description=item.description,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )

    def to_data(self) -> dict:
        return self.model_dump(by_alias=True)
