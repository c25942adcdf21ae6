"""
Shared schema bases.

Responses read straight from ORM rows (orders, withdrawals, registrations),
so they inherit from BaseResponseSchema. Request bodies inherit from
BaseCreateSchema.
"""
from decimal import Decimal
from typing import Annotated, Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field

# IDR amount as stored in NUMERIC(12, 2) columns
Rupiah = Annotated[Decimal, Field(max_digits=12, decimal_places=2)]

ItemT = TypeVar("ItemT")


class BaseResponseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class BaseCreateSchema(BaseModel):
    """Unknown fields sent by older frontends are ignored; strings are stripped."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ItemList(BaseModel, Generic[ItemT]):
    """List envelope used by the agent and admin listings."""
    items: List[ItemT]
    total: int
