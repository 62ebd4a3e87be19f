"""
Query-side models used by the API layer to read the persisted catalog.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


SORTABLE_FIELDS = ("name", "price", "expiration", "created_at")


class ProductFilter(BaseModel):
    """
    Filters for catalog queries. All fields are optional and combined with AND.

    Attributes:
        name: Case-insensitive substring of the product name
        min_price: Inclusive lower price bound
        max_price: Inclusive upper price bound
        min_expiration: Earliest accepted expiration date
    """

    name: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_expiration: date | None = None

    @model_validator(mode="after")
    def check_price_range(self) -> "ProductFilter":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot be greater than max_price")
        return self


class SortSpec(BaseModel):
    """Single-field sort."""

    field: str = "created_at"
    order: Literal["asc", "desc"] = "asc"

    @model_validator(mode="after")
    def check_field(self) -> "SortSpec":
        if self.field not in SORTABLE_FIELDS:
            raise ValueError(
                f"Cannot sort by '{self.field}'. Allowed: {', '.join(SORTABLE_FIELDS)}"
            )
        return self


class Product(BaseModel):
    """A persisted catalog row."""

    id: int
    name: str
    price: Decimal
    expiration: date
    exchange_rates: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class ProductPage(BaseModel):
    """One page of query results plus the total match count."""

    records: list[Product] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0
