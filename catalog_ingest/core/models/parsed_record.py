"""
Record models produced by the parsing and enrichment stages (ephemeral).
"""

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .exchange_rate_snapshot import ExchangeRateSnapshot


class ParsedRecord(BaseModel):
    """
    A row that passed every validation rule.

    Attributes:
        name: Product name (trimmed)
        price: Price with currency symbol and thousands separators removed
        expiration_date: Calendar expiration date
        line_number: 1-based data row index (header excluded)
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    price: Decimal
    expiration_date: date
    line_number: int = Field(..., ge=1)


class EnrichedRecord(BaseModel):
    """
    A parsed record bound to the run's exchange-rate snapshot.

    The snapshot is required, so no record can reach persistence without one.
    """

    model_config = ConfigDict(frozen=True)

    record: ParsedRecord
    snapshot: ExchangeRateSnapshot

    def to_row(self) -> dict[str, Any]:
        """Column values for the products table."""
        return {
            "name": self.record.name,
            "price": self.record.price,
            "expiration": self.record.expiration_date,
            "exchange_rates": self.snapshot.to_document(),
        }
