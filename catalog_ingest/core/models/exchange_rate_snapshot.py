"""
ExchangeRateSnapshot model: one cached set of exchange rates per run.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExchangeRateSnapshot(BaseModel):
    """
    Time-stamped exchange rates shared, unmodified, by every record in a run.

    Attributes:
        as_of: When the rates were fetched from the provider
        base: Base currency the rates are quoted against
        rates: Currency code -> rate, narrowed to the configured allow-list
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "as_of": "2025-11-17T10:00:00+00:00",
                "base": "USD",
                "rates": {"EUR": 0.92, "GBP": 0.79, "BRL": 5.01},
            }
        },
    )

    as_of: datetime
    base: str = "USD"
    rates: dict[str, float] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """Shape stored alongside each product row."""
        return {"date": self.as_of.isoformat(), "base": self.base, "rates": dict(self.rates)}
