"""
PriceValidator - parses price cells such as "$1,234.56".
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from .base_validator import BaseValidator, RuleViolation

_NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)

DEFAULT_CURRENCY_SYMBOLS = "$€£¥"


class PriceValidator(BaseValidator):
    """
    Converts a price cell into a Decimal.

    A single leading currency symbol and any thousands separators are removed
    first. The remainder must be a complete, finite number: partial parses
    like "12abc" are rejected.

    Parameters:
        currency_symbols: Characters accepted as a leading symbol (default "$€£¥")
        thousands_separator: Separator to strip (default ",")
    """

    def __init__(self, field_name: str = "price", parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)
        self.currency_symbols = self.parameters.get("currency_symbols", DEFAULT_CURRENCY_SYMBOLS)
        self.thousands_separator = self.parameters.get("thousands_separator", ",")

    def validate(self, value: str | None, row: dict[str, Any]) -> Decimal:
        raw = (value or "").strip()
        cleaned = raw

        if cleaned and cleaned[0] in self.currency_symbols:
            cleaned = cleaned[1:].lstrip()

        if self.thousands_separator:
            cleaned = cleaned.replace(self.thousands_separator, "")

        if not _NUMBER_PATTERN.match(cleaned):
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid price format: {raw}",
            )

        try:
            price = Decimal(cleaned)
        except InvalidOperation:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid price format: {raw}",
            )

        if not price.is_finite():
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid price format: {raw}",
            )

        return price

    @property
    def rule_type(self) -> str:
        return "price"
