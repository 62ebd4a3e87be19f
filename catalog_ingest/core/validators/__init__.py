"""
Row field validators.

Provides validators for required fields, prices and MM/DD/YYYY dates.
"""

from .base_validator import BaseValidator, RuleViolation
from .date_validator import DateValidator
from .price_validator import DEFAULT_CURRENCY_SYMBOLS, PriceValidator
from .required_field_validator import RequiredFieldValidator

__all__ = [
    "BaseValidator",
    "RuleViolation",
    "RequiredFieldValidator",
    "PriceValidator",
    "DateValidator",
    "DEFAULT_CURRENCY_SYMBOLS",
]
