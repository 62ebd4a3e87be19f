"""
DateValidator - parses MM/DD/YYYY expiration dates.
"""

import re
from datetime import date
from typing import Any

from .base_validator import BaseValidator, RuleViolation

_DIGITS = re.compile(r"^\d+$", re.ASCII)


class DateValidator(BaseValidator):
    """
    Converts a month/day/year cell into a calendar date.

    Checks, in order:
    - exactly three "/"-separated parts
    - every part is an unsigned integer
    - the year has four digits and the date exists (no 30th of February,
      no 29th of February outside leap years)
    """

    def __init__(self, field_name: str = "expiration", parameters: dict[str, Any] | None = None):
        super().__init__(field_name, parameters)

    def validate(self, value: str | None, row: dict[str, Any]) -> date:
        raw = (value or "").strip()
        parts = [part.strip() for part in raw.split("/")]

        if len(parts) != 3:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid date format. Expected MM/DD/YYYY: {raw}",
            )

        if not all(_DIGITS.match(part) for part in parts):
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid date numbers: {raw}",
            )

        month, day, year = (int(part) for part in parts)

        if len(parts[2]) != 4:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid date: {raw}",
            )

        try:
            parsed = date(year, month, day)
        except ValueError:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid date: {raw}",
            )

        # Round-trip guard: the constructed date must land in the parsed year
        if parsed.year != year:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message=f"Invalid date: {raw}",
            )

        return parsed

    @property
    def rule_type(self) -> str:
        return "date"
