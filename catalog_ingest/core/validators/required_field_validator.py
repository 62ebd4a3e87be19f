"""
RequiredFieldValidator - ensures a column is present and not empty.
"""

from typing import Any

from .base_validator import BaseValidator, RuleViolation


class RequiredFieldValidator(BaseValidator):
    """
    Validates that a required column is present and non-empty after trimming.

    Fails if:
    - Column is missing from the row (short row)
    - Value is None
    - Value is empty or whitespace only
    """

    def validate(self, value: str | None, row: dict[str, Any]) -> str:
        """
        Validate that the field is present and not empty.

        Returns:
            The trimmed value

        Raises:
            RuleViolation: If the column is missing or blank
        """
        if self.field_name not in row or value is None:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message="Field is missing from row",
            )

        stripped = value.strip()
        if not stripped:
            raise RuleViolation(
                rule_name=self.rule_type,
                field_name=self.field_name,
                message="Field value is empty",
            )

        return stripped

    @property
    def rule_type(self) -> str:
        return "required_field"
