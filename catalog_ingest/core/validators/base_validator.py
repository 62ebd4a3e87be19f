"""
Base validator interface for row field rules.

All validators inherit from BaseValidator and implement validate(), which
returns the normalized field value or raises RuleViolation.
"""

from abc import ABC, abstractmethod
from typing import Any


class RuleViolation(Exception):
    """Raised when a field rule fails."""

    def __init__(self, rule_name: str, field_name: str, message: str):
        self.rule_name = rule_name
        self.field_name = field_name
        self.message = message
        super().__init__(f"[{rule_name}] {field_name}: {message}")


class BaseValidator(ABC):
    """
    Abstract base class for field validators.

    Each validator checks one field of a row and converts its raw text into
    the typed value stored on ParsedRecord.
    """

    def __init__(self, field_name: str, parameters: dict[str, Any] | None = None):
        """
        Initialize validator.

        Args:
            field_name: Name of the column to validate
            parameters: Rule-specific parameters (e.g., currency symbols)
        """
        self.field_name = field_name
        self.parameters = parameters or {}

    @abstractmethod
    def validate(self, value: str | None, row: dict[str, str | None]) -> Any:
        """
        Validate a raw value and return its normalized form.

        Args:
            value: The raw cell text (None when the column is absent)
            row: The entire row, for context-dependent rules

        Returns:
            Normalized value

        Raises:
            RuleViolation: If validation fails
        """

    @property
    @abstractmethod
    def rule_type(self) -> str:
        """Return the rule type identifier."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field={self.field_name}, params={self.parameters})"
