"""
Rule engine for validating product rows.

Applies the field validators to each row in a fixed order, short-circuiting
on the first failure, and builds a ParsedRecord from the normalized values.
"""

from typing import Any

from catalog_ingest.core.errors import ValidationError
from catalog_ingest.core.models import ParsedRecord
from catalog_ingest.core.validators import (
    BaseValidator,
    DateValidator,
    PriceValidator,
    RequiredFieldValidator,
    RuleViolation,
)
from catalog_ingest.observability import metrics

PRODUCT_COLUMNS = ("name", "price", "expiration")


class RowRuleEngine:
    """
    Validates product rows.

    Rule pipeline:
    1. All columns present and non-empty after trimming
    2. Price parses as a number (currency symbol and separators removed)
    3. Expiration parses as a real MM/DD/YYYY date

    The first failing stage produces a ValidationError carrying the row's line
    number; later stages are not evaluated.
    """

    def __init__(
        self,
        columns: tuple[str, ...] = PRODUCT_COLUMNS,
        price_parameters: dict[str, Any] | None = None,
    ):
        """
        Initialize the rule engine.

        Args:
            columns: Column names in file order (name, price, expiration)
            price_parameters: Parameters forwarded to PriceValidator
        """
        self.columns = columns
        name_column, price_column, expiration_column = columns

        self.required_validators: list[BaseValidator] = [
            RequiredFieldValidator(column) for column in columns
        ]
        self.name_column = name_column
        self.price_validator = PriceValidator(price_column, price_parameters)
        self.date_validator = DateValidator(expiration_column)

    def validate_row(self, row: dict[str, str | None], line_number: int) -> ParsedRecord:
        """
        Validate a row and convert it into a ParsedRecord.

        Args:
            row: Column name -> raw cell text
            line_number: 1-based data row index

        Returns:
            ParsedRecord for a valid row

        Raises:
            ValidationError: On the first failing rule
        """
        cleaned: dict[str, str] = {}
        missing: list[str] = []
        for validator in self.required_validators:
            try:
                cleaned[validator.field_name] = validator.validate(
                    row.get(validator.field_name), row
                )
            except RuleViolation:
                missing.append(validator.field_name)

        if missing:
            metrics.record_validation_failure("required_field")
            raise ValidationError(
                line_number=line_number,
                raw_row=dict(row),
                reason=f"Missing required fields: {', '.join(missing)}",
            )

        try:
            price = self.price_validator.validate(cleaned[self.price_validator.field_name], row)
            expiration = self.date_validator.validate(cleaned[self.date_validator.field_name], row)
        except RuleViolation as violation:
            metrics.record_validation_failure(violation.rule_name)
            raise ValidationError(
                line_number=line_number,
                raw_row=dict(row),
                reason=violation.message,
            ) from violation

        return ParsedRecord(
            name=cleaned[self.name_column],
            price=price,
            expiration_date=expiration,
            line_number=line_number,
        )

    def get_rule_summary(self) -> dict[str, Any]:
        """Describe the configured rule pipeline."""
        return {
            "columns": list(self.columns),
            "rules": [v.rule_type for v in self.required_validators]
            + [self.price_validator.rule_type, self.date_validator.rule_type],
        }
