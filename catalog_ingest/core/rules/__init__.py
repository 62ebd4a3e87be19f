"""
Row validation rule engine.
"""

from .rule_engine import PRODUCT_COLUMNS, RowRuleEngine

__all__ = ["RowRuleEngine", "PRODUCT_COLUMNS"]
