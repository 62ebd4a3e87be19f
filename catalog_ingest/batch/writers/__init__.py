"""
Batch writers for the product catalog.
"""

from .product_writer import BatchProductWriter, iter_batches

__all__ = [
    "BatchProductWriter",
    "iter_batches",
]
