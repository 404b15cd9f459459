"""
Low-stock classification.

Single source of the stock status thresholds, shared by the stock engine,
the notification emitter, the catalog listings and the dashboard.
"""
import enum
from decimal import Decimal
from typing import Optional

from flask import current_app, has_app_context

from inventory.exceptions import ValidationError

DEFAULT_CRITICAL_RATIO = Decimal('0.5')


class StockStatus(enum.Enum):
    """Stock status, ordered by severity: normal < low < critical < out_of_stock."""
    NORMAL = 'normal'
    LOW = 'low'
    CRITICAL = 'critical'
    OUT_OF_STOCK = 'out_of_stock'

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def is_worse_than(self, other: 'StockStatus') -> bool:
        return self.severity > other.severity


_SEVERITY = {
    StockStatus.NORMAL: 0,
    StockStatus.LOW: 1,
    StockStatus.CRITICAL: 2,
    StockStatus.OUT_OF_STOCK: 3,
}


def critical_ratio() -> Decimal:
    """Critical threshold as a fraction of ``min_stock`` (``CRITICAL_STOCK_RATIO``)."""
    if has_app_context():
        return Decimal(str(current_app.config.get('CRITICAL_STOCK_RATIO', DEFAULT_CRITICAL_RATIO)))
    return DEFAULT_CRITICAL_RATIO


def classify_stock(current_stock: int, min_stock: int,
                   ratio: Optional[Decimal] = None) -> StockStatus:
    """
    Classify a balance against its minimum.

    Boundaries are inclusive:
        current == 0                        -> OUT_OF_STOCK
        0 < current <= min * ratio          -> CRITICAL
        min * ratio < current <= min        -> LOW
        current > min                       -> NORMAL

    Pure: no I/O, same output for the same input.
    """
    if current_stock is None or min_stock is None:
        raise ValidationError('current_stock and min_stock are required')
    if current_stock < 0 or min_stock < 0:
        raise ValidationError('Stock levels cannot be negative')

    if ratio is None:
        ratio = DEFAULT_CRITICAL_RATIO

    if current_stock == 0:
        return StockStatus.OUT_OF_STOCK
    if Decimal(current_stock) <= Decimal(min_stock) * ratio:
        return StockStatus.CRITICAL
    if current_stock <= min_stock:
        return StockStatus.LOW
    return StockStatus.NORMAL
