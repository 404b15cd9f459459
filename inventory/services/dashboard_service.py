"""
Dashboard service.
Provides aggregated stock metrics for the dashboard view, cached in Redis.
"""
import logging
from datetime import datetime, date, time
from decimal import Decimal
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy import func, case

from inventory.models import Product, StockTransaction, StockTransactionType
from inventory.services.stock_status import StockStatus, classify_stock, critical_ratio

logger = logging.getLogger(__name__)

CACHE_MODULE = 'dashboard'


def get_dashboard_stats(session, today: Optional[date] = None) -> dict:
    """
    Get the dashboard figures, from cache when available.

    Returns:
        dict with keys:
            - total_products: int (active products)
            - low_stock_count: int
            - critical_count: int
            - out_of_stock_count: int
            - total_value: Decimal (stock on hand at list price)
            - monthly_sales: Decimal (``out`` amounts this month)
            - monthly_purchases: Decimal (``in`` amounts this month)
    """
    if today is None:
        today = date.today()

    cache = _cache()
    if cache is None:
        return _compute_dashboard_stats(session, today)

    ttl = current_app.config.get('CACHE_DASHBOARD_TTL') if has_app_context() else None
    return cache.memoize(
        CACHE_MODULE, f'stats:{today.isoformat()}',
        lambda: _compute_dashboard_stats(session, today),
        ttl=ttl
    )


def get_recent_transactions(session, limit: int = 10) -> List[StockTransaction]:
    from inventory.services.stock_service import get_history
    return get_history(session, limit=limit)


def invalidate_dashboard_cache() -> None:
    """Drop cached dashboard figures after stock or catalog changes."""
    cache = _cache()
    if cache is not None:
        cache.invalidate_module(CACHE_MODULE)


def _compute_dashboard_stats(session, today: date) -> dict:
    ratio = critical_ratio()

    # 1. Classify active products (statuses are computed, never stored)
    products = session.query(
        Product.current_stock,
        Product.min_stock,
        Product.unit_price
    ).filter(
        Product.active == True  # noqa: E712
    ).all()

    counts = {status: 0 for status in StockStatus}
    total_value = Decimal('0')
    for current_stock, min_stock, unit_price in products:
        counts[classify_stock(current_stock, min_stock, ratio)] += 1
        total_value += Decimal(str(unit_price or 0)) * current_stock

    # 2. Movement amounts for the current month
    month_start = datetime.combine(today.replace(day=1), time.min)
    if today.month == 12:
        next_month = date(today.year + 1, 1, 1)
    else:
        next_month = date(today.year, today.month + 1, 1)
    month_end = datetime.combine(next_month, time.min)

    monthly = session.query(
        func.coalesce(
            func.sum(
                case(
                    (StockTransaction.transaction_type == StockTransactionType.OUT, StockTransaction.total_amount),
                    else_=0
                )
            ),
            0
        ).label('sales'),
        func.coalesce(
            func.sum(
                case(
                    (StockTransaction.transaction_type == StockTransactionType.IN, StockTransaction.total_amount),
                    else_=0
                )
            ),
            0
        ).label('purchases')
    ).filter(
        StockTransaction.created_at >= month_start,
        StockTransaction.created_at < month_end
    ).first()

    # Safe conversion to Decimal (handle None)
    monthly_sales = Decimal(str(monthly.sales)) if monthly and monthly.sales else Decimal('0')
    monthly_purchases = Decimal(str(monthly.purchases)) if monthly and monthly.purchases else Decimal('0')

    return {
        'total_products': len(products),
        'low_stock_count': counts[StockStatus.LOW],
        'critical_count': counts[StockStatus.CRITICAL],
        'out_of_stock_count': counts[StockStatus.OUT_OF_STOCK],
        'total_value': total_value.quantize(Decimal('0.01')),
        'monthly_sales': monthly_sales.quantize(Decimal('0.01')),
        'monthly_purchases': monthly_purchases.quantize(Decimal('0.01')),
    }


def _cache():
    from inventory.services.cache_service import get_cache
    try:
        return get_cache()
    except RuntimeError:
        # Not initialised (CLI scripts, bare sessions)
        return None
