"""
Stock transaction engine.

Records stock movements in the append-only ledger (``stock_transaction``)
and keeps ``product.current_stock`` in step with it.

Every movement is two writes, committed separately:
    1. INSERT the ledger row
    2. conditional UPDATE of the balance (never below zero)

If step 2 fails, the ledger row is deleted again (compensation) before the
error is raised. If that delete fails too, a ReconciliationError is raised
and the drift is left for ``flask reconcile-stock``.

Within a process the check-and-update sequence is serialised per product by
``product_locks``; across processes the conditional UPDATE keeps the balance
from going negative.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, date, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from flask import current_app, has_app_context
from sqlalchemy import select, update, delete, func, case
from sqlalchemy.exc import SQLAlchemyError

from inventory.exceptions import (
    ValidationError, ProductNotFoundError, InsufficientStockError, InvalidAdjustmentError,
    PersistenceError, OperationTimeoutError, ReconciliationError
)
from inventory.metrics import (
    stock_movements_total, stock_movement_failures_total,
    stock_compensations_total, stock_reconciliation_errors_total
)
from inventory.models import Product, Supplier, StockTransaction, StockTransactionType
from inventory.services.stock_status import classify_stock, critical_ratio

logger = logging.getLogger(__name__)

MONEY = Decimal('0.01')
DEFAULT_LOCK_TIMEOUT = 10.0

# Column limits: Integer, BigInteger, Numeric(10, 2) and Numeric(12, 2)
MAX_QUANTITY = 2 ** 31 - 1
MAX_ID = 2 ** 63 - 1
MAX_UNIT_PRICE = Decimal('99999999.99')
MAX_TOTAL_AMOUNT = Decimal('9999999999.99')


class ProductLockRegistry:
    """One lock per product id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def _lock_for(self, product_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = self._locks[product_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, product_id: int, timeout: Optional[float] = None):
        """Hold the product's lock; raise OperationTimeoutError if it is not free in time."""
        lock = self._lock_for(product_id)
        if not lock.acquire(timeout=-1 if timeout is None else timeout):
            raise OperationTimeoutError(product_id, timeout)
        try:
            yield
        finally:
            lock.release()


product_locks = ProductLockRegistry()


# =====================================================
# MOVEMENTS
# =====================================================

def record_stock_in(
    session,
    product_id: int,
    quantity: int,
    unit_cost,
    supplier_id: Optional[int] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
    reference_number: Optional[str] = None,
    timeout: Optional[float] = None
) -> StockTransaction:
    """
    Receive stock: append an ``in`` row and increment the balance.

    Raises:
        ValidationError: bad quantity/cost, unknown product or supplier
        OperationTimeoutError: product lock not acquired in time (nothing written)
        PersistenceError: store failure (ledger row compensated)
        ReconciliationError: store failure and the compensation failed too
    """
    product_id = _parse_id(product_id, 'product_id')
    quantity = _positive_quantity(quantity)
    unit_cost = _parse_amount(unit_cost, 'unit_cost')
    if supplier_id is not None:
        supplier_id = _parse_id(supplier_id, 'supplier_id')
        if session.get(Supplier, supplier_id) is None:
            raise ValidationError(f'Supplier {supplier_id} not found')

    return _record_movement(
        session, product_id, StockTransactionType.IN, quantity,
        unit_price=unit_cost,
        user_id=user_id,
        timeout=timeout,
        supplier_id=supplier_id,
        reference_number=_parse_text(reference_number, 'reference_number'),
        notes=_parse_text(notes, 'notes'),
    )


def record_stock_out(
    session,
    product_id: int,
    quantity: int,
    unit_price,
    customer_ref: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
    timeout: Optional[float] = None
) -> StockTransaction:
    """
    Ship stock: append an ``out`` row and decrement the balance.

    Raises InsufficientStockError when the balance is lower than
    ``quantity``; in that case no ledger row is kept.
    """
    product_id = _parse_id(product_id, 'product_id')
    quantity = _positive_quantity(quantity)
    unit_price = _parse_amount(unit_price, 'unit_price')

    return _record_movement(
        session, product_id, StockTransactionType.OUT, -quantity,
        unit_price=unit_price,
        user_id=user_id,
        timeout=timeout,
        customer_ref=_parse_text(customer_ref, 'customer_ref'),
        notes=_parse_text(notes, 'notes'),
    )


def record_adjustment(
    session,
    product_id: int,
    signed_delta: int,
    reason: str,
    user_id: Optional[int] = None,
    timeout: Optional[float] = None
) -> StockTransaction:
    """
    Correct the balance by ``signed_delta`` (stock count, damage, opening balance).

    Adjustments carry no price. Raises InvalidAdjustmentError when the
    resulting balance would be negative.
    """
    product_id = _parse_id(product_id, 'product_id')
    signed_delta = _parse_quantity(signed_delta, 'delta')
    if signed_delta == 0:
        raise ValidationError('delta must not be zero')
    reason = _parse_text(reason, 'reason')
    if not reason:
        raise ValidationError('An adjustment reason is required')

    return _record_movement(
        session, product_id, StockTransactionType.ADJUSTMENT, signed_delta,
        unit_price=Decimal('0.00'),
        user_id=user_id,
        timeout=timeout,
        notes=reason,
    )


def record_return(
    session,
    product_id: int,
    quantity: int,
    unit_price,
    customer_ref: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
    timeout: Optional[float] = None
) -> StockTransaction:
    """Customer return: append a ``return`` row and put the goods back on hand."""
    product_id = _parse_id(product_id, 'product_id')
    quantity = _positive_quantity(quantity)
    unit_price = _parse_amount(unit_price, 'unit_price')

    return _record_movement(
        session, product_id, StockTransactionType.RETURN, quantity,
        unit_price=unit_price,
        user_id=user_id,
        timeout=timeout,
        customer_ref=_parse_text(customer_ref, 'customer_ref'),
        notes=_parse_text(notes, 'notes'),
    )


# =====================================================
# READS
# =====================================================

def get_history(
    session,
    product_id: Optional[int] = None,
    transaction_type: Union[StockTransactionType, str, None] = None,
    limit: Optional[int] = None
) -> List[StockTransaction]:
    """Ledger rows, newest first, optionally filtered by product and type."""
    limit = _history_limit(limit)

    query = session.query(StockTransaction)
    if product_id is not None:
        query = query.filter(StockTransaction.product_id == _parse_id(product_id, 'product_id'))
    if transaction_type is not None:
        query = query.filter(StockTransaction.transaction_type == parse_transaction_type(transaction_type))

    return query.order_by(
        StockTransaction.created_at.desc(),
        StockTransaction.id.desc()
    ).limit(limit).all()


def get_product_history(session, product_id: int, days: int = 30) -> List[StockTransaction]:
    """A product's ledger rows of the last ``days`` days, oldest first (chart data)."""
    product_id = _parse_id(product_id, 'product_id')
    days = _positive_quantity(days, 'days')
    since = datetime.now() - timedelta(days=days)

    return session.query(StockTransaction).filter(
        StockTransaction.product_id == product_id,
        StockTransaction.created_at >= since
    ).order_by(
        StockTransaction.created_at.asc(),
        StockTransaction.id.asc()
    ).all()


def get_daily_summary(session, day: Union[date, str]) -> Dict[int, Dict[str, Any]]:
    """
    Per-product movement totals for one calendar day.

    Returns:
        {product_id: {product_id, product_name, in_quantity, out_quantity,
                      adjustment_quantity, return_quantity, net_change}}
        ``adjustment_quantity`` and ``net_change`` are signed.
    """
    day = _parse_date(day, 'date')
    start_dt = datetime.combine(day, time.min)
    end_dt = start_dt + timedelta(days=1)

    rows = session.query(
        StockTransaction.product_id,
        Product.name,
        StockTransaction.transaction_type,
        StockTransaction.quantity,
        StockTransaction.direction
    ).join(
        Product, Product.id == StockTransaction.product_id
    ).filter(
        StockTransaction.created_at >= start_dt,
        StockTransaction.created_at < end_dt
    ).all()

    summary: Dict[int, Dict[str, Any]] = {}
    for product_id, product_name, tx_type, quantity, direction in rows:
        entry = summary.setdefault(product_id, {
            'product_id': product_id,
            'product_name': product_name,
            'in_quantity': 0,
            'out_quantity': 0,
            'adjustment_quantity': 0,
            'return_quantity': 0,
            'net_change': 0,
        })
        if tx_type == StockTransactionType.IN:
            entry['in_quantity'] += quantity
        elif tx_type == StockTransactionType.OUT:
            entry['out_quantity'] += quantity
        elif tx_type == StockTransactionType.ADJUSTMENT:
            entry['adjustment_quantity'] += direction * quantity
        elif tx_type == StockTransactionType.RETURN:
            entry['return_quantity'] += quantity
        entry['net_change'] += direction * quantity

    return summary


def get_transaction_stats(session, start_date: Union[date, str], end_date: Union[date, str]) -> Dict[str, Any]:
    """Movement totals between two dates (both inclusive)."""
    start_date = _parse_date(start_date, 'start')
    end_date = _parse_date(end_date, 'end')
    if end_date < start_date:
        raise ValidationError('end date must not be before start date')

    start_dt = datetime.combine(start_date, time.min)
    end_dt = datetime.combine(end_date + timedelta(days=1), time.min)

    def _sum_quantity(tx_type):
        return func.coalesce(func.sum(case(
            (StockTransaction.transaction_type == tx_type, StockTransaction.quantity),
            else_=0
        )), 0)

    row = session.query(
        func.count(StockTransaction.id).label('total_transactions'),
        _sum_quantity(StockTransactionType.IN).label('total_in'),
        _sum_quantity(StockTransactionType.OUT).label('total_out'),
        _sum_quantity(StockTransactionType.ADJUSTMENT).label('total_adjustments'),
        _sum_quantity(StockTransactionType.RETURN).label('total_returns'),
        func.coalesce(func.sum(case(
            (StockTransaction.transaction_type == StockTransactionType.IN, StockTransaction.total_amount),
            else_=0
        )), 0).label('total_value'),
        func.count(func.distinct(StockTransaction.product_id)).label('products_affected')
    ).filter(
        StockTransaction.created_at >= start_dt,
        StockTransaction.created_at < end_dt
    ).one()

    return {
        'total_transactions': int(row.total_transactions or 0),
        'total_in': int(row.total_in or 0),
        'total_out': int(row.total_out or 0),
        'total_adjustments': int(row.total_adjustments or 0),
        'total_returns': int(row.total_returns or 0),
        'total_value': Decimal(str(row.total_value or 0)).quantize(MONEY),
        'products_affected': int(row.products_affected or 0),
    }


# =====================================================
# RECONCILIATION
# =====================================================

def get_ledger_balance(session, product_id: int) -> int:
    """Balance implied by the ledger: the signed sum of the product's rows."""
    product_id = _parse_id(product_id, 'product_id')
    total = session.query(
        func.coalesce(func.sum(StockTransaction.direction * StockTransaction.quantity), 0)
    ).filter(
        StockTransaction.product_id == product_id
    ).scalar()
    return int(total or 0)


def reconcile_product(session, product_id: int, repair: bool = False) -> Dict[str, Any]:
    """
    Compare a product's counter with its ledger.

    With ``repair`` the counter is reset to the ledger balance; the ledger
    is the source of truth.
    """
    product_id = _parse_id(product_id, 'product_id')

    with product_locks.hold(product_id, _lock_timeout(None)):
        product = _get_product(session, product_id, include_inactive=True)
        recorded = product.current_stock
        ledger = get_ledger_balance(session, product_id)
        drift = recorded - ledger
        repaired = False

        if drift:
            logger.warning(
                f"[STOCK] Drift on product {product_id} ({product.sku}): "
                f"counter={recorded} ledger={ledger} drift={drift:+d}"
            )
            if repair and ledger < 0:
                logger.error(f"[STOCK] Cannot repair product {product_id}: ledger balance is negative")
            elif repair:
                try:
                    session.execute(
                        update(Product)
                        .where(Product.id == product_id)
                        .values(current_stock=ledger, updated_at=func.now())
                        .execution_options(synchronize_session=False)
                    )
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise PersistenceError(
                        f'Failed to repair stock balance of product {product_id}'
                    ) from exc
                repaired = True
                logger.warning(f"[STOCK] Repaired product {product_id}: counter set to {ledger}")
                _invalidate_dashboard_cache()

    return {
        'product_id': product_id,
        'sku': product.sku,
        'recorded': recorded,
        'ledger': ledger,
        'drift': drift,
        'repaired': repaired,
    }


def reconcile_all(session, repair: bool = False) -> List[Dict[str, Any]]:
    """Reconcile every product; returns the reports of drifting products only."""
    product_ids = [pid for (pid,) in session.query(Product.id).order_by(Product.id).all()]
    reports = []
    for product_id in product_ids:
        report = reconcile_product(session, product_id, repair=repair)
        if report['drift']:
            reports.append(report)
    return reports


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _record_movement(
    session,
    product_id: int,
    transaction_type: StockTransactionType,
    delta: int,
    unit_price: Decimal,
    user_id: Optional[int] = None,
    timeout: Optional[float] = None,
    **fields
) -> StockTransaction:
    """Ledger write, balance update and compensation for one movement."""
    quantity = abs(delta)
    total_amount = _total_amount(unit_price, quantity)

    # Unknown ids never get a lock
    _get_product(session, product_id)

    with product_locks.hold(product_id, _lock_timeout(timeout)):
        product = _get_product(session, product_id)
        product_name = product.name
        min_stock = product.min_stock
        previous_status = classify_stock(product.current_stock, min_stock, critical_ratio())

        if delta > 0 and product.current_stock + delta > MAX_QUANTITY:
            raise ValidationError(
                f'{product_name} cannot hold more than {MAX_QUANTITY} units '
                f'(on hand {product.current_stock}, adding {delta})'
            )
        if delta < 0 and product.current_stock < quantity:
            stock_movement_failures_total.labels(
                transaction_type=transaction_type.value, reason='shortfall'
            ).inc()
            raise _shortfall_error(transaction_type, product_id, product_name, delta, product.current_stock)

        transaction = StockTransaction(
            product_id=product_id,
            transaction_type=transaction_type,
            quantity=quantity,
            direction=1 if delta > 0 else -1,
            unit_price=unit_price,
            total_amount=total_amount,
            user_id=user_id,
            **fields
        )
        transaction_id = _append_ledger_row(session, transaction)

        try:
            applied = _apply_balance_delta(session, product_id, delta)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                f"[STOCK] Balance update failed for product {product_id} "
                f"after ledger insert {transaction_id}: {exc}"
            )
            stock_movement_failures_total.labels(
                transaction_type=transaction_type.value, reason='persistence'
            ).inc()
            _compensate(session, product_id, transaction_id, exc)
            _discard(session, transaction)
            raise PersistenceError(
                'Failed to update the stock balance; the movement was not recorded',
                compensated=True,
                payload={'product_id': product_id},
            ) from exc
        except BaseException as exc:
            # Interrupted between the two writes: undo the ledger row first
            session.rollback()
            _compensate(session, product_id, transaction_id, exc)
            _discard(session, transaction)
            raise

        if not applied:
            # Another writer took the stock between the check and the update
            _compensate(session, product_id, transaction_id, None)
            _discard(session, transaction)
            stock_movement_failures_total.labels(
                transaction_type=transaction_type.value, reason='shortfall'
            ).inc()
            raise _shortfall_error(
                transaction_type, product_id, product_name, delta, _read_balance(session, product_id)
            )

        new_balance = _read_balance(session, product_id)

    logger.info(
        f"[STOCK] {transaction_type.value.upper()} product={product_id} qty={delta:+d} "
        f"balance={new_balance} transaction={transaction_id}"
    )
    stock_movements_total.labels(transaction_type=transaction_type.value).inc()
    _after_movement(session, user_id, product_id, product_name, min_stock, previous_status, new_balance)
    return transaction


def _append_ledger_row(session, transaction: StockTransaction) -> int:
    """Insert and commit the ledger row; nothing to undo if this fails."""
    product_id = transaction.product_id
    try:
        session.add(transaction)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"[STOCK] Ledger insert failed for product {product_id}: {exc}")
        raise PersistenceError(
            'Failed to record the stock transaction',
            compensated=True,
            payload={'product_id': product_id},
        ) from exc
    except Exception:
        session.rollback()
        raise
    return transaction.id


def _apply_balance_delta(session, product_id: int, delta: int) -> bool:
    """
    Move the counter by ``delta`` in a single conditional UPDATE.

    Decrements only match while ``current_stock >= -delta``; returns False
    when no row matched.
    """
    stmt = update(Product).where(Product.id == product_id)
    if delta < 0:
        stmt = stmt.where(Product.current_stock >= -delta)
    stmt = stmt.values(
        current_stock=Product.current_stock + delta,
        updated_at=func.now()
    ).execution_options(synchronize_session=False)

    result = session.execute(stmt)
    session.commit()
    return result.rowcount == 1


def _delete_ledger_row(session, transaction_id: int) -> None:
    session.execute(
        delete(StockTransaction)
        .where(StockTransaction.id == transaction_id)
        .execution_options(synchronize_session=False)
    )
    session.commit()


def _compensate(session, product_id: int, transaction_id: int, cause: Optional[BaseException]) -> None:
    """Delete the ledger row of a movement whose balance update did not happen."""
    try:
        _delete_ledger_row(session, transaction_id)
    except SQLAlchemyError as exc:
        session.rollback()
        stock_reconciliation_errors_total.inc()
        logger.critical(
            f"[STOCK] RECONCILIATION REQUIRED product={product_id} "
            f"orphaned_transaction={transaction_id} cause={cause!r} compensation_error={exc!r}"
        )
        raise ReconciliationError(product_id, transaction_id, cause=cause) from exc

    stock_compensations_total.inc()
    logger.warning(f"[STOCK] Compensated: removed transaction {transaction_id} of product {product_id}")


def _discard(session, transaction: StockTransaction) -> None:
    if transaction in session:
        session.expunge(transaction)


def _after_movement(session, user_id, product_id, product_name, min_stock, previous_status, new_balance):
    """Re-classify, alert on a worse status and drop cached aggregates."""
    new_status = classify_stock(new_balance, min_stock, critical_ratio())

    if user_id is not None:
        from inventory.services.notification_service import notify_if_status_worsened
        try:
            notify_if_status_worsened(
                session, user_id, product_id, product_name,
                previous_status, new_status,
                current_stock=new_balance, min_stock=min_stock
            )
        except SQLAlchemyError as exc:
            # The movement is already committed; the alert is best effort
            session.rollback()
            logger.exception(f"[NOTIFY] Failed to record stock alert for product {product_id}: {exc}")

    _invalidate_dashboard_cache()
    return new_status


def _invalidate_dashboard_cache():
    from inventory.services.dashboard_service import invalidate_dashboard_cache
    invalidate_dashboard_cache()


def _shortfall_error(transaction_type, product_id, product_name, delta, available):
    if transaction_type == StockTransactionType.ADJUSTMENT:
        return InvalidAdjustmentError(product_name, delta, available, product_id=product_id)
    return InsufficientStockError(product_name, abs(delta), available, product_id=product_id)


def _get_product(session, product_id: int, include_inactive: bool = False) -> Product:
    """Load the product with a fresh balance (bypasses stale identity-map state)."""
    product = session.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if product is None or (not product.active and not include_inactive):
        raise ProductNotFoundError(product_id)
    return product


def _read_balance(session, product_id: int) -> int:
    return session.execute(
        select(Product.current_stock).where(Product.id == product_id)
    ).scalar_one()


def _lock_timeout(timeout: Optional[float]) -> float:
    if timeout is not None:
        if timeout < 0:
            raise ValidationError('timeout must not be negative')
        return timeout
    if has_app_context():
        return float(current_app.config.get('STOCK_LOCK_TIMEOUT', DEFAULT_LOCK_TIMEOUT))
    return DEFAULT_LOCK_TIMEOUT


def _history_limit(limit: Optional[int]) -> int:
    default_limit, max_limit = 50, 500
    if has_app_context():
        default_limit = current_app.config.get('STOCK_HISTORY_DEFAULT_LIMIT', default_limit)
        max_limit = current_app.config.get('STOCK_HISTORY_MAX_LIMIT', max_limit)
    if limit is None:
        return default_limit
    limit = _parse_quantity(limit, 'limit')
    if limit < 1 or limit > max_limit:
        raise ValidationError(f'limit must be between 1 and {max_limit}')
    return limit


def parse_transaction_type(value) -> StockTransactionType:
    """Accept an enum member or its string value ('in', 'OUT', ...)."""
    if isinstance(value, StockTransactionType):
        return value
    try:
        return StockTransactionType(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(t.value for t in StockTransactionType)
        raise ValidationError(f'Invalid transaction type "{value}" (allowed: {allowed})')


def _parse_id(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} is invalid')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} is invalid')
    if abs(number) > MAX_ID:
        raise ValidationError(f'{field} is invalid')
    return number


def _parse_quantity(value, field: str = 'quantity') -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f'{field} must be an integer')
    if isinstance(value, int):
        return _bounded(value, field)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be an integer')
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f'{field} must be an integer')
    return _bounded(int(number), field)


def _bounded(number: int, field: str) -> int:
    if abs(number) > MAX_QUANTITY:
        raise ValidationError(f'{field} must be between -{MAX_QUANTITY} and {MAX_QUANTITY}')
    return number


def _positive_quantity(value, field: str = 'quantity') -> int:
    quantity = _parse_quantity(value, field)
    if quantity <= 0:
        raise ValidationError(f'{field} must be greater than 0')
    return quantity


def _parse_amount(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field} is required')
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f'{field} must be zero or greater')
    if amount > MAX_UNIT_PRICE:
        raise ValidationError(f'{field} must be at most {MAX_UNIT_PRICE}')
    try:
        return amount.quantize(MONEY)
    except InvalidOperation:
        raise ValidationError(f'{field} must be a number')


def _total_amount(unit_price: Decimal, quantity: int) -> Decimal:
    total = (unit_price * quantity).quantize(MONEY)
    if total > MAX_TOTAL_AMOUNT:
        raise ValidationError(f'total amount {total} exceeds {MAX_TOTAL_AMOUNT}')
    return total


def _parse_date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field} must be a date in YYYY-MM-DD format')


def _parse_text(value, field: str) -> Optional[str]:
    """Strip free text; empty becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string')
    return value.strip() or None
