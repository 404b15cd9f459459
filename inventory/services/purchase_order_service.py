"""
Purchase order service.

Orders move pending -> confirmed -> shipped and become ``delivered`` only
when received, which books every line into stock through the stock engine.
"""
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from inventory.exceptions import NotFoundError, ValidationError
from inventory.models import Product, Supplier, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from inventory.services.stock_service import MAX_ID, MAX_QUANTITY, MAX_UNIT_PRICE, MAX_TOTAL_AMOUNT

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PurchaseOrderStatus.PENDING: {PurchaseOrderStatus.CONFIRMED, PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.CONFIRMED: {PurchaseOrderStatus.SHIPPED, PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.SHIPPED: {PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.DELIVERED: set(),
    PurchaseOrderStatus.CANCELLED: set(),
}
RECEIVABLE_STATUSES = {PurchaseOrderStatus.PENDING, PurchaseOrderStatus.CONFIRMED, PurchaseOrderStatus.SHIPPED}


def generate_order_number(today: Optional[date] = None) -> str:
    """PO-YYYYMMDD-XXXXXX"""
    today = today or date.today()
    return f"PO-{today.strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


def create_purchase_order(
    session,
    supplier_id: int,
    items: List[dict],
    expected_delivery_date,
    notes: Optional[str] = None,
    user_id: Optional[int] = None
) -> PurchaseOrder:
    """
    Create a pending purchase order.

    Args:
        session: SQLAlchemy session
        supplier_id: Supplier the order is placed with
        items: list of {product_id, quantity, unit_price}
        expected_delivery_date: date or 'YYYY-MM-DD', not in the past
        notes: Free text
        user_id: Ordering user; receives the ``order_placed`` notification

    Returns:
        The committed PurchaseOrder

    Raises:
        ValidationError: unknown supplier/product, empty or invalid lines
    """
    supplier = _get_supplier(session, supplier_id)
    if notes is not None and not isinstance(notes, str):
        raise ValidationError('notes must be a string')

    expected_delivery_date = _parse_date(expected_delivery_date)
    if expected_delivery_date < date.today():
        raise ValidationError('expected_delivery_date cannot be in the past')

    if not items:
        raise ValidationError('A purchase order needs at least one item')

    order = PurchaseOrder(
        order_number=generate_order_number(),
        supplier_id=supplier.id,
        expected_delivery_date=expected_delivery_date,
        status=PurchaseOrderStatus.PENDING,
        notes=notes,
        user_id=user_id,
    )

    total_amount = Decimal('0.00')
    email_lines = []
    for index, raw in enumerate(items, start=1):
        product_id, quantity, unit_price = _parse_item(raw, index)
        product = session.get(Product, product_id)
        if product is None or not product.active:
            raise ValidationError(f'Item {index}: product {product_id} not found')

        line_total = (unit_price * quantity).quantize(Decimal('0.01'))
        order.items.append(PurchaseOrderItem(
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price,
            total_price=line_total,
        ))
        total_amount += line_total
        if line_total > MAX_TOTAL_AMOUNT or total_amount > MAX_TOTAL_AMOUNT:
            raise ValidationError(f'Item {index}: order total exceeds {MAX_TOTAL_AMOUNT}')
        email_lines.append({'product_name': product.name, 'quantity': quantity, 'unit_price': unit_price})

    order.total_amount = total_amount

    try:
        session.add(order)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info(f"[PO] Created {order.order_number} supplier={supplier.id} total={total_amount}")

    if user_id is not None:
        from inventory.services.notification_service import create_order_placed_notification
        create_order_placed_notification(session, user_id, order.order_number, supplier.name)

    if supplier.email and _order_email_enabled():
        from inventory.services.email_service import send_purchase_order_email
        send_purchase_order_email(
            supplier.email, order.order_number, supplier.name,
            email_lines, total_amount, expected_delivery_date.isoformat()
        )

    return order


def update_purchase_order_status(session, order_id: int, new_status) -> PurchaseOrder:
    """Move an order along its lifecycle; ``delivered`` is reserved for receiving."""
    order = get_purchase_order(session, order_id)
    new_status = _parse_status(new_status)

    if new_status == PurchaseOrderStatus.DELIVERED:
        raise ValidationError('Receive the order to mark it as delivered')
    if new_status not in ALLOWED_TRANSITIONS[order.status]:
        raise ValidationError(
            f'Cannot change order {order.order_number} from {order.status.value} to {new_status.value}'
        )
    if new_status == PurchaseOrderStatus.CANCELLED and any(item.is_received for item in order.items):
        raise ValidationError(f'Order {order.order_number} is partially received and cannot be cancelled')

    previous = order.status
    order.status = new_status
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info(f"[PO] {order.order_number}: {previous.value} -> {new_status.value}")
    return order


def receive_purchase_order(session, order_id: int, user_id: Optional[int] = None) -> PurchaseOrder:
    """
    Book every line of the order into stock and mark it delivered.

    Lines that already carry a stock transaction are skipped, so a receive
    that failed halfway can be retried without booking stock twice.
    """
    from inventory.services.stock_service import record_stock_in

    order = get_purchase_order(session, order_id)
    if order.status == PurchaseOrderStatus.DELIVERED:
        return order
    if order.status not in RECEIVABLE_STATUSES:
        raise ValidationError(f'Order {order.order_number} is {order.status.value} and cannot be received')

    order_number = order.order_number
    supplier_id = order.supplier_id
    pending = [(item.id, item.product_id, item.quantity, item.unit_price)
               for item in order.items if not item.is_received]

    for item_id, product_id, quantity, unit_price in pending:
        transaction = record_stock_in(
            session, product_id, quantity, unit_price,
            supplier_id=supplier_id,
            notes=f'Received with purchase order {order_number}',
            user_id=user_id,
            reference_number=order_number,
        )
        item = session.get(PurchaseOrderItem, item_id)
        item.stock_transaction_id = transaction.id
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.error(
                f"[PO] {order_number}: item {item_id} booked as transaction {transaction.id} "
                f"but not marked received"
            )
            raise

    order = get_purchase_order(session, order_id)
    order.status = PurchaseOrderStatus.DELIVERED
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info(f"[PO] {order_number} received ({len(pending)} lines booked)")

    if user_id is not None:
        from inventory.services.notification_service import create_order_delivered_notification
        create_order_delivered_notification(session, user_id, order_number, order.supplier.name)

    return order


def get_purchase_order(session, order_id: int) -> PurchaseOrder:
    order = session.query(PurchaseOrder).options(
        selectinload(PurchaseOrder.items)
    ).filter(PurchaseOrder.id == order_id).first()
    if order is None:
        raise NotFoundError(f'Purchase order {order_id} not found')
    return order


def list_purchase_orders(session, status=None) -> List[PurchaseOrder]:
    query = session.query(PurchaseOrder).options(selectinload(PurchaseOrder.items))
    if status is not None:
        query = query.filter(PurchaseOrder.status == _parse_status(status))
    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()


def _parse_item(raw: dict, index: int):
    if not isinstance(raw, dict):
        raise ValidationError(f'Item {index}: expected an object')
    try:
        product_id = int(raw.get('product_id'))
    except (TypeError, ValueError):
        raise ValidationError(f'Item {index}: product_id is invalid')
    if not 0 < product_id <= MAX_ID:
        raise ValidationError(f'Item {index}: product_id is invalid')

    quantity = raw.get('quantity')
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        try:
            quantity = int(str(quantity).strip())
        except (TypeError, ValueError):
            raise ValidationError(f'Item {index}: quantity must be an integer')
    if quantity <= 0:
        raise ValidationError(f'Item {index}: quantity must be greater than 0')
    if quantity > MAX_QUANTITY:
        raise ValidationError(f'Item {index}: quantity must be at most {MAX_QUANTITY}')

    try:
        unit_price = Decimal(str(raw.get('unit_price', '')).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Item {index}: unit_price must be a number')
    if not unit_price.is_finite() or unit_price < 0:
        raise ValidationError(f'Item {index}: unit_price cannot be negative')
    if unit_price > MAX_UNIT_PRICE:
        raise ValidationError(f'Item {index}: unit_price must be at most {MAX_UNIT_PRICE}')

    return product_id, quantity, unit_price.quantize(Decimal('0.01'))


def _get_supplier(session, supplier_id) -> Supplier:
    try:
        number = int(supplier_id)
    except (TypeError, ValueError):
        number = 0
    supplier = session.get(Supplier, number) if 0 < number <= MAX_ID else None
    if supplier is None:
        raise ValidationError(f'Supplier {supplier_id} not found')
    return supplier


def _parse_status(value) -> PurchaseOrderStatus:
    if isinstance(value, PurchaseOrderStatus):
        return value
    try:
        return PurchaseOrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f'Invalid purchase order status "{value}"')


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError('expected_delivery_date must be a date in YYYY-MM-DD format')


def _order_email_enabled() -> bool:
    return has_app_context() and bool(current_app.config.get('ORDER_EMAIL_ENABLED'))
