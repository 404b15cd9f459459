"""
Integration tests for purchase orders and receiving.
"""

import re
import pytest
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from inventory.exceptions import NotFoundError, ValidationError
from inventory.models import NotificationType, PurchaseOrderStatus, StockTransaction, StockTransactionType
from inventory.services import notification_service, purchase_order_service, stock_service


def _tomorrow():
    return (date.today() + timedelta(days=1)).isoformat()


@pytest.fixture
def order(session, supplier, product, staff_user):
    return purchase_order_service.create_purchase_order(
        session,
        supplier_id=supplier.id,
        items=[{'product_id': product.id, 'quantity': 20, 'unit_price': '42.50'}],
        expected_delivery_date=_tomorrow(),
        user_id=staff_user.id,
    )


class TestCreatePurchaseOrder:

    def test_order_number_and_totals(self, session, supplier, make_product):
        first = make_product(current_stock=0, unit_price='10.00')
        second = make_product(current_stock=0, unit_price='5.00')

        order = purchase_order_service.create_purchase_order(
            session, supplier.id,
            [
                {'product_id': first.id, 'quantity': 3, 'unit_price': '10.00'},
                {'product_id': second.id, 'quantity': '4', 'unit_price': 2.5},
            ],
            _tomorrow(),
        )

        assert re.fullmatch(r'PO-\d{8}-[0-9A-F]{6}', order.order_number)
        assert order.status == PurchaseOrderStatus.PENDING
        assert order.total_amount == Decimal('40.00')
        assert [item.total_price for item in order.items] == [Decimal('30.00'), Decimal('10.00')]

    def test_placed_notification(self, session, order, staff_user):
        notification = notification_service.get_notifications(session, staff_user.id)[0]
        assert notification.type == NotificationType.ORDER_PLACED
        assert order.order_number in notification.message

    def test_supplier_email_when_enabled(self, app, session, supplier, product):
        app.config['ORDER_EMAIL_ENABLED'] = True
        try:
            with patch('inventory.services.email_service.send_purchase_order_email', return_value=True) as send:
                order = purchase_order_service.create_purchase_order(
                    session, supplier.id,
                    [{'product_id': product.id, 'quantity': 2, 'unit_price': '1.00'}],
                    _tomorrow(),
                )
        finally:
            app.config['ORDER_EMAIL_ENABLED'] = False

        send.assert_called_once()
        assert send.call_args[0][:3] == ('orders@acme.test', order.order_number, 'Acme Supplies')

    def test_unknown_supplier(self, session, product):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                session, 999999, [{'product_id': product.id, 'quantity': 1, 'unit_price': '1'}], _tomorrow()
            )

    @pytest.mark.parametrize('supplier_id', [None, 'abc', 10 ** 20])
    def test_invalid_supplier_id(self, session, product, supplier_id):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                session, supplier_id, [{'product_id': product.id, 'quantity': 1, 'unit_price': '1'}], _tomorrow()
            )

    def test_non_text_notes(self, session, supplier, product):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                session, supplier.id, [{'product_id': product.id, 'quantity': 1, 'unit_price': '1'}],
                _tomorrow(), notes={'text': 'x'}
            )

    def test_past_delivery_date(self, session, supplier, product):
        yesterday = (date.today() - timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                session, supplier.id, [{'product_id': product.id, 'quantity': 1, 'unit_price': '1'}], yesterday
            )

    @pytest.mark.parametrize('items', [
        [],
        [{'product_id': 999999, 'quantity': 1, 'unit_price': '1'}],
        [{'quantity': 1, 'unit_price': '1'}],
        ['not-an-object'],
        [{'product_id': 10 ** 20, 'quantity': 1, 'unit_price': '1'}],
    ])
    def test_invalid_items(self, session, supplier, items):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(session, supplier.id, items, _tomorrow())

    @pytest.mark.parametrize('quantity, unit_price', [
        (0, '1'), (-2, '1'), ('two', '1'), (1, '-1'), (1, 'abc'),
        (2 ** 31, '1'), (1, '1e30'), (1_000_000, '99999.99'),
    ])
    def test_invalid_lines(self, session, supplier, product, quantity, unit_price):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                session, supplier.id,
                [{'product_id': product.id, 'quantity': quantity, 'unit_price': unit_price}],
                _tomorrow(),
            )


class TestStatusTransitions:

    def test_forward_path(self, session, order):
        purchase_order_service.update_purchase_order_status(session, order.id, 'confirmed')
        updated = purchase_order_service.update_purchase_order_status(session, order.id, 'shipped')
        assert updated.status == PurchaseOrderStatus.SHIPPED

    def test_delivered_only_by_receiving(self, session, order):
        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order_status(session, order.id, 'delivered')

    def test_no_going_back(self, session, order):
        purchase_order_service.update_purchase_order_status(session, order.id, 'confirmed')
        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order_status(session, order.id, 'pending')

    def test_unknown_status(self, session, order):
        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order_status(session, order.id, 'lost')

    def test_missing_order(self, session):
        with pytest.raises(NotFoundError):
            purchase_order_service.update_purchase_order_status(session, 999999, 'confirmed')

    def test_list_by_status(self, session, order):
        purchase_order_service.update_purchase_order_status(session, order.id, 'cancelled')
        assert purchase_order_service.list_purchase_orders(session, status='pending') == []
        assert [o.id for o in purchase_order_service.list_purchase_orders(session, 'cancelled')] == [order.id]


class TestReceive:

    def test_books_stock(self, session, order, product, supplier, staff_user):
        received = purchase_order_service.receive_purchase_order(session, order.id, user_id=staff_user.id)

        assert received.status == PurchaseOrderStatus.DELIVERED
        assert all(item.is_received for item in received.items)

        session.expire_all()
        assert stock_service.get_ledger_balance(session, product.id) == 70
        row = session.query(StockTransaction).filter_by(
            product_id=product.id, transaction_type=StockTransactionType.IN
        ).one()
        assert row.quantity == 20
        assert row.unit_price == Decimal('42.50')
        assert row.reference_number == order.order_number
        assert row.supplier_id == supplier.id

        types = {n.type for n in notification_service.get_notifications(session, staff_user.id)}
        assert NotificationType.ORDER_DELIVERED in types

    def test_receiving_twice_books_once(self, session, order, product):
        purchase_order_service.receive_purchase_order(session, order.id)
        purchase_order_service.receive_purchase_order(session, order.id)

        session.expire_all()
        assert stock_service.get_ledger_balance(session, product.id) == 70
        assert session.query(StockTransaction).filter_by(reference_number=order.order_number).count() == 1

    def test_retry_after_partial_receive(self, session, supplier, make_product):
        """A failure on the second line leaves the first booked; the retry books only the rest."""
        first = make_product(current_stock=0)
        second = make_product(current_stock=0)
        order = purchase_order_service.create_purchase_order(
            session, supplier.id,
            [
                {'product_id': first.id, 'quantity': 5, 'unit_price': '1.00'},
                {'product_id': second.id, 'quantity': 7, 'unit_price': '1.00'},
            ],
            _tomorrow(),
        )

        real_record = stock_service.record_stock_in
        calls = []

        def flaky_record(session, product_id, *args, **kwargs):
            calls.append(product_id)
            if len(calls) == 2:
                raise ValidationError('simulated failure')
            return real_record(session, product_id, *args, **kwargs)

        with patch.object(stock_service, 'record_stock_in', side_effect=flaky_record):
            with pytest.raises(ValidationError):
                purchase_order_service.receive_purchase_order(session, order.id)

        session.expire_all()
        partial = purchase_order_service.get_purchase_order(session, order.id)
        assert partial.status == PurchaseOrderStatus.PENDING
        assert [item.is_received for item in sorted(partial.items, key=lambda i: i.id)] == [True, False]

        # Partially received orders stay open
        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order_status(session, order.id, 'cancelled')

        purchase_order_service.receive_purchase_order(session, order.id)
        session.expire_all()
        assert stock_service.get_ledger_balance(session, first.id) == 5
        assert stock_service.get_ledger_balance(session, second.id) == 7

    def test_cancelled_order_cannot_be_received(self, session, order, product):
        purchase_order_service.update_purchase_order_status(session, order.id, 'cancelled')

        with pytest.raises(ValidationError):
            purchase_order_service.receive_purchase_order(session, order.id)

        session.expire_all()
        assert stock_service.get_ledger_balance(session, product.id) == 50
