"""
Integration tests for notifications and stock alerts.
"""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from inventory.exceptions import NotFoundError
from inventory.models import Notification, NotificationType
from inventory.services import notification_service, stock_service
from inventory.services.stock_status import StockStatus


class TestStatusWorsened:
    """Alerts fire only when a movement makes the status worse."""

    def test_normal_to_low(self, session, make_product, staff_user):
        product = make_product(current_stock=12, min_stock=10, name='Wood Screws')

        stock_service.record_stock_out(session, product.id, 4, '1.00', user_id=staff_user.id)

        notifications = notification_service.get_notifications(session, staff_user.id)
        assert len(notifications) == 1
        assert notifications[0].type == NotificationType.LOW_STOCK
        assert notifications[0].product_id == product.id
        assert 'Wood Screws' in notifications[0].title
        assert '8 left, minimum 10' in notifications[0].message

    def test_low_to_critical(self, session, make_product, staff_user):
        product = make_product(current_stock=8, min_stock=10)

        stock_service.record_stock_out(session, product.id, 3, '1.00', user_id=staff_user.id)

        notification = notification_service.get_notifications(session, staff_user.id)[0]
        assert notification.type == NotificationType.LOW_STOCK
        assert notification.title.startswith('Critical stock')

    def test_out_of_stock(self, session, make_product, staff_user):
        product = make_product(current_stock=3, min_stock=10)

        stock_service.record_stock_out(session, product.id, 3, '1.00', user_id=staff_user.id)

        notification = notification_service.get_notifications(session, staff_user.id)[0]
        assert notification.type == NotificationType.OUT_OF_STOCK

    def test_same_status_no_alert(self, session, make_product, staff_user):
        product = make_product(current_stock=9, min_stock=10)

        stock_service.record_stock_out(session, product.id, 1, '1.00', user_id=staff_user.id)

        assert notification_service.get_unread_count(session, staff_user.id) == 0

    def test_improvement_no_alert(self, session, make_product, staff_user):
        product = make_product(current_stock=2, min_stock=10)

        stock_service.record_stock_in(session, product.id, 30, '1.00', user_id=staff_user.id)

        assert notification_service.get_unread_count(session, staff_user.id) == 0

    def test_direct_call_ignores_improvement(self, session, staff_user, product):
        result = notification_service.notify_if_status_worsened(
            session, staff_user.id, product.id, product.name,
            StockStatus.CRITICAL, StockStatus.LOW
        )
        assert result is None

    def test_alert_failure_does_not_undo_movement(self, session, make_product, staff_user):
        """The movement is committed before alerts run."""
        product = make_product(current_stock=12, min_stock=10)

        with patch(
            'inventory.services.notification_service.create_notification',
            side_effect=OperationalError('INSERT', {}, Exception('down'))
        ):
            stock_service.record_stock_out(session, product.id, 4, '1.00', user_id=staff_user.id)

        session.expire_all()
        assert stock_service.get_ledger_balance(session, product.id) == 8
        assert session.query(Notification).count() == 0

    def test_email_sent_when_enabled(self, app, session, make_product, staff_user):
        product = make_product(current_stock=12, min_stock=10, name='Paint')
        app.config['LOW_STOCK_EMAIL_ENABLED'] = True
        try:
            with patch('inventory.services.email_service.send_low_stock_alert', return_value=True) as send:
                stock_service.record_stock_out(session, product.id, 5, '1.00', user_id=staff_user.id)
        finally:
            app.config['LOW_STOCK_EMAIL_ENABLED'] = False

        send.assert_called_once_with(staff_user.email, 'Paint', 7, 10, 'low')


class TestNotificationInbox:

    def _notify(self, session, user, title='Heads up'):
        return notification_service.create_system_notification(session, user.id, title, 'Body')

    def test_newest_first_and_unread_filter(self, session, staff_user):
        first = self._notify(session, staff_user, 'First')
        second = self._notify(session, staff_user, 'Second')
        notification_service.mark_notification_as_read(session, first.id, staff_user.id)

        titles = [n.title for n in notification_service.get_notifications(session, staff_user.id)]
        assert titles == ['Second', 'First']

        unread = notification_service.get_notifications(session, staff_user.id, unread_only=True)
        assert [n.id for n in unread] == [second.id]
        assert notification_service.get_unread_count(session, staff_user.id) == 1

    def test_mark_all_read(self, session, staff_user, manager_user):
        self._notify(session, staff_user)
        self._notify(session, staff_user)
        self._notify(session, manager_user)

        assert notification_service.mark_all_notifications_as_read(session, staff_user.id) == 2
        assert notification_service.get_unread_count(session, staff_user.id) == 0
        assert notification_service.get_unread_count(session, manager_user.id) == 1

    def test_delete(self, session, staff_user):
        notification = self._notify(session, staff_user)
        notification_service.delete_notification(session, notification.id, staff_user.id)
        assert notification_service.get_notifications(session, staff_user.id) == []

    def test_other_users_notifications_are_hidden(self, session, staff_user, manager_user):
        notification = self._notify(session, staff_user)

        with pytest.raises(NotFoundError):
            notification_service.mark_notification_as_read(session, notification.id, manager_user.id)
        with pytest.raises(NotFoundError):
            notification_service.delete_notification(session, notification.id, manager_user.id)

    def test_order_notifications(self, session, staff_user):
        placed = notification_service.create_order_placed_notification(
            session, staff_user.id, 'PO-20261019-ABC123', 'Acme'
        )
        delivered = notification_service.create_order_delivered_notification(
            session, staff_user.id, 'PO-20261019-ABC123', 'Acme'
        )
        assert placed.type == NotificationType.ORDER_PLACED
        assert delivered.type == NotificationType.ORDER_DELIVERED
        assert 'PO-20261019-ABC123' in delivered.message
