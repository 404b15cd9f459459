"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from decimal import Decimal

from inventory.models import (
    AppUser, Product, StockTransaction, StockTransactionType, Notification, NotificationType
)


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_create_user(self, session):
        """Test creating a user with a hashed password."""
        email = f'test_{str(uuid.uuid4())[:8]}@example.com'
        user = AppUser(email=email, name='Test User', active=True)
        user.set_password('securepassword')
        session.add(user)
        session.commit()

        assert user.id is not None
        assert user.role == 'staff'
        assert user.password_hash != 'securepassword'
        assert user.check_password('securepassword')
        assert not user.check_password('wrongpassword')

    def test_user_email_unique(self, session, staff_user):
        """Test that email must be unique."""
        duplicate = AppUser(email=staff_user.email, name='Duplicate', password_hash='x')
        session.add(duplicate)

        with pytest.raises(Exception):  # IntegrityError
            session.commit()

    def test_role_hierarchy(self, admin_user, manager_user, staff_user):
        assert admin_user.has_role('manager')
        assert manager_user.has_role('manager')
        assert not staff_user.has_role('manager')
        assert staff_user.has_role('staff')
        assert not manager_user.has_role('admin')


class TestProductModel:
    """Tests for Product model."""

    def test_negative_stock_rejected(self, session):
        """The database refuses a negative balance."""
        product = Product(sku='NEG-1', name='Negative', category='Test', current_stock=-1, min_stock=0)
        session.add(product)

        with pytest.raises(Exception):  # IntegrityError (check constraint)
            session.commit()

    def test_max_below_min_rejected(self, session):
        product = Product(sku='MAX-1', name='Bad limits', category='Test', min_stock=10, max_stock=5)
        session.add(product)

        with pytest.raises(Exception):  # IntegrityError (check constraint)
            session.commit()

    def test_to_dict_includes_status(self, make_product):
        product = make_product(current_stock=5, min_stock=10, unit_price='2.50')
        data = product.to_dict()

        assert data['current_stock'] == 5
        assert data['status'] == 'critical'
        assert product.stock_value == Decimal('12.50')


class TestStockTransactionModel:
    """Tests for StockTransaction model."""

    def test_signed_quantity(self, product):
        out_row = StockTransaction(
            product_id=product.id, transaction_type=StockTransactionType.OUT,
            quantity=3, direction=-1, unit_price=Decimal('1.00'), total_amount=Decimal('3.00')
        )
        assert out_row.signed_quantity == -3

    def test_zero_quantity_rejected(self, session, product):
        row = StockTransaction(
            product_id=product.id, transaction_type=StockTransactionType.IN,
            quantity=0, direction=1, unit_price=Decimal('1.00'), total_amount=Decimal('0.00')
        )
        session.add(row)

        with pytest.raises(Exception):  # IntegrityError (check constraint)
            session.commit()

    def test_type_stored_as_value(self, session, product):
        row = session.query(StockTransaction).filter_by(product_id=product.id).one()
        assert row.transaction_type == StockTransactionType.ADJUSTMENT
        assert row.to_dict()['transaction_type'] == 'adjustment'


class TestNotificationModel:

    def test_defaults(self, session, staff_user):
        notification = Notification(
            user_id=staff_user.id, type=NotificationType.SYSTEM, title='Hello', message='World'
        )
        session.add(notification)
        session.commit()

        assert notification.is_read is False
        assert notification.to_dict()['type'] == 'system'
