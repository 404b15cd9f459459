"""Purchase Order model."""
import enum
from datetime import date
from sqlalchemy import (
    Column, BigInteger, String, Text, Integer, Numeric, Date, DateTime, Enum, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inventory.database import Base, IdType


class PurchaseOrderStatus(enum.Enum):
    """Purchase order status enum."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class PurchaseOrder(Base):
    """Purchase order placed with a supplier."""

    __tablename__ = 'purchase_order'

    id = Column(IdType, primary_key=True, autoincrement=True)
    order_number = Column(String(50), nullable=False, unique=True)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=False, index=True)
    order_date = Column(Date, nullable=False, default=date.today)
    expected_delivery_date = Column(Date, nullable=False)
    status = Column(
        Enum(PurchaseOrderStatus, name='purchase_order_status',
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PurchaseOrderStatus.PENDING,
        index=True,
    )
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    supplier = relationship('Supplier', back_populates='purchase_orders')
    items = relationship('PurchaseOrderItem', back_populates='purchase_order', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'order_number': self.order_number,
            'supplier_id': self.supplier_id,
            'order_date': self.order_date.isoformat() if self.order_date else None,
            'expected_delivery_date': self.expected_delivery_date.isoformat(),
            'status': self.status.value,
            'total_amount': self.total_amount,
            'notes': self.notes,
            'user_id': self.user_id,
            'items': [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<PurchaseOrder(id={self.id}, order_number='{self.order_number}', status={self.status.value})>"


class PurchaseOrderItem(Base):
    """Purchase order line."""

    __tablename__ = 'purchase_order_item'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_purchase_order_item_quantity_positive'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    purchase_order_id = Column(BigInteger, ForeignKey('purchase_order.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    # Set once the line has been booked into stock
    stock_transaction_id = Column(BigInteger, ForeignKey('stock_transaction.id'), nullable=True)

    # Relationships
    purchase_order = relationship('PurchaseOrder', back_populates='items')
    product = relationship('Product')

    @property
    def is_received(self):
        return self.stock_transaction_id is not None

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'total_price': self.total_price,
            'received': self.is_received,
        }

    def __repr__(self):
        return f"<PurchaseOrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
