"""Stock Transaction model (stock ledger)."""
from datetime import datetime
from sqlalchemy import (
    Column, BigInteger, String, Text, Integer, SmallInteger, Numeric, DateTime, Enum, ForeignKey,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from inventory.database import Base, IdType
import enum


class StockTransactionType(enum.Enum):
    """Stock transaction type enum."""
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    RETURN = "return"


class StockTransaction(Base):
    """
    Ledger entry for one stock movement.

    Rows are append-only: corrections are new ``adjustment`` or ``return``
    rows. ``quantity`` is never negative; ``direction`` (+1/-1) carries the
    sign so the balance can be rebuilt from the ledger alone.
    """

    __tablename__ = 'stock_transaction'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_stock_transaction_quantity_positive'),
        CheckConstraint('direction IN (1, -1)', name='ck_stock_transaction_direction'),
        CheckConstraint('unit_price >= 0', name='ck_stock_transaction_unit_price'),
        CheckConstraint('total_amount >= 0', name='ck_stock_transaction_total_amount'),
        Index('ix_stock_transaction_product_created', 'product_id', 'created_at'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    transaction_type = Column(
        Enum(StockTransactionType, name='stock_transaction_type',
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)
    direction = Column(SmallInteger, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)  # unit cost for IN rows
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True)
    customer_ref = Column(String(200), nullable=True)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)

    # Relationships
    product = relationship('Product')
    supplier = relationship('Supplier')
    user = relationship('AppUser')

    @property
    def signed_quantity(self):
        """Quantity with the sign of its effect on the balance."""
        return self.direction * self.quantity

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'transaction_type': self.transaction_type.value,
            'quantity': self.quantity,
            'signed_quantity': self.signed_quantity,
            'unit_price': self.unit_price,
            'total_amount': self.total_amount,
            'supplier_id': self.supplier_id,
            'customer_ref': self.customer_ref,
            'reference_number': self.reference_number,
            'notes': self.notes,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<StockTransaction(id={self.id}, product_id={self.product_id}, "
            f"type={self.transaction_type.value}, qty={self.signed_quantity})>"
        )
