"""Product model."""
from sqlalchemy import (
    Column, BigInteger, String, Text, Boolean, Integer, Numeric, DateTime, ForeignKey, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inventory.database import Base, IdType


class Product(Base):
    """
    Product with its stock balance.

    ``current_stock`` is a cached counter of the stock ledger; only
    ``inventory.services.stock_service`` writes it.
    """

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('current_stock >= 0', name='ck_product_current_stock_non_negative'),
        CheckConstraint('min_stock >= 0', name='ck_product_min_stock_non_negative'),
        CheckConstraint('max_stock IS NULL OR max_stock >= min_stock', name='ck_product_max_stock'),
        CheckConstraint('unit_price >= 0', name='ck_product_unit_price_non_negative'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    sku = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)
    current_stock = Column(Integer, nullable=False, default=0, server_default='0')
    min_stock = Column(Integer, nullable=False, default=0, server_default='0')
    max_stock = Column(Integer, nullable=True)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')
    supplier_id = Column(BigInteger, ForeignKey('supplier.id'), nullable=True, index=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    supplier = relationship('Supplier', back_populates='products')

    @property
    def stock_value(self):
        """Value of the stock on hand at list price."""
        return self.current_stock * self.unit_price

    def to_dict(self):
        from inventory.services.stock_status import classify_stock, critical_ratio

        return {
            'id': self.id,
            'sku': self.sku,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'current_stock': self.current_stock,
            'min_stock': self.min_stock,
            'max_stock': self.max_stock,
            'unit_price': self.unit_price,
            'supplier_id': self.supplier_id,
            'active': self.active,
            'status': classify_stock(self.current_stock, self.min_stock, critical_ratio()).value,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', current_stock={self.current_stock})>"
