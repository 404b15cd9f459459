"""Supplier model."""
from sqlalchemy import Column, String, Text, Integer, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from inventory.database import Base, IdType


class Supplier(Base):
    """Supplier."""

    __tablename__ = 'supplier'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    contact_person = Column(String(200), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    payment_terms = Column(String(200), nullable=True)
    lead_time_days = Column(Integer, nullable=False, default=7)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    products = relationship('Product', back_populates='supplier')
    purchase_orders = relationship('PurchaseOrder', back_populates='supplier')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'contact_person': self.contact_person,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'payment_terms': self.payment_terms,
            'lead_time_days': self.lead_time_days,
        }

    def __repr__(self):
        return f"<Supplier(id={self.id}, name='{self.name}')>"
