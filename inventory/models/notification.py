"""Notification model."""
import enum
from sqlalchemy import Column, BigInteger, String, Text, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from inventory.database import Base, IdType


class NotificationType(enum.Enum):
    """Notification type enum."""
    LOW_STOCK = 'low_stock'
    OUT_OF_STOCK = 'out_of_stock'
    ORDER_PLACED = 'order_placed'
    ORDER_DELIVERED = 'order_delivered'
    SYSTEM = 'system'


class Notification(Base):
    """In-app notification for one user."""

    __tablename__ = 'notification'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    type = Column(
        Enum(NotificationType, name='notification_type',
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type.value,
            'title': self.title,
            'message': self.message,
            'product_id': self.product_id,
            'is_read': self.is_read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type.value})>"
