"""Models package - exports all SQLAlchemy models."""
from inventory.models.app_user import AppUser, UserRole, ROLE_HIERARCHY
from inventory.models.supplier import Supplier
from inventory.models.product import Product
from inventory.models.stock_transaction import StockTransaction, StockTransactionType
from inventory.models.notification import Notification, NotificationType
from inventory.models.purchase_order import PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus

__all__ = [
    'AppUser', 'UserRole', 'ROLE_HIERARCHY',
    'Supplier', 'Product',
    'StockTransaction', 'StockTransactionType',
    'Notification', 'NotificationType',
    'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderStatus',
]
