"""
Notification service: in-app notifications and stock alert e-mails.
"""
import logging
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from inventory.exceptions import NotFoundError, ValidationError
from inventory.models import AppUser, Notification, NotificationType
from inventory.services.stock_status import StockStatus

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS_LIMIT = 200


def create_notification(
    session,
    user_id: int,
    notification_type: NotificationType,
    title: str,
    message: str,
    product_id: Optional[int] = None
) -> Notification:
    """
    Create and commit a notification for one user.

    Args:
        session: SQLAlchemy session
        user_id: Recipient
        notification_type: NotificationType member
        title: Short title
        message: Body text
        product_id: Related product, if any

    Returns:
        The committed Notification
    """
    if not title or not message:
        raise ValidationError('Notification title and message are required')

    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        product_id=product_id,
        is_read=False,
    )
    try:
        session.add(notification)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info(f"[NOTIFY] {notification_type.value} for user {user_id}: {title}")
    return notification


def notify_if_status_worsened(
    session,
    user_id: int,
    product_id: int,
    product_name: str,
    previous_status: StockStatus,
    new_status: StockStatus,
    current_stock: Optional[int] = None,
    min_stock: Optional[int] = None
) -> Optional[Notification]:
    """
    Alert the user when a movement moved a product to a worse stock status.

    Improvements and unchanged statuses produce nothing. Out of stock gets
    its own notification type; low and critical share ``low_stock``.
    """
    if not new_status.is_worse_than(previous_status):
        return None

    if new_status == StockStatus.OUT_OF_STOCK:
        notification_type = NotificationType.OUT_OF_STOCK
        title = f'Out of stock: {product_name}'
        message = f'{product_name} is out of stock.'
    else:
        notification_type = NotificationType.LOW_STOCK
        label = 'Critical stock' if new_status == StockStatus.CRITICAL else 'Low stock'
        title = f'{label}: {product_name}'
        message = f'{product_name} is running low'
        if current_stock is not None and min_stock is not None:
            message += f' ({current_stock} left, minimum {min_stock})'
        message += '.'

    notification = create_notification(
        session, user_id, notification_type, title, message, product_id=product_id
    )

    if _low_stock_email_enabled():
        _email_stock_alert(session, user_id, product_name, current_stock, min_stock, new_status)

    return notification


def create_order_placed_notification(session, user_id: int, order_number: str,
                                     supplier_name: str) -> Notification:
    return create_notification(
        session, user_id, NotificationType.ORDER_PLACED,
        f'Purchase order {order_number} placed',
        f'Purchase order {order_number} was sent to {supplier_name}.'
    )


def create_order_delivered_notification(session, user_id: int, order_number: str,
                                        supplier_name: str) -> Notification:
    return create_notification(
        session, user_id, NotificationType.ORDER_DELIVERED,
        f'Purchase order {order_number} delivered',
        f'Purchase order {order_number} from {supplier_name} was received into stock.'
    )


def create_system_notification(session, user_id: int, title: str, message: str) -> Notification:
    return create_notification(session, user_id, NotificationType.SYSTEM, title, message)


def get_notifications(session, user_id: int, limit: int = 50,
                      unread_only: bool = False) -> List[Notification]:
    """A user's notifications, newest first."""
    if limit < 1 or limit > MAX_NOTIFICATIONS_LIMIT:
        raise ValidationError(f'limit must be between 1 and {MAX_NOTIFICATIONS_LIMIT}')

    query = session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712

    return query.order_by(
        Notification.created_at.desc(),
        Notification.id.desc()
    ).limit(limit).all()


def get_unread_count(session, user_id: int) -> int:
    return session.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read == False  # noqa: E712
    ).count()


def mark_notification_as_read(session, notification_id: int, user_id: int) -> Notification:
    notification = _get_owned_notification(session, notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        try:
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
    return notification


def mark_all_notifications_as_read(session, user_id: int) -> int:
    """Mark every unread notification of the user; returns how many changed."""
    try:
        updated = session.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False  # noqa: E712
        ).update({Notification.is_read: True}, synchronize_session=False)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    return updated


def delete_notification(session, notification_id: int, user_id: int) -> None:
    notification = _get_owned_notification(session, notification_id, user_id)
    try:
        session.delete(notification)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise


def _get_owned_notification(session, notification_id: int, user_id: int) -> Notification:
    # Other users' notifications are reported as missing
    notification = session.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id
    ).first()
    if notification is None:
        raise NotFoundError(f'Notification {notification_id} not found')
    return notification


def _low_stock_email_enabled() -> bool:
    return has_app_context() and bool(current_app.config.get('LOW_STOCK_EMAIL_ENABLED'))


def _email_stock_alert(session, user_id, product_name, current_stock, min_stock, status):
    from inventory.services.email_service import send_low_stock_alert

    user = session.get(AppUser, user_id)
    if user is None or not user.email:
        return
    if not send_low_stock_alert(user.email, product_name, current_stock, min_stock, status.value):
        logger.warning(f"[EMAIL] Stock alert for {product_name} could not be sent to {user.email}")
