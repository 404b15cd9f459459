"""Notifications blueprint (current user only)."""
from flask import Blueprint, jsonify, g

from inventory.database import get_session
from inventory.middleware import require_login
from inventory.services import notification_service
from inventory.utils.request_helpers import arg_int, arg_bool

notifications_bp = Blueprint('notifications', __name__, url_prefix='/notifications')


@notifications_bp.route('', methods=['GET'])
@require_login
def list_notifications():
    notifications = notification_service.get_notifications(
        get_session(),
        g.user_id,
        limit=arg_int('limit', 50),
        unread_only=arg_bool('unread'),
    )
    return jsonify({
        'status': 'success',
        'notifications': [n.to_dict() for n in notifications],
    })


@notifications_bp.route('/unread-count', methods=['GET'])
@require_login
def unread_count():
    count = notification_service.get_unread_count(get_session(), g.user_id)
    return jsonify({'status': 'success', 'count': count})


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
@require_login
def mark_read(notification_id):
    notification = notification_service.mark_notification_as_read(get_session(), notification_id, g.user_id)
    return jsonify({'status': 'success', 'notification': notification.to_dict()})


@notifications_bp.route('/read-all', methods=['POST'])
@require_login
def mark_all_read():
    updated = notification_service.mark_all_notifications_as_read(get_session(), g.user_id)
    return jsonify({'status': 'success', 'updated': updated})


@notifications_bp.route('/<int:notification_id>', methods=['DELETE'])
@require_login
def delete(notification_id):
    notification_service.delete_notification(get_session(), notification_id, g.user_id)
    return jsonify({'status': 'success'})
