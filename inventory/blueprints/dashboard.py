"""Dashboard blueprint."""
from flask import Blueprint, jsonify

from inventory.database import get_session
from inventory.middleware import require_role
from inventory.services import dashboard_service
from inventory.utils.request_helpers import arg_int

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')


@dashboard_bp.route('/stats', methods=['GET'])
@require_role('staff')
def stats():
    return jsonify({'status': 'success', 'stats': dashboard_service.get_dashboard_stats(get_session())})


@dashboard_bp.route('/recent-transactions', methods=['GET'])
@require_role('staff')
def recent_transactions():
    transactions = dashboard_service.get_recent_transactions(get_session(), limit=arg_int('limit', 10))
    return jsonify({
        'status': 'success',
        'transactions': [t.to_dict() for t in transactions],
    })
