"""Purchase orders blueprint."""
from flask import Blueprint, jsonify, request, g

from inventory.database import get_session
from inventory.middleware import require_role
from inventory.services import purchase_order_service
from inventory.utils.request_helpers import json_body, require_fields

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


@orders_bp.route('', methods=['GET'])
@require_role('staff')
def list_orders():
    orders = purchase_order_service.list_purchase_orders(
        get_session(),
        status=request.args.get('status') or None,
    )
    return jsonify({'status': 'success', 'orders': [o.to_dict() for o in orders]})


@orders_bp.route('', methods=['POST'])
@require_role('manager')
def create_order():
    data = json_body()
    require_fields(data, 'supplier_id', 'items', 'expected_delivery_date')

    order = purchase_order_service.create_purchase_order(
        get_session(),
        supplier_id=data['supplier_id'],
        items=data['items'],
        expected_delivery_date=data['expected_delivery_date'],
        notes=data.get('notes'),
        user_id=g.user_id,
    )
    return jsonify({'status': 'success', 'order': order.to_dict()}), 201


@orders_bp.route('/<int:order_id>', methods=['GET'])
@require_role('staff')
def get_order(order_id):
    order = purchase_order_service.get_purchase_order(get_session(), order_id)
    return jsonify({'status': 'success', 'order': order.to_dict()})


@orders_bp.route('/<int:order_id>/status', methods=['POST'])
@require_role('manager')
def update_status(order_id):
    data = json_body()
    require_fields(data, 'status')

    order = purchase_order_service.update_purchase_order_status(get_session(), order_id, data['status'])
    return jsonify({'status': 'success', 'order': order.to_dict()})


@orders_bp.route('/<int:order_id>/receive', methods=['POST'])
@require_role('manager')
def receive_order(order_id):
    order = purchase_order_service.receive_purchase_order(get_session(), order_id, user_id=g.user_id)
    return jsonify({'status': 'success', 'order': order.to_dict()})
