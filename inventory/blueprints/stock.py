"""Stock movements blueprint: the HTTP face of the stock engine."""
from datetime import date

from flask import Blueprint, jsonify, request, g

from inventory.database import get_session
from inventory.middleware import require_role
from inventory.models import Product
from inventory.services import stock_service
from inventory.services.stock_status import classify_stock, critical_ratio
from inventory.utils.request_helpers import json_body, require_fields, arg_int

stock_bp = Blueprint('stock', __name__, url_prefix='/stock')


def _movement_response(session, transaction):
    """Transaction plus the product's new balance and status."""
    product = session.get(Product, transaction.product_id)
    session.refresh(product)
    return jsonify({
        'status': 'success',
        'transaction': transaction.to_dict(),
        'product': {
            'id': product.id,
            'current_stock': product.current_stock,
            'status': classify_stock(product.current_stock, product.min_stock, critical_ratio()).value,
        },
    }), 201


@stock_bp.route('/in', methods=['POST'])
@require_role('staff')
def stock_in():
    data = json_body()
    require_fields(data, 'product_id', 'quantity', 'unit_cost')
    session = get_session()

    transaction = stock_service.record_stock_in(
        session,
        data['product_id'],
        data['quantity'],
        data['unit_cost'],
        supplier_id=data.get('supplier_id'),
        notes=data.get('notes'),
        user_id=g.user_id,
        reference_number=data.get('reference_number'),
    )
    return _movement_response(session, transaction)


@stock_bp.route('/out', methods=['POST'])
@require_role('staff')
def stock_out():
    data = json_body()
    require_fields(data, 'product_id', 'quantity', 'unit_price')
    session = get_session()

    transaction = stock_service.record_stock_out(
        session,
        data['product_id'],
        data['quantity'],
        data['unit_price'],
        customer_ref=_customer_ref(data),
        notes=data.get('notes'),
        user_id=g.user_id,
    )
    return _movement_response(session, transaction)


@stock_bp.route('/return', methods=['POST'])
@require_role('staff')
def stock_return():
    data = json_body()
    require_fields(data, 'product_id', 'quantity', 'unit_price')
    session = get_session()

    transaction = stock_service.record_return(
        session,
        data['product_id'],
        data['quantity'],
        data['unit_price'],
        customer_ref=_customer_ref(data),
        notes=data.get('notes'),
        user_id=g.user_id,
    )
    return _movement_response(session, transaction)


@stock_bp.route('/adjustments', methods=['POST'])
@require_role('manager')
def stock_adjustment():
    data = json_body()
    require_fields(data, 'product_id', 'delta', 'reason')
    session = get_session()

    transaction = stock_service.record_adjustment(
        session,
        data['product_id'],
        data['delta'],
        data['reason'],
        user_id=g.user_id,
    )
    return _movement_response(session, transaction)


@stock_bp.route('/transactions', methods=['GET'])
@require_role('staff')
def list_transactions():
    """Ledger history, newest first."""
    transactions = stock_service.get_history(
        get_session(),
        product_id=arg_int('product_id'),
        transaction_type=request.args.get('type') or None,
        limit=arg_int('limit'),
    )
    return jsonify({
        'status': 'success',
        'transactions': [t.to_dict() for t in transactions],
    })


@stock_bp.route('/daily-summary', methods=['GET'])
@require_role('staff')
def daily_summary():
    day = request.args.get('date', '').strip()
    if not day:
        day = date.today()

    summary = stock_service.get_daily_summary(get_session(), day)
    return jsonify({
        'status': 'success',
        'date': str(day),
        'products': list(summary.values()),
    })


@stock_bp.route('/stats', methods=['GET'])
@require_role('staff')
def transaction_stats():
    stats = stock_service.get_transaction_stats(
        get_session(),
        request.args.get('start', ''),
        request.args.get('end', ''),
    )
    return jsonify({'status': 'success', 'stats': stats})


def _customer_ref(data):
    value = data.get('customer_id', data.get('customer_ref'))
    return None if value in (None, '') else str(value)
