"""Product catalog blueprint."""
from flask import Blueprint, jsonify, request, g

from inventory.database import get_session
from inventory.middleware import require_role
from inventory.services import product_service
from inventory.utils.request_helpers import json_body, require_fields, arg_int

products_bp = Blueprint('products', __name__, url_prefix='/products')


@products_bp.route('', methods=['GET'])
@require_role('staff')
def list_products():
    result = product_service.list_products(
        get_session(),
        page=arg_int('page', 1),
        limit=arg_int('limit', 20),
        search=request.args.get('search', '').strip() or None,
        category=request.args.get('category', '').strip() or None,
        sort_by=request.args.get('sort_by', 'name'),
        sort_order=request.args.get('sort_order', 'asc'),
    )
    return jsonify({
        'status': 'success',
        'items': [p.to_dict() for p in result['items']],
        'count': result['count'],
        'page': result['page'],
        'limit': result['limit'],
    })


@products_bp.route('', methods=['POST'])
@require_role('manager')
def create_product():
    data = json_body()
    require_fields(data, 'sku', 'name', 'category')

    product = product_service.create_product(
        get_session(),
        sku=data['sku'],
        name=data['name'],
        category=data['category'],
        unit_price=data.get('unit_price', 0),
        min_stock=data.get('min_stock', 0),
        max_stock=data.get('max_stock'),
        description=data.get('description'),
        supplier_id=data.get('supplier_id'),
        initial_stock=data.get('initial_stock', 0),
        user_id=g.user_id,
    )
    return jsonify({'status': 'success', 'product': product.to_dict()}), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_role('staff')
def get_product(product_id):
    product = product_service.get_product(get_session(), product_id)
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/<int:product_id>', methods=['PUT'])
@require_role('manager')
def update_product(product_id):
    product = product_service.update_product(get_session(), product_id, **json_body())
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@require_role('admin')
def delete_product(product_id):
    product_service.delete_product(get_session(), product_id)
    return jsonify({'status': 'success'})


@products_bp.route('/low-stock', methods=['GET'])
@require_role('staff')
def low_stock():
    products = product_service.get_low_stock_products(get_session())
    return jsonify({'status': 'success', 'items': [p.to_dict() for p in products]})


@products_bp.route('/out-of-stock', methods=['GET'])
@require_role('staff')
def out_of_stock():
    products = product_service.get_out_of_stock_products(get_session())
    return jsonify({'status': 'success', 'items': [p.to_dict() for p in products]})


@products_bp.route('/categories', methods=['GET'])
@require_role('staff')
def categories():
    counts = product_service.get_product_count_by_category(get_session())
    return jsonify({
        'status': 'success',
        'categories': [{'name': name, 'count': count} for name, count in counts.items()],
    })
