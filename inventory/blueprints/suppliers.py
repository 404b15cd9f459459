"""Suppliers blueprint."""
from flask import Blueprint, jsonify

from inventory.database import get_session
from inventory.middleware import require_role
from inventory.services import supplier_service
from inventory.utils.request_helpers import json_body, require_fields

suppliers_bp = Blueprint('suppliers', __name__, url_prefix='/suppliers')


@suppliers_bp.route('', methods=['GET'])
@require_role('staff')
def list_suppliers():
    suppliers = supplier_service.list_suppliers(get_session())
    return jsonify({'status': 'success', 'suppliers': [s.to_dict() for s in suppliers]})


@suppliers_bp.route('', methods=['POST'])
@require_role('manager')
def create_supplier():
    data = json_body()
    require_fields(data, 'name')

    supplier = supplier_service.create_supplier(
        get_session(),
        name=data['name'],
        contact_person=data.get('contact_person'),
        email=data.get('email'),
        phone=data.get('phone'),
        address=data.get('address'),
        payment_terms=data.get('payment_terms'),
        lead_time_days=data.get('lead_time_days', 7),
    )
    return jsonify({'status': 'success', 'supplier': supplier.to_dict()}), 201


@suppliers_bp.route('/<int:supplier_id>', methods=['GET'])
@require_role('staff')
def get_supplier(supplier_id):
    supplier = supplier_service.get_supplier(get_session(), supplier_id)
    return jsonify({'status': 'success', 'supplier': supplier.to_dict()})
