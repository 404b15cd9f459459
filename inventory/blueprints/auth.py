"""
Authentication blueprint.
Handles user registration, login and logout with a session cookie.
"""
import logging

from flask import Blueprint, jsonify, session, g

from inventory.database import get_session
from inventory.middleware import require_login
from inventory.services.auth_service import register_user, authenticate
from inventory.utils.request_helpers import json_body, require_fields

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Register a new user (first user becomes admin)."""
    data = json_body()
    require_fields(data, 'email', 'password', 'name')

    user = register_user(get_session(), data['email'], data['password'], data['name'])

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    return jsonify({'status': 'success', 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = json_body()
    require_fields(data, 'email', 'password')

    user = authenticate(get_session(), data['email'], data['password'])

    session.clear()
    session['user_id'] = user.id
    session.permanent = True
    logger.info(f"User logged in: {user.email}")

    return jsonify({'status': 'success', 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'success'})


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    return jsonify({'status': 'success', 'user': g.user.to_dict()})
